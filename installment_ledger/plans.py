"""
Installment Plan Module

Financing terms of one installment sale: number of months, monthly amount
and the collection window. A plan is created once per sale and owns the
sequence of payment entries managed by ``payments.PaymentLifecycleController``.
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass
from typing import Dict, List, Optional
import logging
import uuid

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .clock import Clock, SystemClock
from .config import LedgerConfig, get_config
from .exceptions import NotFoundError, ValidationError
from .ledger_math import PaymentStatus, is_closed
from .logging_config import log_action
from .schedule import reconcile_plan, scheduled_total


PLANS_TABLE = "installment_plans"
ENTRIES_TABLE = "installment_payments"

logger = logging.getLogger("installment_ledger.plans")


@dataclass
class InstallmentPlan(StorageRecord):
    """Financing terms for one installment sale"""
    sale_id: str
    customer_id: str
    number_of_months: int
    monthly_installment: Money
    collection_start_date: date
    collection_end_date: date

    @property
    def currency(self) -> Currency:
        return self.monthly_installment.currency

    @property
    def total_scheduled(self) -> Money:
        return scheduled_total(self)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'sale_id': self.sale_id,
            'customer_id': self.customer_id,
            'number_of_months': self.number_of_months,
            'monthly_installment_amount': str(self.monthly_installment.amount),
            'monthly_installment_currency': self.monthly_installment.currency.code,
            'collection_start_date': self.collection_start_date.isoformat(),
            'collection_end_date': self.collection_end_date.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'InstallmentPlan':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            sale_id=data['sale_id'],
            customer_id=data['customer_id'],
            number_of_months=data['number_of_months'],
            monthly_installment=Money(
                Decimal(data['monthly_installment_amount']),
                Currency[data['monthly_installment_currency']]
            ),
            collection_start_date=date.fromisoformat(data['collection_start_date']),
            collection_end_date=date.fromisoformat(data['collection_end_date'])
        )


class PlanManager:
    """Creates, reads and deletes installment plans"""

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        clock: Optional[Clock] = None,
        config: Optional[LedgerConfig] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.clock = clock or SystemClock()
        self.config = config or get_config()

    def create_plan(
        self,
        sale_id: str,
        customer_id: str,
        number_of_months: int,
        monthly_installment: Money,
        collection_start_date: date,
        collection_end_date: date,
        financed_amount: Optional[Money] = None
    ) -> InstallmentPlan:
        """
        Create the installment plan of a sale.

        Args:
            sale_id: Owning sale; at most one plan per sale
            customer_id: Customer of the sale
            number_of_months: Number of monthly installments
            monthly_installment: Nominal monthly amount
            collection_start_date: Due date of the first installment
            collection_end_date: End of the collection window
            financed_amount: Sale total minus up-front payment, checked
                against ``monthly_installment * number_of_months``

        Returns:
            Created InstallmentPlan

        Raises:
            ValidationError: invalid terms, duplicate plan for the sale, or
                (when reconciliation is enforced) a schedule that does not
                cover the financed amount
        """
        if not 1 <= number_of_months <= self.config.max_plan_months:
            raise ValidationError(
                f"Number of months must be between 1 and {self.config.max_plan_months}",
                {"number_of_months": number_of_months}
            )
        if monthly_installment.is_negative():
            raise ValidationError(
                "Monthly installment cannot be negative",
                {"monthly_installment": str(monthly_installment.amount)}
            )
        if collection_start_date >= collection_end_date:
            raise ValidationError(
                "Collection end date must be after start date",
                {"collection_start_date": collection_start_date.isoformat(),
                 "collection_end_date": collection_end_date.isoformat()}
            )

        now = self.clock.now()
        plan = InstallmentPlan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            sale_id=sale_id,
            customer_id=customer_id,
            number_of_months=number_of_months,
            monthly_installment=monthly_installment,
            collection_start_date=collection_start_date,
            collection_end_date=collection_end_date
        )

        with self.storage.atomic():
            if self.get_plan_for_sale(sale_id):
                raise ValidationError(
                    f"Installment plan already exists for sale {sale_id}",
                    {"sale_id": sale_id}
                )
            if financed_amount is not None:
                self._check_reconciliation(plan, financed_amount)

            self.storage.save(PLANS_TABLE, plan.id, plan.to_dict())
            self.audit_trail.log_event(
                event_type=AuditEventType.PLAN_CREATED,
                entity_type="plan",
                entity_id=plan.id,
                metadata={
                    "sale_id": sale_id,
                    "customer_id": customer_id,
                    "number_of_months": number_of_months,
                    "monthly_installment": monthly_installment.to_string(),
                    "collection_start_date": collection_start_date.isoformat(),
                    "collection_end_date": collection_end_date.isoformat()
                }
            )

        log_action(logger, "info", "Installment plan created",
                   action="create_plan", plan_id=plan.id,
                   extra={"sale_id": sale_id, "number_of_months": number_of_months})
        return plan

    def _check_reconciliation(self, plan: InstallmentPlan, financed_amount: Money) -> None:
        if financed_amount.currency != plan.currency:
            raise ValidationError(
                f"Financed amount currency {financed_amount.currency.code} does not "
                f"match plan currency {plan.currency.code}"
            )

        result = reconcile_plan(plan, financed_amount)
        if result.reconciled:
            return

        details = {
            "scheduled_total": str(result.scheduled_total.amount),
            "financed_amount": str(result.financed_amount.amount),
            "difference": str(result.difference.amount)
        }
        if self.config.enforce_plan_reconciliation:
            raise ValidationError(
                f"Installment schedule totals {result.scheduled_total.to_string()} "
                f"but {result.financed_amount.to_string()} is financed",
                details
            )

        log_action(logger, "warning", "Installment schedule does not match financed amount",
                   action="create_plan", plan_id=plan.id, extra=details)
        self.audit_trail.log_event(
            event_type=AuditEventType.PLAN_RECONCILIATION_MISMATCH,
            entity_type="plan",
            entity_id=plan.id,
            metadata=details
        )

    def get_plan(self, plan_id: str) -> Optional[InstallmentPlan]:
        data = self.storage.load(PLANS_TABLE, plan_id)
        if data:
            return InstallmentPlan.from_dict(data)
        return None

    def get_plan_for_sale(self, sale_id: str) -> Optional[InstallmentPlan]:
        found = self.storage.find(PLANS_TABLE, {"sale_id": sale_id})
        if found:
            return InstallmentPlan.from_dict(found[0])
        return None

    def list_plans(self, customer_id: Optional[str] = None) -> List[InstallmentPlan]:
        """All plans, newest first, optionally for one customer"""
        filters = {"customer_id": customer_id} if customer_id else {}
        plans = [InstallmentPlan.from_dict(data)
                 for data in self.storage.find(PLANS_TABLE, filters)]
        plans.sort(key=lambda p: p.created_at, reverse=True)
        return plans

    def delete_plan(self, plan_id: str) -> None:
        """
        Delete a plan together with its untouched entries.

        Raises:
            NotFoundError: plan does not exist
            ValidationError: a payment was already recorded against the plan
        """
        with self.storage.atomic():
            plan = self.get_plan(plan_id)
            if not plan:
                raise NotFoundError("plan", plan_id)

            entries = self.storage.find(ENTRIES_TABLE, {"plan_id": plan_id})
            if any(is_closed(PaymentStatus(e['status'])) for e in entries):
                raise ValidationError(
                    "Cannot delete an installment plan with recorded payments",
                    {"plan_id": plan_id}
                )

            for entry in entries:
                self.storage.delete(ENTRIES_TABLE, entry['id'])
            self.storage.delete(PLANS_TABLE, plan_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.PLAN_DELETED,
                entity_type="plan",
                entity_id=plan_id,
                metadata={"sale_id": plan.sale_id, "deleted_entries": len(entries)}
            )

        log_action(logger, "info", "Installment plan deleted",
                   action="delete_plan", plan_id=plan_id)
