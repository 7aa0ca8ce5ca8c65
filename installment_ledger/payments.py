"""
Installment Payments Module

Payment entries of a plan and the lifecycle controller that applies
payments to them. Applying a payment closes the entry (Paid or Partial),
snapshots what stays unpaid, and materializes the next month's entry with any
shortfall folded in. Entry update and successor write form one atomic unit.

Lifecycle of one entry::

    Pending --(amount == due)--> Paid       (immutable)
    Pending --(0 < amount < due)--> Partial (editable only while it is the
                                             open tail of the plan)
"""

from decimal import Decimal
from datetime import datetime, date
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from contextlib import contextmanager
import logging
import threading
import uuid

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .clock import Clock, SystemClock
from .config import LedgerConfig, get_config
from .exceptions import (
    LedgerError, NotFoundError, ImmutableEntryError, OutOfOrderEditError,
    ValidationError, IntegrityError, ConcurrentModificationError
)
from .ledger_math import (
    PaymentStatus, NextEntryDraft, payment_status, carryover_amount, overdue_snapshot,
    validate_amount_paid, is_closed, is_late_due_to_inaction, overdue_days, carryover_note
)
from .logging_config import log_action
from .plans import InstallmentPlan, PLANS_TABLE, ENTRIES_TABLE
from .schedule import first_entry_draft, next_scheduled_entry
from .summary import InstallmentSummary, summarize, next_payable_entry


logger = logging.getLogger("installment_ledger.payments")


@dataclass
class InstallmentPaymentEntry(StorageRecord):
    """One scheduled monthly obligation of a plan"""
    plan_id: str
    customer_id: str
    amount_due: Money
    amount_paid: Money
    carryover_amount: Money
    overdue_amount: Money
    status: PaymentStatus
    due_date: date
    payment_date: Optional[datetime] = None
    notes: Optional[str] = None
    version: int = 1

    @property
    def is_closed(self) -> bool:
        return is_closed(self.status)

    @property
    def is_untouched(self) -> bool:
        """Pending with nothing recorded against it"""
        return (self.status == PaymentStatus.PENDING
                and self.amount_paid.is_zero()
                and self.payment_date is None)

    def is_late(self, today: date) -> bool:
        return is_late_due_to_inaction(self.due_date, self.status, today)

    def days_overdue(self, today: date) -> int:
        if not self.is_late(today):
            return 0
        return overdue_days(self.due_date, today)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'plan_id': self.plan_id,
            'customer_id': self.customer_id,
            'status': self.status.value,
            'due_date': self.due_date.isoformat(),
            'payment_date': self.payment_date.isoformat() if self.payment_date else None,
            'notes': self.notes,
            'version': self.version,
            'currency': self.amount_due.currency.code
        }
        for field in ['amount_due', 'amount_paid', 'carryover_amount', 'overdue_amount']:
            result[field] = str(getattr(self, field).amount)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InstallmentPaymentEntry':
        currency = Currency[data['currency']]

        def get_money(field: str) -> Money:
            return Money(Decimal(data[field]), currency)

        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            plan_id=data['plan_id'],
            customer_id=data['customer_id'],
            amount_due=get_money('amount_due'),
            amount_paid=get_money('amount_paid'),
            carryover_amount=get_money('carryover_amount'),
            overdue_amount=get_money('overdue_amount'),
            status=PaymentStatus(data['status']),
            due_date=date.fromisoformat(data['due_date']),
            payment_date=(datetime.fromisoformat(data['payment_date'])
                          if data.get('payment_date') else None),
            notes=data.get('notes'),
            version=data.get('version', 1)
        )


def sort_entries(entries: List[InstallmentPaymentEntry]) -> List[InstallmentPaymentEntry]:
    """Chronological order; the tail is always the last element"""
    return sorted(entries, key=lambda e: (e.due_date, e.created_at))


class PaymentRepository:
    """Persistence collaborator of the lifecycle controller"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def find_entries_by_plan(self, plan_id: str) -> List[InstallmentPaymentEntry]:
        data = self.storage.find(ENTRIES_TABLE, {"plan_id": plan_id})
        return sort_entries([InstallmentPaymentEntry.from_dict(item) for item in data])

    def find_entries(self, filters: Dict[str, Any]) -> List[InstallmentPaymentEntry]:
        return [InstallmentPaymentEntry.from_dict(item)
                for item in self.storage.find(ENTRIES_TABLE, filters)]

    def get_entry(self, entry_id: str) -> Optional[InstallmentPaymentEntry]:
        data = self.storage.load(ENTRIES_TABLE, entry_id)
        if data:
            return InstallmentPaymentEntry.from_dict(data)
        return None

    def get_plan(self, plan_id: str) -> Optional[InstallmentPlan]:
        data = self.storage.load(PLANS_TABLE, plan_id)
        if data:
            return InstallmentPlan.from_dict(data)
        return None

    def run_atomic(self, fn: Callable[[], Any]) -> Any:
        """Run a unit of work; any exception undoes all of its writes"""
        with self.storage.atomic():
            return fn()

    def insert_entry(self, entry: InstallmentPaymentEntry) -> None:
        if self.storage.exists(ENTRIES_TABLE, entry.id):
            raise IntegrityError(f"Payment {entry.id} already exists", {"entry_id": entry.id})
        self.storage.save(ENTRIES_TABLE, entry.id, entry.to_dict())

    def save_entry(self, entry: InstallmentPaymentEntry, expected_version: int) -> None:
        """
        Write an updated entry if nobody else wrote it since it was read.

        Raises:
            ConcurrentModificationError: stored version differs from expected_version
        """
        with self.storage.lock:
            stored = self.storage.load(ENTRIES_TABLE, entry.id)
            if stored is None:
                raise NotFoundError("payment", entry.id)
            stored_version = stored.get('version', 1)
            if stored_version != expected_version:
                raise ConcurrentModificationError(entry.id, expected_version, stored_version)
            entry.version = expected_version + 1
            self.storage.save(ENTRIES_TABLE, entry.id, entry.to_dict())

    def delete_entry(self, entry_id: str) -> bool:
        return self.storage.delete(ENTRIES_TABLE, entry_id)


class PaymentLifecycleController:
    """
    Applies payments to installment entries and grows each plan's sequence
    one entry at a time.

    Calls for the same plan are serialized by a per-plan lock; every call
    re-reads the plan's entries inside its atomic unit.
    """

    def __init__(
        self,
        repository: PaymentRepository,
        audit_trail: AuditTrail,
        clock: Optional[Clock] = None,
        config: Optional[LedgerConfig] = None
    ):
        self.repository = repository
        self.audit_trail = audit_trail
        self.clock = clock or SystemClock()
        self.config = config or get_config()

        self._plan_locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def _plan_lock(self, plan_id: str):
        with self._registry_lock:
            lock = self._plan_locks.setdefault(plan_id, threading.Lock())
        with lock:
            yield

    @contextmanager
    def _logged(self, action: str, plan_id: Optional[str] = None,
                entry_id: Optional[str] = None):
        """Log rejected operations with their error code, then re-raise"""
        try:
            yield
        except LedgerError as e:
            log_action(logger, "warning", f"{action} rejected: {e.message}",
                       action=action, plan_id=plan_id, entry_id=entry_id,
                       extra={"code": e.code, **e.details})
            raise

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_initial_payment(
        self,
        plan_id: str,
        customer_id: str,
        amount_due: Optional[Money] = None,
        due_date: Optional[date] = None,
        amount_paid: Optional[Money] = None,
        notes: Optional[str] = None,
        payment_date: Optional[datetime] = None
    ) -> InstallmentPaymentEntry:
        """
        Create the first entry of a plan.

        ``amount_due`` and ``due_date`` default to the first month of the
        plan's schedule. When the first entry is already closed by
        ``amount_paid``, its successor is materialized in the same unit of work.

        Raises:
            NotFoundError: plan does not exist
            ValidationError: customer mismatch, plan already has entries, or
                amount out of bounds
        """
        with self._logged("create_initial_payment", plan_id=plan_id):
            with self._plan_lock(plan_id):
                return self.repository.run_atomic(
                    lambda: self._create_initial_payment(
                        plan_id, customer_id, amount_due, due_date,
                        amount_paid, notes, payment_date
                    )
                )

    def _create_initial_payment(self, plan_id, customer_id, amount_due, due_date,
                                amount_paid, notes, payment_date) -> InstallmentPaymentEntry:
        plan = self.repository.get_plan(plan_id)
        if not plan:
            raise NotFoundError("plan", plan_id)

        if customer_id != plan.customer_id:
            raise ValidationError(
                "Customer ID does not match the installment's customer",
                {"customer_id": customer_id, "plan_customer_id": plan.customer_id}
            )

        if self.repository.find_entries_by_plan(plan_id):
            raise ValidationError(
                "Payments for this installment already exist. Apply a payment instead.",
                {"plan_id": plan_id}
            )

        draft = first_entry_draft(plan, customer_id, plan_id)
        if amount_due is None:
            amount_due = draft.amount_due
        if due_date is None:
            due_date = draft.due_date

        self._validate_notes(notes)
        if amount_due.currency != plan.currency:
            raise ValidationError(
                f"Amount due currency {amount_due.currency.code} does not match "
                f"plan currency {plan.currency.code}"
            )
        if amount_due.is_negative():
            raise ValidationError("Amount due cannot be negative",
                                  {"amount_due": str(amount_due.amount)})

        if amount_paid is None:
            amount_paid = Money.zero(plan.currency)
        validate_amount_paid(amount_paid, amount_due)

        status = payment_status(amount_paid, amount_due)
        carryover = carryover_amount(amount_paid, amount_due)
        now = self.clock.now()
        if status != PaymentStatus.PENDING and payment_date is None:
            payment_date = now

        entry = InstallmentPaymentEntry(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            plan_id=plan_id,
            customer_id=customer_id,
            amount_due=amount_due,
            amount_paid=amount_paid,
            carryover_amount=carryover,
            overdue_amount=overdue_snapshot(status, carryover),
            status=status,
            due_date=due_date,
            payment_date=payment_date,
            notes=notes
        )
        self.repository.insert_entry(entry)

        self.audit_trail.log_event(
            event_type=AuditEventType.PAYMENT_CREATED,
            entity_type="payment",
            entity_id=entry.id,
            metadata={
                "plan_id": plan_id,
                "amount_due": amount_due.to_string(),
                "amount_paid": amount_paid.to_string(),
                "status": status,
                "due_date": due_date.isoformat()
            }
        )

        draft = next_scheduled_entry(plan, entry, closed_count=1 if entry.is_closed else 0,
                                     anchor=entry.due_date)
        if draft is not None:
            self._materialize(draft, entry)

        log_action(logger, "info", "Initial installment payment created",
                   action="create_initial_payment", plan_id=plan_id, entry_id=entry.id,
                   extra={"status": status.value, "amount_paid": str(amount_paid.amount)})
        return entry

    def apply_payment(
        self,
        entry_id: str,
        amount_paid: Money,
        notes: Optional[str] = None
    ) -> InstallmentPaymentEntry:
        """
        Record ``amount_paid`` against an entry and grow the sequence.

        ``amount_paid`` is the entry's total paid amount, not an increment: a
        second call on the open Partial tail replaces the earlier amount and
        regenerates that entry's successor instead of adding another one.

        Args:
            entry_id: Payment entry to pay
            amount_paid: Amount paid on this entry, ``0 <= amount_paid <= amount_due``
            notes: Replaces the entry's notes when given

        Returns:
            The updated entry

        Raises:
            NotFoundError: entry does not exist
            IntegrityError: entry references a missing plan
            ImmutableEntryError: entry is Paid
            OutOfOrderEditError: entry is Partial but not the open tail
            ValidationError: amount out of bounds or notes too long
            ConcurrentModificationError: entry changed while being written
        """
        with self._logged("apply_payment", entry_id=entry_id):
            entry = self.repository.get_entry(entry_id)
            if not entry:
                raise NotFoundError("payment", entry_id)

            with self._plan_lock(entry.plan_id):
                return self.repository.run_atomic(
                    lambda: self._apply_payment(entry_id, amount_paid, notes)
                )

    def _apply_payment(self, entry_id: str, amount_paid: Money,
                       notes: Optional[str]) -> InstallmentPaymentEntry:
        entry = self.repository.get_entry(entry_id)
        if not entry:
            raise NotFoundError("payment", entry_id)

        plan = self.repository.get_plan(entry.plan_id)
        if not plan:
            raise IntegrityError(
                f"Payment {entry_id} references missing installment plan {entry.plan_id}",
                {"entry_id": entry_id, "plan_id": entry.plan_id}
            )

        if entry.status == PaymentStatus.PAID:
            raise ImmutableEntryError(entry.id, entry.status.value)

        entries = self.repository.find_entries_by_plan(plan.id)
        following = self._following_entry(entry, entries)

        was_partial = entry.status == PaymentStatus.PARTIAL
        if was_partial:
            self._ensure_open_tail(entry, entries)
            if amount_paid.is_zero():
                raise ValidationError(
                    "A partially paid installment cannot be reset to zero",
                    {"entry_id": entry.id}
                )

        validate_amount_paid(amount_paid, entry.amount_due)
        self._validate_notes(notes)

        if amount_paid.is_zero():
            # Nothing paid: the entry stays Pending and the sequence does not grow
            if notes is not None:
                self._write_notes(entry, notes)
            return entry

        previous_amount = entry.amount_paid
        # Note the successor was generated with, if it exists
        generated_note = carryover_note(entry.carryover_amount)
        expected_version = entry.version
        status = payment_status(amount_paid, entry.amount_due)
        carryover = carryover_amount(amount_paid, entry.amount_due)
        now = self.clock.now()

        entry.amount_paid = amount_paid
        entry.status = status
        entry.carryover_amount = carryover
        entry.overdue_amount = overdue_snapshot(status, carryover)
        entry.payment_date = now
        entry.updated_at = now
        if notes is not None:
            entry.notes = notes
        self.repository.save_entry(entry, expected_version)

        self.audit_trail.log_event(
            event_type=(AuditEventType.PAYMENT_REAPPLIED if was_partial
                        else AuditEventType.PAYMENT_APPLIED),
            entity_type="payment",
            entity_id=entry.id,
            metadata={
                "plan_id": plan.id,
                "amount_due": entry.amount_due.to_string(),
                "amount_paid": amount_paid.to_string(),
                "previous_amount_paid": previous_amount.to_string(),
                "status": status,
                "carryover_amount": carryover.to_string()
            }
        )

        closed_count = sum(1 for e in entries if e.id != entry.id and e.is_closed) + 1
        draft = next_scheduled_entry(plan, entry, closed_count, anchor=entries[0].due_date)
        if draft is not None:
            if following is None:
                self._materialize(draft, entry)
            elif following.is_untouched:
                self._regenerate(following, draft, entry, generated_note)
            # a settled following entry keeps its history

        log_action(logger, "info", "Installment payment applied",
                   action="apply_payment", plan_id=plan.id, entry_id=entry.id,
                   extra={"status": status.value, "amount_paid": str(amount_paid.amount),
                          "carryover_amount": str(carryover.amount),
                          "closed_count": closed_count})
        return entry

    def update_notes(self, entry_id: str, notes: Optional[str]) -> InstallmentPaymentEntry:
        """
        Edit the notes of an open entry.

        Raises:
            NotFoundError: entry does not exist
            ImmutableEntryError: entry is closed
            ValidationError: notes too long
        """
        with self._logged("update_notes", entry_id=entry_id):
            entry = self.repository.get_entry(entry_id)
            if not entry:
                raise NotFoundError("payment", entry_id)

            with self._plan_lock(entry.plan_id):
                def unit():
                    current = self.repository.get_entry(entry_id)
                    if not current:
                        raise NotFoundError("payment", entry_id)
                    if current.is_closed:
                        raise ImmutableEntryError(
                            current.id, current.status.value,
                            "Cannot update a closed payment (Paid or Partial)"
                        )
                    self._validate_notes(notes)
                    self._write_notes(current, notes)
                    return current

                return self.repository.run_atomic(unit)

    def delete_entry(self, entry_id: str) -> None:
        """
        Remove an entry nothing was ever recorded against.

        Raises:
            NotFoundError: entry does not exist
            ImmutableEntryError: entry is closed or carries a payment
        """
        with self._logged("delete_entry", entry_id=entry_id):
            entry = self.repository.get_entry(entry_id)
            if not entry:
                raise NotFoundError("payment", entry_id)

            with self._plan_lock(entry.plan_id):
                def unit():
                    current = self.repository.get_entry(entry_id)
                    if not current:
                        raise NotFoundError("payment", entry_id)
                    if not current.is_untouched:
                        raise ImmutableEntryError(
                            current.id, current.status.value,
                            "Cannot delete a payment that has been paid or partially paid"
                        )
                    self.repository.delete_entry(entry_id)
                    self.audit_trail.log_event(
                        event_type=AuditEventType.PAYMENT_DELETED,
                        entity_type="payment",
                        entity_id=entry_id,
                        metadata={"plan_id": current.plan_id,
                                  "due_date": current.due_date.isoformat()}
                    )

                self.repository.run_atomic(unit)

        log_action(logger, "info", "Installment payment deleted",
                   action="delete_entry", plan_id=entry.plan_id, entry_id=entry_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_entry(self, entry_id: str) -> InstallmentPaymentEntry:
        entry = self.repository.get_entry(entry_id)
        if not entry:
            raise NotFoundError("payment", entry_id)
        return entry

    def list_entries(
        self,
        status: Optional[PaymentStatus] = None,
        customer_id: Optional[str] = None,
        plan_id: Optional[str] = None
    ) -> List[InstallmentPaymentEntry]:
        """Entries matching all given filters, grouped by plan then due date"""
        filters = {}
        if status:
            filters['status'] = status.value
        if customer_id:
            filters['customer_id'] = customer_id
        if plan_id:
            filters['plan_id'] = plan_id
        entries = self.repository.find_entries(filters)
        return sorted(entries, key=lambda e: (e.plan_id, e.due_date, e.created_at))

    def entries_for_plan(self, plan_id: str) -> List[InstallmentPaymentEntry]:
        self._require_plan(plan_id)
        return self.repository.find_entries_by_plan(plan_id)

    def next_payable_entry(self, plan_id: str) -> Optional[InstallmentPaymentEntry]:
        return next_payable_entry(self.entries_for_plan(plan_id))

    def count_pending(self) -> int:
        return len(self.repository.find_entries({'status': PaymentStatus.PENDING.value}))

    def count_overdue(self) -> int:
        """Pending entries whose due date has passed, as of the controller's clock"""
        today = self.clock.today()
        pending = self.repository.find_entries({'status': PaymentStatus.PENDING.value})
        return sum(1 for e in pending if e.is_late(today))

    def get_summary(self, plan_id: str) -> InstallmentSummary:
        plan = self._require_plan(plan_id)
        entries = self.repository.find_entries_by_plan(plan_id)
        return summarize(plan, entries, self.clock.today())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_plan(self, plan_id: str) -> InstallmentPlan:
        plan = self.repository.get_plan(plan_id)
        if not plan:
            raise NotFoundError("plan", plan_id)
        return plan

    def _validate_notes(self, notes: Optional[str]) -> None:
        if notes is not None and len(notes) > self.config.notes_max_length:
            raise ValidationError(
                f"Notes must not exceed {self.config.notes_max_length} characters",
                {"length": len(notes)}
            )

    @staticmethod
    def _following_entry(entry: InstallmentPaymentEntry,
                         entries: List[InstallmentPaymentEntry]) -> Optional[InstallmentPaymentEntry]:
        later = [e for e in entries if e.due_date > entry.due_date]
        return later[0] if later else None

    @staticmethod
    def _ensure_open_tail(entry: InstallmentPaymentEntry,
                          entries: List[InstallmentPaymentEntry]) -> None:
        """
        A Partial entry stays editable only while nothing after it has moved:
        the only later entry allowed is its own untouched successor.
        """
        later = [e for e in entries if e.due_date > entry.due_date]
        if not later:
            return
        if len(later) == 1 and later[0].is_untouched:
            return
        blocking = next((e for e in later if not e.is_untouched), later[-1])
        raise OutOfOrderEditError(entry.id, blocking.id)

    def _write_notes(self, entry: InstallmentPaymentEntry, notes: Optional[str]) -> None:
        expected_version = entry.version
        entry.notes = notes
        entry.updated_at = self.clock.now()
        self.repository.save_entry(entry, expected_version)
        self.audit_trail.log_event(
            event_type=AuditEventType.PAYMENT_NOTES_UPDATED,
            entity_type="payment",
            entity_id=entry.id,
            metadata={"plan_id": entry.plan_id}
        )

    def _materialize(self, draft: NextEntryDraft,
                     predecessor: InstallmentPaymentEntry) -> InstallmentPaymentEntry:
        now = self.clock.now()
        entry = InstallmentPaymentEntry(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            plan_id=draft.plan_id,
            customer_id=draft.customer_id,
            amount_due=draft.amount_due,
            amount_paid=draft.amount_paid,
            carryover_amount=draft.carryover_amount,
            overdue_amount=draft.overdue_amount,
            status=draft.status,
            due_date=draft.due_date,
            payment_date=draft.payment_date,
            notes=draft.notes
        )
        self.repository.insert_entry(entry)
        self.audit_trail.log_event(
            event_type=AuditEventType.NEXT_PAYMENT_SCHEDULED,
            entity_type="payment",
            entity_id=entry.id,
            metadata={
                "plan_id": entry.plan_id,
                "predecessor_id": predecessor.id,
                "amount_due": entry.amount_due.to_string(),
                "due_date": entry.due_date.isoformat()
            }
        )
        return entry

    def _regenerate(self, successor: InstallmentPaymentEntry, draft: NextEntryDraft,
                    predecessor: InstallmentPaymentEntry,
                    generated_note: Optional[str]) -> InstallmentPaymentEntry:
        """Refresh an untouched successor's amount; notes edited by a user are kept"""
        previous_amount_due = successor.amount_due
        expected_version = successor.version
        successor.amount_due = draft.amount_due
        if successor.notes is None or successor.notes == generated_note:
            successor.notes = draft.notes
        successor.updated_at = self.clock.now()
        self.repository.save_entry(successor, expected_version)
        self.audit_trail.log_event(
            event_type=AuditEventType.NEXT_PAYMENT_REGENERATED,
            entity_type="payment",
            entity_id=successor.id,
            metadata={
                "plan_id": successor.plan_id,
                "predecessor_id": predecessor.id,
                "previous_amount_due": previous_amount_due.to_string(),
                "amount_due": successor.amount_due.to_string()
            }
        )
        return successor
