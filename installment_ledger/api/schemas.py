"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from ..currency import Money, Currency
from ..exceptions import ValidationError
from ..plans import InstallmentPlan
from ..payments import InstallmentPaymentEntry


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field("EGP", description="Currency code (EGP, USD, etc.)")

    def to_money(self) -> Money:
        try:
            return Money(Decimal(self.amount), Currency[self.currency])
        except (InvalidOperation, ValueError, KeyError):
            raise ValidationError(
                f"Invalid money value: {self.amount} {self.currency}",
                {"amount": self.amount, "currency": self.currency}
            )

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


# Plan schemas
class CreatePlanRequest(BaseModel):
    sale_id: str
    customer_id: str
    number_of_months: int = Field(..., description="Number of monthly installments")
    monthly_installment: MoneyModel
    collection_start_date: str  # ISO date string
    collection_end_date: str  # ISO date string
    financed_amount: Optional[MoneyModel] = None  # Sale total minus up-front payment


# Payment schemas
class CreatePaymentRequest(BaseModel):
    plan_id: str
    customer_id: str
    amount_due: Optional[MoneyModel] = None  # Defaults to the monthly installment
    due_date: Optional[str] = None  # ISO date string, defaults to collection start
    amount_paid: Optional[MoneyModel] = None
    payment_date: Optional[str] = None  # ISO datetime string
    notes: Optional[str] = None


class ApplyPaymentRequest(BaseModel):
    amount_paid: Optional[MoneyModel] = Field(
        None, description="Total paid on this installment; omit to edit notes only"
    )
    notes: Optional[str] = None


def parse_date(value: str, field: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid {field}: {value}", {field: value})


def parse_datetime(value: str, field: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid {field}: {value}", {field: value})


def plan_response(plan: InstallmentPlan) -> Dict[str, Any]:
    return {
        "id": plan.id,
        "sale_id": plan.sale_id,
        "customer_id": plan.customer_id,
        "number_of_months": plan.number_of_months,
        "monthly_installment": MoneyModel.from_money(plan.monthly_installment).model_dump(),
        "total_scheduled": MoneyModel.from_money(plan.total_scheduled).model_dump(),
        "collection_start_date": plan.collection_start_date.isoformat(),
        "collection_end_date": plan.collection_end_date.isoformat(),
        "created_at": plan.created_at.isoformat()
    }


def entry_response(entry: InstallmentPaymentEntry, today: date) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "plan_id": entry.plan_id,
        "customer_id": entry.customer_id,
        "amount_due": MoneyModel.from_money(entry.amount_due).model_dump(),
        "amount_paid": MoneyModel.from_money(entry.amount_paid).model_dump(),
        "carryover_amount": MoneyModel.from_money(entry.carryover_amount).model_dump(),
        "overdue_amount": MoneyModel.from_money(entry.overdue_amount).model_dump(),
        "status": entry.status.value,
        "due_date": entry.due_date.isoformat(),
        "payment_date": entry.payment_date.isoformat() if entry.payment_date else None,
        "is_late": entry.is_late(today),
        "days_overdue": entry.days_overdue(today),
        "notes": entry.notes,
        "version": entry.version
    }
