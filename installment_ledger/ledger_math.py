"""
Ledger Math Module

Pure functions behind the installment ledger: payment status, carryover of an
unpaid remainder, the overdue snapshot taken when an entry closes, the shape
of the next monthly entry, and date-based lateness. No I/O, no clock access;
callers pass "today" in.
"""

from datetime import date
from dataclasses import dataclass
from enum import Enum
from typing import Optional
import calendar

from .currency import Money
from .exceptions import ValidationError


class PaymentStatus(Enum):
    """Status of one monthly obligation"""
    PENDING = "Pending"   # No payment recorded yet
    PARTIAL = "Partial"   # Closed with an unpaid remainder carried forward
    PAID = "Paid"         # Closed in full


CLOSED_STATUSES = (PaymentStatus.PAID, PaymentStatus.PARTIAL)


@dataclass(frozen=True)
class NextEntryDraft:
    """Field values for the entry that follows a closed one"""
    plan_id: str
    customer_id: str
    amount_due: Money
    amount_paid: Money
    carryover_amount: Money
    overdue_amount: Money
    status: PaymentStatus
    due_date: date
    payment_date: None
    notes: Optional[str]


def is_closed(status: PaymentStatus) -> bool:
    """Paid and Partial entries are closed"""
    return status in CLOSED_STATUSES


def payment_status(amount_paid: Money, amount_due: Money) -> PaymentStatus:
    if amount_paid >= amount_due:
        return PaymentStatus.PAID
    if amount_paid.is_positive():
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def carryover_amount(amount_paid: Money, amount_due: Money) -> Money:
    """Unpaid remainder, never negative"""
    remaining = amount_due - amount_paid
    if remaining.is_negative():
        return Money.zero(amount_due.currency)
    return remaining


def overdue_snapshot(status: PaymentStatus, carryover: Money) -> Money:
    """Debt left behind by a closing entry; only a Partial close leaves any"""
    if status == PaymentStatus.PARTIAL:
        return carryover
    return Money.zero(carryover.currency)


def validate_amount_paid(amount_paid: Money, amount_due: Money) -> None:
    """
    Reject a payment amount outside ``0 <= amount_paid <= amount_due``.

    Raises:
        ValidationError: currency mismatch, negative amount, or overpayment
    """
    if amount_paid.currency != amount_due.currency:
        raise ValidationError(
            f"Payment currency {amount_paid.currency.code} does not match "
            f"installment currency {amount_due.currency.code}",
            {"amount_paid": str(amount_paid.amount), "amount_due": str(amount_due.amount)}
        )
    if amount_paid.is_negative():
        raise ValidationError(
            "Amount paid cannot be negative",
            {"amount_paid": str(amount_paid.amount)}
        )
    if amount_paid > amount_due:
        raise ValidationError(
            f"Amount paid cannot exceed the amount due ({amount_due.to_string()})",
            {"amount_paid": str(amount_paid.amount), "amount_due": str(amount_due.amount)}
        )


def add_months(start_date: date, months: int) -> date:
    """Add calendar months, clamping the day to the target month's length"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_due_date(current_due_date: date) -> date:
    return add_months(current_due_date, 1)


def months_between(start_date: date, end_date: date) -> int:
    """Whole calendar months from start_date's month to end_date's month"""
    return (end_date.year - start_date.year) * 12 + end_date.month - start_date.month


def carryover_note(carryover: Money) -> str:
    if carryover.is_positive():
        return f"Scheduled installment - carried over balance: {carryover.to_string()}"
    return "Scheduled installment - no carried over balance"


def next_entry(current, monthly_installment: Money, closing_status: PaymentStatus,
               carryover: Money, due_date: Optional[date] = None) -> NextEntryDraft:
    """
    Draft the entry that follows ``current`` once it closes.

    A Partial close folds its whole shortfall into the very next month rather
    than spreading it over the remaining schedule.

    Args:
        current: The closing entry (needs ``plan_id``, ``customer_id``, ``due_date``)
        monthly_installment: Nominal monthly amount of the plan
        closing_status: Status the current entry closed with
        carryover: Unpaid remainder of the current entry
        due_date: Due date of the drafted entry; one month after
            ``current.due_date`` when omitted
    """
    if closing_status == PaymentStatus.PAID:
        amount_due = monthly_installment
    else:
        amount_due = monthly_installment + carryover

    zero = Money.zero(monthly_installment.currency)
    return NextEntryDraft(
        plan_id=current.plan_id,
        customer_id=current.customer_id,
        amount_due=amount_due,
        amount_paid=zero,
        carryover_amount=zero,
        overdue_amount=zero,
        status=PaymentStatus.PENDING,
        due_date=due_date or next_due_date(current.due_date),
        payment_date=None,
        notes=carryover_note(carryover if closing_status != PaymentStatus.PAID else zero)
    )


def is_late_due_to_inaction(due_date: date, status: PaymentStatus, today: date) -> bool:
    """A Pending entry whose due date has passed; recomputed on every read"""
    return status == PaymentStatus.PENDING and due_date < today


def overdue_days(due_date: date, today: date) -> int:
    return max(0, (today - due_date).days)
