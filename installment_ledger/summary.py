"""
Summary Module

Read-only rollups over the ordered entries of one plan: totals paid and
remaining, month counts by status, lateness, and the next due date.
"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from dataclasses import dataclass
from typing import Dict, List, Optional

from .currency import Money
from .ledger_math import PaymentStatus, is_late_due_to_inaction


@dataclass(frozen=True)
class InstallmentSummary:
    plan_id: str
    total_paid: Money
    total_scheduled: Money
    total_remaining: Money
    remaining_months: int
    paid_months: int
    partial_months: int
    pending_months: int
    overdue_months: int
    outstanding_carryover: Money
    percentage_paid: Decimal
    next_due_date: Optional[date]

    def to_dict(self) -> Dict:
        return {
            'plan_id': self.plan_id,
            'currency': self.total_paid.currency.code,
            'total_paid': str(self.total_paid.amount),
            'total_scheduled': str(self.total_scheduled.amount),
            'total_remaining': str(self.total_remaining.amount),
            'remaining_months': self.remaining_months,
            'paid_months': self.paid_months,
            'partial_months': self.partial_months,
            'pending_months': self.pending_months,
            'overdue_months': self.overdue_months,
            'outstanding_carryover': str(self.outstanding_carryover.amount),
            'percentage_paid': str(self.percentage_paid),
            'next_due_date': self.next_due_date.isoformat() if self.next_due_date else None
        }


def total_paid(entries, zero: Money) -> Money:
    total = zero
    for entry in entries:
        total = total + entry.amount_paid
    return total


def remaining_months(plan, entries) -> int:
    """Months not yet paid in full; a Partial month still counts as remaining"""
    paid = sum(1 for e in entries if e.status == PaymentStatus.PAID)
    return max(0, plan.number_of_months - paid)


def next_payable_entry(entries):
    """Earliest Pending entry, or None"""
    pending = [e for e in entries if e.status == PaymentStatus.PENDING]
    if not pending:
        return None
    return min(pending, key=lambda e: e.due_date)


def outstanding_carryover(entries, zero: Money) -> Money:
    """
    Overdue snapshot of the latest Partial entry when nothing after it has been
    settled yet; an already-settled successor absorbed the shortfall.
    """
    ordered = sorted(entries, key=lambda e: e.due_date)
    for position in range(len(ordered) - 1, -1, -1):
        entry = ordered[position]
        if entry.status == PaymentStatus.PAID:
            return zero
        if entry.status == PaymentStatus.PARTIAL:
            return entry.overdue_amount
    return zero


def percentage(part: Money, whole: Money) -> Decimal:
    if whole.is_zero():
        return Decimal('0')
    value = part.amount / whole.amount * Decimal('100')
    return value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def summarize(plan, entries: List, today: date) -> InstallmentSummary:
    """
    Aggregate a plan's entries.

    ``total_scheduled`` is nominal (``monthly_installment * number_of_months``):
    carryover moves amounts between months without changing it.
    """
    zero = Money.zero(plan.monthly_installment.currency)
    paid = total_paid(entries, zero)
    scheduled = plan.monthly_installment * plan.number_of_months
    remaining = scheduled - paid
    if remaining.is_negative():
        remaining = zero

    next_entry = next_payable_entry(entries)

    return InstallmentSummary(
        plan_id=plan.id,
        total_paid=paid,
        total_scheduled=scheduled,
        total_remaining=remaining,
        remaining_months=remaining_months(plan, entries),
        paid_months=sum(1 for e in entries if e.status == PaymentStatus.PAID),
        partial_months=sum(1 for e in entries if e.status == PaymentStatus.PARTIAL),
        pending_months=sum(1 for e in entries if e.status == PaymentStatus.PENDING),
        overdue_months=sum(1 for e in entries
                           if is_late_due_to_inaction(e.due_date, e.status, today)),
        outstanding_carryover=outstanding_carryover(entries, zero),
        percentage_paid=percentage(paid, scheduled),
        next_due_date=next_entry.due_date if next_entry else None
    )
