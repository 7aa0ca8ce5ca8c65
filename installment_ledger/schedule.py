"""
Schedule Generator Module

The conceptual schedule of a plan is ``number_of_months`` equal obligations,
one per month from the collection start date. Only the first entry is
materialized up front; every later entry is drafted here when its
predecessor closes, because its amount depends on what that predecessor
left unpaid.

Functions take any plan-like object exposing ``number_of_months``,
``monthly_installment`` and ``collection_start_date``.
"""

from datetime import date
from decimal import Decimal
from dataclasses import dataclass
from typing import List, Optional

from .currency import Money
from .ledger_math import (
    PaymentStatus, NextEntryDraft, add_months, carryover_amount, is_closed, months_between,
    next_entry
)


@dataclass(frozen=True)
class ScheduledInstallment:
    """One row of the nominal schedule"""
    installment_number: int  # 1-based
    due_date: date
    amount_due: Money


@dataclass(frozen=True)
class ReconciliationResult:
    scheduled_total: Money
    financed_amount: Money
    difference: Money
    tolerance: Money  # one minor unit per month absorbs per-installment rounding

    @property
    def reconciled(self) -> bool:
        return abs(self.difference.amount) <= self.tolerance.amount


def generate_schedule(plan) -> List[ScheduledInstallment]:
    """Nominal schedule: equal amounts, one calendar month apart"""
    return [
        ScheduledInstallment(
            installment_number=i + 1,
            due_date=add_months(plan.collection_start_date, i),
            amount_due=plan.monthly_installment
        )
        for i in range(plan.number_of_months)
    ]


def first_entry_draft(plan, customer_id: str, plan_id: str) -> NextEntryDraft:
    """Values of entry 0, due on the collection start date"""
    zero = Money.zero(plan.monthly_installment.currency)
    return NextEntryDraft(
        plan_id=plan_id,
        customer_id=customer_id,
        amount_due=plan.monthly_installment,
        amount_paid=zero,
        carryover_amount=zero,
        overdue_amount=zero,
        status=PaymentStatus.PENDING,
        due_date=plan.collection_start_date,
        payment_date=None,
        notes=None
    )


def next_scheduled_entry(plan, tail, closed_count: int,
                         anchor: Optional[date] = None) -> Optional[NextEntryDraft]:
    """
    Draft the entry after ``tail``.

    Due dates are ``anchor`` (the first entry's due date, defaulting to the
    collection start date) plus whole months, never the tail's date plus one.

    Returns None while the tail is still open, and once ``closed_count`` has
    reached the plan's number of months (the final month closed).
    """
    if not is_closed(tail.status):
        return None
    if closed_count >= plan.number_of_months:
        return None
    anchor = anchor or plan.collection_start_date
    due_date = add_months(anchor, months_between(anchor, tail.due_date) + 1)
    carryover = carryover_amount(tail.amount_paid, tail.amount_due)
    return next_entry(tail, plan.monthly_installment, tail.status, carryover, due_date)


def scheduled_total(plan) -> Money:
    """Nominal total of the plan, excluding carryover redistribution"""
    return plan.monthly_installment * plan.number_of_months


def reconcile_plan(plan, financed_amount: Money) -> ReconciliationResult:
    """
    Compare the nominal schedule with the amount actually financed by the sale
    (sale total minus up-front payment).
    """
    total = scheduled_total(plan)
    currency = plan.monthly_installment.currency
    minor_unit = Decimal('0.1') ** currency.precision
    return ReconciliationResult(
        scheduled_total=total,
        financed_amount=financed_amount,
        difference=total - financed_amount,
        tolerance=Money(minor_unit * plan.number_of_months, currency)
    )
