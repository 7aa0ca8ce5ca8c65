"""
Test suite for ledger math

Status derivation, carryover, overdue snapshots, next-entry drafting and
date-based lateness. Everything here is pure, so no storage is involved.
"""

import pytest
from decimal import Decimal
from datetime import date
from types import SimpleNamespace

from installment_ledger.currency import Money, Currency
from installment_ledger.exceptions import ValidationError
from installment_ledger.ledger_math import (
    PaymentStatus, payment_status, carryover_amount, overdue_snapshot,
    validate_amount_paid, add_months, next_due_date, next_entry, is_closed,
    is_late_due_to_inaction, overdue_days, carryover_note, months_between
)


def egp(amount: str) -> Money:
    return Money(Decimal(amount), Currency.EGP)


class TestPaymentStatus:
    """Status from amount paid versus amount due"""

    def test_full_payment_is_paid(self):
        assert payment_status(egp("1000.00"), egp("1000.00")) == PaymentStatus.PAID

    def test_partial_payment(self):
        assert payment_status(egp("600.00"), egp("1000.00")) == PaymentStatus.PARTIAL

    def test_nothing_paid_is_pending(self):
        assert payment_status(egp("0"), egp("1000.00")) == PaymentStatus.PENDING

    def test_zero_due_zero_paid_is_paid(self):
        assert payment_status(egp("0"), egp("0")) == PaymentStatus.PAID

    def test_one_piaster_short_is_partial(self):
        assert payment_status(egp("999.99"), egp("1000.00")) == PaymentStatus.PARTIAL

    def test_closed_statuses(self):
        assert is_closed(PaymentStatus.PAID)
        assert is_closed(PaymentStatus.PARTIAL)
        assert not is_closed(PaymentStatus.PENDING)


class TestCarryover:
    """Unpaid remainder and the overdue snapshot"""

    def test_carryover_of_partial(self):
        assert carryover_amount(egp("600.00"), egp("1000.00")) == egp("400.00")

    def test_carryover_never_negative(self):
        assert carryover_amount(egp("1200.00"), egp("1000.00")) == egp("0")

    def test_snapshot_only_for_partial(self):
        assert overdue_snapshot(PaymentStatus.PARTIAL, egp("400.00")) == egp("400.00")
        assert overdue_snapshot(PaymentStatus.PAID, egp("0")) == egp("0")
        assert overdue_snapshot(PaymentStatus.PENDING, egp("1000.00")) == egp("0")


class TestValidateAmountPaid:
    """Bounds of a payment amount"""

    def test_within_bounds(self):
        validate_amount_paid(egp("0"), egp("1000.00"))
        validate_amount_paid(egp("1000.00"), egp("1000.00"))

    def test_overpayment_rejected(self):
        with pytest.raises(ValidationError, match="cannot exceed"):
            validate_amount_paid(egp("1500.00"), egp("1000.00"))

    def test_negative_rejected(self):
        with pytest.raises(ValidationError, match="cannot be negative"):
            validate_amount_paid(egp("-1.00"), egp("1000.00"))

    def test_currency_mismatch_rejected(self):
        with pytest.raises(ValidationError, match="currency"):
            validate_amount_paid(Money(Decimal("10"), Currency.USD), egp("1000.00"))


class TestDueDates:
    """Calendar month arithmetic"""

    def test_next_month(self):
        assert next_due_date(date(2025, 1, 1)) == date(2025, 2, 1)

    def test_year_rollover(self):
        assert next_due_date(date(2025, 12, 15)) == date(2026, 1, 15)

    def test_month_end_clamped(self):
        assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)

    def test_add_many_months(self):
        assert add_months(date(2025, 3, 10), 14) == date(2026, 5, 10)

    def test_months_between(self):
        assert months_between(date(2025, 1, 31), date(2025, 2, 28)) == 1
        assert months_between(date(2025, 11, 1), date(2026, 2, 1)) == 3
        assert months_between(date(2025, 3, 1), date(2025, 3, 31)) == 0


class TestNextEntry:
    """Drafting the entry that follows a closed one"""

    def current(self):
        return SimpleNamespace(plan_id="PLAN001", customer_id="CUST001",
                               due_date=date(2025, 1, 1))

    def test_after_paid_uses_nominal_amount(self):
        draft = next_entry(self.current(), egp("1000.00"), PaymentStatus.PAID, egp("0"))

        assert draft.amount_due == egp("1000.00")
        assert draft.due_date == date(2025, 2, 1)
        assert draft.status == PaymentStatus.PENDING
        assert draft.amount_paid.is_zero()
        assert draft.carryover_amount.is_zero()
        assert draft.overdue_amount.is_zero()
        assert draft.payment_date is None
        assert draft.notes == "Scheduled installment - no carried over balance"

    def test_after_partial_folds_carryover(self):
        draft = next_entry(self.current(), egp("1000.00"), PaymentStatus.PARTIAL, egp("400.00"))

        assert draft.amount_due == egp("1400.00")
        assert draft.plan_id == "PLAN001"
        assert draft.customer_id == "CUST001"
        assert "EGP 400.00" in draft.notes

    def test_explicit_due_date(self):
        draft = next_entry(self.current(), egp("1000.00"), PaymentStatus.PAID, egp("0"),
                           due_date=date(2025, 3, 31))
        assert draft.due_date == date(2025, 3, 31)

    def test_carryover_note(self):
        assert carryover_note(egp("0")) == "Scheduled installment - no carried over balance"
        assert carryover_note(egp("250.50")).endswith("EGP 250.50")


class TestLateness:
    """Lateness is derived from dates, never stored"""

    def test_pending_past_due_is_late(self):
        assert is_late_due_to_inaction(date(2025, 1, 1), PaymentStatus.PENDING, date(2025, 1, 2))

    def test_due_today_is_not_late(self):
        assert not is_late_due_to_inaction(date(2025, 1, 1), PaymentStatus.PENDING,
                                           date(2025, 1, 1))

    def test_closed_entry_is_never_late(self):
        assert not is_late_due_to_inaction(date(2025, 1, 1), PaymentStatus.PARTIAL,
                                           date(2025, 3, 1))
        assert not is_late_due_to_inaction(date(2025, 1, 1), PaymentStatus.PAID,
                                           date(2025, 3, 1))

    def test_overdue_days(self):
        assert overdue_days(date(2025, 1, 1), date(2025, 1, 11)) == 10
        assert overdue_days(date(2025, 1, 11), date(2025, 1, 1)) == 0
