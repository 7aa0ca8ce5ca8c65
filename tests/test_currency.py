"""
Test suite for currency module

Money rounding, arithmetic and currency guards. Installment amounts are
always Decimal.
"""

import pytest
from decimal import Decimal

from installment_ledger.currency import Money, Currency, to_decimal


class TestMoney:
    """Test Money class operations"""

    def test_money_creation(self):
        money = Money(Decimal('1400.50'), Currency.EGP)
        assert money.amount == Decimal('1400.50')
        assert money.currency == Currency.EGP

        # Rounded half-up to the currency's precision
        assert Money(Decimal('100.555'), Currency.EGP).amount == Decimal('100.56')
        assert Money(Decimal('100.5'), Currency.JPY).amount == Decimal('101')

    def test_string_and_int_amounts(self):
        assert Money('333.333', Currency.EGP).amount == Decimal('333.33')
        assert Money(5, Currency.SAR).amount == Decimal('5.00')

    def test_arithmetic(self):
        a = Money(Decimal('1000.00'), Currency.EGP)
        b = Money(Decimal('600.00'), Currency.EGP)

        assert (a - b).amount == Decimal('400.00')
        assert (a + b).amount == Decimal('1600.00')
        assert (a * 3).amount == Decimal('3000.00')
        assert (-b).amount == Decimal('-600.00')

    def test_comparisons(self):
        a = Money(Decimal('1000.00'), Currency.EGP)
        b = Money(Decimal('600.00'), Currency.EGP)

        assert b < a
        assert a >= b
        assert a == Money(Decimal('1000'), Currency.EGP)

    def test_currency_mismatch(self):
        egp = Money(Decimal('10.00'), Currency.EGP)
        usd = Money(Decimal('10.00'), Currency.USD)

        with pytest.raises(ValueError):
            egp + usd
        with pytest.raises(ValueError):
            egp < usd

    def test_non_money_operand(self):
        with pytest.raises(TypeError):
            Money(Decimal('10.00'), Currency.EGP) + Decimal('1')

    def test_predicates(self):
        assert Money.zero(Currency.EGP).is_zero()
        assert Money(Decimal('0.01'), Currency.EGP).is_positive()
        assert Money(Decimal('-0.01'), Currency.EGP).is_negative()

    def test_to_string(self):
        assert Money(Decimal('1400'), Currency.EGP).to_string() == "EGP 1,400.00"
        assert Money(Decimal('1500'), Currency.JPY).to_string() == "JPY 1,500"


class TestToDecimal:

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal('0.1')

    def test_invalid_amount(self):
        with pytest.raises(ValueError, match="Invalid monetary amount"):
            to_decimal("abc")

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity", "sNaN"])
    def test_non_finite_amount(self, value):
        with pytest.raises(ValueError, match="Invalid monetary amount"):
            Money(value, Currency.EGP)
