"""
Money Module

Currency codes with their minor-unit precision and an immutable Money value.
Installment amounts NEVER use float.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from enum import Enum
from typing import Union

getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 codes used by the sales companies, with decimal places"""
    EGP = ("EGP", 2)  # Egyptian Pound
    SAR = ("SAR", 2)  # Saudi Riyal
    AED = ("AED", 2)  # UAE Dirham
    USD = ("USD", 2)  # US Dollar
    EUR = ("EUR", 2)  # Euro
    JPY = ("JPY", 0)  # Japanese Yen

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision


def to_decimal(value: Union[Decimal, int, str, float]) -> Decimal:
    """Convert a user-supplied amount to Decimal without going through float repr"""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Invalid monetary amount: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Invalid monetary amount: {value!r}")
    return result


@dataclass(frozen=True)
class Money:
    """
    Immutable amount in a single currency, rounded half-up to the
    currency's precision on construction.
    """
    amount: Decimal
    currency: Currency

    def __post_init__(self):
        amount = to_decimal(self.amount)
        rounded = amount.quantize(
            Decimal('0.1') ** self.currency.precision,
            rounding=ROUND_HALF_UP
        )
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def zero(cls, currency: Currency) -> 'Money':
        return cls(Decimal('0'), currency)

    def _check_currency(self, other: 'Money', verb: str) -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Cannot {verb} Money and {type(other).__name__}")
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier) -> 'Money':
        return Money(self.amount * to_decimal(multiplier), self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Format for display, e.g. ``EGP 1,400.00``"""
        if self.currency.precision == 0:
            return f"{self.currency.code} {self.amount:,.0f}"
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"
