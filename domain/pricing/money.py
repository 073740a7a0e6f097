"""
Money value object - integer minor units plus an ISO-4217 currency.

Every pricing component routes currency arithmetic through this type.
Fractional results are floored so a customer is never overcharged.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from fractions import Fraction
from typing import Union

from .exceptions import ArithmeticInvariantViolation


DEFAULT_CURRENCY = "IRR"

Rate = Union[Decimal, Fraction, int]


def as_fraction(rate: Rate) -> Fraction:
    """Convert a rate to an exact fraction. Floats are rejected."""
    if isinstance(rate, bool) or isinstance(rate, float):
        raise ArithmeticInvariantViolation(
            "rates must be Decimal, Fraction or int, not float",
            details={"rate": repr(rate)},
        )
    if isinstance(rate, (Decimal, Fraction, int)):
        return Fraction(rate)
    raise ArithmeticInvariantViolation("unsupported rate type", details={"rate": repr(rate)})


@dataclass(frozen=True, order=False)
class Money:
    amount: int
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ArithmeticInvariantViolation(
                "money amounts must be integer minor units",
                details={"amount": repr(self.amount)},
            )
        if self.amount < 0:
            raise ArithmeticInvariantViolation(
                "money amounts cannot be negative",
                details={"amount": self.amount, "currency": self.currency},
            )
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise ArithmeticInvariantViolation(
                f"invalid currency code: {self.currency}", details={"currency": self.currency}
            )
        if self.currency != self.currency.upper():
            object.__setattr__(self, "currency", self.currency.upper())

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> "Money":
        return cls(0, currency)

    def _check_currency(self, other: "Money") -> None:
        if not isinstance(other, Money):
            raise ArithmeticInvariantViolation(
                "money can only be combined with money", details={"other": repr(other)}
            )
        if other.currency != self.currency:
            raise ArithmeticInvariantViolation(
                "currency mismatch",
                details={"left": self.currency, "right": other.currency},
            )

    def add(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def subtract(self, other: "Money") -> "Money":
        """Subtract, flooring at zero."""
        self._check_currency(other)
        return Money(max(0, self.amount - other.amount), self.currency)

    def percentage_of(self, rate: Rate) -> "Money":
        """floor(amount * rate); rate is a fraction (Decimal("0.09") is 9%)."""
        fraction = as_fraction(rate)
        if fraction < 0:
            raise ArithmeticInvariantViolation("negative rate", details={"rate": str(rate)})
        return Money(math.floor(self.amount * fraction), self.currency)

    def divide_by(self, divisor: Rate) -> "Money":
        """floor(amount / divisor), used to strip inclusive taxes."""
        fraction = as_fraction(divisor)
        if fraction <= 0:
            raise ArithmeticInvariantViolation("non-positive divisor", details={"divisor": str(divisor)})
        return Money(math.floor(self.amount / fraction), self.currency)

    def min(self, other: "Money") -> "Money":
        self._check_currency(other)
        return self if self.amount <= other.amount else other

    def compare(self, other: "Money") -> int:
        self._check_currency(other)
        return (self.amount > other.amount) - (self.amount < other.amount)

    def is_zero(self) -> bool:
        return self.amount == 0

    def __lt__(self, other: "Money") -> bool:
        return self.compare(other) < 0

    def __le__(self, other: "Money") -> bool:
        return self.compare(other) <= 0

    def __gt__(self, other: "Money") -> bool:
        return self.compare(other) > 0

    def __ge__(self, other: "Money") -> bool:
        return self.compare(other) >= 0

    def to_dict(self) -> dict:
        return {"amount": self.amount, "currency": self.currency}

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"


def sum_money(items, currency: str = DEFAULT_CURRENCY) -> Money:
    total = Money.zero(currency)
    for item in items:
        total = total.add(item)
    return total
