"""
Tax rules and the tax computation.

Percentage rates are fractions (Decimal("0.09") is 9%); fixed rates are
minor units of the order currency.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence

from domain.common.exceptions import DomainValidationException
from .exceptions import UnsupportedFixedInclusive
from .money import Money, as_fraction


class TaxKind(str, Enum):
    VAT = "vat"
    SERVICE_CHARGE = "service_charge"
    CUSTOM = "custom"


class RateType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class PricingMode(str, Enum):
    INCLUSIVE = "inclusive"
    EXCLUSIVE = "exclusive"


@dataclass(frozen=True)
class TaxRule:
    kind: TaxKind
    rate: Decimal
    rate_type: RateType = RateType.PERCENTAGE
    enabled: bool = True
    applies_after_other_taxes: bool = False
    name: str = ""

    def __post_init__(self):
        if not isinstance(self.kind, TaxKind):
            object.__setattr__(self, "kind", TaxKind(self.kind))
        if not isinstance(self.rate_type, RateType):
            object.__setattr__(self, "rate_type", RateType(self.rate_type))
        if not isinstance(self.rate, Decimal):
            object.__setattr__(self, "rate", Decimal(str(self.rate)))
        if not self.name:
            object.__setattr__(self, "name", self.kind.value)
        if self.rate < 0:
            raise DomainValidationException(f"tax rate cannot be negative: {self.rate}", field="rate")
        if self.rate_type is RateType.FIXED and self.rate != self.rate.to_integral_value():
            raise DomainValidationException(
                f"fixed tax must be whole minor units: {self.rate}", field="rate"
            )

    def tax_on(self, taxable: Money) -> Money:
        if self.rate_type is RateType.PERCENTAGE:
            return taxable.percentage_of(self.rate)
        return Money(int(self.rate), taxable.currency)


@dataclass(frozen=True)
class TaxLine:
    rule_kind: TaxKind
    name: str
    rate_type: RateType
    rate: Decimal
    taxable_amount: Money
    tax_amount: Money

    def to_dict(self) -> dict:
        return {
            "rule_kind": self.rule_kind.value,
            "name": self.name,
            "rate_type": self.rate_type.value,
            "rate": str(self.rate),
            "taxable_amount": self.taxable_amount.amount,
            "tax_amount": self.tax_amount.amount,
        }


@dataclass(frozen=True)
class TaxBreakdown:
    lines: tuple[TaxLine, ...]
    total_tax: Money
    effective_base: Money
    pricing_mode: PricingMode
    # True when no rule is enabled; callers must surface it as a warning
    no_rules_enabled: bool = False


@dataclass(frozen=True)
class TaxRuleSet:
    rules: tuple[TaxRule, ...] = field(default_factory=tuple)
    pricing_mode: PricingMode = PricingMode.EXCLUSIVE

    def __post_init__(self):
        object.__setattr__(self, "rules", tuple(self.rules))
        if not isinstance(self.pricing_mode, PricingMode):
            object.__setattr__(self, "pricing_mode", PricingMode(self.pricing_mode))

    @property
    def enabled_rules(self) -> tuple[TaxRule, ...]:
        return tuple(rule for rule in self.rules if rule.enabled)

    def compute(self, base: Money, mode: Optional[PricingMode] = None) -> TaxBreakdown:
        mode = PricingMode(mode) if mode is not None else self.pricing_mode
        enabled = self.enabled_rules
        zero = Money.zero(base.currency)

        if not enabled:
            return TaxBreakdown((), zero, base, mode, no_rules_enabled=True)
        if base.is_zero():
            return TaxBreakdown((), zero, base, mode)

        if mode is PricingMode.INCLUSIVE:
            for rule in enabled:
                if rule.rate_type is RateType.FIXED:
                    raise UnsupportedFixedInclusive(rule.name)
            implied_rate = sum((as_fraction(rule.rate) for rule in enabled), 0)
            base = base.divide_by(1 + implied_rate)

        lines = self._exclusive_lines(base, enabled)
        total = zero
        for line in lines:
            total = total.add(line.tax_amount)
        return TaxBreakdown(tuple(lines), total, base, mode)

    @staticmethod
    def _exclusive_lines(base: Money, rules: Sequence[TaxRule]) -> list[TaxLine]:
        lines: list[TaxLine] = []
        running = Money.zero(base.currency)
        for rule in rules:
            taxable = base.add(running) if rule.applies_after_other_taxes else base
            tax = rule.tax_on(taxable)
            lines.append(
                TaxLine(
                    rule_kind=rule.kind,
                    name=rule.name,
                    rate_type=rule.rate_type,
                    rate=rule.rate,
                    taxable_amount=taxable,
                    tax_amount=tax,
                )
            )
            running = running.add(tax)
        return lines
