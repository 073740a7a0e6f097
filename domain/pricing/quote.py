"""
PricingQuote - the single output of the pricing pipeline.

Immutable and regenerated whenever its inputs change. `to_json` is
deterministic so two quotes over identical inputs compare byte for byte.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Optional

from .coupon import AppliedCoupon, normalize_code
from .exceptions import PricingError
from .gateway import RankedGateway
from .money import Money
from .tax import PricingMode, TaxLine


@dataclass(frozen=True)
class CouponRejection:
    code: str
    error_type: str
    message_key: Optional[str]
    details: dict = field(default_factory=dict)
    retryable: bool = False

    @classmethod
    def from_error(cls, code: str, exc: PricingError) -> "CouponRejection":
        return cls(
            code=normalize_code(code),
            error_type=exc.error_type,
            message_key=exc.message_key,
            details=dict(exc.details or {}),
            retryable=exc.retryable,
        )

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "reason": self.error_type,
            "message_key": self.message_key,
            "details": self.details,
            "retryable": self.retryable,
        }


@dataclass(frozen=True)
class PricingQuote:
    subtotal: Money
    applied_coupons: tuple[AppliedCoupon, ...]
    coupon_rejections: tuple[CouponRejection, ...]
    discount_total: Money
    discounted_base: Money
    tax_breakdown: tuple[TaxLine, ...]
    tax_total: Money
    effective_base: Money
    grand_total: Money
    # Every available gateway, each annotated as eligible or not
    eligible_gateways: tuple[RankedGateway, ...]
    pricing_mode: PricingMode = PricingMode.EXCLUSIVE
    warnings: tuple[str, ...] = ()

    @property
    def currency(self) -> str:
        return self.subtotal.currency

    @property
    def selectable_gateways(self) -> tuple[RankedGateway, ...]:
        return tuple(entry for entry in self.eligible_gateways if entry.eligible)

    @property
    def chosen_gateway(self) -> Optional[RankedGateway]:
        selectable = self.selectable_gateways
        return selectable[0] if selectable else None

    def gateway(self, gateway_type: str) -> Optional[RankedGateway]:
        for entry in self.eligible_gateways:
            if entry.gateway.type.value == str(getattr(gateway_type, "value", gateway_type)):
                return entry
        return None

    def to_dict(self) -> dict:
        chosen = self.chosen_gateway
        return {
            "currency": self.currency,
            "pricing_mode": self.pricing_mode.value,
            "subtotal": self.subtotal.amount,
            "applied_coupons": [coupon.to_dict() for coupon in self.applied_coupons],
            "coupon_rejections": [rejection.to_dict() for rejection in self.coupon_rejections],
            "discount_total": self.discount_total.amount,
            "discounted_base": self.discounted_base.amount,
            "tax_breakdown": [line.to_dict() for line in self.tax_breakdown],
            "tax_total": self.tax_total.amount,
            "effective_base": self.effective_base.amount,
            "grand_total": self.grand_total.amount,
            "eligible_gateways": [entry.to_dict() for entry in self.eligible_gateways],
            "chosen_gateway": chosen.gateway.type.value if chosen else None,
            "warnings": list(self.warnings),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
