"""
Pricing DTOs (Pydantic v2) used at application boundaries.

Two families live here: the wire formats of the upstream checkout services
(coupon registry, gateway status, wallet) and the request/response models of
the pricing API. Both convert to domain objects once, at the boundary.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain.pricing import (
    ApplicableItem,
    Coupon,
    FeeSchedule,
    GatewayType,
    GatewayContext,
    GatewayDescriptor,
    GatewayFeatures,
    LineItem,
    Money,
    OrderSnapshot,
    PricingMode,
    RateType,
    TaxKind,
    TaxRule,
    TaxRuleSet,
)
from domain.pricing.exceptions import (
    CouponBelowMinimum,
    CouponError,
    CouponExpired,
    CouponInactive,
    CouponNotApplicable,
    CouponNotFound,
    CouponUsageExceeded,
)
from shared.codes.pricing_codes import REGISTRY_ERROR_TO_INTERNAL


ItemTypeName = Literal["course", "workshop", "product"]
CouponStatusName = Literal["active", "inactive", "expired", "suspended", "draft"]
ApplicableToName = Literal["all", "courses", "workshops", "products", "specific_items"]


def _currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    return u


class LineItemIn(BaseModel):
    item_id: str = Field(min_length=1)
    item_type: ItemTypeName
    quantity: int = Field(default=1, ge=1)

    def to_domain(self) -> LineItem:
        return LineItem(item_id=self.item_id, item_type=self.item_type, quantity=self.quantity)


# ------------------------------------------------------------ coupon registry

class ApplicableItemIn(BaseModel):
    item_type: ItemTypeName
    item_id: str


class CouponDetails(BaseModel):
    """Coupon as published by the registry alongside a positive verdict."""

    model_config = ConfigDict(extra="ignore")

    id: str
    code: str
    type: Literal["percentage", "fixed_amount"]
    discount_percentage: Optional[Decimal] = None
    discount_amount: Optional[int] = None
    max_discount_amount: Optional[int] = None
    minimum_order_amount: int = 0
    currency: str = "IRR"
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    usage_limit_total: Optional[int] = None
    usage_limit_per_user: Optional[int] = None
    usage_count: int = 0
    user_usage_count: int = 0
    applicable_to: ApplicableToName = "all"
    applicable_items: list[ApplicableItemIn] = Field(default_factory=list)
    combinable_with_other_coupons: bool = False
    status: CouponStatusName = "active"
    priority: int = 0

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return _currency(v)

    def to_domain(self) -> Coupon:
        if self.type == "percentage":
            value = self.discount_percentage or Decimal("0")
        else:
            value = Decimal(self.discount_amount or 0)
        return Coupon(
            id=self.id,
            code=self.code,
            type=self.type,
            value=value,
            currency=self.currency,
            max_discount=Money(self.max_discount_amount, self.currency)
            if self.max_discount_amount is not None else None,
            minimum_order_amount=Money(self.minimum_order_amount, self.currency),
            valid_from=self.valid_from,
            valid_until=self.valid_until,
            usage_limit_total=self.usage_limit_total,
            usage_limit_per_user=self.usage_limit_per_user,
            times_used=self.usage_count,
            times_used_by_user=self.user_usage_count,
            applicable_to=self.applicable_to,
            applicable_items=tuple(
                ApplicableItem(item_type=item.item_type, item_id=item.item_id)
                for item in self.applicable_items
            ),
            combinable=self.combinable_with_other_coupons,
            status=self.status,
            priority=self.priority,
        )


class CouponValidationRequest(BaseModel):
    coupon_code: str
    order_amount: int = Field(ge=0)
    order_items: list[LineItemIn] = Field(default_factory=list)
    user_id: Optional[str] = None


class CouponValidationResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    is_valid: bool
    error: Optional[str] = None
    error_code: Optional[str] = None
    coupon_details: Optional[CouponDetails] = None

    def to_verdict(self, code: str, order_amount: int = 0) -> Coupon | CouponError:
        """The domain coupon for a positive verdict, otherwise the coupon error."""
        if self.is_valid and self.coupon_details is not None:
            return self.coupon_details.to_domain()
        return registry_error(code, self.error_code, order_amount, self.coupon_details)


def registry_error(
    code: str,
    error_code: Optional[str],
    order_amount: int = 0,
    details: Optional[CouponDetails] = None,
) -> CouponError:
    """Translate a registry error code into the matching coupon error."""
    error_type = REGISTRY_ERROR_TO_INTERNAL.get((error_code or "").upper(), "CouponNotFound")
    if error_type == "CouponInactive":
        status = "not_yet_valid" if error_code == "COUPON_NOT_YET_VALID" else "inactive"
        return CouponInactive(code, status)
    if error_type == "CouponExpired":
        return CouponExpired(code, details.valid_until if details else None)
    if error_type == "CouponBelowMinimum":
        minimum = details.minimum_order_amount if details else 0
        return CouponBelowMinimum(code, minimum, order_amount)
    if error_type == "CouponUsageExceeded":
        scope = "per_user" if error_code == "USER_USAGE_LIMIT_EXCEEDED" else "total"
        return CouponUsageExceeded(code, scope)
    if error_type == "CouponNotApplicable":
        return CouponNotApplicable(code, details.applicable_to if details else "all")
    return CouponNotFound(code)


class CouponApplicationRequest(BaseModel):
    coupon_code: str
    order_id: str
    order_amount: int = Field(ge=0)
    order_items: list[LineItemIn] = Field(default_factory=list)
    user_id: Optional[str] = None


class CouponApplicationResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool
    coupon_id: Optional[str] = None
    coupon_code: Optional[str] = None
    discount_amount: int = 0
    final_amount: int = 0
    original_amount: int = 0
    error: Optional[str] = None


# ------------------------------------------------------------- gateways

class GatewayInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    display_name: str
    is_available: bool = True
    is_healthy: bool = True
    min_amount: int = 0
    max_amount: Optional[int] = None
    fee_fixed: int = 0
    fee_rate: Decimal = Decimal("0")
    instant_confirmation: bool = False
    supports_refund: bool = False
    supports_installment: bool = False
    priority_hint: int = 0

    def to_domain(self, currency: str = "IRR") -> GatewayDescriptor:
        return GatewayDescriptor(
            type=self.type,
            display_name=self.display_name,
            min_amount=Money(self.min_amount, currency),
            max_amount=Money(self.max_amount, currency) if self.max_amount is not None else None,
            is_available=self.is_available,
            is_healthy=self.is_healthy,
            fee_schedule=FeeSchedule(
                fixed=Money(self.fee_fixed, currency) if self.fee_fixed else None,
                rate=self.fee_rate,
            ),
            features=GatewayFeatures(
                instant_confirmation=self.instant_confirmation,
                supports_refund=self.supports_refund,
                supports_installment=self.supports_installment,
            ),
            priority_hint=self.priority_hint,
        )


class WalletBalanceResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    balance: int = Field(ge=0)
    currency: str = "IRR"

    def to_domain(self) -> Money:
        return Money(self.balance, _currency(self.currency))


# ------------------------------------------------------------- tax rules

class TaxRuleConfig(BaseModel):
    kind: Literal["vat", "service_charge", "custom"] = "vat"
    name: str = ""
    rate: Decimal
    rate_type: Literal["percentage", "fixed"] = "percentage"
    enabled: bool = True
    applies_after_other_taxes: bool = False

    def to_domain(self) -> TaxRule:
        return TaxRule(
            kind=TaxKind(self.kind),
            rate=self.rate,
            rate_type=RateType(self.rate_type),
            enabled=self.enabled,
            applies_after_other_taxes=self.applies_after_other_taxes,
            name=self.name,
        )


def build_tax_rule_set(rules: list[Any], pricing_mode: str) -> TaxRuleSet:
    """Build a TaxRuleSet from settings or API payloads (models or dicts)."""
    configs = [
        rule if isinstance(rule, TaxRuleConfig) else TaxRuleConfig.model_validate(
            rule if isinstance(rule, dict) else rule.model_dump()
        )
        for rule in rules
    ]
    return TaxRuleSet([c.to_domain() for c in configs], PricingMode(pricing_mode))


# ------------------------------------------------------------ pricing API

class OrderRequest(BaseModel):
    """The cart being priced."""

    subtotal: int = Field(ge=0, description="Cart subtotal in minor units")
    currency: str = "IRR"
    items: list[LineItemIn] = Field(default_factory=list)
    user_id: Optional[str] = None
    as_of: Optional[datetime] = Field(
        default=None,
        description="Instant coupon validity is judged at; defaults to the time of the request",
    )

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return _currency(v)

    def to_order(self) -> OrderSnapshot:
        as_of = self.as_of or datetime.now(timezone.utc)
        return OrderSnapshot(
            subtotal=Money(self.subtotal, self.currency),
            items=tuple(item.to_domain() for item in self.items),
            as_of=as_of,
            user_id=self.user_id,
        )


class QuoteRequest(OrderRequest):
    coupon_codes: list[str] = Field(default_factory=list, max_length=20)
    preferred_gateway: Optional[GatewayType] = None
    exclude_gateways: list[GatewayType] = Field(default_factory=list)

    def to_context(self, wallet_balance: Optional[Money] = None, default_preferred: Optional[str] = None) -> GatewayContext:
        return GatewayContext(
            preferred_gateway=self.preferred_gateway or default_preferred,
            wallet_balance=wallet_balance,
            excluded_gateways=frozenset(self.exclude_gateways),
        )


class SessionQuoteRequest(OrderRequest):
    """Price the cart against the coupons stored for a checkout session."""

    preferred_gateway: Optional[GatewayType] = None


class SessionCouponRequest(SessionQuoteRequest):
    coupon_code: str = Field(min_length=1, max_length=64)


class CouponCheckRequest(BaseModel):
    coupon_code: str
    subtotal: int = Field(ge=0)
    currency: str = "IRR"
    items: list[LineItemIn] = Field(default_factory=list)
    user_id: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return _currency(v)

    def to_order(self) -> OrderSnapshot:
        return OrderSnapshot(
            subtotal=Money(self.subtotal, self.currency),
            items=tuple(item.to_domain() for item in self.items),
            user_id=self.user_id,
        )


class CouponCheckResponse(BaseModel):
    code: str
    valid: bool
    discount_amount: int = 0
    reason: Optional[str] = None
    message: Optional[str] = None


class QuoteResponse(BaseModel):
    """Quote payload plus localized notices for the checkout page."""

    quote: dict[str, Any]
    notices: list[str] = Field(default_factory=list)
    summary: Optional[str] = None


class CommitRequest(QuoteRequest):
    """Finalize a checkout: re-price, then commit the applied coupons."""

    order_id: str = Field(min_length=1)


class CommitResponse(BaseModel):
    order_id: str
    grand_total: int
    coupons: list[dict[str, Any]] = Field(default_factory=list)
