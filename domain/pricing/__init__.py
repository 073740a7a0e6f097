from .money import Money, DEFAULT_CURRENCY
from .order import ItemType, LineItem, OrderSnapshot
from .tax import PricingMode, RateType, TaxBreakdown, TaxKind, TaxLine, TaxRule, TaxRuleSet
from .coupon import (
    AppliedCoupon,
    ApplicableItem,
    ApplicableTo,
    Coupon,
    CouponBook,
    CouponLedger,
    CouponSource,
    CouponState,
    CouponStatus,
    CouponType,
    ValidationResult,
    normalize_code,
)
from .gateway import (
    FeeSchedule,
    GatewayCatalog,
    GatewayContext,
    GatewayDescriptor,
    GatewayFeatures,
    GatewayType,
    IneligibilityReason,
    RankedGateway,
)
from .quote import CouponRejection, PricingQuote
from .pipeline import PricingPipeline

__all__ = [
    "Money",
    "DEFAULT_CURRENCY",
    "ItemType",
    "LineItem",
    "OrderSnapshot",
    "PricingMode",
    "RateType",
    "TaxBreakdown",
    "TaxKind",
    "TaxLine",
    "TaxRule",
    "TaxRuleSet",
    "AppliedCoupon",
    "ApplicableItem",
    "ApplicableTo",
    "Coupon",
    "CouponBook",
    "CouponLedger",
    "CouponSource",
    "CouponState",
    "CouponStatus",
    "CouponType",
    "ValidationResult",
    "normalize_code",
    "FeeSchedule",
    "GatewayCatalog",
    "GatewayContext",
    "GatewayDescriptor",
    "GatewayFeatures",
    "GatewayType",
    "IneligibilityReason",
    "RankedGateway",
    "CouponRejection",
    "PricingQuote",
    "PricingPipeline",
]
