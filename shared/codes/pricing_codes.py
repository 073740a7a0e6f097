"""
Pricing specific codes and the coupon registry error-code table.
"""
from __future__ import annotations

from enum import IntEnum


class PricingCode(IntEnum):
    # Coupon errors (21xxx)
    COUPON_NOT_FOUND = 21000
    COUPON_INACTIVE = 21001
    COUPON_EXPIRED = 21002
    COUPON_BELOW_MINIMUM = 21003
    COUPON_USAGE_EXCEEDED = 21004
    COUPON_NOT_APPLICABLE = 21005
    COUPON_CONFLICT = 21006
    COUPON_STALE_VERSION = 21007

    # Tax configuration errors (22xxx)
    TAX_UNSUPPORTED_FIXED_INCLUSIVE = 22000

    # Gateway errors (23xxx)
    GATEWAY_UNAVAILABLE = 23000
    GATEWAY_UNHEALTHY = 23001
    GATEWAY_AMOUNT_OUT_OF_RANGE = 23002
    GATEWAY_INSUFFICIENT_WALLET_BALANCE = 23003

    # Boundary / internal (24xxx)
    VALIDATION_TIMEOUT = 24000
    ARITHMETIC_INVARIANT_VIOLATION = 24001


# Registry error codes (coupon service wire format) -> internal error_type
REGISTRY_ERROR_TO_INTERNAL = {
    "COUPON_NOT_FOUND": "CouponNotFound",
    "COUPON_INACTIVE": "CouponInactive",
    "COUPON_NOT_YET_VALID": "CouponInactive",
    "COUPON_EXPIRED": "CouponExpired",
    "INSUFFICIENT_ORDER_AMOUNT": "CouponBelowMinimum",
    "USAGE_LIMIT_EXCEEDED": "CouponUsageExceeded",
    "USER_USAGE_LIMIT_EXCEEDED": "CouponUsageExceeded",
    "NOT_FIRST_TIME_USER": "CouponNotApplicable",
    "USER_EXCLUDED": "CouponNotApplicable",
    "NOT_APPLICABLE_TO_ITEMS": "CouponNotApplicable",
}
