"""
Pricing error taxonomy.

Coupon and gateway errors are per-item and recoverable: the pipeline records
them on the quote. Tax configuration errors and arithmetic invariant
violations abort the quote.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.pricing_codes import PricingCode


class PricingError(BusinessException):
    """Base class for every pricing failure."""

    retryable: bool = False


# ---------------------------------------------------------------- coupons

class CouponError(PricingError):
    def __init__(
        self,
        code: int,
        coupon_code: str,
        message: str,
        error_type: str,
        message_key: str,
        details: Optional[dict] = None,
    ) -> None:
        self.coupon_code = coupon_code
        full_details = {"coupon_code": coupon_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=full_details,
            field="coupon_code",
            message_key=message_key,
            format_params=full_details,
        )


class CouponNotFound(CouponError):
    def __init__(self, coupon_code: str):
        super().__init__(
            PricingCode.COUPON_NOT_FOUND,
            coupon_code,
            f"Coupon {coupon_code} not found",
            "CouponNotFound",
            "coupon.not_found",
        )


class CouponInactive(CouponError):
    def __init__(self, coupon_code: str, status: str):
        super().__init__(
            PricingCode.COUPON_INACTIVE,
            coupon_code,
            f"Coupon {coupon_code} is not active ({status})",
            "CouponInactive",
            "coupon.inactive",
            {"status": status},
        )


class CouponExpired(CouponError):
    def __init__(self, coupon_code: str, valid_until: Optional[datetime] = None):
        super().__init__(
            PricingCode.COUPON_EXPIRED,
            coupon_code,
            f"Coupon {coupon_code} has expired",
            "CouponExpired",
            "coupon.expired",
            {"valid_until": valid_until.isoformat() if valid_until else None},
        )


class CouponBelowMinimum(CouponError):
    def __init__(self, coupon_code: str, minimum: int, order_amount: int):
        super().__init__(
            PricingCode.COUPON_BELOW_MINIMUM,
            coupon_code,
            f"Order amount {order_amount} is below the coupon minimum {minimum}",
            "CouponBelowMinimum",
            "coupon.below_minimum",
            {"minimum": minimum, "order_amount": order_amount},
        )


class CouponUsageExceeded(CouponError):
    def __init__(self, coupon_code: str, scope: str):
        super().__init__(
            PricingCode.COUPON_USAGE_EXCEEDED,
            coupon_code,
            f"Coupon {coupon_code} usage limit reached ({scope})",
            "CouponUsageExceeded",
            "coupon.usage_exceeded",
            {"scope": scope},
        )


class CouponNotApplicable(CouponError):
    def __init__(self, coupon_code: str, applicable_to: str = "all"):
        super().__init__(
            PricingCode.COUPON_NOT_APPLICABLE,
            coupon_code,
            f"Coupon {coupon_code} does not apply to the items in this order",
            "CouponNotApplicable",
            "coupon.not_applicable",
            {"applicable_to": applicable_to},
        )


class CouponConflict(CouponError):
    def __init__(self, coupon_code: str, conflicting_with: str):
        super().__init__(
            PricingCode.COUPON_CONFLICT,
            coupon_code,
            f"Coupon {coupon_code} cannot be combined with {conflicting_with}",
            "CouponConflict",
            "coupon.conflict",
            {"conflicting_with": conflicting_with},
        )


class StaleLedgerVersion(CouponError):
    """A validation finished after the ledger had already moved on."""

    def __init__(self, coupon_code: str, expected: int, actual: int):
        super().__init__(
            PricingCode.COUPON_STALE_VERSION,
            coupon_code,
            f"Ledger moved from version {expected} to {actual}",
            "StaleLedgerVersion",
            "coupon.superseded",
            {"expected_version": expected, "actual_version": actual},
        )


# -------------------------------------------------------------------- tax

class TaxConfigError(PricingError):
    pass


class UnsupportedFixedInclusive(TaxConfigError):
    def __init__(self, rule_name: str):
        super().__init__(
            code=PricingCode.TAX_UNSUPPORTED_FIXED_INCLUSIVE,
            message=f"Fixed tax rule '{rule_name}' cannot be extracted from an inclusive price",
            error_type="UnsupportedFixedInclusive",
            details={"rule": rule_name},
            message_key="tax.fixed_inclusive_unsupported",
            format_params={"rule": rule_name},
        )


# ---------------------------------------------------------------- gateway

class GatewayError(PricingError):
    def __init__(
        self,
        code: int,
        message: str,
        error_type: str,
        message_key: str,
        gateway: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        self.gateway = gateway
        full_details = {"gateway": gateway}
        if details:
            full_details.update(details)
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=full_details,
            message_key=message_key,
            format_params=full_details,
        )


class GatewayUnavailable(GatewayError):
    retryable = True

    def __init__(self, gateway: Optional[str] = None, reason: str = "unavailable"):
        super().__init__(
            PricingCode.GATEWAY_UNAVAILABLE,
            f"Gateway service unavailable: {reason}",
            "GatewayUnavailable",
            "gateway.unavailable",
            gateway,
            {"reason": reason},
        )


class GatewayUnhealthy(GatewayError):
    def __init__(self, gateway: str):
        super().__init__(
            PricingCode.GATEWAY_UNHEALTHY,
            f"Gateway {gateway} is currently unhealthy",
            "Unhealthy",
            "gateway.unhealthy",
            gateway,
        )


class AmountOutOfRange(GatewayError):
    def __init__(self, gateway: str, amount: int, min_amount: int, max_amount: int):
        super().__init__(
            PricingCode.GATEWAY_AMOUNT_OUT_OF_RANGE,
            f"Amount {amount} outside [{min_amount}, {max_amount}] for {gateway}",
            "AmountOutOfRange",
            "gateway.amount_out_of_range",
            gateway,
            {"amount": amount, "min_amount": min_amount, "max_amount": max_amount},
        )


class InsufficientWalletBalance(GatewayError):
    def __init__(self, gateway: str, balance: int, required: int):
        super().__init__(
            PricingCode.GATEWAY_INSUFFICIENT_WALLET_BALANCE,
            f"Wallet balance {balance} is below the required {required}",
            "InsufficientWalletBalance",
            "gateway.insufficient_wallet_balance",
            gateway,
            {"balance": balance, "required": required},
        )


# --------------------------------------------------------------- boundary

class ValidationTimeout(PricingError):
    retryable = True

    def __init__(self, coupon_code: str, timeout: float):
        self.coupon_code = coupon_code
        super().__init__(
            code=PricingCode.VALIDATION_TIMEOUT,
            message=f"Coupon validation for {coupon_code} timed out after {timeout}s",
            error_type="ValidationTimeout",
            details={"coupon_code": coupon_code, "timeout": timeout},
            field="coupon_code",
            message_key="coupon.validation_timeout",
            format_params={"coupon_code": coupon_code, "timeout": timeout},
        )


class ArithmeticInvariantViolation(PricingError):
    """Programming error: an amount broke a pricing invariant. Never user-facing."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code=PricingCode.ARITHMETIC_INVARIANT_VIOLATION,
            message=message,
            error_type="ArithmeticInvariantViolation",
            details=details,
            message_key="error.internal",
        )


# Failures that reject a single coupon code without aborting the quote
COUPON_REJECTIONS = (CouponError, ValidationTimeout, GatewayUnavailable)
