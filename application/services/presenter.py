"""
Quote presentation - turns machine-readable quote annotations into localized
notices for the checkout page. The pipeline itself never formats text.
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.pricing import CouponCheckResponse, QuoteResponse
from core.i18n import t
from domain.pricing import PricingQuote, ValidationResult
from domain.pricing.coupon import normalize_code
from domain.pricing.exceptions import PricingError

COUPONS_SUMMARY_KEY = "quote.coupons_summary"


class QuotePresenter:
    def __init__(self, translate: Callable[..., str] = t) -> None:
        self._t = translate

    def notices(self, quote: PricingQuote) -> list[str]:
        notices: list[str] = []
        for rejection in quote.coupon_rejections:
            params = {"coupon_code": rejection.code, **rejection.details}
            notices.append(self._t(rejection.message_key or rejection.error_type, **params))
        for entry in quote.eligible_gateways:
            error = entry.error(quote.grand_total)
            if error is not None:
                notices.append(self._t(error.message_key, **(error.format_params or {})))
        for warning in quote.warnings:
            notices.append(self._t(warning))
        return notices

    def summary(self, quote: PricingQuote) -> Optional[str]:
        applied = len(quote.applied_coupons)
        rejected = len(quote.coupon_rejections)
        if applied + rejected == 0:
            return None
        return self._t(COUPONS_SUMMARY_KEY, applied=applied, total=applied + rejected, rejected=rejected)

    def present(self, quote: PricingQuote) -> QuoteResponse:
        return QuoteResponse(quote=quote.to_dict(), notices=self.notices(quote), summary=self.summary(quote))

    def coupon_check(
        self,
        code: str,
        result: Optional[ValidationResult] = None,
        error: Optional[PricingError] = None,
    ) -> CouponCheckResponse:
        key = normalize_code(code)
        if error is not None:
            return CouponCheckResponse(
                code=key,
                valid=False,
                reason=error.error_type,
                message=self._t(error.message_key or error.message, **(error.format_params or {})),
            )
        return CouponCheckResponse(
            code=key,
            valid=True,
            discount_amount=result.discount.amount if result is not None else 0,
        )
