"""
Coupon commit at checkout.

Pricing only ever reads coupons. Once the user finalizes the order, each
applied coupon is committed to the registry, which owns the usage counters.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from application.ports.checkout import CouponRegistry
from core.logging_config import get_logger
from domain.pricing import PricingQuote
from domain.pricing.exceptions import GatewayUnavailable, ValidationTimeout

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommitOutcome:
    code: str
    success: bool
    discount_amount: int = 0
    error: Optional[str] = None
    retryable: bool = False

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "success": self.success,
            "discount_amount": self.discount_amount,
            "error": self.error,
            "retryable": self.retryable,
        }


class CheckoutService:
    def __init__(self, registry: CouponRegistry) -> None:
        self.registry = registry

    async def commit_coupons(
        self,
        quote: PricingQuote,
        order_id: str,
        user_id: Optional[str] = None,
    ) -> list[CommitOutcome]:
        """Commit every applied coupon of `quote`; one outcome per code, in order."""
        outcomes: list[CommitOutcome] = []
        for applied in quote.applied_coupons:
            try:
                result = await self.registry.apply_coupon(
                    applied.code, order_id, quote.subtotal.amount, user_id=user_id
                )
            except (ValidationTimeout, GatewayUnavailable) as exc:
                logger.warning(
                    "coupon_commit_failed",
                    order_id=order_id,
                    coupon_code=applied.code,
                    error_type=exc.error_type,
                )
                outcomes.append(CommitOutcome(applied.code, False, error=exc.error_type, retryable=True))
                continue

            outcome = CommitOutcome(
                code=applied.code,
                success=result.success,
                discount_amount=result.discount_amount if result.success else 0,
                error=result.error,
            )
            if result.success and result.discount_amount != applied.discount_amount.amount:
                # The registry is authoritative; a drift means the quote went stale
                logger.warning(
                    "coupon_commit_discount_drift",
                    order_id=order_id,
                    coupon_code=applied.code,
                    quoted=applied.discount_amount.amount,
                    committed=result.discount_amount,
                )
            outcomes.append(outcome)

        logger.info(
            "coupon_commit_completed",
            order_id=order_id,
            committed=[o.code for o in outcomes if o.success],
            failed=[o.code for o in outcomes if not o.success],
        )
        return outcomes
