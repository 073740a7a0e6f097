"""
In-process checkout services.

Used when no checkout platform is configured (local development, tests).
The registry mirrors the platform's verdicts, including usage counting on
`apply_coupon`, so a committed quote behaves as it would upstream.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional, Sequence

from application.dtos.pricing import (
    CouponApplicationResponse,
    CouponDetails,
    CouponValidationResponse,
    GatewayInfo,
    LineItemIn,
)
from core.settings import GatewaySettings
from domain.pricing import CouponLedger, CouponBook, Money, OrderSnapshot
from domain.pricing.coupon import normalize_code
from domain.pricing.exceptions import CouponError

# error_type -> registry error code
_REGISTRY_CODES = {
    "CouponNotFound": "COUPON_NOT_FOUND",
    "CouponInactive": "COUPON_INACTIVE",
    "CouponExpired": "COUPON_EXPIRED",
    "CouponBelowMinimum": "INSUFFICIENT_ORDER_AMOUNT",
    "CouponUsageExceeded": "USAGE_LIMIT_EXCEEDED",
    "CouponNotApplicable": "NOT_APPLICABLE_TO_ITEMS",
}


class InMemoryCouponRegistry:
    def __init__(self, coupons: Iterable[CouponDetails] = ()) -> None:
        self._coupons: dict[str, CouponDetails] = {}
        self._user_usage: dict[tuple[str, str], int] = {}
        self._applied_orders: set[tuple[str, str]] = set()
        self._lock = asyncio.Lock()
        for coupon in coupons:
            self.add(coupon)

    def add(self, coupon: CouponDetails) -> None:
        self._coupons[normalize_code(coupon.code)] = coupon

    def _snapshot(self, key: str, user_id: Optional[str]) -> Optional[CouponDetails]:
        coupon = self._coupons.get(key)
        if coupon is None:
            return None
        used_by_user = self._user_usage.get((key, user_id), 0) if user_id else 0
        return coupon.model_copy(update={"user_usage_count": used_by_user})

    async def validate_coupon(
        self,
        code: str,
        order_amount: int,
        items: Sequence[LineItemIn] = (),
        user_id: Optional[str] = None,
    ) -> CouponValidationResponse:
        key = normalize_code(code)
        details = self._snapshot(key, user_id)
        if details is None:
            return CouponValidationResponse(is_valid=False, error_code="COUPON_NOT_FOUND")
        order = OrderSnapshot(
            subtotal=Money(order_amount, details.currency),
            items=tuple(item.to_domain() for item in items),
            as_of=datetime.now(timezone.utc),
            user_id=user_id,
        )
        try:
            CouponLedger(CouponBook([details.to_domain()])).validate(key, order)
        except CouponError as exc:
            return CouponValidationResponse(
                is_valid=False,
                error=exc.message,
                error_code=_REGISTRY_CODES.get(exc.error_type, "COUPON_NOT_FOUND"),
                coupon_details=details,
            )
        return CouponValidationResponse(is_valid=True, coupon_details=details)

    async def apply_coupon(
        self,
        code: str,
        order_id: str,
        order_amount: int,
        user_id: Optional[str] = None,
    ) -> CouponApplicationResponse:
        key = normalize_code(code)
        async with self._lock:
            verdict = await self.validate_coupon(key, order_amount, user_id=user_id)
            if not verdict.is_valid or verdict.coupon_details is None:
                return CouponApplicationResponse(
                    success=False, coupon_code=key, original_amount=order_amount,
                    final_amount=order_amount, error=verdict.error_code,
                )
            details = verdict.coupon_details
            coupon = details.to_domain()
            discount = coupon.discount_for(Money(order_amount, details.currency)).amount
            # Idempotent per (code, order)
            if (key, order_id) not in self._applied_orders:
                self._applied_orders.add((key, order_id))
                self._coupons[key] = self._coupons[key].model_copy(
                    update={"usage_count": self._coupons[key].usage_count + 1}
                )
                if user_id:
                    self._user_usage[(key, user_id)] = self._user_usage.get((key, user_id), 0) + 1
            return CouponApplicationResponse(
                success=True,
                coupon_id=details.id,
                coupon_code=key,
                discount_amount=discount,
                original_amount=order_amount,
                final_amount=order_amount - discount,
            )

    def usage_count(self, code: str) -> int:
        coupon = self._coupons.get(normalize_code(code))
        return coupon.usage_count if coupon else 0


class StaticGatewayStatusService:
    def __init__(self, gateways: Iterable[GatewaySettings | GatewayInfo | dict]) -> None:
        self._gateways = [
            GatewayInfo.model_validate(g if isinstance(g, dict) else g.model_dump())
            for g in gateways
        ]

    def set_health(self, gateway_type: str, healthy: bool) -> None:
        self._gateways = [
            g.model_copy(update={"is_healthy": healthy}) if g.type == gateway_type else g
            for g in self._gateways
        ]

    async def get_available_gateways(self, amount: Optional[int] = None) -> list[GatewayInfo]:
        return list(self._gateways)


class InMemoryWalletService:
    def __init__(self, balances: Optional[Mapping[str, int]] = None, currency: str = "IRR") -> None:
        self._balances = dict(balances or {})
        self._currency = currency

    def set_balance(self, user_id: str, amount: int) -> None:
        self._balances[user_id] = amount

    async def get_balance(self, user_id: str) -> Money:
        return Money(self._balances.get(user_id, 0), self._currency)
