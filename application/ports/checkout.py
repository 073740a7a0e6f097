"""
Checkout service ports (application/ports).

The pricing application depends on these Protocols; infrastructure provides
the HTTP adapters and the in-process fallbacks.
"""
from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

from application.dtos.pricing import (
    CouponApplicationResponse,
    CouponValidationResponse,
    GatewayInfo,
    LineItemIn,
)
from domain.pricing import Money


@runtime_checkable
class CouponRegistry(Protocol):
    """Owns coupon definitions and their usage counters."""

    async def validate_coupon(
        self,
        code: str,
        order_amount: int,
        items: Sequence[LineItemIn] = (),
        user_id: Optional[str] = None,
    ) -> CouponValidationResponse: ...

    async def apply_coupon(
        self,
        code: str,
        order_id: str,
        order_amount: int,
        user_id: Optional[str] = None,
    ) -> CouponApplicationResponse: ...


@runtime_checkable
class GatewayStatusService(Protocol):
    async def get_available_gateways(self, amount: Optional[int] = None) -> list[GatewayInfo]: ...


@runtime_checkable
class WalletBalanceService(Protocol):
    async def get_balance(self, user_id: str) -> Money: ...
