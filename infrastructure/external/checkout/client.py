"""
HTTP adapter for the checkout platform services.

One client speaks to the coupon registry, the gateway status service and the
wallet service, which share a base URL on the checkout platform. Transport
failures are translated here, so the application only ever sees pricing
errors:

- a coupon validation that times out -> ValidationTimeout
- any other coupon registry failure -> GatewayUnavailable(gateway="coupon_registry")
- gateway status / wallet failures -> GatewayUnavailable
"""
from __future__ import annotations

from typing import Any, Optional, Sequence

from pydantic import ValidationError

from application.dtos.pricing import (
    CouponApplicationRequest,
    CouponApplicationResponse,
    CouponValidationRequest,
    CouponValidationResponse,
    GatewayInfo,
    LineItemIn,
    WalletBalanceResponse,
)
from core.logging_config import get_logger
from domain.pricing import Money
from domain.pricing.coupon import normalize_code
from domain.pricing.exceptions import GatewayUnavailable, ValidationTimeout
from infrastructure.external.api_clients.base import (
    APIError,
    APITimeoutError,
    BaseAPIClient,
    NotFoundError,
    ServerError,
)

logger = get_logger(__name__)

COUPON_REGISTRY = "coupon_registry"
GATEWAY_STATUS = "gateway_status"
WALLET = "wallet"


def _unwrap(payload: Any) -> Any:
    """The platform wraps results as {"success": ..., "data": ..., "message": ...}."""
    if isinstance(payload, dict) and "data" in payload and ("success" in payload or "message" in payload):
        return payload["data"]
    return payload


def _verdict(code: str, payload: Any) -> CouponValidationResponse:
    try:
        return CouponValidationResponse.model_validate(payload)
    except ValidationError as exc:
        logger.warning("coupon_verdict_malformed", coupon_code=code, errors=exc.error_count())
        raise GatewayUnavailable(COUPON_REGISTRY, reason="malformed_verdict") from exc


class CheckoutAPIClient(BaseAPIClient):
    """Implements CouponRegistry, GatewayStatusService and WalletBalanceService."""

    async def validate_coupon(
        self,
        code: str,
        order_amount: int,
        items: Sequence[LineItemIn] = (),
        user_id: Optional[str] = None,
    ) -> CouponValidationResponse:
        key = normalize_code(code)
        body = CouponValidationRequest(
            coupon_code=key,
            order_amount=order_amount,
            order_items=list(items),
            user_id=user_id,
        )
        try:
            response = await self.post("/coupons/validate", json_data=body)
        except APITimeoutError as exc:
            logger.warning("coupon_validation_timeout", coupon_code=key, timeout=self.timeout)
            raise ValidationTimeout(key, self.timeout) from exc
        except NotFoundError:
            return CouponValidationResponse(is_valid=False, error_code="COUPON_NOT_FOUND")
        except APIError as exc:
            # 4xx carrying a registry verdict is still a verdict
            verdict = _unwrap(exc.response.data) if exc.response is not None else None
            if (
                not isinstance(exc, ServerError)
                and isinstance(verdict, dict)
                and verdict.get("error_code")
            ):
                return _verdict(key, {"is_valid": False, **verdict})
            logger.warning("coupon_registry_unavailable", coupon_code=key, error=str(exc))
            raise GatewayUnavailable(COUPON_REGISTRY, reason=exc.message) from exc

        result = _verdict(key, _unwrap(response.json()))
        logger.info(
            "coupon_validation_fetched",
            coupon_code=key,
            is_valid=result.is_valid,
            error_code=result.error_code,
            elapsed_ms=round(response.elapsed_ms, 2),
        )
        return result

    async def apply_coupon(
        self,
        code: str,
        order_id: str,
        order_amount: int,
        user_id: Optional[str] = None,
    ) -> CouponApplicationResponse:
        key = normalize_code(code)
        body = CouponApplicationRequest(
            coupon_code=key,
            order_id=order_id,
            order_amount=order_amount,
            user_id=user_id,
        )
        try:
            response = await self.post("/coupons/apply", json_data=body)
        except APITimeoutError as exc:
            raise ValidationTimeout(key, self.timeout) from exc
        except APIError as exc:
            raise GatewayUnavailable(COUPON_REGISTRY, reason=exc.message) from exc
        return CouponApplicationResponse.model_validate(_unwrap(response.json()))

    async def get_available_gateways(self, amount: Optional[int] = None) -> list[GatewayInfo]:
        params = {"amount": amount} if amount is not None else None
        try:
            response = await self.get("/gateways", params=params)
        except APITimeoutError as exc:
            raise GatewayUnavailable(GATEWAY_STATUS, reason="timeout") from exc
        except APIError as exc:
            raise GatewayUnavailable(GATEWAY_STATUS, reason=exc.message) from exc
        payload = _unwrap(response.json())
        if isinstance(payload, dict):
            payload = payload.get("gateways", [])
        return [GatewayInfo.model_validate(item) for item in payload or []]

    async def get_balance(self, user_id: str) -> Money:
        try:
            response = await self.get(f"/wallets/{user_id}/balance")
        except APITimeoutError as exc:
            raise GatewayUnavailable(WALLET, reason="timeout") from exc
        except APIError as exc:
            raise GatewayUnavailable(WALLET, reason=exc.message) from exc
        return WalletBalanceResponse.model_validate(_unwrap(response.json())).to_domain()

    async def aclose(self) -> None:
        await self.close()
