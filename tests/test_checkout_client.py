import json
from decimal import Decimal

import httpx
import pytest

from domain.pricing import Coupon
from domain.pricing.exceptions import CouponExpired, GatewayUnavailable, ValidationTimeout
from infrastructure.external.checkout.client import CheckoutAPIClient

BASE_URL = "https://checkout.test/api/v1"


def _client(handler, **kwargs) -> CheckoutAPIClient:
    return CheckoutAPIClient(
        base_url=BASE_URL, transport=httpx.MockTransport(handler), retry_delay=0.001, **kwargs
    )


WELCOME10 = {
    "id": "cpn-welcome10",
    "code": "WELCOME10",
    "type": "percentage",
    "discount_percentage": "10",
    "combinable_with_other_coupons": True,
}


@pytest.mark.asyncio
async def test_validate_coupon_unwraps_envelope():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "data": {"is_valid": True, "coupon_details": WELCOME10}})

    async with _client(handler, auth_token="secret") as client:
        result = await client.validate_coupon(" welcome10", 1_000_000)

    assert seen["path"] == "/api/v1/coupons/validate"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["coupon_code"] == "WELCOME10"
    assert seen["body"]["order_amount"] == 1_000_000
    assert result.is_valid
    verdict = result.to_verdict("WELCOME10", 1_000_000)
    assert isinstance(verdict, Coupon)
    assert verdict.combinable


@pytest.mark.asyncio
async def test_unknown_coupon_is_a_not_found_verdict():
    def handler(request):
        return httpx.Response(404, json={"message": "no such coupon"})

    async with _client(handler) as client:
        result = await client.validate_coupon("NOPE123", 1_000)

    assert not result.is_valid
    assert result.error_code == "COUPON_NOT_FOUND"


@pytest.mark.asyncio
async def test_client_error_with_registry_code_is_a_verdict():
    def handler(request):
        return httpx.Response(
            422,
            json={"success": False, "data": {"error_code": "COUPON_EXPIRED", "error": "expired"}},
        )

    async with _client(handler) as client:
        result = await client.validate_coupon("OLD10", 1_000)

    assert not result.is_valid
    assert isinstance(result.to_verdict("OLD10"), CouponExpired)


@pytest.mark.asyncio
async def test_timeout_raises_validation_timeout():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    async with _client(handler, timeout=2.5) as client:
        with pytest.raises(ValidationTimeout) as exc_info:
            await client.validate_coupon("WELCOME10", 1_000)

    assert exc_info.value.retryable
    assert exc_info.value.details["coupon_code"] == "WELCOME10"


@pytest.mark.asyncio
async def test_server_error_is_gateway_unavailable():
    def handler(request):
        return httpx.Response(503, json={"message": "maintenance"})

    async with _client(handler) as client:
        with pytest.raises(GatewayUnavailable):
            await client.validate_coupon("WELCOME10", 1_000)


@pytest.mark.asyncio
async def test_transient_error_is_retried_when_configured():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        if len(calls) == 1:
            return httpx.Response(503, json={"message": "busy"})
        return httpx.Response(200, json={"is_valid": True, "coupon_details": WELCOME10})

    async with _client(handler, max_retries=1) as client:
        result = await client.validate_coupon("WELCOME10", 1_000)

    assert len(calls) == 2
    assert result.is_valid


@pytest.mark.asyncio
async def test_gateway_list_parsing():
    def handler(request):
        assert request.url.params["amount"] == "981000"
        return httpx.Response(200, json={
            "success": True,
            "data": {"gateways": [
                {"type": "zarinpal", "display_name": "Zarinpal", "min_amount": 1000, "fee_rate": "0.01"},
                {"type": "wallet", "display_name": "Wallet", "unknown_field": 1},
            ]},
        })

    async with _client(handler) as client:
        gateways = await client.get_available_gateways(981_000)

    assert [g.type for g in gateways] == ["zarinpal", "wallet"]
    assert gateways[0].to_domain().fee_schedule.rate == Decimal("0.01")
    assert gateways[0].min_amount == 1_000


@pytest.mark.asyncio
async def test_gateway_status_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(GatewayUnavailable):
            await client.get_available_gateways()


@pytest.mark.asyncio
async def test_wallet_balance():
    def handler(request):
        assert request.url.path == "/api/v1/wallets/u-1/balance"
        return httpx.Response(200, json={"success": True, "data": {"balance": 500_000, "currency": "irr"}})

    async with _client(handler) as client:
        balance = await client.get_balance("u-1")

    assert balance.amount == 500_000
    assert balance.currency == "IRR"


@pytest.mark.asyncio
async def test_apply_coupon():
    def handler(request):
        body = json.loads(request.content)
        assert body["order_id"] == "ord-1"
        return httpx.Response(200, json={
            "success": True,
            "coupon_id": "cpn-welcome10",
            "coupon_code": body["coupon_code"],
            "discount_amount": 100_000,
            "original_amount": body["order_amount"],
            "final_amount": body["order_amount"] - 100_000,
        })

    async with _client(handler) as client:
        result = await client.apply_coupon("welcome10", "ord-1", 1_000_000, user_id="u-1")

    assert result.success
    assert result.coupon_code == "WELCOME10"
    assert result.final_amount == 900_000


@pytest.mark.asyncio
async def test_malformed_verdict_is_a_registry_failure():
    def handler(request):
        details = {**WELCOME10, "status": "archived"}
        return httpx.Response(200, json={"success": True, "data": {"is_valid": True, "coupon_details": details}})

    async with _client(handler) as client:
        with pytest.raises(GatewayUnavailable) as exc_info:
            await client.validate_coupon("WELCOME10", 1_000_000)

    assert exc_info.value.details["gateway"] == "coupon_registry"
    assert exc_info.value.details["reason"] == "malformed_verdict"
