import pytest
from fastapi.testclient import TestClient

from main import app

PREFIX = "/api/v1/pricing"


@pytest.fixture
def client(coupon_details):
    with TestClient(app) as test_client:
        ports = app.state.checkout_ports
        for coupon in coupon_details:
            ports.registry.add(coupon)
        ports.wallet.set_balance("u-rich", 5_000_000)
        yield test_client


def test_quote(client):
    resp = client.post(
        f"{PREFIX}/quote",
        json={"subtotal": 1_000_000, "coupon_codes": ["welcome10", "NOPE123"]},
        headers={"Accept-Language": "en"},
    )
    assert resp.status_code == 200
    assert resp.headers["Content-Language"] == "en"
    assert resp.headers.get("X-Request-ID")
    data = resp.json()["data"]
    quote = data["quote"]
    assert quote["grand_total"] == 981_000
    assert quote["tax_total"] == 81_000
    assert [c["code"] for c in quote["applied_coupons"]] == ["WELCOME10"]
    assert quote["coupon_rejections"][0]["reason"] == "CouponNotFound"
    assert quote["chosen_gateway"] == "mellat_bank"
    assert len(data["notices"]) >= 1
    assert data["summary"]


def test_quote_pays_from_wallet(client):
    resp = client.post(f"{PREFIX}/quote", json={"subtotal": 1_000_000, "user_id": "u-rich"})
    assert resp.json()["data"]["quote"]["chosen_gateway"] == "wallet"


def test_quote_rejects_unknown_gateway(client):
    resp = client.post(f"{PREFIX}/quote", json={"subtotal": 1_000, "preferred_gateway": "paypal"})
    assert resp.status_code == 422
    assert resp.json()["error"]["type"] == "ValidationError"


def test_quote_rejects_negative_subtotal(client):
    resp = client.post(f"{PREFIX}/quote", json={"subtotal": -1})
    assert resp.status_code == 422


def test_quote_in_other_currency(client):
    resp = client.post(f"{PREFIX}/quote", json={"subtotal": 1_000, "currency": "USD"})
    assert resp.status_code == 422
    body = resp.json()
    assert body["error"]["type"] == "DomainValidationError"
    assert body["error"]["message_key"] == "pricing.currency_unsupported"


def test_validate_coupon(client):
    ok = client.post(f"{PREFIX}/coupons/validate", json={"coupon_code": "welcome10", "subtotal": 1_000_000})
    assert ok.status_code == 200
    assert ok.json()["data"] == {
        "code": "WELCOME10", "valid": True, "discount_amount": 100_000, "reason": None, "message": None,
    }

    missing = client.post(f"{PREFIX}/coupons/validate", json={"coupon_code": "NOPE123", "subtotal": 1_000_000})
    assert missing.status_code == 200
    data = missing.json()["data"]
    assert not data["valid"]
    assert data["reason"] == "CouponNotFound"
    assert data["message"]


def test_list_gateways(client):
    resp = client.get(f"{PREFIX}/gateways", params={"amount": 5_000})
    assert resp.status_code == 200
    ranked = resp.json()["data"]
    assert ranked[0]["gateway"] == "zarinpal"
    mellat = next(g for g in ranked if g["gateway"] == "mellat_bank")
    assert mellat["ineligibility_reason"] == "amount_out_of_range"
    assert "bank_transfer" not in {g["gateway"] for g in ranked}


def test_list_gateways_requires_amount(client):
    assert client.get(f"{PREFIX}/gateways").status_code == 422


def test_refresh_gateways(client):
    resp = client.post(f"{PREFIX}/gateways/refresh")
    assert resp.status_code == 200
    assert "mellat_bank" in resp.json()["data"]["gateways"]


def test_commit(client):
    resp = client.post(
        f"{PREFIX}/commit",
        json={"subtotal": 1_000_000, "coupon_codes": ["WELCOME10"], "order_id": "ord-1", "user_id": "u-1"},
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["grand_total"] == 981_000
    assert data["coupons"][0]["success"]
    assert data["coupons"][0]["discount_amount"] == 100_000
    assert app.state.checkout_ports.registry.usage_count("WELCOME10") == 1


def test_commit_requires_order_id(client):
    resp = client.post(f"{PREFIX}/commit", json={"subtotal": 1_000_000})
    assert resp.status_code == 422


def test_health_reports_catalog(client):
    client.post(f"{PREFIX}/quote", json={"subtotal": 1_000})
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "healthy"
    assert data["gateway_catalog_loaded"]
    assert not data["gateway_catalog_stale"]


def test_root(client):
    assert client.get("/").json()["data"]["name"]


def test_identical_quote_requests_return_identical_quotes(client):
    payload = {"subtotal": 1_000_000, "coupon_codes": ["WELCOME10", "SAVE50000"], "user_id": "u-rich"}
    first = client.post(f"{PREFIX}/quote", json=payload)
    second = client.post(f"{PREFIX}/quote", json=payload)
    assert first.json()["data"] == second.json()["data"]
    assert "applied_at" not in first.json()["data"]["quote"]["applied_coupons"][0]


def _applied(resp) -> list[str]:
    return [c["code"] for c in resp.json()["data"]["quote"]["applied_coupons"]]


def test_session_coupons_persist_between_requests(client):
    session = f"{PREFIX}/sessions/cart-7"

    first = client.post(f"{session}/coupons", json={"subtotal": 1_000_000, "coupon_code": "welcome10"})
    assert first.status_code == 200
    assert _applied(first) == ["WELCOME10"]
    assert first.json()["data"]["quote"]["grand_total"] == 981_000

    second = client.post(f"{session}/coupons", json={"subtotal": 1_000_000, "coupon_code": "SAVE50000"})
    assert _applied(second) == ["WELCOME10", "SAVE50000"]
    assert second.json()["data"]["quote"]["grand_total"] == 926_500

    resubmitted = client.post(f"{session}/coupons", json={"subtotal": 1_000_000, "coupon_code": "WELCOME10"})
    assert _applied(resubmitted) == ["WELCOME10", "SAVE50000"]
    assert resubmitted.json()["data"]["quote"]["coupon_rejections"] == []

    smaller = client.post(f"{session}/quote", json={"subtotal": 500_000})
    quote = smaller.json()["data"]["quote"]
    assert quote["discount_total"] == 100_000
    assert quote["grand_total"] == 436_000

    removed = client.delete(f"{session}/coupons/welcome10")
    assert removed.json()["data"]["coupon_codes"] == ["SAVE50000"]

    final = client.post(f"{session}/quote", json={"subtotal": 1_000_000})
    assert _applied(final) == ["SAVE50000"]
    assert final.json()["data"]["quote"]["grand_total"] == 1_035_500


def test_session_reports_rejected_and_dropped_coupons(client):
    session = f"{PREFIX}/sessions/cart-8"
    client.post(f"{session}/coupons", json={"subtotal": 1_000_000, "coupon_code": "BIGSPEND"})

    shrunk = client.post(f"{session}/quote", json={"subtotal": 100_000})
    quote = shrunk.json()["data"]["quote"]
    assert quote["applied_coupons"] == []
    assert [(r["code"], r["reason"]) for r in quote["coupon_rejections"]] == [("BIGSPEND", "CouponBelowMinimum")]

    unknown = client.post(f"{session}/coupons", json={"subtotal": 1_000_000, "coupon_code": "NOPE123"})
    quote = unknown.json()["data"]["quote"]
    assert quote["applied_coupons"] == []
    assert [(r["code"], r["reason"]) for r in quote["coupon_rejections"]] == [("NOPE123", "CouponNotFound")]


def test_session_coupon_requires_code(client):
    resp = client.post(f"{PREFIX}/sessions/cart-9/coupons", json={"subtotal": 1_000})
    assert resp.status_code == 422
