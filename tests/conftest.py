"""Pytest bootstrap configuration.

Environment is pinned before any module reads application settings, so the
service always runs against the in-process checkout services in tests.
"""
import os

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("DEFAULT_LOCALE", "en")
for _key in ("REDIS__URL", "PRICING__CHECKOUT__BASE_URL", "PRICING__PRICING_MODE", "PRICING__TAX_RULES"):
    os.environ.pop(_key, None)

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from application.dtos.pricing import CouponDetails, GatewayInfo
from core.settings import pricing_settings
from domain.pricing import (
    Coupon,
    GatewayCatalog,
    Money,
    OrderSnapshot,
    PricingMode,
    TaxKind,
    TaxRule,
    TaxRuleSet,
)


AS_OF = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def irr(amount: int) -> Money:
    return Money(amount, "IRR")


@pytest.fixture
def as_of() -> datetime:
    return AS_OF


@pytest.fixture
def make_order():
    def _make(subtotal: int, items=(), user_id=None, as_of=AS_OF) -> OrderSnapshot:
        return OrderSnapshot(subtotal=irr(subtotal), items=tuple(items), as_of=as_of, user_id=user_id)
    return _make


@pytest.fixture
def make_coupon():
    def _make(code: str, type: str = "percentage", value="10", **kwargs) -> Coupon:
        return Coupon(
            id=kwargs.pop("id", f"cpn-{code.lower()}"),
            code=code,
            type=type,
            value=Decimal(str(value)),
            **kwargs,
        )
    return _make


@pytest.fixture
def coupon_details():
    """Registry wire-format coupons used by the async and HTTP tests."""
    return [
        CouponDetails(
            id="cpn-welcome10", code="WELCOME10", type="percentage",
            discount_percentage=Decimal("10"), combinable_with_other_coupons=True,
        ),
        CouponDetails(
            id="cpn-save50000", code="SAVE50000", type="fixed_amount",
            discount_amount=50_000, combinable_with_other_coupons=True,
        ),
        CouponDetails(
            id="cpn-first20", code="FIRST20", type="percentage",
            discount_percentage=Decimal("20"), combinable_with_other_coupons=False,
        ),
        CouponDetails(
            id="cpn-big", code="BIGSPEND", type="fixed_amount",
            discount_amount=100_000, minimum_order_amount=500_000,
            combinable_with_other_coupons=True,
        ),
    ]


@pytest.fixture
def vat_rules() -> TaxRuleSet:
    return TaxRuleSet([TaxRule(kind=TaxKind.VAT, rate=Decimal("0.09"), name="VAT")], PricingMode.EXCLUSIVE)


@pytest.fixture
def gateway_infos() -> list[GatewayInfo]:
    return [GatewayInfo.model_validate(g.model_dump()) for g in pricing_settings.gateways]


@pytest.fixture
def catalog(gateway_infos) -> GatewayCatalog:
    return GatewayCatalog(info.to_domain("IRR") for info in gateway_infos)
