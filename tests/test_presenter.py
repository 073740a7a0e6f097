from dataclasses import replace

import pytest

from application.services.presenter import QuotePresenter
from domain.pricing import CouponBook, CouponLedger, GatewayCatalog, GatewayContext, Money, PricingPipeline
from domain.pricing.exceptions import CouponNotFound


class RecordingTranslator:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []

    def __call__(self, key: str, **params) -> str:
        self.calls.append((key, params))
        return key


@pytest.fixture
def translator():
    return RecordingTranslator()


@pytest.fixture
def presenter(translator):
    return QuotePresenter(translate=translator)


@pytest.fixture
def quote(vat_rules, catalog, make_coupon, make_order):
    book = CouponBook([
        make_coupon("SAVE50000", type="fixed_amount", value=50_000, combinable=True),
        make_coupon("FIRST20", value="20", combinable=False),
    ])
    return PricingPipeline(vat_rules, book, catalog).quote(
        make_order(1_000_000), ["SAVE50000", "FIRST20"], GatewayContext(wallet_balance=Money(500_000))
    )


def test_notices_cover_rejections_and_gateways(presenter, translator, quote):
    notices = presenter.notices(quote)

    assert notices == ["coupon.conflict", "gateway.insufficient_wallet_balance"]
    conflict_params = translator.calls[0][1]
    assert conflict_params["coupon_code"] == "FIRST20"
    assert conflict_params["conflicting_with"] == "SAVE50000"
    wallet_params = translator.calls[1][1]
    assert wallet_params["required"] == quote.grand_total.amount == 1_035_500


def test_summary_counts_coupons(presenter, translator, quote):
    assert presenter.summary(quote) == "quote.coupons_summary"
    assert translator.calls[-1] == ("quote.coupons_summary", {"applied": 1, "total": 2, "rejected": 1})


def test_no_summary_without_coupons(presenter, vat_rules, catalog, make_order):
    quote = PricingPipeline(vat_rules, CouponBook(), catalog).quote(make_order(1_000_000))
    assert presenter.summary(quote) is None
    # Without a known balance the wallet is annotated as short
    assert presenter.notices(quote) == ["gateway.insufficient_wallet_balance"]


def test_warnings_become_notices(presenter, vat_rules, make_order):
    quote = PricingPipeline(vat_rules, CouponBook(), GatewayCatalog()).quote(make_order(1_000))
    quote = replace(quote, warnings=("gateway.catalog_unavailable",))
    assert presenter.notices(quote) == ["gateway.catalog_unavailable"]


def test_present_wraps_quote_dict(presenter, quote):
    response = presenter.present(quote)
    assert response.quote["grand_total"] == 1_035_500
    assert response.quote["chosen_gateway"] == "mellat_bank"
    assert len(response.notices) == 2
    assert response.summary == "quote.coupons_summary"


def test_coupon_check_responses(presenter, translator, make_coupon, make_order):
    ledger = CouponLedger(CouponBook([make_coupon("WELCOME10")]))
    valid = presenter.coupon_check("welcome10", result=ledger.validate("WELCOME10", make_order(1_000_000)))
    assert valid.valid
    assert valid.discount_amount == 100_000
    assert valid.code == "WELCOME10"

    rejected = presenter.coupon_check("nope123", error=CouponNotFound("NOPE123"))
    assert not rejected.valid
    assert rejected.reason == "CouponNotFound"
    assert rejected.message == "coupon.not_found"
    assert translator.calls[-1][1]["coupon_code"] == "NOPE123"
