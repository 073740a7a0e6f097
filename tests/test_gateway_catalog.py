from dataclasses import replace
from decimal import Decimal

from domain.pricing import (
    FeeSchedule,
    GatewayCatalog,
    GatewayContext,
    GatewayDescriptor,
    GatewayType,
    IneligibilityReason,
    Money,
)


def _types(ranked):
    return [entry.gateway.type for entry in ranked]


def test_fee_schedule_fixed_plus_rate():
    fees = FeeSchedule(fixed=Money(2_000), rate=Decimal("0.015"))
    assert fees.evaluate(Money(100_001)).amount == 2_000 + 1_500


def test_payable_amount(catalog):
    zarinpal = catalog.get(GatewayType.ZARINPAL)
    assert GatewayCatalog.payable_amount(zarinpal, Money(981_000)).amount == 981_000 + 9_810


def test_unavailable_gateways_are_dropped(catalog):
    ranked = catalog.rank(Money(981_000))
    assert GatewayType.BANK_TRANSFER not in _types(ranked)


def test_insufficient_wallet_balance(catalog):
    ranked = catalog.rank(Money(981_000), GatewayContext(wallet_balance=Money(500_000)))
    wallet = next(e for e in ranked if e.gateway.type is GatewayType.WALLET)
    assert not wallet.eligible
    assert wallet.ineligibility_reason is IneligibilityReason.INSUFFICIENT_WALLET_BALANCE
    # Cheapest healthy external gateway: Mellat's flat 2,000 beats Zarinpal's 1%
    assert ranked[0].gateway.type is GatewayType.MELLAT_BANK
    assert ranked[0].eligible
    assert ranked[-1] is wallet


def test_wallet_with_enough_balance_ranks_first(catalog):
    ranked = catalog.rank(Money(981_000), GatewayContext(wallet_balance=Money(2_000_000)))
    assert ranked[0].gateway.type is GatewayType.WALLET
    assert ranked[0].wallet_sufficient
    assert ranked[0].payable_amount.amount == 981_000


def test_amount_below_minimum(catalog):
    ranked = catalog.rank(Money(5_000))
    reasons = {e.gateway.type: e.ineligibility_reason for e in ranked}
    assert reasons[GatewayType.MELLAT_BANK] is IneligibilityReason.AMOUNT_OUT_OF_RANGE
    assert reasons[GatewayType.SAMAN_BANK] is IneligibilityReason.AMOUNT_OUT_OF_RANGE
    assert reasons[GatewayType.ZARINPAL] is None
    assert ranked[0].gateway.type is GatewayType.ZARINPAL


def test_amount_above_maximum(catalog):
    ranked = catalog.rank(Money(600_000_000))
    zarinpal = next(e for e in ranked if e.gateway.type is GatewayType.ZARINPAL)
    assert zarinpal.ineligibility_reason is IneligibilityReason.AMOUNT_OUT_OF_RANGE


def test_unhealthy_is_annotated_not_hidden(catalog):
    mellat = catalog.get(GatewayType.MELLAT_BANK)
    sick = GatewayCatalog(
        replace(g, is_healthy=False) if g is mellat else g for g in catalog.gateways
    )
    ranked = sick.rank(Money(981_000))
    entry = next(e for e in ranked if e.gateway.type is GatewayType.MELLAT_BANK)
    assert entry.ineligibility_reason is IneligibilityReason.UNHEALTHY
    assert ranked[0].gateway.type is GatewayType.SAMAN_BANK
    assert ranked.index(entry) > ranked.index(ranked[0])


def test_preferred_gateway_first_among_eligible(catalog):
    ranked = catalog.rank(Money(981_000), GatewayContext(preferred_gateway="zarinpal"))
    assert ranked[0].gateway.type is GatewayType.ZARINPAL


def test_preferred_but_ineligible_stays_behind_eligible(catalog):
    ranked = catalog.rank(Money(5_000), GatewayContext(preferred_gateway="saman_bank"))
    assert ranked[0].gateway.type is GatewayType.ZARINPAL


def test_excluded_gateways(catalog):
    ranked = catalog.rank(Money(981_000), GatewayContext(excluded_gateways=frozenset({"mellat_bank"})))
    assert GatewayType.MELLAT_BANK not in _types(ranked)
    assert ranked[0].gateway.type is GatewayType.SAMAN_BANK


def test_priority_hint_breaks_fee_ties():
    a = GatewayDescriptor(type="saman_bank", display_name="Saman", min_amount=Money(0), priority_hint=1)
    b = GatewayDescriptor(type="mellat_bank", display_name="Mellat", min_amount=Money(0), priority_hint=5)
    c = GatewayDescriptor(type="crypto", display_name="Crypto", min_amount=Money(0), priority_hint=5)
    ranked = GatewayCatalog([a, b, c]).rank(Money(10_000))
    assert _types(ranked) == [GatewayType.CRYPTO, GatewayType.MELLAT_BANK, GatewayType.SAMAN_BANK]


def test_ranked_gateway_error(catalog):
    ranked = catalog.rank(Money(981_000), GatewayContext(wallet_balance=Money(500_000)))
    wallet = next(e for e in ranked if e.gateway.type is GatewayType.WALLET)
    error = wallet.error(Money(981_000), Money(500_000))
    assert error.message_key == "gateway.insufficient_wallet_balance"
    assert error.details["balance"] == 500_000
    assert error.details["required"] == 981_000
    assert ranked[0].error(Money(981_000)) is None
