from datetime import timedelta
from itertools import permutations

import pytest

from domain.pricing import (
    ApplicableItem,
    CouponBook,
    CouponLedger,
    CouponState,
    LineItem,
    Money,
)
from domain.pricing.exceptions import (
    CouponBelowMinimum,
    CouponConflict,
    CouponExpired,
    CouponInactive,
    CouponNotApplicable,
    CouponNotFound,
    CouponUsageExceeded,
    StaleLedgerVersion,
)


def _ledger(*coupons) -> CouponLedger:
    return CouponLedger(CouponBook(coupons))


def test_percentage_discount_capped_by_max_discount(make_coupon, make_order):
    ledger = _ledger(make_coupon("CAPPED10", value="10", max_discount=Money(50_000)))
    result = ledger.validate("capped10", make_order(1_000_000))
    assert result.discount.amount == 50_000
    assert ledger.state_of("CAPPED10") is CouponState.VALID


def test_fixed_discount_capped_at_subtotal(make_coupon, make_order):
    ledger = _ledger(make_coupon("SAVE50000", type="fixed_amount", value=50_000))
    assert ledger.validate("SAVE50000", make_order(30_000)).discount.amount == 30_000


def test_codes_are_case_insensitive(make_coupon, make_order):
    ledger = _ledger(make_coupon("WELCOME10"))
    applied = ledger.apply("  welcome10 ", make_order(1_000_000))
    assert applied.code == "WELCOME10"
    assert applied.discount_amount.amount == 100_000


@pytest.mark.parametrize("code", ["AB", "WITH-DASH", "X" * 21, ""])
def test_malformed_codes_are_not_found(make_coupon, make_order, code):
    with pytest.raises(CouponNotFound):
        _ledger(make_coupon("WELCOME10")).validate(code, make_order(1_000))


def test_unknown_code(make_order):
    with pytest.raises(CouponNotFound):
        _ledger().validate("NOPE123", make_order(1_000))


def test_expired_and_not_yet_valid(make_coupon, make_order, as_of):
    ledger = _ledger(
        make_coupon("OLD10", valid_until=as_of - timedelta(days=1)),
        make_coupon("SOON10", valid_from=as_of + timedelta(days=1)),
        make_coupon("DEAD10", status="expired"),
    )
    order = make_order(100_000)
    with pytest.raises(CouponExpired):
        ledger.validate("OLD10", order)
    with pytest.raises(CouponInactive):
        ledger.validate("SOON10", order)
    with pytest.raises(CouponExpired):
        ledger.validate("DEAD10", order)


@pytest.mark.parametrize("status", ["inactive", "suspended", "draft"])
def test_non_active_status(make_coupon, make_order, status):
    with pytest.raises(CouponInactive):
        _ledger(make_coupon("PAUSED10", status=status)).validate("PAUSED10", make_order(100_000))


def test_minimum_order_amount(make_coupon, make_order):
    ledger = _ledger(make_coupon("BIGSPEND", minimum_order_amount=Money(500_000)))
    with pytest.raises(CouponBelowMinimum) as exc_info:
        ledger.validate("BIGSPEND", make_order(499_999))
    assert exc_info.value.details["minimum"] == 500_000
    assert ledger.validate("BIGSPEND", make_order(500_000)).discount.amount == 50_000


def test_usage_limits(make_coupon, make_order):
    ledger = _ledger(
        make_coupon("LIMITED", usage_limit_total=10, times_used=10),
        make_coupon("ONCEEACH", usage_limit_per_user=1, times_used_by_user=1),
    )
    with pytest.raises(CouponUsageExceeded) as total:
        ledger.validate("LIMITED", make_order(1_000))
    assert total.value.details["scope"] == "total"
    with pytest.raises(CouponUsageExceeded) as per_user:
        ledger.validate("ONCEEACH", make_order(1_000))
    assert per_user.value.details["scope"] == "per_user"


def test_applicable_categories(make_coupon, make_order):
    ledger = _ledger(make_coupon("COURSES10", applicable_to="courses"))
    workshop = make_order(100_000, items=[LineItem("w-1", "workshop")])
    course = make_order(100_000, items=[LineItem("c-1", "course"), LineItem("w-1", "workshop")])
    with pytest.raises(CouponNotApplicable):
        ledger.validate("COURSES10", workshop)
    assert ledger.validate("COURSES10", course).discount.amount == 10_000


def test_specific_items(make_coupon, make_order):
    ledger = _ledger(
        make_coupon(
            "PYTHON10",
            applicable_to="specific_items",
            applicable_items=(ApplicableItem("course", "py-101"),),
        )
    )
    with pytest.raises(CouponNotApplicable):
        ledger.validate("PYTHON10", make_order(100_000, items=[LineItem("go-101", "course")]))
    # Same id, different item type
    with pytest.raises(CouponNotApplicable):
        ledger.validate("PYTHON10", make_order(100_000, items=[LineItem("py-101", "product")]))
    assert ledger.validate("PYTHON10", make_order(100_000, items=[LineItem("py-101", "course")]))


def test_coupon_in_other_currency_not_applicable(make_coupon, make_order):
    with pytest.raises(CouponNotApplicable):
        _ledger(make_coupon("DOLLAR10", currency="USD")).validate("DOLLAR10", make_order(100_000))


def test_duplicate_apply_conflicts(make_coupon, make_order):
    ledger = _ledger(make_coupon("WELCOME10", combinable=True))
    order = make_order(1_000_000)
    ledger.apply("WELCOME10", order)
    with pytest.raises(CouponConflict):
        ledger.apply("welcome10", order)
    assert len(ledger.applied) == 1


def test_non_combinable_coupon_conflicts(make_coupon, make_order):
    ledger = _ledger(
        make_coupon("SAVE50000", type="fixed_amount", value=50_000, combinable=True),
        make_coupon("FIRST20", value="20", combinable=False),
    )
    order = make_order(1_000_000)
    ledger.apply("SAVE50000", order)
    with pytest.raises(CouponConflict) as exc_info:
        ledger.apply("FIRST20", order)
    assert exc_info.value.details["conflicting_with"] == "SAVE50000"
    assert [c.code for c in ledger.applied] == ["SAVE50000"]
    assert ledger.discount_total().amount == 50_000


def test_non_combinable_first_blocks_others(make_coupon, make_order):
    ledger = _ledger(
        make_coupon("FIRST20", value="20", combinable=False),
        make_coupon("WELCOME10", combinable=True),
    )
    order = make_order(1_000_000)
    ledger.apply("FIRST20", order)
    with pytest.raises(CouponConflict):
        ledger.apply("WELCOME10", order)


def test_discount_total_never_exceeds_subtotal(make_coupon, make_order):
    ledger = _ledger(
        make_coupon("HALFA", type="fixed_amount", value=600_000, combinable=True),
        make_coupon("HALFB", type="fixed_amount", value=600_000, combinable=True),
    )
    order = make_order(1_000_000)
    ledger.apply("HALFA", order)
    ledger.apply("HALFB", order)
    assert ledger.discount_total(order.subtotal).amount == 1_000_000


def test_any_order_yields_same_total(make_coupon, make_order):
    coupons = [
        make_coupon("WELCOME10", combinable=True),
        make_coupon("SAVE50000", type="fixed_amount", value=50_000, combinable=True),
        make_coupon("CAPPED15", value="15", max_discount=Money(120_000), combinable=True),
    ]
    order = make_order(1_234_567)
    totals = set()
    for ordering in permutations(c.code for c in coupons):
        ledger = _ledger(*coupons)
        for code in ordering:
            ledger.apply(code, order)
        totals.add(ledger.discount_total(order.subtotal).amount)
    assert totals == {123_456 + 50_000 + 120_000}


def test_version_and_stale_apply(make_coupon, make_order):
    ledger = _ledger(make_coupon("WELCOME10", combinable=True), make_coupon("SAVE50000", combinable=True))
    order = make_order(1_000_000)
    stamped = ledger.version
    ledger.apply("SAVE50000", order)
    assert ledger.version == stamped + 1
    with pytest.raises(StaleLedgerVersion):
        ledger.apply("WELCOME10", order, expected_version=stamped)
    assert ledger.state_of("WELCOME10") is CouponState.SUPERSEDED
    ledger.apply("WELCOME10", order, expected_version=ledger.version)
    assert ledger.state_of("WELCOME10") is CouponState.APPLIED


def test_remove_and_clear(make_coupon, make_order):
    ledger = _ledger(make_coupon("WELCOME10", combinable=True), make_coupon("SAVE50000", combinable=True))
    order = make_order(1_000_000)
    ledger.apply("WELCOME10", order)
    ledger.apply("SAVE50000", order)

    version = ledger.version
    assert ledger.remove("UNKNOWN1") is None
    assert ledger.version == version

    removed = ledger.remove("cpn-welcome10")
    assert removed.code == "WELCOME10"
    assert ledger.state_of("WELCOME10") is CouponState.REMOVED

    ledger.clear()
    assert ledger.applied == ()
    assert ledger.discount_total(order.subtotal).amount == 0


def test_rebase_drops_coupons_no_longer_valid(make_coupon, make_order):
    ledger = _ledger(
        make_coupon("WELCOME10", combinable=True),
        make_coupon("BIGSPEND", type="fixed_amount", value=100_000, combinable=True,
                    minimum_order_amount=Money(500_000)),
    )
    ledger.apply("WELCOME10", make_order(1_000_000))
    ledger.apply("BIGSPEND", make_order(1_000_000))

    dropped = ledger.rebase(make_order(200_000))
    assert [type(e) for e in dropped] == [CouponBelowMinimum]
    assert [c.code for c in ledger.applied] == ["WELCOME10"]
    assert ledger.applied[0].discount_amount.amount == 20_000
