"""
Pricing pipeline - coupons, then tax, then gateway ranking.

A pure function of (order, coupon codes, gateway context) plus the gateway
catalog and tax rules it was built with. It never performs IO.
"""
from __future__ import annotations

from typing import Iterable, Optional

from .coupon import CouponLedger, CouponSource
from .exceptions import COUPON_REJECTIONS, ArithmeticInvariantViolation
from .gateway import GatewayCatalog, GatewayContext
from .money import Money
from .order import OrderSnapshot
from .quote import CouponRejection, PricingQuote
from .tax import PricingMode, TaxRuleSet


NO_TAX_RULES_WARNING = "tax.no_rules_enabled"


class PricingPipeline:
    def __init__(self, tax_rules: TaxRuleSet, coupons: CouponSource, catalog: GatewayCatalog) -> None:
        self.tax_rules = tax_rules
        self.coupons = coupons
        self.catalog = catalog

    def quote(
        self,
        order: OrderSnapshot,
        coupon_codes: Iterable[str] = (),
        gateway_context: Optional[GatewayContext] = None,
        ledger: Optional[CouponLedger] = None,
    ) -> PricingQuote:
        """
        Price one checkout attempt.

        Coupons are applied in input order; a rejected code is recorded on the
        quote and the rest still apply. Tax configuration errors and invariant
        violations propagate and abort the quote.

        Passing `ledger` prices an interactive checkout whose coupons are
        already applied; `coupon_codes` are then applied on top of it. The
        ledger is only read: its codes are re-validated against `order` on a
        fresh ledger, so every discount reflects the order being priced.
        """
        codes = list(coupon_codes)
        if ledger is not None:
            codes = [applied.code for applied in ledger.applied] + codes
        ledger = CouponLedger(self.coupons)
        rejections: list[CouponRejection] = []
        for code in codes:
            try:
                ledger.apply(code, order)
            except COUPON_REJECTIONS as exc:
                rejections.append(CouponRejection.from_error(code, exc))

        subtotal = order.subtotal
        discount_total = ledger.discount_total(subtotal)
        discounted_base = subtotal.subtract(discount_total)

        breakdown = self.tax_rules.compute(discounted_base)
        if breakdown.pricing_mode is PricingMode.INCLUSIVE:
            grand_total = discounted_base
        else:
            grand_total = discounted_base.add(breakdown.total_tax)

        warnings: list[str] = []
        if breakdown.no_rules_enabled:
            warnings.append(NO_TAX_RULES_WARNING)

        self._check_invariants(subtotal, discount_total, discounted_base, breakdown.total_tax, grand_total)

        ranked = self.catalog.rank(grand_total, gateway_context)
        return PricingQuote(
            subtotal=subtotal,
            applied_coupons=ledger.applied,
            coupon_rejections=tuple(rejections),
            discount_total=discount_total,
            discounted_base=discounted_base,
            tax_breakdown=breakdown.lines,
            tax_total=breakdown.total_tax,
            effective_base=breakdown.effective_base,
            grand_total=grand_total,
            eligible_gateways=tuple(ranked),
            pricing_mode=breakdown.pricing_mode,
            warnings=tuple(warnings),
        )

    @staticmethod
    def _check_invariants(
        subtotal: Money,
        discount_total: Money,
        discounted_base: Money,
        tax_total: Money,
        grand_total: Money,
    ) -> None:
        if discount_total > subtotal:
            raise ArithmeticInvariantViolation(
                "discount total exceeds subtotal",
                details={"discount_total": discount_total.amount, "subtotal": subtotal.amount},
            )
        if discounted_base.add(discount_total) != subtotal:
            raise ArithmeticInvariantViolation(
                "discounted base does not reconcile with subtotal",
                details={"discounted_base": discounted_base.amount, "subtotal": subtotal.amount},
            )
        if grand_total < discounted_base:
            raise ArithmeticInvariantViolation(
                "grand total below discounted base",
                details={"grand_total": grand_total.amount, "discounted_base": discounted_base.amount},
            )
        if tax_total > grand_total:
            raise ArithmeticInvariantViolation(
                "tax total exceeds grand total",
                details={"tax_total": tax_total.amount, "grand_total": grand_total.amount},
            )
