"""
Application service for checkout pricing.

Gathers everything the pure pipeline needs (coupon verdicts, the wallet
balance and the gateway catalog) concurrently, then runs the pipeline. The
upstream ports are injected from the composition root (main.py).

Checkout sessions keep their applied coupons in the ledger store (Redis when
configured) and are resumed per request against the current cart.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from typing import Optional

from application.dtos.pricing import (
    CouponCheckRequest,
    QuoteRequest,
    SessionCouponRequest,
    SessionQuoteRequest,
)
from application.ports.checkout import CouponRegistry, WalletBalanceService
from application.ports.ledger_store import LedgerStore
from application.services.coupon_validation import (
    CouponValidationCoordinator,
    RegistryCouponLoader,
    record_verdict,
)
from application.services.gateway_catalog import GatewayCatalogProvider
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException
from domain.pricing import (
    CouponBook,
    CouponLedger,
    CouponRejection,
    GatewayCatalog,
    GatewayContext,
    GatewayType,
    Money,
    OrderSnapshot,
    PricingPipeline,
    PricingQuote,
    RankedGateway,
    TaxRuleSet,
    ValidationResult,
    normalize_code,
)
from domain.pricing.exceptions import COUPON_REJECTIONS, GatewayUnavailable

logger = get_logger(__name__)

CATALOG_UNAVAILABLE_WARNING = "gateway.catalog_unavailable"
WALLET_UNAVAILABLE_WARNING = "gateway.wallet_balance_unavailable"


class PricingService:
    def __init__(
        self,
        registry: CouponRegistry,
        catalog_provider: GatewayCatalogProvider,
        wallet: WalletBalanceService,
        tax_rules: TaxRuleSet,
        currency: str = "IRR",
        validation_timeout: float = 8.0,
        default_preferred_gateway: Optional[str] = None,
        ledger_store: Optional[LedgerStore] = None,
        debounce_seconds: float = 0.3,
    ) -> None:
        self.registry = registry
        self.catalog_provider = catalog_provider
        self.wallet = wallet
        self.tax_rules = tax_rules
        self.currency = currency
        self.loader = RegistryCouponLoader(registry, timeout_seconds=validation_timeout)
        self.default_preferred_gateway = default_preferred_gateway
        self.ledger_store = ledger_store
        self.debounce_seconds = debounce_seconds

    def _check_currency(self, order: OrderSnapshot) -> None:
        if order.currency != self.currency:
            raise DomainValidationException(
                f"currency {order.currency} is not priced here",
                field="currency",
                message_key="pricing.currency_unsupported",
                format_params={"currency": order.currency, "expected": self.currency},
            )

    async def quote(self, request: QuoteRequest) -> PricingQuote:
        started = time.perf_counter()
        order = request.to_order()
        self._check_currency(order)

        book, (balance, wallet_warning), (catalog, catalog_warning) = await asyncio.gather(
            self.loader.load_many(request.coupon_codes, order),
            self._wallet_balance(order.user_id),
            self._catalog(),
        )
        context = request.to_context(balance, self.default_preferred_gateway)
        quote = PricingPipeline(self.tax_rules, book, catalog).quote(order, request.coupon_codes, context)
        quote = self._with_warnings(quote, wallet_warning, catalog_warning)

        chosen = quote.chosen_gateway
        logger.info(
            "pricing_quote_computed",
            subtotal=quote.subtotal.amount,
            discount_total=quote.discount_total.amount,
            tax_total=quote.tax_total.amount,
            grand_total=quote.grand_total.amount,
            applied=[c.code for c in quote.applied_coupons],
            rejected=[r.code for r in quote.coupon_rejections],
            chosen_gateway=chosen.gateway.type.value if chosen else None,
            warnings=list(quote.warnings),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return quote

    async def check_coupon(self, request: CouponCheckRequest) -> ValidationResult:
        """Validate one code against an order without applying it; raises the rejection."""
        order = request.to_order()
        self._check_currency(order)
        book = CouponBook()
        record_verdict(book, request.coupon_code, await self.loader.fetch(request.coupon_code, order))
        return CouponLedger(book).validate(request.coupon_code, order)

    def open_session(
        self,
        session_id: Optional[str] = None,
        debounce_seconds: Optional[float] = None,
    ) -> CouponValidationCoordinator:
        """An interactive coupon session, persisted through the ledger store when one is configured."""
        return CouponValidationCoordinator(
            self.loader,
            session_id=session_id,
            store=self.ledger_store,
            debounce_seconds=self.debounce_seconds if debounce_seconds is None else debounce_seconds,
        )

    async def resume_session(
        self, session_id: str, order: OrderSnapshot
    ) -> tuple[CouponValidationCoordinator, list[CouponRejection]]:
        """
        Rebuild a stored session against `order`.

        Each HTTP request carries one final submission, so the resumed
        coordinator does not debounce. Stored coupons that no longer validate
        are dropped from the session and returned as rejections.
        """
        session = self.open_session(session_id, debounce_seconds=0)
        stored = await self.ledger_store.load(session_id) if self.ledger_store is not None else None
        dropped = await session.restore(order)
        kept = {applied.code for applied in session.ledger.applied}
        lost = [code for code in (stored.codes if stored is not None else ()) if code not in kept]
        return session, [CouponRejection.from_error(code, error) for code, error in zip(lost, dropped)]

    async def apply_session_coupon(self, session_id: str, request: SessionCouponRequest) -> PricingQuote:
        """Add one coupon to a stored session and price the result."""
        order = request.to_order()
        self._check_currency(order)
        session, rejections = await self.resume_session(session_id, order)
        code = normalize_code(request.coupon_code)
        if code not in {applied.code for applied in session.ledger.applied}:
            try:
                await session.submit(code, order)
            except COUPON_REJECTIONS as exc:
                rejections.append(CouponRejection.from_error(code, exc))
        quote = await self.quote_session(session, order, request.preferred_gateway)
        return self._with_rejections(quote, rejections)

    async def quote_stored_session(self, session_id: str, request: SessionQuoteRequest) -> PricingQuote:
        order = request.to_order()
        self._check_currency(order)
        session, rejections = await self.resume_session(session_id, order)
        quote = await self.quote_session(session, order, request.preferred_gateway)
        return self._with_rejections(quote, rejections)

    async def remove_session_coupon(self, session_id: str, code: str) -> tuple[str, ...]:
        """Drop `code` from a stored session; returns the codes that remain."""
        if self.ledger_store is None:
            return ()
        stored = await self.ledger_store.load(session_id)
        if stored is None:
            return ()
        key = normalize_code(code)
        if key not in stored.codes:
            return stored.codes
        remaining = tuple(c for c in stored.codes if c != key)
        await self.ledger_store.save(session_id, replace(stored, codes=remaining, version=stored.version + 1))
        logger.info("coupon_removed", session_id=session_id, coupon_code=key, ledger_version=stored.version + 1)
        return remaining

    async def quote_session(
        self,
        session: CouponValidationCoordinator,
        order: OrderSnapshot,
        preferred_gateway: Optional[str] = None,
    ) -> PricingQuote:
        """Price an order against the coupons already applied in `session`."""
        self._check_currency(order)
        (balance, wallet_warning), (catalog, catalog_warning) = await asyncio.gather(
            self._wallet_balance(order.user_id),
            self._catalog(),
        )
        context = GatewayContext(
            preferred_gateway=preferred_gateway or self.default_preferred_gateway,
            wallet_balance=balance,
        )
        quote = PricingPipeline(self.tax_rules, session.book, catalog).quote(
            order, (), context, ledger=session.ledger
        )
        return self._with_warnings(quote, wallet_warning, catalog_warning)

    async def list_gateways(
        self,
        amount: int,
        user_id: Optional[str] = None,
        preferred_gateway: Optional[GatewayType] = None,
    ) -> list[RankedGateway]:
        catalog = await self.catalog_provider.get_catalog()
        balance, _ = await self._wallet_balance(user_id)
        context = GatewayContext(
            preferred_gateway=preferred_gateway or self.default_preferred_gateway,
            wallet_balance=balance,
        )
        return catalog.rank(Money(amount, self.currency), context)

    async def refresh_gateways(self) -> GatewayCatalog:
        return await self.catalog_provider.refresh_gateways()

    async def _wallet_balance(self, user_id: Optional[str]) -> tuple[Optional[Money], Optional[str]]:
        if not user_id:
            return None, None
        try:
            return await self.wallet.get_balance(user_id), None
        except GatewayUnavailable as exc:
            logger.warning("wallet_balance_unavailable", user_id=user_id, reason=exc.details.get("reason"))
            return None, WALLET_UNAVAILABLE_WARNING

    async def _catalog(self) -> tuple[GatewayCatalog, Optional[str]]:
        try:
            return await self.catalog_provider.get_catalog(), None
        except GatewayUnavailable as exc:
            # Cold cache and the status service is down: price without gateways
            logger.warning("gateway_catalog_unavailable", reason=exc.details.get("reason"))
            return GatewayCatalog(), CATALOG_UNAVAILABLE_WARNING

    @staticmethod
    def _with_rejections(quote: PricingQuote, rejections: list[CouponRejection]) -> PricingQuote:
        if not rejections:
            return quote
        return replace(quote, coupon_rejections=tuple(rejections) + quote.coupon_rejections)

    @staticmethod
    def _with_warnings(quote: PricingQuote, *extra: Optional[str]) -> PricingQuote:
        warnings = tuple(w for w in extra if w)
        if not warnings:
            return quote
        return replace(quote, warnings=quote.warnings + warnings)

    async def aclose(self) -> None:
        await self.catalog_provider.aclose()
