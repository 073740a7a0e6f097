"""
Coupon validation against the coupon registry.

RegistryCouponLoader fetches registry verdicts: single-flight per code, with
an explicit timeout. CouponValidationCoordinator drives interactive coupon
entry for one checkout session:

- input is debounced; when codes race, the latest submission wins
- ledger mutations are serialized with an asyncio.Lock
- a verdict is applied only if the ledger version it was stamped with is
  still current, otherwise StaleLedgerVersion is raised
"""
from __future__ import annotations

import asyncio
from typing import Iterable, Optional, Union

from application.dtos.pricing import LineItemIn
from application.ports.checkout import CouponRegistry
from application.ports.ledger_store import LedgerStore, StoredLedger
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException
from domain.pricing import (
    AppliedCoupon,
    Coupon,
    CouponBook,
    CouponLedger,
    OrderSnapshot,
    ValidationResult,
    normalize_code,
)
from domain.pricing.coupon import is_well_formed
from domain.pricing.exceptions import (
    COUPON_REJECTIONS,
    CouponNotFound,
    GatewayUnavailable,
    PricingError,
    StaleLedgerVersion,
    ValidationTimeout,
)

logger = get_logger(__name__)

COUPON_REGISTRY = "coupon_registry"
Verdict = Union[Coupon, PricingError]


class RegistryCouponLoader:
    def __init__(self, registry: CouponRegistry, timeout_seconds: float = 8.0) -> None:
        self._registry = registry
        self._timeout = timeout_seconds
        self._inflight: dict[tuple, asyncio.Task] = {}

    async def fetch(self, code: str, order: OrderSnapshot) -> Verdict:
        """The registry's verdict for `code`: a coupon, or the error rejecting it."""
        key = normalize_code(code)
        if not is_well_formed(key):
            return CouponNotFound(key)

        flight = (key, order.subtotal.amount, order.currency, order.user_id)
        task = self._inflight.get(flight)
        if task is None:
            task = asyncio.ensure_future(self._fetch(key, order))
            self._inflight[flight] = task
            task.add_done_callback(lambda done, k=flight: self._forget(k, done))
        else:
            logger.debug("coupon_validation_joined", coupon_code=key)
        # A cancelled caller must not cancel the fetch other callers are waiting on
        return await asyncio.shield(task)

    def _forget(self, flight: tuple, task: asyncio.Task) -> None:
        if self._inflight.get(flight) is task:
            del self._inflight[flight]

    async def _fetch(self, key: str, order: OrderSnapshot) -> Verdict:
        items = [
            LineItemIn(item_id=item.item_id, item_type=item.item_type.value, quantity=item.quantity)
            for item in order.items
        ]
        try:
            response = await asyncio.wait_for(
                self._registry.validate_coupon(key, order.subtotal.amount, items, order.user_id),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("coupon_validation_timeout", coupon_code=key, timeout=self._timeout)
            return ValidationTimeout(key, self._timeout)
        except (ValidationTimeout, GatewayUnavailable) as exc:
            return exc
        try:
            return response.to_verdict(key, order.subtotal.amount)
        except (ValueError, DomainValidationException) as exc:
            # One unusable answer rejects its own code, never the whole quote
            logger.warning("coupon_verdict_malformed", coupon_code=key, error=str(exc))
            return GatewayUnavailable(COUPON_REGISTRY, reason="malformed_verdict")

    async def load_many(self, codes: Iterable[str], order: OrderSnapshot, book: Optional[CouponBook] = None) -> CouponBook:
        """Fetch every distinct code concurrently into a coupon book."""
        book = book if book is not None else CouponBook()
        keys = list(dict.fromkeys(normalize_code(code) for code in codes))
        verdicts = await asyncio.gather(*(self.fetch(key, order) for key in keys))
        for key, verdict in zip(keys, verdicts):
            record_verdict(book, key, verdict)
        return book


def record_verdict(book: CouponBook, code: str, verdict: Verdict) -> None:
    if isinstance(verdict, Coupon):
        book.add(verdict)
    else:
        book.reject(code, verdict)


class CouponValidationCoordinator:
    """Interactive coupon entry for one checkout session."""

    def __init__(
        self,
        loader: RegistryCouponLoader,
        session_id: Optional[str] = None,
        store: Optional[LedgerStore] = None,
        debounce_seconds: float = 0.3,
    ) -> None:
        self._loader = loader
        self._session_id = session_id
        self._store = store
        self._debounce = debounce_seconds
        self._lock = asyncio.Lock()
        self._generation = 0
        self.book = CouponBook()
        self.ledger = CouponLedger(self.book)

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    async def check(self, code: str, order: OrderSnapshot) -> ValidationResult:
        """Validate without applying. Raises the rejecting error."""
        verdict = await self._loader.fetch(code, order)
        record_verdict(self.book, code, verdict)
        return self.ledger.validate(code, order)

    async def submit(self, code: str, order: OrderSnapshot) -> Optional[AppliedCoupon]:
        """
        Debounce, validate and apply `code`.

        Returns None when a newer submission superseded this one. Raises the
        coupon error when the registry or the ledger rejects it, and
        StaleLedgerVersion when the ledger changed while validating.
        """
        key = normalize_code(code)
        self._generation += 1
        generation = self._generation
        expected_version = self.ledger.version

        if self._debounce > 0:
            await asyncio.sleep(self._debounce)
        if generation != self._generation:
            logger.info("coupon_validation_superseded", coupon_code=key, reason="newer_input")
            return None

        verdict = await self._loader.fetch(key, order)

        async with self._lock:
            if generation != self._generation:
                logger.info("coupon_validation_superseded", coupon_code=key, reason="newer_input")
                return None
            record_verdict(self.book, key, verdict)
            try:
                applied = self.ledger.apply(key, order, expected_version=expected_version)
            except StaleLedgerVersion:
                logger.info(
                    "coupon_validation_superseded",
                    coupon_code=key,
                    reason="ledger_changed",
                    expected_version=expected_version,
                    actual_version=self.ledger.version,
                )
                raise
            except COUPON_REJECTIONS as exc:
                logger.info("coupon_rejected", coupon_code=key, error_type=exc.error_type)
                raise
            logger.info(
                "coupon_applied",
                coupon_code=key,
                discount_amount=applied.discount_amount.amount,
                ledger_version=self.ledger.version,
            )
            await self._persist(order)
            return applied

    async def remove(self, code: str, order: Optional[OrderSnapshot] = None) -> Optional[AppliedCoupon]:
        async with self._lock:
            # Pending submissions lose to an explicit removal
            self._generation += 1
            removed = self.ledger.remove(code)
            if removed is not None:
                logger.info("coupon_removed", coupon_code=removed.code, ledger_version=self.ledger.version)
                await self._persist(order)
            return removed

    async def rebase(self, order: OrderSnapshot) -> list[PricingError]:
        """Re-apply the ledger against a changed order; returns the dropped coupons."""
        async with self._lock:
            self._generation += 1
            dropped = self.ledger.rebase(order)
            for error in dropped:
                logger.info("coupon_dropped_on_rebase", error_type=error.error_type, details=error.details)
            await self._persist(order)
            return dropped

    async def restore(self, order: OrderSnapshot) -> list[PricingError]:
        """Reload a stored ledger; coupons that no longer validate are returned."""
        if self._store is None or self._session_id is None:
            return []
        stored = await self._store.load(self._session_id)
        if stored is None or not stored.codes:
            return []
        await self._loader.load_many(stored.codes, order, self.book)
        dropped: list[PricingError] = []
        async with self._lock:
            self.ledger.clear()
            for code in stored.codes:
                try:
                    self.ledger.apply(code, order)
                except COUPON_REJECTIONS as exc:
                    dropped.append(exc)
            await self._persist(order)
        logger.info(
            "coupon_ledger_restored",
            session_id=self._session_id,
            applied=[c.code for c in self.ledger.applied],
            dropped=len(dropped),
        )
        return dropped

    async def _persist(self, order: Optional[OrderSnapshot]) -> None:
        if self._store is None or self._session_id is None:
            return
        await self._store.save(
            self._session_id,
            StoredLedger(
                codes=tuple(applied.code for applied in self.ledger.applied),
                version=self.ledger.version,
                subtotal=order.subtotal.amount if order is not None else None,
                currency=order.currency if order is not None else "IRR",
            ),
        )
