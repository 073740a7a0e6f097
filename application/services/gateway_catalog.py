"""
Gateway catalog provider - a TTL cache in front of the gateway status service.

A fresh catalog is served from memory. Once it is older than the TTL the
stale copy is still served while one background refresh runs. Only a cold
cache waits on the network. `refresh_gateways()` always fetches.
"""
from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional

from application.dtos.pricing import GatewayInfo
from application.ports.checkout import GatewayStatusService
from core.logging_config import get_logger
from domain.pricing import GatewayCatalog
from domain.pricing.exceptions import GatewayUnavailable

logger = get_logger(__name__)

SHARED_CACHE_KEY = "gateway_catalog"


class GatewayCatalogProvider:
    def __init__(
        self,
        status_service: GatewayStatusService,
        ttl_seconds: float = 60.0,
        currency: str = "IRR",
        shared_cache=None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            status_service: upstream gateway status port
            ttl_seconds: age after which the catalog is refreshed in the background
            currency: currency of gateway limits and fees
            shared_cache: optional RedisCache shared by every worker process
            clock: monotonic clock, injectable for tests
        """
        self._status = status_service
        self._ttl = ttl_seconds
        self._currency = currency
        self._shared_cache = shared_cache
        self._clock = clock
        self._catalog: Optional[GatewayCatalog] = None
        self._fetched_at: float = 0.0
        self._refresh_task: Optional[asyncio.Task] = None
        self._fetch_lock = asyncio.Lock()

    @property
    def cached(self) -> Optional[GatewayCatalog]:
        return self._catalog

    def is_stale(self) -> bool:
        return self._catalog is None or self._clock() - self._fetched_at >= self._ttl

    async def get_catalog(self) -> GatewayCatalog:
        """The current catalog; raises GatewayUnavailable only on a cold cache."""
        if self._catalog is None:
            return await self._cold_load()
        if self.is_stale():
            self._schedule_refresh()
        return self._catalog

    async def refresh_gateways(self) -> GatewayCatalog:
        """Force a fetch from the status service."""
        async with self._fetch_lock:
            return await self._fetch()

    async def _cold_load(self) -> GatewayCatalog:
        async with self._fetch_lock:
            if self._catalog is not None:
                return self._catalog
            shared = await self._load_shared()
            if shared is not None:
                self._store(shared)
                return shared
            return await self._fetch()

    def _schedule_refresh(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_task = asyncio.create_task(self._background_refresh())

    async def _background_refresh(self) -> None:
        try:
            async with self._fetch_lock:
                if not self.is_stale():
                    return
                await self._fetch()
        except GatewayUnavailable as exc:
            logger.warning(
                "gateway_catalog_refresh_failed",
                reason=exc.details.get("reason") if exc.details else None,
                serving_stale=self._catalog is not None,
            )

    async def _fetch(self) -> GatewayCatalog:
        started = self._clock()
        infos = await self._status.get_available_gateways()
        catalog = self._to_catalog(infos)
        self._store(catalog)
        await self._save_shared(infos)
        logger.info(
            "gateway_catalog_refreshed",
            gateways=[g.type.value for g in catalog.gateways],
            elapsed_ms=round((self._clock() - started) * 1000, 2),
        )
        return catalog

    def _to_catalog(self, infos: list[GatewayInfo]) -> GatewayCatalog:
        return GatewayCatalog(info.to_domain(self._currency) for info in infos)

    def _store(self, catalog: GatewayCatalog) -> None:
        self._catalog = catalog
        self._fetched_at = self._clock()

    async def _load_shared(self) -> Optional[GatewayCatalog]:
        if self._shared_cache is None:
            return None
        payload = await self._shared_cache.get(SHARED_CACHE_KEY)
        if not payload:
            return None
        return self._to_catalog([GatewayInfo.model_validate(item) for item in payload])

    async def _save_shared(self, infos: list[GatewayInfo]) -> None:
        if self._shared_cache is None:
            return
        await self._shared_cache.set(
            SHARED_CACHE_KEY,
            [info.model_dump(mode="json") for info in infos],
            ttl=max(1, int(self._ttl)),
        )

    async def aclose(self) -> None:
        task = self._refresh_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._refresh_task = None
