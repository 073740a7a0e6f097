"""Coupon ledger stores (in-memory and Redis)."""
from __future__ import annotations

from typing import Optional

from application.ports.ledger_store import StoredLedger
from .redis_cache import RedisCache


class InMemoryLedgerStore:
    def __init__(self) -> None:
        self._items: dict[str, dict] = {}

    async def load(self, session_id: str) -> Optional[StoredLedger]:
        data = self._items.get(session_id)
        return StoredLedger.from_dict(data) if data is not None else None

    async def save(self, session_id: str, ledger: StoredLedger) -> None:
        self._items[session_id] = ledger.to_dict()

    async def delete(self, session_id: str) -> None:
        self._items.pop(session_id, None)


class RedisLedgerStore:
    """Ledgers under `<namespace>:ledger:<session_id>`, expiring with the checkout session."""

    def __init__(self, cache: RedisCache, ttl_seconds: int = 1800) -> None:
        self._cache = cache
        self._ttl = ttl_seconds

    @staticmethod
    def _key(session_id: str) -> str:
        return f"ledger:{session_id}"

    async def load(self, session_id: str) -> Optional[StoredLedger]:
        data = await self._cache.get(self._key(session_id))
        return StoredLedger.from_dict(data) if isinstance(data, dict) else None

    async def save(self, session_id: str, ledger: StoredLedger) -> None:
        await self._cache.set(self._key(session_id), ledger.to_dict(), ttl=self._ttl)

    async def delete(self, session_id: str) -> None:
        await self._cache.delete(self._key(session_id))
