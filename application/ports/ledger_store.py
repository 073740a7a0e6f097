"""
Ledger storage port.

A checkout session's applied coupons survive page reloads through this port.
Only codes and the ledger version are stored; coupon definitions are
re-fetched and re-validated on restore.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class StoredLedger:
    codes: tuple[str, ...] = ()
    version: int = 0
    subtotal: Optional[int] = None
    currency: str = "IRR"
    meta: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "codes": list(self.codes),
            "version": self.version,
            "subtotal": self.subtotal,
            "currency": self.currency,
            "meta": self.meta,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StoredLedger":
        return cls(
            codes=tuple(data.get("codes") or ()),
            version=int(data.get("version") or 0),
            subtotal=data.get("subtotal"),
            currency=data.get("currency") or "IRR",
            meta=dict(data.get("meta") or {}),
        )


@runtime_checkable
class LedgerStore(Protocol):
    async def load(self, session_id: str) -> Optional[StoredLedger]: ...

    async def save(self, session_id: str, ledger: StoredLedger) -> None: ...

    async def delete(self, session_id: str) -> None: ...
