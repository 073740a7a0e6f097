"""
Order snapshot - the immutable input of one pricing calculation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from .money import Money


class ItemType(str, Enum):
    COURSE = "course"
    WORKSHOP = "workshop"
    PRODUCT = "product"


def _ensure_utc(dt: Optional[datetime]) -> datetime:
    if dt is None:
        return datetime.now(timezone.utc)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class LineItem:
    item_id: str
    item_type: ItemType
    quantity: int = 1

    def __post_init__(self):
        if not self.item_id:
            raise DomainValidationException("line item id is required", field="item_id")
        if self.quantity < 1:
            raise DomainValidationException(
                f"quantity must be at least 1: {self.quantity}", field="quantity"
            )
        if not isinstance(self.item_type, ItemType):
            object.__setattr__(self, "item_type", ItemType(self.item_type))


@dataclass(frozen=True)
class OrderSnapshot:
    """
    Created per checkout attempt and discarded after pricing.

    `as_of` is the attempt's timestamp: coupon validity windows are checked
    against it and it is stamped on applied coupons, so pricing the same
    snapshot twice yields the same quote.
    """

    subtotal: Money
    items: tuple[LineItem, ...] = ()
    as_of: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    user_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "as_of", _ensure_utc(self.as_of))

    @property
    def currency(self) -> str:
        return self.subtotal.currency

    def item_types(self) -> set[ItemType]:
        return {item.item_type for item in self.items}
