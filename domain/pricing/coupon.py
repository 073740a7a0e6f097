"""
Coupons and the coupon ledger.

The ledger only reads coupons and applies them to an order snapshot; usage
counters are committed by the coupon registry after checkout, never here.

Business rules:
1. Codes are case-insensitive; no code is applied twice.
2. A non-combinable coupon excludes every other coupon.
3. Each discount is computed against the original subtotal, so the order in
   which coupons are applied never changes the total.
4. The discount total never exceeds the subtotal.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Protocol

from domain.common.exceptions import DomainValidationException
from .exceptions import (
    CouponBelowMinimum,
    CouponConflict,
    COUPON_REJECTIONS,
    PricingError,
    CouponExpired,
    CouponInactive,
    CouponNotApplicable,
    CouponNotFound,
    CouponUsageExceeded,
    StaleLedgerVersion,
)
from .money import DEFAULT_CURRENCY, Money, as_fraction
from .order import ItemType, OrderSnapshot


CODE_PATTERN = re.compile(r"^[A-Z0-9]{3,20}$")


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def is_well_formed(code: str) -> bool:
    return bool(CODE_PATTERN.match(normalize_code(code)))


class CouponType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class CouponStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    SUSPENDED = "suspended"
    DRAFT = "draft"


class ApplicableTo(str, Enum):
    ALL = "all"
    COURSES = "courses"
    WORKSHOPS = "workshops"
    PRODUCTS = "products"
    SPECIFIC_ITEMS = "specific_items"


_CATEGORY_ITEM_TYPE = {
    ApplicableTo.COURSES: ItemType.COURSE,
    ApplicableTo.WORKSHOPS: ItemType.WORKSHOP,
    ApplicableTo.PRODUCTS: ItemType.PRODUCT,
}


class CouponState(str, Enum):
    """Lifecycle of one coupon application inside a ledger."""
    UNVALIDATED = "unvalidated"
    VALID = "valid"
    APPLIED = "applied"
    REMOVED = "removed"
    SUPERSEDED = "superseded"


def _utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class ApplicableItem:
    item_type: ItemType
    item_id: str

    def __post_init__(self):
        if not isinstance(self.item_type, ItemType):
            object.__setattr__(self, "item_type", ItemType(self.item_type))


@dataclass(frozen=True)
class Coupon:
    """
    Read-only coupon definition as published by the coupon registry.

    `value` is percentage points (0-100) for percentage coupons and minor
    units for fixed-amount coupons. `times_used` / `times_used_by_user` are
    the registry's counters at the time the coupon was fetched.
    """

    id: str
    code: str
    type: CouponType
    value: Decimal
    currency: str = DEFAULT_CURRENCY
    max_discount: Optional[Money] = None
    minimum_order_amount: Optional[Money] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    usage_limit_total: Optional[int] = None
    usage_limit_per_user: Optional[int] = None
    times_used: int = 0
    times_used_by_user: int = 0
    applicable_to: ApplicableTo = ApplicableTo.ALL
    applicable_items: tuple[ApplicableItem, ...] = ()
    combinable: bool = False
    status: CouponStatus = CouponStatus.ACTIVE
    # Informational only; coupons apply in the order the user entered them
    priority: int = 0

    def __post_init__(self):
        object.__setattr__(self, "code", normalize_code(self.code))
        object.__setattr__(self, "type", CouponType(self.type))
        object.__setattr__(self, "status", CouponStatus(self.status))
        object.__setattr__(self, "applicable_to", ApplicableTo(self.applicable_to))
        object.__setattr__(self, "applicable_items", tuple(self.applicable_items))
        object.__setattr__(self, "valid_from", _utc(self.valid_from))
        object.__setattr__(self, "valid_until", _utc(self.valid_until))
        if not isinstance(self.value, Decimal):
            object.__setattr__(self, "value", Decimal(str(self.value)))
        if self.minimum_order_amount is None:
            object.__setattr__(self, "minimum_order_amount", Money.zero(self.currency))

        if self.value < 0:
            raise DomainValidationException(f"coupon value cannot be negative: {self.value}", field="value")
        if self.type is CouponType.PERCENTAGE and self.value > 100:
            raise DomainValidationException(
                f"percentage coupon value must be within 0-100: {self.value}", field="value"
            )
        if self.type is CouponType.FIXED_AMOUNT and self.value != self.value.to_integral_value():
            raise DomainValidationException(
                f"fixed coupon value must be whole minor units: {self.value}", field="value"
            )

    def discount_for(self, subtotal: Money) -> Money:
        if self.type is CouponType.PERCENTAGE:
            discount = subtotal.percentage_of(as_fraction(self.value) / 100)
            if self.max_discount is not None:
                discount = discount.min(self.max_discount)
            return discount
        return Money(int(self.value), subtotal.currency).min(subtotal)

    def applies_to(self, order: OrderSnapshot) -> bool:
        # Without line items there is nothing to restrict against
        if self.applicable_to is ApplicableTo.ALL or not order.items:
            return True
        if self.applicable_to is ApplicableTo.SPECIFIC_ITEMS:
            wanted = {(item.item_type, item.item_id) for item in self.applicable_items}
            return any((item.item_type, item.item_id) in wanted for item in order.items)
        return _CATEGORY_ITEM_TYPE[self.applicable_to] in order.item_types()


@dataclass(frozen=True)
class ValidationResult:
    coupon: Coupon
    discount: Money
    state: CouponState = CouponState.VALID


@dataclass(frozen=True)
class AppliedCoupon:
    coupon_id: str
    code: str
    discount_amount: Money
    applied_at: datetime
    combinable: bool = False

    def to_dict(self) -> dict:
        return {
            "coupon_id": self.coupon_id,
            "code": self.code,
            "discount_amount": self.discount_amount.amount,
        }


class CouponSource(Protocol):
    def lookup(self, code: str) -> Coupon: ...


class CouponBook:
    """In-memory coupon source keyed by normalized code.

    A code can also carry a registry verdict (an error) instead of a coupon,
    which `lookup` raises.
    """

    def __init__(self, coupons: Iterable[Coupon] = ()) -> None:
        self._coupons: dict[str, Coupon] = {}
        self._rejections: dict[str, PricingError] = {}
        for coupon in coupons:
            self.add(coupon)

    def add(self, coupon: Coupon) -> None:
        self._coupons[coupon.code] = coupon
        self._rejections.pop(coupon.code, None)

    def reject(self, code: str, error: PricingError) -> None:
        key = normalize_code(code)
        self._rejections[key] = error
        self._coupons.pop(key, None)

    def lookup(self, code: str) -> Coupon:
        key = normalize_code(code)
        if key in self._rejections:
            raise self._rejections[key].with_traceback(None)
        coupon = self._coupons.get(key)
        if coupon is None:
            raise CouponNotFound(key)
        return coupon

    def __contains__(self, code: str) -> bool:
        return normalize_code(code) in self._coupons


def validate_coupon(coupon: Coupon, order: OrderSnapshot) -> Money:
    """Check every rule of `coupon` against `order`; return the discount."""
    now = order.as_of
    if coupon.status is CouponStatus.EXPIRED:
        raise CouponExpired(coupon.code, coupon.valid_until)
    if coupon.status is not CouponStatus.ACTIVE:
        raise CouponInactive(coupon.code, coupon.status.value)
    if coupon.valid_from is not None and now < coupon.valid_from:
        raise CouponInactive(coupon.code, "not_yet_valid")
    if coupon.valid_until is not None and now > coupon.valid_until:
        raise CouponExpired(coupon.code, coupon.valid_until)
    if coupon.currency != order.currency:
        raise CouponNotApplicable(coupon.code, coupon.applicable_to.value)
    if order.subtotal < coupon.minimum_order_amount:
        raise CouponBelowMinimum(coupon.code, coupon.minimum_order_amount.amount, order.subtotal.amount)
    if coupon.usage_limit_total and coupon.times_used >= coupon.usage_limit_total:
        raise CouponUsageExceeded(coupon.code, "total")
    if coupon.usage_limit_per_user is not None and coupon.times_used_by_user >= coupon.usage_limit_per_user:
        raise CouponUsageExceeded(coupon.code, "per_user")
    if not coupon.applies_to(order):
        raise CouponNotApplicable(coupon.code, coupon.applicable_to.value)
    return coupon.discount_for(order.subtotal)


class CouponLedger:
    """
    Applied coupons for one checkout.

    Not reentrant: callers serialize mutations. `version` increases with every
    mutation so an asynchronous validation can tell whether the ledger moved
    on while it was in flight.
    """

    def __init__(self, source: CouponSource) -> None:
        self._source = source
        self._applied: list[AppliedCoupon] = []
        self._states: dict[str, CouponState] = {}
        self._subtotal: Optional[Money] = None
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    @property
    def applied(self) -> tuple[AppliedCoupon, ...]:
        return tuple(self._applied)

    def state_of(self, code: str) -> CouponState:
        return self._states.get(normalize_code(code), CouponState.UNVALIDATED)

    def validate(self, code: str, order: OrderSnapshot) -> ValidationResult:
        key = normalize_code(code)
        if not CODE_PATTERN.match(key):
            raise CouponNotFound(key)
        coupon = self._source.lookup(key)
        discount = validate_coupon(coupon, order)
        if self.state_of(key) is not CouponState.APPLIED:
            self._states[key] = CouponState.VALID
        return ValidationResult(coupon=coupon, discount=discount)

    def apply(self, code: str, order: OrderSnapshot, expected_version: Optional[int] = None) -> AppliedCoupon:
        key = normalize_code(code)
        if expected_version is not None and expected_version != self._version:
            self._states[key] = CouponState.SUPERSEDED
            raise StaleLedgerVersion(key, expected_version, self._version)

        result = self.validate(key, order)
        for existing in self._applied:
            if existing.code == key:
                raise CouponConflict(key, existing.code)
        if self._applied:
            if not result.coupon.combinable:
                raise CouponConflict(key, self._applied[0].code)
            for existing in self._applied:
                if not existing.combinable:
                    raise CouponConflict(key, existing.code)

        applied = AppliedCoupon(
            coupon_id=result.coupon.id,
            code=key,
            discount_amount=result.discount,
            applied_at=order.as_of,
            combinable=result.coupon.combinable,
        )
        self._applied.append(applied)
        self._states[key] = CouponState.APPLIED
        self._subtotal = order.subtotal
        self._version += 1
        return applied

    def remove(self, coupon_id_or_code: str) -> Optional[AppliedCoupon]:
        """Remove by coupon id or code. Removing an unknown coupon is a no-op."""
        key = normalize_code(coupon_id_or_code)
        for index, applied in enumerate(self._applied):
            if applied.coupon_id == coupon_id_or_code or applied.code == key:
                del self._applied[index]
                self._states[applied.code] = CouponState.REMOVED
                self._version += 1
                return applied
        return None

    def clear(self) -> None:
        for applied in self._applied:
            self._states[applied.code] = CouponState.SUPERSEDED
        self._applied.clear()
        self._version += 1

    def rebase(self, order: OrderSnapshot) -> list[PricingError]:
        """Re-apply every coupon against a changed order; return the ones dropped."""
        codes = [applied.code for applied in self._applied]
        self.clear()
        dropped: list[PricingError] = []
        for code in codes:
            try:
                self.apply(code, order)
            except COUPON_REJECTIONS as exc:
                dropped.append(exc)
        self._subtotal = order.subtotal
        return dropped

    def discount_total(self, subtotal: Optional[Money] = None) -> Money:
        cap = subtotal or self._subtotal
        if cap is None:
            currency = self._applied[0].discount_amount.currency if self._applied else DEFAULT_CURRENCY
            return Money.zero(currency)
        total = Money.zero(cap.currency)
        for applied in self._applied:
            total = total.add(applied.discount_amount)
        return total.min(cap)
