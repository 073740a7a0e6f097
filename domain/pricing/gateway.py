"""
Payment gateway descriptors and ranking.

Descriptors come from the gateway status service and are read-only here.
Ranking never hides an available gateway the user could not use; it
annotates it with a machine-readable reason instead.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from domain.common.exceptions import DomainValidationException
from .exceptions import (
    AmountOutOfRange,
    GatewayError,
    GatewayUnhealthy,
    InsufficientWalletBalance,
)
from .money import Money


class GatewayType(str, Enum):
    ZARINPAL = "zarinpal"
    MELLAT_BANK = "mellat_bank"
    SAMAN_BANK = "saman_bank"
    WALLET = "wallet"
    BANK_TRANSFER = "bank_transfer"
    CRYPTO = "crypto"


class IneligibilityReason(str, Enum):
    UNHEALTHY = "Unhealthy"
    INSUFFICIENT_WALLET_BALANCE = "InsufficientWalletBalance"
    AMOUNT_OUT_OF_RANGE = "AmountOutOfRange"


@dataclass(frozen=True)
class FeeSchedule:
    """fee = fixed + floor(total * rate)"""

    fixed: Optional[Money] = None
    rate: Decimal = Decimal("0")

    def __post_init__(self):
        if not isinstance(self.rate, Decimal):
            object.__setattr__(self, "rate", Decimal(str(self.rate)))
        if self.rate < 0:
            raise DomainValidationException(f"fee rate cannot be negative: {self.rate}", field="rate")

    @classmethod
    def flat(cls, amount: Money) -> "FeeSchedule":
        return cls(fixed=amount)

    @classmethod
    def percentage(cls, rate: Decimal) -> "FeeSchedule":
        return cls(rate=rate)

    def evaluate(self, total: Money) -> Money:
        fee = total.percentage_of(self.rate)
        if self.fixed is not None:
            fee = fee.add(self.fixed)
        return fee


@dataclass(frozen=True)
class GatewayFeatures:
    instant_confirmation: bool = False
    supports_refund: bool = False
    supports_installment: bool = False


@dataclass(frozen=True)
class GatewayDescriptor:
    type: GatewayType
    display_name: str
    min_amount: Money
    max_amount: Optional[Money] = None
    is_available: bool = True
    is_healthy: bool = True
    fee_schedule: FeeSchedule = field(default_factory=FeeSchedule)
    features: GatewayFeatures = field(default_factory=GatewayFeatures)
    priority_hint: int = 0

    def __post_init__(self):
        if not isinstance(self.type, GatewayType):
            object.__setattr__(self, "type", GatewayType(self.type))
        if self.max_amount is not None and self.max_amount < self.min_amount:
            raise DomainValidationException(
                f"gateway {self.type.value} max_amount is below min_amount", field="max_amount"
            )

    @property
    def is_wallet(self) -> bool:
        return self.type is GatewayType.WALLET

    def accepts(self, amount: Money) -> bool:
        if amount < self.min_amount:
            return False
        return self.max_amount is None or amount <= self.max_amount


@dataclass(frozen=True)
class GatewayContext:
    preferred_gateway: Optional[GatewayType] = None
    wallet_balance: Optional[Money] = None
    excluded_gateways: frozenset[GatewayType] = frozenset()

    def __post_init__(self):
        if self.preferred_gateway is not None and not isinstance(self.preferred_gateway, GatewayType):
            object.__setattr__(self, "preferred_gateway", GatewayType(self.preferred_gateway))
        object.__setattr__(
            self, "excluded_gateways", frozenset(GatewayType(g) for g in self.excluded_gateways)
        )


@dataclass(frozen=True)
class RankedGateway:
    gateway: GatewayDescriptor
    fee: Money
    payable_amount: Money
    ineligibility_reason: Optional[IneligibilityReason] = None
    wallet_sufficient: bool = False

    @property
    def eligible(self) -> bool:
        return self.ineligibility_reason is None

    def error(self, amount: Money, wallet_balance: Optional[Money] = None) -> Optional[GatewayError]:
        """The gateway error behind the annotation, for presentation."""
        gateway = self.gateway.type.value
        reason = self.ineligibility_reason
        if reason is IneligibilityReason.UNHEALTHY:
            return GatewayUnhealthy(gateway)
        if reason is IneligibilityReason.INSUFFICIENT_WALLET_BALANCE:
            balance = wallet_balance.amount if wallet_balance is not None else 0
            return InsufficientWalletBalance(gateway, balance, self.payable_amount.amount)
        if reason is IneligibilityReason.AMOUNT_OUT_OF_RANGE:
            upper = self.gateway.max_amount.amount if self.gateway.max_amount is not None else -1
            return AmountOutOfRange(gateway, amount.amount, self.gateway.min_amount.amount, upper)
        return None

    def to_dict(self) -> dict:
        return {
            "gateway": self.gateway.type.value,
            "display_name": self.gateway.display_name,
            "is_healthy": self.gateway.is_healthy,
            "fee": self.fee.amount,
            "payable_amount": self.payable_amount.amount,
            "eligible": self.eligible,
            "ineligibility_reason": self.ineligibility_reason.value if self.ineligibility_reason else None,
            "features": {
                "instant_confirmation": self.gateway.features.instant_confirmation,
                "supports_refund": self.gateway.features.supports_refund,
                "supports_installment": self.gateway.features.supports_installment,
            },
        }


class GatewayCatalog:
    def __init__(self, gateways: Iterable[GatewayDescriptor] = ()) -> None:
        self._gateways = tuple(gateways)

    @property
    def gateways(self) -> tuple[GatewayDescriptor, ...]:
        return self._gateways

    def get(self, gateway_type: GatewayType) -> Optional[GatewayDescriptor]:
        for gateway in self._gateways:
            if gateway.type is GatewayType(gateway_type):
                return gateway
        return None

    @staticmethod
    def payable_amount(gateway: GatewayDescriptor, total: Money) -> Money:
        return total.add(gateway.fee_schedule.evaluate(total))

    def assess(self, gateway: GatewayDescriptor, amount: Money, context: GatewayContext) -> RankedGateway:
        fee = gateway.fee_schedule.evaluate(amount)
        payable = amount.add(fee)
        wallet_sufficient = False
        if gateway.is_wallet:
            balance = context.wallet_balance or Money.zero(amount.currency)
            wallet_sufficient = balance >= payable

        reason: Optional[IneligibilityReason] = None
        if not gateway.is_healthy:
            reason = IneligibilityReason.UNHEALTHY
        elif gateway.is_wallet and not wallet_sufficient:
            reason = IneligibilityReason.INSUFFICIENT_WALLET_BALANCE
        elif not gateway.accepts(amount):
            reason = IneligibilityReason.AMOUNT_OUT_OF_RANGE
        return RankedGateway(gateway, fee, payable, reason, wallet_sufficient)

    def rank(self, amount: Money, context: Optional[GatewayContext] = None) -> list[RankedGateway]:
        """
        Rank available gateways for `amount`.

        Eligible gateways come first. Within each group: preferred gateway,
        healthy before unhealthy, wallet with enough balance before external
        gateways, ascending fee, then priority hint and type for a total order.
        """
        context = context or GatewayContext()
        ranked = [
            self.assess(gateway, amount, context)
            for gateway in self._gateways
            if gateway.is_available and gateway.type not in context.excluded_gateways
        ]

        def sort_key(entry: RankedGateway):
            return (
                not entry.eligible,
                entry.gateway.type is not context.preferred_gateway,
                not entry.gateway.is_healthy,
                not entry.wallet_sufficient,
                entry.fee.amount,
                -entry.gateway.priority_hint,
                entry.gateway.type.value,
            )

        return sorted(ranked, key=sort_key)
