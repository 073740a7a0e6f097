"""
Pricing settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings: everything here configures the
checkout pricing pipeline and its upstream services, e.g.

    PRICING__PRICING_MODE=inclusive
    PRICING__CHECKOUT__BASE_URL=https://checkout.internal
    PRICING__TAX_RULES='[{"kind": "vat", "name": "VAT", "rate": "0.09"}]'
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CheckoutServiceSettings(BaseModel):
    base_url: Optional[str] = None  # unset -> in-process registry and static gateways
    auth_token: Optional[str] = None
    timeout_seconds: float = 8.0
    # The pricing core never retries on its own; this is the transport retry count
    max_retries: int = 0
    retry_delay: float = 0.2


class TaxRuleSettings(BaseModel):
    kind: str = "vat"
    name: str = "VAT"
    rate: Decimal = Decimal("0.09")
    rate_type: str = "percentage"
    enabled: bool = True
    applies_after_other_taxes: bool = False


class GatewaySettings(BaseModel):
    """Static gateway descriptor, used when no gateway status service is configured."""

    type: str
    display_name: str
    min_amount: int = 0
    max_amount: Optional[int] = None
    is_available: bool = True
    is_healthy: bool = True
    fee_fixed: int = 0
    fee_rate: Decimal = Decimal("0")
    instant_confirmation: bool = False
    supports_refund: bool = False
    supports_installment: bool = False
    priority_hint: int = 0


def _default_tax_rules() -> list[TaxRuleSettings]:
    return [
        TaxRuleSettings(kind="vat", name="VAT", rate=Decimal("0.09"), enabled=True),
        TaxRuleSettings(kind="service_charge", name="Service charge", rate=Decimal("0.05"), enabled=False),
    ]


def _default_gateways() -> list[GatewaySettings]:
    return [
        GatewaySettings(
            type="wallet", display_name="Wallet", instant_confirmation=True, supports_refund=True,
            priority_hint=10,
        ),
        GatewaySettings(
            type="zarinpal", display_name="Zarinpal", min_amount=1_000, max_amount=500_000_000,
            fee_rate=Decimal("0.01"), instant_confirmation=True, supports_refund=True,
        ),
        GatewaySettings(
            type="mellat_bank", display_name="Mellat Bank", min_amount=10_000, max_amount=1_000_000_000,
            fee_fixed=2_000, instant_confirmation=True,
        ),
        GatewaySettings(
            type="saman_bank", display_name="Saman Bank", min_amount=10_000, max_amount=1_000_000_000,
            fee_fixed=2_500, instant_confirmation=True,
        ),
        GatewaySettings(
            type="bank_transfer", display_name="Bank transfer", min_amount=100_000, is_available=False,
        ),
    ]


class PricingSettings(BaseSettings):
    currency: str = "IRR"
    pricing_mode: str = "exclusive"
    tax_rules: list[TaxRuleSettings] = Field(default_factory=_default_tax_rules)
    gateways: list[GatewaySettings] = Field(default_factory=_default_gateways)
    default_preferred_gateway: Optional[str] = None

    checkout: CheckoutServiceSettings = Field(default_factory=CheckoutServiceSettings)

    coupon_debounce_seconds: float = 0.3
    gateway_catalog_ttl_seconds: float = 60.0
    ledger_ttl_seconds: int = 1800

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PRICING__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


pricing_settings = PricingSettings()
