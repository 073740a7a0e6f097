"""
Factory for checkout service adapters.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from application.ports.checkout import CouponRegistry, GatewayStatusService, WalletBalanceService
from core.settings import PricingSettings, pricing_settings


@dataclass
class CheckoutPorts:
    registry: CouponRegistry
    gateways: GatewayStatusService
    wallet: WalletBalanceService

    async def aclose(self) -> None:
        closed = set()
        for port in (self.registry, self.gateways, self.wallet):
            close = getattr(port, "aclose", None)
            if callable(close) and id(port) not in closed:
                closed.add(id(port))
                await close()


def get_checkout_ports(config: Optional[PricingSettings] = None) -> CheckoutPorts:
    config = config or pricing_settings
    if config.checkout.base_url:
        from .client import CheckoutAPIClient
        client = CheckoutAPIClient(
            base_url=config.checkout.base_url,
            timeout=config.checkout.timeout_seconds,
            max_retries=config.checkout.max_retries,
            retry_delay=config.checkout.retry_delay,
            auth_token=config.checkout.auth_token,
        )
        return CheckoutPorts(registry=client, gateways=client, wallet=client)

    from .local import InMemoryCouponRegistry, InMemoryWalletService, StaticGatewayStatusService
    return CheckoutPorts(
        registry=InMemoryCouponRegistry(),
        gateways=StaticGatewayStatusService(config.gateways),
        wallet=InMemoryWalletService(currency=config.currency),
    )


__all__ = ["CheckoutPorts", "get_checkout_ports"]
