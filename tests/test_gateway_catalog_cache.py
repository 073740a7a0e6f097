import asyncio

import pytest

from application.services.gateway_catalog import SHARED_CACHE_KEY, GatewayCatalogProvider
from domain.pricing import GatewayType
from domain.pricing.exceptions import GatewayUnavailable


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


class CountingStatusService:
    def __init__(self, gateways) -> None:
        self.gateways = list(gateways)
        self.calls = 0
        self.fail = False

    async def get_available_gateways(self, amount=None):
        self.calls += 1
        if self.fail:
            raise GatewayUnavailable("gateway_status", reason="timeout")
        return list(self.gateways)


class DictCache:
    def __init__(self) -> None:
        self.data: dict = {}
        self.ttls: dict = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ttl=None):
        self.data[key] = value
        self.ttls[key] = ttl


async def _settle(provider: GatewayCatalogProvider) -> None:
    task = provider._refresh_task
    if task is not None:
        await task


@pytest.mark.asyncio
async def test_fresh_catalog_is_served_from_memory(gateway_infos):
    status = CountingStatusService(gateway_infos)
    clock = FakeClock()
    provider = GatewayCatalogProvider(status, ttl_seconds=60, clock=clock)

    first = await provider.get_catalog()
    clock.now += 30
    second = await provider.get_catalog()

    assert status.calls == 1
    assert first is second
    assert not provider.is_stale()


@pytest.mark.asyncio
async def test_stale_catalog_served_while_refreshing(gateway_infos):
    status = CountingStatusService(gateway_infos)
    clock = FakeClock()
    provider = GatewayCatalogProvider(status, ttl_seconds=60, clock=clock)
    original = await provider.get_catalog()

    status.gateways = [g.model_copy(update={"is_healthy": False}) for g in gateway_infos]
    clock.now += 61
    assert provider.is_stale()

    served = await provider.get_catalog()
    assert served is original

    await _settle(provider)
    assert status.calls == 2
    refreshed = provider.cached
    assert refreshed is not original
    assert not refreshed.get(GatewayType.ZARINPAL).is_healthy


@pytest.mark.asyncio
async def test_only_one_background_refresh(gateway_infos):
    status = CountingStatusService(gateway_infos)
    clock = FakeClock()
    provider = GatewayCatalogProvider(status, ttl_seconds=60, clock=clock)
    await provider.get_catalog()
    clock.now += 120

    await asyncio.gather(*(provider.get_catalog() for _ in range(5)))
    await _settle(provider)

    assert status.calls == 2


@pytest.mark.asyncio
async def test_failed_refresh_keeps_serving_stale(gateway_infos):
    status = CountingStatusService(gateway_infos)
    clock = FakeClock()
    provider = GatewayCatalogProvider(status, ttl_seconds=60, clock=clock)
    original = await provider.get_catalog()

    status.fail = True
    clock.now += 61
    assert await provider.get_catalog() is original
    await _settle(provider)

    assert provider.cached is original
    assert await provider.get_catalog() is original
    await _settle(provider)
    assert status.calls == 3


@pytest.mark.asyncio
async def test_cold_failure_raises(gateway_infos):
    status = CountingStatusService(gateway_infos)
    status.fail = True
    provider = GatewayCatalogProvider(status)
    with pytest.raises(GatewayUnavailable):
        await provider.get_catalog()


@pytest.mark.asyncio
async def test_refresh_gateways_forces_fetch(gateway_infos):
    status = CountingStatusService(gateway_infos)
    provider = GatewayCatalogProvider(status, ttl_seconds=3600, clock=FakeClock())
    await provider.get_catalog()
    status.gateways = gateway_infos[:1]

    catalog = await provider.refresh_gateways()

    assert status.calls == 2
    assert [g.type for g in catalog.gateways] == [GatewayType.WALLET]
    assert provider.cached is catalog


@pytest.mark.asyncio
async def test_shared_cache_warms_other_workers(gateway_infos):
    cache = DictCache()
    first_status = CountingStatusService(gateway_infos)
    await GatewayCatalogProvider(first_status, ttl_seconds=60, shared_cache=cache).get_catalog()
    assert cache.ttls[SHARED_CACHE_KEY] == 60

    second_status = CountingStatusService(gateway_infos)
    catalog = await GatewayCatalogProvider(second_status, shared_cache=cache).get_catalog()

    assert second_status.calls == 0
    assert len(catalog.gateways) == len(gateway_infos)


@pytest.mark.asyncio
async def test_aclose_cancels_pending_refresh(gateway_infos):
    class SlowStatus(CountingStatusService):
        async def get_available_gateways(self, amount=None):
            if self.calls:
                await asyncio.sleep(10)
            return await super().get_available_gateways(amount)

    status = SlowStatus(gateway_infos)
    clock = FakeClock()
    provider = GatewayCatalogProvider(status, ttl_seconds=1, clock=clock)
    await provider.get_catalog()
    clock.now += 5
    await provider.get_catalog()
    await asyncio.sleep(0)

    await provider.aclose()
    assert provider._refresh_task is None
