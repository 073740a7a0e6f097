"""Redis缓存实现

Shared by every worker process: the gateway catalog snapshot and the coupon
ledgers of open checkout sessions are stored here as JSON.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)


class RedisCache:
    """Namespaced JSON values with a default TTL."""

    def __init__(self, client: aioredis.Redis, namespace: str = "", default_ttl: Optional[int] = None) -> None:
        self._client = client
        self._namespace = namespace.strip(":")
        self._default_ttl = settings.redis.default_ttl if default_ttl is None else default_ttl

    def key(self, key: str) -> str:
        return f"{self._namespace}:{key}" if self._namespace else key

    async def get(self, key: str) -> Any:
        raw = await self._client.get(self.key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            # Written by something else under our namespace; treat as a miss
            logger.warning("redis_cache_corrupt_value", key=self.key(key))
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        # Money is int minor units and rates are serialized as strings upstream
        payload = json.dumps(value, sort_keys=True, ensure_ascii=False)
        expire = self._default_ttl if ttl is None else ttl
        if expire and expire > 0:
            await self._client.set(self.key(key), payload, ex=int(expire))
        else:
            await self._client.set(self.key(key), payload)

    async def delete(self, key: str) -> bool:
        return bool(await self._client.delete(self.key(key)))


_redis_client: Optional[aioredis.Redis] = None
_cache_instance: Optional[RedisCache] = None
_lock = asyncio.Lock()


async def init_redis_cache(namespace: Optional[str] = None) -> RedisCache:
    """初始化Redis缓存实例；连接不可用时抛出 RedisError，由调用方回退到进程内存储"""
    global _redis_client, _cache_instance

    if _cache_instance is not None:
        return _cache_instance

    async with _lock:
        if _cache_instance is not None:
            return _cache_instance

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL 未配置，无法初始化Redis缓存")

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
        )
        try:
            await client.ping()
        except RedisError:
            await client.aclose()
            raise
        _redis_client = client
        _cache_instance = RedisCache(client=client, namespace=namespace or settings.redis.namespace)
        return _cache_instance


async def shutdown_redis_cache() -> None:
    """关闭Redis连接"""
    global _redis_client, _cache_instance

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        _cache_instance = None
