"""Shared state across workers: the Redis connection and the coupon ledger stores."""
from .ledger_store import InMemoryLedgerStore, RedisLedgerStore
from .redis_cache import RedisCache, init_redis_cache, shutdown_redis_cache

__all__ = [
    "RedisCache",
    "init_redis_cache",
    "shutdown_redis_cache",
    "InMemoryLedgerStore",
    "RedisLedgerStore",
]
