"""Cache layer for per-source lookup results.

Provides a pluggable store (in-memory LRU or Redis) selected by the
``[cache]`` configuration section.
"""

from redis.asyncio import Redis

from cont3xt.cache.base import CacheEntry, CacheStore, make_cache_key
from cont3xt.cache.memory import MemoryCache
from cont3xt.cache.redis import RedisCache
from cont3xt.config import CacheConfig
from cont3xt.exceptions import ConfigError


def create_cache(config: CacheConfig, redis: Redis | None = None) -> CacheStore:
    """Build the cache store named by ``config.type``."""
    if config.type == "memory":
        return MemoryCache(max_entries=config.cache_size)

    if config.type == "redis":
        if redis is None:
            redis = Redis.from_url(
                config.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return RedisCache(redis)

    raise ConfigError(f"Unsupported cache type: {config.type}")


__all__ = [
    "CacheEntry",
    "CacheStore",
    "MemoryCache",
    "RedisCache",
    "create_cache",
    "make_cache_key",
]
