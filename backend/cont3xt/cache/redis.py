"""Redis-backed cache store for multi-process deployments."""

import json
import logging
import time
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from cont3xt.cache.base import CacheEntry, CacheStore
from cont3xt.exceptions import CacheBackendError

logger = logging.getLogger(__name__)


class RedisCache(CacheStore):
    """Cache entries stored as JSON strings with a Redis expiry.

    Redis drops entries on its own once ``ttl`` elapses; the TTL is checked
    again on read so clock skew between processes never serves stale data.
    Size bounds are delegated to the Redis ``maxmemory-policy``.
    """

    name = "redis"

    def __init__(self, redis: Redis, prefix: str = "cont3xt:cache:"):
        self.redis = redis
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> CacheEntry | None:
        try:
            raw = await self.redis.get(self._key(key))
        except RedisError as e:
            raise CacheBackendError(f"Redis read failed: {e}") from e

        if raw is None:
            return None

        try:
            entry = CacheEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding unreadable cache entry %s: %s", key, e)
            await self.invalidate(key)
            return None

        if entry.is_expired():
            return None
        return entry

    async def set(self, key: str, payload: Any, ttl: float) -> None:
        entry = CacheEntry(key=key, payload=payload, fetched_at=time.time(), ttl=ttl)
        try:
            await self.redis.set(
                self._key(key),
                json.dumps(entry.to_dict(), default=str),
                ex=max(1, int(ttl)),
            )
        except RedisError as e:
            raise CacheBackendError(f"Redis write failed: {e}") from e

    async def invalidate(self, key: str) -> None:
        try:
            await self.redis.delete(self._key(key))
        except RedisError as e:
            raise CacheBackendError(f"Redis delete failed: {e}") from e

    async def clear(self) -> None:
        try:
            keys = [key async for key in self.redis.scan_iter(f"{self.prefix}*")]
            if keys:
                await self.redis.delete(*keys)
        except RedisError as e:
            raise CacheBackendError(f"Redis clear failed: {e}") from e

    async def close(self) -> None:
        await self.redis.close()
