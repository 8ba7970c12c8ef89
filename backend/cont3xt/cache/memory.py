"""In-process LRU cache store."""

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from cont3xt.cache.base import CacheEntry, CacheStore

logger = logging.getLogger(__name__)


class MemoryCache(CacheStore):
    """Bounded least-recently-used store.

    Reads refresh recency. Inserting past ``max_entries`` evicts exactly
    enough least-recently-used entries to get back within the bound before
    ``set`` returns. Expired entries stay resident until evicted or
    invalidated, but are never returned.
    """

    name = "memory"

    def __init__(self, max_entries: int = 100000, clock: Callable[[], float] = time.time):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    async def get(self, key: str) -> CacheEntry | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(self._clock()):
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return entry

    async def set(self, key: str, payload: Any, ttl: float) -> None:
        async with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                payload=payload,
                fetched_at=self._clock(),
                ttl=ttl,
            )
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("Evicted cache entry %s", evicted)

    async def invalidate(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, Any]:
        return {
            "backend": self.name,
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
        }
