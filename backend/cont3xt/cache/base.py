"""Cache store contract and key derivation."""

import hashlib
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from cont3xt.indicators import Indicator


def make_cache_key(
    source_id: str,
    indicator: Indicator,
    params: dict[str, Any] | None = None,
) -> str:
    """Derive the content-addressed cache key for one source lookup.

    The key is a deterministic function of the source id, the normalized
    indicator and any source-specific parameters that change the answer.
    """
    material = json.dumps(
        [source_id, indicator.itype.value, indicator.value, params or {}],
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
    return f"{source_id}:{digest}"


@dataclass
class CacheEntry:
    """A cached payload with its fetch time and time-to-live."""

    key: str
    payload: Any
    fetched_at: float
    ttl: float

    def is_expired(self, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return self.fetched_at + self.ttl <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "payload": self.payload,
            "fetched_at": self.fetched_at,
            "ttl": self.ttl,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        return cls(
            key=data["key"],
            payload=data.get("payload"),
            fetched_at=float(data["fetched_at"]),
            ttl=float(data["ttl"]),
        )


class CacheStore(ABC):
    """Abstract per-source result store.

    Implementations enforce TTL on read: an expired entry is reported as
    absent even if it is still physically stored.
    """

    name: str = "base"

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key`` or None."""
        ...

    @abstractmethod
    async def set(self, key: str, payload: Any, ttl: float) -> None:
        """Store ``payload`` under ``key`` for ``ttl`` seconds."""
        ...

    @abstractmethod
    async def invalidate(self, key: str) -> None:
        """Drop ``key`` if present."""
        ...

    async def clear(self) -> None:
        """Drop every entry."""

    async def close(self) -> None:
        """Release backend resources."""

    def stats(self) -> dict[str, Any]:
        return {"backend": self.name}
