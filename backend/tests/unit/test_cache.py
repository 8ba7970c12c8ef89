"""Unit tests for the cache layer."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from cont3xt.cache import MemoryCache, RedisCache, create_cache, make_cache_key
from cont3xt.cache.base import CacheEntry
from cont3xt.config import CacheConfig
from cont3xt.exceptions import CacheBackendError
from cont3xt.indicators import normalize


pytestmark = pytest.mark.unit


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestCacheKey:
    """Tests for cache key derivation."""

    def test_deterministic(self):
        indicator = normalize("8.8.8.8")
        assert make_cache_key("alpha", indicator) == make_cache_key("alpha", indicator, {})

    def test_prefixed_with_source(self):
        assert make_cache_key("alpha", normalize("8.8.8.8")).startswith("alpha:")

    def test_equivalent_spellings_share_key(self):
        a = normalize("Evil[.]Example.com")
        b = normalize("evil.example.com.")
        assert make_cache_key("alpha", a) == make_cache_key("alpha", b)

    def test_differs_by_source_and_params(self):
        indicator = normalize("8.8.8.8")
        base = make_cache_key("alpha", indicator)
        assert base != make_cache_key("beta", indicator)
        assert base != make_cache_key("alpha", indicator, {"region": "eu"})

    def test_param_order_irrelevant(self):
        indicator = normalize("8.8.8.8")
        assert make_cache_key("alpha", indicator, {"a": 1, "b": 2}) == make_cache_key(
            "alpha", indicator, {"b": 2, "a": 1}
        )


class TestCacheEntry:
    """Tests for entry expiry."""

    def test_expired_at_boundary(self):
        entry = CacheEntry(key="k", payload=None, fetched_at=100.0, ttl=10.0)
        assert not entry.is_expired(109.9)
        assert entry.is_expired(110.0)


class TestMemoryCache:
    """Tests for the in-process LRU store."""

    @pytest.mark.asyncio
    async def test_set_and_get(self):
        cache = MemoryCache(max_entries=10)
        await cache.set("k", {"a": 1}, ttl=60)
        entry = await cache.get("k")
        assert entry is not None
        assert entry.payload == {"a": 1}

    @pytest.mark.asyncio
    async def test_ttl_expiry(self):
        clock = FakeClock()
        cache = MemoryCache(max_entries=10, clock=clock)
        await cache.set("k", "v", ttl=30)

        clock.advance(29)
        assert await cache.get("k") is not None

        clock.advance(1)
        assert await cache.get("k") is None
        # Expired entries stay resident until evicted or invalidated
        assert "k" in cache

    @pytest.mark.asyncio
    async def test_eviction_bound_and_victims(self):
        """Inserting past the bound evicts exactly the least recently used."""
        cache = MemoryCache(max_entries=3)
        for key in ("a", "b", "c"):
            await cache.set(key, key, ttl=60)

        # Touch "a" so "b" becomes least recently used
        assert await cache.get("a") is not None
        await cache.set("d", "d", ttl=60)

        assert len(cache) == 3
        assert "b" not in cache
        assert all(key in cache for key in ("a", "c", "d"))

        await cache.set("e", "e", ttl=60)
        assert len(cache) == 3
        assert "c" not in cache
        assert cache.stats()["evictions"] == 2

    @pytest.mark.asyncio
    async def test_never_exceeds_bound(self):
        cache = MemoryCache(max_entries=5)
        for i in range(50):
            await cache.set(f"k{i}", i, ttl=60)
            assert len(cache) <= 5

    @pytest.mark.asyncio
    async def test_overwrite_refreshes(self):
        cache = MemoryCache(max_entries=2)
        await cache.set("a", 1, ttl=60)
        await cache.set("b", 2, ttl=60)
        await cache.set("a", 3, ttl=60)
        await cache.set("c", 4, ttl=60)

        assert "b" not in cache
        assert (await cache.get("a")).payload == 3

    @pytest.mark.asyncio
    async def test_invalidate_and_clear(self):
        cache = MemoryCache(max_entries=10)
        await cache.set("a", 1, ttl=60)
        await cache.set("b", 2, ttl=60)

        await cache.invalidate("a")
        await cache.invalidate("missing")
        assert await cache.get("a") is None

        await cache.clear()
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_stats(self):
        cache = MemoryCache(max_entries=10)
        await cache.set("a", 1, ttl=60)
        await cache.get("a")
        await cache.get("missing")

        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["size"] == 1

    def test_rejects_zero_bound(self):
        with pytest.raises(ValueError):
            MemoryCache(max_entries=0)


class TestRedisCache:
    """Tests for the Redis store with a mocked client."""

    @pytest.fixture
    def redis(self):
        return AsyncMock()

    @pytest.mark.asyncio
    async def test_set_uses_expiry(self, redis):
        cache = RedisCache(redis)
        await cache.set("alpha:abc", {"a": 1}, ttl=120)

        redis.set.assert_awaited_once()
        args, kwargs = redis.set.call_args
        assert args[0] == "cont3xt:cache:alpha:abc"
        assert kwargs["ex"] == 120
        assert json.loads(args[1])["payload"] == {"a": 1}

    @pytest.mark.asyncio
    async def test_get_round_trip(self, redis):
        entry = CacheEntry(key="k", payload=[1, 2], fetched_at=9e9, ttl=60)
        redis.get.return_value = json.dumps(entry.to_dict())
        cache = RedisCache(redis)

        result = await cache.get("k")
        assert result.payload == [1, 2]

    @pytest.mark.asyncio
    async def test_get_expired_is_miss(self, redis):
        entry = CacheEntry(key="k", payload=1, fetched_at=0.0, ttl=1)
        redis.get.return_value = json.dumps(entry.to_dict())

        assert await RedisCache(redis).get("k") is None

    @pytest.mark.asyncio
    async def test_get_missing(self, redis):
        redis.get.return_value = None
        assert await RedisCache(redis).get("k") is None

    @pytest.mark.asyncio
    async def test_unreadable_entry_discarded(self, redis):
        redis.get.return_value = "not json"
        cache = RedisCache(redis)

        assert await cache.get("k") is None
        redis.delete.assert_awaited_once_with("cont3xt:cache:k")

    @pytest.mark.asyncio
    async def test_backend_failure_raises(self, redis):
        redis.get.side_effect = RedisConnectionError("down")
        redis.set.side_effect = RedisConnectionError("down")
        cache = RedisCache(redis)

        with pytest.raises(CacheBackendError):
            await cache.get("k")
        with pytest.raises(CacheBackendError):
            await cache.set("k", 1, ttl=60)


class TestCreateCache:
    """Tests for the cache factory."""

    def test_memory(self):
        cache = create_cache(CacheConfig(type="memory", cache_size=42))
        assert isinstance(cache, MemoryCache)
        assert cache.max_entries == 42

    def test_redis_with_client(self):
        client = MagicMock()
        cache = create_cache(CacheConfig(type="redis"), redis=client)
        assert isinstance(cache, RedisCache)
        assert cache.redis is client
