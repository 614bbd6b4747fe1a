"""Result cache backends."""

from unittest.mock import AsyncMock

from cachetools import TLRUCache
from redis.exceptions import ConnectionError as RedisConnectionError

from geosearch.core.config import Settings
from geosearch.services.cache import MemoryResultCache, RedisResultCache, build_cache


async def test_memory_cache_round_trip_and_isolation() -> None:
    cache = MemoryResultCache(namespace="t")
    value = {"hits": [1, 2]}
    await cache.set("k", value, ttl=60)
    value["hits"].append(3)
    assert await cache.get("k") == {"hits": [1, 2]}
    assert await cache.get("missing") is None


async def test_memory_cache_expiry() -> None:
    clock = {"now": 1000.0}
    cache = MemoryResultCache(namespace="t", clock=lambda: clock["now"])
    await cache.set("k", [1], ttl=10)
    clock["now"] += 9
    assert await cache.get("k") == [1]
    clock["now"] += 2
    assert await cache.get("k") is None


async def test_memory_cache_evicts_oldest() -> None:
    cache = MemoryResultCache(namespace="t", max_items=2)
    for key in ("a", "b", "c"):
        await cache.set(key, key, ttl=60)
    assert await cache.get("a") is None
    assert await cache.get("c") == "c"


async def test_memory_cache_evicts_least_recently_read() -> None:
    cache = MemoryResultCache(namespace="t", max_items=2)
    await cache.set("a", 1, ttl=60)
    await cache.set("b", 2, ttl=60)
    assert await cache.get("a") == 1
    await cache.set("c", 3, ttl=60)
    assert await cache.get("b") is None
    assert await cache.get("a") == 1


async def test_memory_cache_ttl_is_per_entry_and_refreshed_on_set() -> None:
    clock = {"now": 0.0}
    cache = MemoryResultCache(namespace="t", clock=lambda: clock["now"])
    await cache.set("short", "s", ttl=5)
    await cache.set("long", "l", ttl=600)
    clock["now"] = 6
    assert await cache.get("short") is None
    assert await cache.get("long") == "l"

    await cache.set("short", "s2", ttl=5)
    clock["now"] = 10
    assert await cache.get("short") == "s2"
    assert isinstance(cache._store, TLRUCache)


async def test_redis_errors_are_misses() -> None:
    cache = RedisResultCache("redis://localhost:6379/0", namespace="t")
    cache._redis = AsyncMock()
    cache._redis.get = AsyncMock(side_effect=RedisConnectionError("down"))
    cache._redis.setex = AsyncMock(side_effect=RedisConnectionError("down"))

    assert await cache.get("k") is None
    await cache.set("k", {"a": 1}, ttl=5)


async def test_redis_values_are_namespaced_json() -> None:
    cache = RedisResultCache("redis://localhost:6379/0", namespace="geo")
    cache._redis = AsyncMock()
    cache._redis.get = AsyncMock(return_value=b'{"a": 1}')

    await cache.set("nearby:x", {"a": 1}, ttl=600)
    cache._redis.setex.assert_awaited_once_with("geo:nearby:x", 600, '{"a": 1}')
    assert await cache.get("nearby:x") == {"a": 1}


def test_build_cache_selects_backend() -> None:
    assert isinstance(build_cache(Settings(ENABLE_REDIS=False)), MemoryResultCache)
    assert isinstance(
        build_cache(Settings(ENABLE_REDIS=True, REDIS_URL="redis://localhost:6379/0")),
        RedisResultCache,
    )
