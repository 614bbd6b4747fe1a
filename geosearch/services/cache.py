# geosearch/services/cache.py
"""Result cache for nearby and trending payloads.

Backed by redis.asyncio when ENABLE_REDIS is set, otherwise by a small
in-process cachetools TLRUCache. Cache errors are logged and treated as misses; the cache
never decides whether a search succeeds.
"""
import json
import time
from typing import Any, Callable, Optional, Protocol, Tuple

import structlog
from cachetools import TLRUCache
from redis.asyncio import Redis
from redis.exceptions import RedisError

from geosearch.core.config import Settings, settings as default_settings

logger = structlog.get_logger(__name__)


class ResultCache(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...
    async def set(self, key: str, value: Any, ttl: int) -> None: ...
    async def close(self) -> None: ...


class RedisResultCache:
    def __init__(self, url: str, namespace: str):
        if not url:
            raise ValueError("REDIS_URL is not set in the environment")
        self._redis = Redis.from_url(url)
        self._namespace = namespace

    def _k(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._redis.get(self._k(key))
        except RedisError as e:
            logger.error("cache_get_error", key=key, error=str(e))
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.error("cache_parse_error", key=key)
            return None

    async def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            await self._redis.setex(self._k(key), ttl, json.dumps(value))
        except RedisError as e:
            logger.error("cache_set_error", key=key, error=str(e))

    async def close(self) -> None:
        await self._redis.aclose()


def _expires_at(_key: str, entry: Tuple[int, str], now: float) -> float:
    return now + entry[0]


class MemoryResultCache:
    """In-process cache with a per-entry TTL and a bounded size (least recently used evicted first)."""

    def __init__(self, namespace: str, max_items: int = 1000, clock: Callable[[], float] = time.monotonic):
        self._namespace = namespace
        self._store: TLRUCache = TLRUCache(maxsize=max_items, ttu=_expires_at, timer=clock)

    def _k(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(self._k(key))
        if entry is None:
            return None
        return json.loads(entry[1])

    async def set(self, key: str, value: Any, ttl: int) -> None:
        # Stored serialized so callers never share mutable state with the cache.
        self._store[self._k(key)] = (ttl, json.dumps(value))

    async def close(self) -> None:
        self._store.clear()


def build_cache(config: Settings = default_settings) -> ResultCache:
    if config.ENABLE_REDIS and config.REDIS_URL:
        logger.info("cache_backend", backend="redis")
        return RedisResultCache(config.REDIS_URL, config.CACHE_NAMESPACE)
    logger.info("cache_backend", backend="memory")
    return MemoryResultCache(config.CACHE_NAMESPACE)
