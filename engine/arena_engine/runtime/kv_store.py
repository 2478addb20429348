"""
Key/value store implementations.

MemoryKeyValueStore keeps everything in a bounded in-process cache and is the
default for development and tests. RedisKeyValueStore talks to a Redis server
through redis.asyncio. Both raise PersistenceError when the store fails.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import redis.asyncio as redis
from redis.exceptions import RedisError

from arena_engine.config import KVBackend, Settings
from arena_engine.errors import PersistenceError
from arena_engine.interfaces.kv_store import KeyValueStore
from arena_engine.logging import get_logger
from arena_engine.runtime.cache import BoundedLRUCache, Clock, utc_now

logger = get_logger(__name__)

T = TypeVar("T")


# =============================================================================
# In-memory
# =============================================================================


class MemoryKeyValueStore(KeyValueStore):
    """
    In-process store.

    Lists and sets are held as Python objects inside the same bounded cache
    as plain values, so every kind of key shares one expiry and eviction
    policy.
    """

    def __init__(self, max_entries: int = 10000, clock: Clock = utc_now):
        self._cache: BoundedLRUCache[str, Any] = BoundedLRUCache(
            max_size=max_entries,
            name="kv_store",
            clock=clock,
        )

    async def get(self, key: str) -> str | None:
        value = self._cache.get(key)
        if value is not None and not isinstance(value, str):
            raise PersistenceError(f"Key {key} does not hold a string value")
        return value

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        self._cache.set(key, value, ttl_seconds=ttl_seconds)

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self._cache.delete(key))

    async def exists(self, key: str) -> bool:
        return self._cache.contains(key)

    async def scan(self, prefix: str) -> list[str]:
        return [key for key in self._cache.keys() if key.startswith(prefix)]

    async def list_push(
        self,
        key: str,
        value: str,
        max_len: int | None = None,
        ttl_seconds: int | None = None,
    ) -> int:
        items = self._cache.get(key)
        if items is None:
            items = []
        elif not isinstance(items, list):
            raise PersistenceError(f"Key {key} does not hold a list")

        items.insert(0, value)
        if max_len is not None:
            del items[max_len:]

        if ttl_seconds is not None:
            self._cache.set(key, items, ttl_seconds=ttl_seconds)
        elif key not in self._cache:
            self._cache.set(key, items)
        return len(items)

    async def list_range(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        items = self._cache.get(key)
        if items is None:
            return []
        if not isinstance(items, list):
            raise PersistenceError(f"Key {key} does not hold a list")
        end = None if stop == -1 else stop + 1
        return list(items[start:end])

    async def set_add(self, key: str, *members: str) -> int:
        current = self._cache.get(key)
        if current is None:
            current = set()
            self._cache.set(key, current)
        elif not isinstance(current, set):
            raise PersistenceError(f"Key {key} does not hold a set")
        added = len(set(members) - current)
        current.update(members)
        return added

    async def set_remove(self, key: str, *members: str) -> int:
        current = self._cache.get(key)
        if current is None:
            return 0
        if not isinstance(current, set):
            raise PersistenceError(f"Key {key} does not hold a set")
        removed = len(current & set(members))
        current.difference_update(members)
        return removed

    async def set_members(self, key: str) -> set[str]:
        current = self._cache.get(key)
        if current is None:
            return set()
        if not isinstance(current, set):
            raise PersistenceError(f"Key {key} does not hold a set")
        return set(current)

    async def ping(self) -> bool:
        return True


# =============================================================================
# Redis
# =============================================================================


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store (redis.asyncio, decoded responses)."""

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        return cls(redis.from_url(url, decode_responses=True))

    async def _call(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await fn()
        except RedisError as e:
            logger.error("Redis %s failed: %s", operation, e)
            raise PersistenceError(f"Redis {operation} failed: {e}") from e

    async def get(self, key: str) -> str | None:
        return await self._call("get", lambda: self._client.get(key))

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        await self._call("set", lambda: self._client.set(key, value, ex=ttl_seconds))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._call("delete", lambda: self._client.delete(*keys))

    async def exists(self, key: str) -> bool:
        count = await self._call("exists", lambda: self._client.exists(key))
        return count > 0

    async def scan(self, prefix: str) -> list[str]:
        async def collect() -> list[str]:
            return [key async for key in self._client.scan_iter(match=f"{prefix}*")]

        return await self._call("scan", collect)

    async def list_push(
        self,
        key: str,
        value: str,
        max_len: int | None = None,
        ttl_seconds: int | None = None,
    ) -> int:
        async def push() -> int:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.lpush(key, value)
                if max_len is not None:
                    pipe.ltrim(key, 0, max_len - 1)
                if ttl_seconds is not None:
                    pipe.expire(key, ttl_seconds)
                pipe.llen(key)
                results = await pipe.execute()
            return int(results[-1])

        return await self._call("list_push", push)

    async def list_range(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        return await self._call("list_range", lambda: self._client.lrange(key, start, stop))

    async def set_add(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return await self._call("set_add", lambda: self._client.sadd(key, *members))

    async def set_remove(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return await self._call("set_remove", lambda: self._client.srem(key, *members))

    async def set_members(self, key: str) -> set[str]:
        members = await self._call("set_members", lambda: self._client.smembers(key))
        return set(members)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        await self._client.aclose()


def create_kv_store(settings: Settings) -> KeyValueStore:
    """Build the store selected by settings.kv_backend."""
    if settings.kv_backend == KVBackend.REDIS:
        logger.info("Using Redis key/value store")
        return RedisKeyValueStore.from_url(settings.redis_url.get_secret_value())
    logger.info("Using in-memory key/value store (max %d entries)", settings.memory_cache_max_entries)
    return MemoryKeyValueStore(max_entries=settings.memory_cache_max_entries)
