"""
Bounded cache with per-entry expiry.

Backs the in-memory key/value store so a long-running process cannot grow
without limit.
"""

from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Generic, TypeVar

from arena_engine.logging import get_logger

logger = get_logger(__name__)

K = TypeVar("K")
V = TypeVar("V")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    current_size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate as percentage."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits / total) * 100


class BoundedLRUCache(Generic[K, V]):
    """
    Bounded LRU (Least Recently Used) cache.

    Features:
    - Fixed maximum size, LRU eviction at capacity
    - Default TTL plus an optional TTL per entry
    - Injectable clock for tests
    - Statistics tracking
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl_seconds: float | None = None,
        name: str = "cache",
        clock: Clock = utc_now,
    ):
        """
        Initialize bounded cache.

        Args:
            max_size: Maximum number of entries
            ttl_seconds: Default TTL for entries (None = no expiry)
            name: Name for logging purposes
            clock: Returns the current aware datetime
        """
        self._max_size = max_size
        self._ttl_seconds = ttl_seconds
        self._name = name
        self._clock = clock

        # value, expires_at (None = never)
        self._cache: OrderedDict[K, tuple[V, datetime | None]] = OrderedDict()
        self._stats = CacheStats(max_size=max_size)

    def _expires_at(self, ttl_seconds: float | None) -> datetime | None:
        ttl = ttl_seconds if ttl_seconds is not None else self._ttl_seconds
        if ttl is None:
            return None
        return self._clock() + timedelta(seconds=ttl)

    def _is_expired(self, expires_at: datetime | None) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    def _live_entry(self, key: K) -> tuple[V, datetime | None] | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if self._is_expired(entry[1]):
            self._cache.pop(key, None)
            self._stats.expirations += 1
            self._stats.current_size = len(self._cache)
            return None
        return entry

    def get(self, key: K) -> V | None:
        """
        Get value from cache.

        Args:
            key: Cache key

        Returns:
            Value if found and not expired, None otherwise
        """
        entry = self._live_entry(key)
        if entry is None:
            self._stats.misses += 1
            return None

        # Move to end (most recently used)
        self._cache.move_to_end(key)
        self._stats.hits += 1
        return entry[0]

    def set(self, key: K, value: V, ttl_seconds: float | None = None) -> None:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: Expiry for this entry (None = cache default)
        """
        expires_at = self._expires_at(ttl_seconds)

        if key in self._cache:
            self._cache[key] = (value, expires_at)
            self._cache.move_to_end(key)
        else:
            while len(self._cache) >= self._max_size:
                evicted_key = next(iter(self._cache))
                self._cache.pop(evicted_key)
                self._stats.evictions += 1
                logger.debug("%s: evicted %s", self._name, evicted_key)

            self._cache[key] = (value, expires_at)

        self._stats.current_size = len(self._cache)

    def delete(self, key: K) -> bool:
        """
        Delete entry from cache.

        Returns:
            True if a live entry was deleted
        """
        entry = self._cache.pop(key, None)
        self._stats.current_size = len(self._cache)
        return entry is not None and not self._is_expired(entry[1])

    def clear(self) -> None:
        """Clear all entries."""
        self._cache.clear()
        self._stats.current_size = 0

    def contains(self, key: K) -> bool:
        """Check if a live key exists (doesn't update LRU order)."""
        return self._live_entry(key) is not None

    def keys(self) -> list[K]:
        """Get all live keys (most recent last)."""
        self.cleanup_expired()
        return list(self._cache.keys())

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: K) -> bool:
        return self.contains(key)

    @property
    def stats(self) -> CacheStats:
        return self._stats

    def cleanup_expired(self) -> int:
        """
        Remove expired entries.

        Returns:
            Number of entries removed
        """
        expired = [key for key, (_, exp) in self._cache.items() if self._is_expired(exp)]

        for key in expired:
            self._cache.pop(key)

        self._stats.expirations += len(expired)
        self._stats.current_size = len(self._cache)
        return len(expired)
