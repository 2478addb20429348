"""
Runtime components: bounded cache, key/value stores, event bus.
"""

from arena_engine.runtime.cache import BoundedLRUCache, CacheStats
from arena_engine.runtime.event_bus import Event, EventBus, EventType, get_event_bus
from arena_engine.runtime.kv_store import (
    MemoryKeyValueStore,
    RedisKeyValueStore,
    create_kv_store,
)

__all__ = [
    "BoundedLRUCache",
    "CacheStats",
    "Event",
    "EventBus",
    "EventType",
    "MemoryKeyValueStore",
    "RedisKeyValueStore",
    "create_kv_store",
    "get_event_bus",
]
