"""
Tests for key/value store backends.
"""

from datetime import UTC, datetime, timedelta
from typing import get_type_hints
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from arena_engine.config import KVBackend
from arena_engine.errors import PersistenceError
from arena_engine.interfaces.kv_store import KeyValueStore
from arena_engine.runtime.kv_store import (
    MemoryKeyValueStore,
    RedisKeyValueStore,
    create_kv_store,
)
from tests.api_fixtures import make_settings

# =============================================================================
# Fixtures
# =============================================================================


class ManualClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 6, 2, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store(clock: ManualClock) -> MemoryKeyValueStore:
    return MemoryKeyValueStore(max_entries=100, clock=clock)


# =============================================================================
# Memory Store
# =============================================================================


class TestMemoryStrings:
    """Plain string values."""

    @pytest.mark.asyncio
    async def test_get_set_delete(self, store: MemoryKeyValueStore) -> None:
        await store.set("k", "v")

        assert await store.get("k") == "v"
        assert await store.exists("k") is True
        assert await store.delete("k", "missing") == 1
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_ttl_expiry(self, store: MemoryKeyValueStore, clock: ManualClock) -> None:
        """A key disappears once its TTL passes."""
        await store.set("k", "v", ttl_seconds=60)

        clock.now += timedelta(seconds=61)

        assert await store.get("k") is None
        assert await store.exists("k") is False

    @pytest.mark.asyncio
    async def test_scan_by_prefix(self, store: MemoryKeyValueStore) -> None:
        await store.set("backtest:quotes:A", "1")
        await store.set("backtest:quotes:B", "2")
        await store.set("backtest:session:x", "3")

        keys = await store.scan("backtest:quotes:")

        assert sorted(keys) == ["backtest:quotes:A", "backtest:quotes:B"]

    @pytest.mark.asyncio
    async def test_get_on_list_raises(self, store: MemoryKeyValueStore) -> None:
        """Reading a list key as a string is a store error."""
        await store.list_push("l", "a")

        with pytest.raises(PersistenceError):
            await store.get("l")


class TestMemoryLists:
    """Capped lists, newest first."""

    @pytest.mark.asyncio
    async def test_push_prepends(self, store: MemoryKeyValueStore) -> None:
        await store.list_push("l", "a")
        await store.list_push("l", "b")
        length = await store.list_push("l", "c")

        assert length == 3
        assert await store.list_range("l") == ["c", "b", "a"]

    @pytest.mark.asyncio
    async def test_push_trims_to_max_len(self, store: MemoryKeyValueStore) -> None:
        for value in "abcdef":
            await store.list_push("l", value, max_len=3)

        assert await store.list_range("l") == ["f", "e", "d"]

    @pytest.mark.asyncio
    async def test_range_stop_is_inclusive(self, store: MemoryKeyValueStore) -> None:
        for value in "abcd":
            await store.list_push("l", value)

        assert await store.list_range("l", 0, 1) == ["d", "c"]
        assert await store.list_range("missing") == []

    @pytest.mark.asyncio
    async def test_list_ttl(self, store: MemoryKeyValueStore, clock: ManualClock) -> None:
        await store.list_push("l", "a", ttl_seconds=10)
        clock.now += timedelta(seconds=11)

        assert await store.list_range("l") == []

    @pytest.mark.asyncio
    async def test_push_onto_string_raises(self, store: MemoryKeyValueStore) -> None:
        await store.set("s", "v")

        with pytest.raises(PersistenceError):
            await store.list_push("s", "a")


class TestMemorySets:
    """Index sets."""

    @pytest.mark.asyncio
    async def test_add_remove_members(self, store: MemoryKeyValueStore) -> None:
        assert await store.set_add("s", "a", "b") == 2
        assert await store.set_add("s", "b", "c") == 1
        assert await store.set_remove("s", "a", "zzz") == 1

        assert await store.set_members("s") == {"b", "c"}

    @pytest.mark.asyncio
    async def test_members_of_missing_set(self, store: MemoryKeyValueStore) -> None:
        assert await store.set_members("missing") == set()
        assert await store.set_remove("missing", "a") == 0

    @pytest.mark.asyncio
    async def test_members_returns_copy(self, store: MemoryKeyValueStore) -> None:
        """Mutating the returned set does not touch the store."""
        await store.set_add("s", "a")

        members = await store.set_members("s")
        members.add("b")

        assert await store.set_members("s") == {"a"}


# =============================================================================
# Redis Store
# =============================================================================


class TestRedisStore:
    """Redis backend against a mocked client."""

    @pytest.mark.asyncio
    async def test_set_passes_ttl(self) -> None:
        client = MagicMock()
        client.set = AsyncMock(return_value=True)
        store = RedisKeyValueStore(client)

        await store.set("k", "v", ttl_seconds=30)

        client.set.assert_awaited_once_with("k", "v", ex=30)

    @pytest.mark.asyncio
    async def test_redis_error_becomes_persistence_error(self) -> None:
        client = MagicMock()
        client.get = AsyncMock(side_effect=RedisConnectionError("connection refused"))
        store = RedisKeyValueStore(client)

        with pytest.raises(PersistenceError, match="get"):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_empty_delete_skips_call(self) -> None:
        client = MagicMock()
        client.delete = AsyncMock()
        store = RedisKeyValueStore(client)

        assert await store.delete() == 0
        client.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_ping_failure_returns_false(self) -> None:
        client = MagicMock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("down"))
        store = RedisKeyValueStore(client)

        assert await store.ping() is False


class TestCreateKVStore:
    """Backend selection."""

    def test_memory_backend(self) -> None:
        store = create_kv_store(make_settings(kv_backend=KVBackend.MEMORY))
        assert isinstance(store, MemoryKeyValueStore)

    def test_redis_backend(self) -> None:
        """Selecting redis builds a client without connecting."""
        store = create_kv_store(
            make_settings(kv_backend=KVBackend.REDIS, redis_url="redis://localhost:6399/0")
        )
        assert isinstance(store, RedisKeyValueStore)


class TestSignatures:
    """Method annotations resolve to builtins, not to the store's own methods."""

    @pytest.mark.parametrize("cls", [KeyValueStore, MemoryKeyValueStore, RedisKeyValueStore])
    def test_set_members_returns_builtin_set(self, cls) -> None:
        hints = get_type_hints(cls.set_members)

        assert hints["return"] == set[str]
        assert hints["key"] is str
