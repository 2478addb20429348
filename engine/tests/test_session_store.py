"""
Tests for session persistence, lifecycle and the leaderboard.
"""

import pytest

from arena_engine.config import Settings
from arena_engine.domain import ActorState, SessionStatus, Snapshot, StrategyType
from arena_engine.errors import (
    ConfigurationError,
    InvalidSessionStateError,
    OutOfOrderTickError,
    PersistenceError,
    SessionClosedError,
    SessionNotFoundError,
)
from arena_engine.runtime.event_bus import EventBus, EventType
from arena_engine.runtime.kv_store import MemoryKeyValueStore
from arena_engine.sessions.store import SessionStore
from tests.api_fixtures import make_settings
from tests.fixtures.market_data import FakeClock, coin_actor, shanghai_ms, steady_actor

START = shanghai_ms(2025, 6, 2, 9, 30)
END = shanghai_ms(2025, 6, 3, 15, 0)
HOUR = 3_600_000
DAY = 24 * HOUR
NOW = 1_750_000_000_000

# =============================================================================
# Fixtures
# =============================================================================


class FlakyKeyValueStore(MemoryKeyValueStore):
    """Memory store whose list pushes can be made to fail."""

    def __init__(self) -> None:
        super().__init__(max_entries=1000)
        self.fail_pushes = False

    async def list_push(self, key, value, max_len=None, ttl_seconds=None):
        if self.fail_pushes:
            raise PersistenceError("Redis list_push failed: connection reset")
        return await super().list_push(key, value, max_len=max_len, ttl_seconds=ttl_seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture
def store(memory_kv: MemoryKeyValueStore, test_settings: Settings, clock: FakeClock) -> SessionStore:
    return SessionStore(memory_kv, test_settings, clock=clock)


def make_state(actor_id: str, return_percent: float = 0.0) -> ActorState:
    total_return = 100000.0 * return_percent / 100
    return ActorState(
        actor_id=actor_id,
        name=actor_id.title(),
        cash=100000.0 + total_return,
        total_assets=100000.0 + total_return,
        total_return=total_return,
        total_return_percent=return_percent,
    )


def make_snapshot(timestamp: int, **returns: float) -> Snapshot:
    return Snapshot(
        timestamp=timestamp,
        actor_states=[make_state(actor_id, pct) for actor_id, pct in returns.items()],
    )


async def new_session(store: SessionStore, *actors, **kwargs):
    return await store.create_session(
        kwargs.pop("name", "Test"),
        START,
        END,
        list(actors) or [coin_actor(), steady_actor()],
        **kwargs,
    )


# =============================================================================
# Create
# =============================================================================


class TestCreate:
    """Session creation and validation."""

    @pytest.mark.asyncio
    async def test_create_seeds_initial_snapshot(self, store: SessionStore) -> None:
        session = await new_session(store, tags=["demo"], description="first")

        assert session.status == SessionStatus.PENDING
        assert session.session_id.startswith(f"session_{NOW}_")
        assert session.created_at == NOW
        assert session.tags == ["demo"]
        assert len(session.snapshots) == 1
        seed = session.snapshots[0]
        assert seed.timestamp == START
        assert [s.actor_id for s in seed.actor_states] == ["coin", "steady"]
        assert seed.state_for("coin").cash == 100000.0
        assert seed.trades == []

    @pytest.mark.asyncio
    async def test_create_persists(self, store: SessionStore) -> None:
        session = await new_session(store)

        loaded = await store.get_session(session.session_id)

        assert loaded == session

    @pytest.mark.asyncio
    async def test_explicit_session_id(self, store: SessionStore) -> None:
        session = await new_session(store, session_id="session_fixed")
        assert session.session_id == "session_fixed"

    @pytest.mark.asyncio
    async def test_empty_range_rejected(self, store: SessionStore) -> None:
        with pytest.raises(ConfigurationError, match="must be after"):
            await store.create_session("Bad", END, START, [coin_actor()])

    @pytest.mark.asyncio
    async def test_no_actors_rejected(self, store: SessionStore) -> None:
        with pytest.raises(ConfigurationError, match="at least one actor"):
            await store.create_session("Bad", START, END, [])

    @pytest.mark.asyncio
    async def test_duplicate_actor_ids_rejected(self, store: SessionStore) -> None:
        with pytest.raises(ConfigurationError, match="Duplicate actor IDs: coin"):
            await store.create_session("Bad", START, END, [coin_actor(), coin_actor()])

    @pytest.mark.asyncio
    async def test_no_performance_recorded_before_first_tick(self, store: SessionStore) -> None:
        await new_session(store)
        assert await store.get_performance_history("coin") == []


# =============================================================================
# Append
# =============================================================================


class TestAppendSnapshot:
    """Snapshot log ordering and status transitions."""

    @pytest.mark.asyncio
    async def test_first_append_starts_session(self, store: SessionStore) -> None:
        session = await new_session(store)

        updated = await store.append_snapshot(
            session.session_id, make_snapshot(START + HOUR, coin=1.5, steady=-0.5)
        )

        assert updated.status == SessionStatus.RUNNING
        assert len(updated.snapshots) == 2
        assert updated.metadata.total_ticks == 1
        assert updated.metadata.best_actor_id == "coin"
        assert updated.metadata.worst_actor_id == "steady"
        assert await store.get_session(session.session_id) == updated

    @pytest.mark.asyncio
    async def test_final_append_completes(self, store: SessionStore) -> None:
        session = await new_session(store)
        await store.append_snapshot(session.session_id, make_snapshot(START + HOUR, coin=0.0))

        done = await store.append_snapshot(
            session.session_id, make_snapshot(END, coin=0.0), final=True
        )

        assert done.status == SessionStatus.COMPLETED
        assert done.metadata.total_ticks == 2

    @pytest.mark.asyncio
    async def test_completed_session_rejects_appends(self, store: SessionStore) -> None:
        session = await new_session(store)
        await store.append_snapshot(session.session_id, make_snapshot(END), final=True)

        with pytest.raises(SessionClosedError):
            await store.append_snapshot(session.session_id, make_snapshot(END + HOUR))

    @pytest.mark.asyncio
    async def test_out_of_order_rejected(self, store: SessionStore) -> None:
        session = await new_session(store)
        await store.append_snapshot(session.session_id, make_snapshot(START + 2 * HOUR))

        with pytest.raises(OutOfOrderTickError) as exc_info:
            await store.append_snapshot(session.session_id, make_snapshot(START + HOUR))

        assert exc_info.value.last_timestamp == START + 2 * HOUR
        stored = await store.get_session(session.session_id)
        assert [s.timestamp for s in stored.snapshots] == [START, START + 2 * HOUR]

    @pytest.mark.asyncio
    async def test_stale_base_rejected(self, store: SessionStore) -> None:
        """A snapshot computed from an older last snapshot is not appended."""
        session = await new_session(store)
        await store.append_snapshot(
            session.session_id, make_snapshot(START + HOUR), expected_last=START
        )

        with pytest.raises(OutOfOrderTickError) as exc_info:
            await store.append_snapshot(
                session.session_id, make_snapshot(START + 2 * HOUR), expected_last=START
            )

        assert exc_info.value.last_timestamp == START + HOUR
        stored = await store.get_session(session.session_id)
        assert [s.timestamp for s in stored.snapshots] == [START, START + HOUR]
        assert stored.metadata.total_ticks == 1

    @pytest.mark.asyncio
    async def test_tick_at_seed_time_rejected(self, store: SessionStore) -> None:
        session = await new_session(store)
        with pytest.raises(OutOfOrderTickError):
            await store.append_snapshot(session.session_id, make_snapshot(START))

    @pytest.mark.asyncio
    async def test_unknown_session(self, store: SessionStore) -> None:
        with pytest.raises(SessionNotFoundError):
            await store.append_snapshot("session_missing", make_snapshot(START))

    @pytest.mark.asyncio
    async def test_trade_count_accumulates(self, store: SessionStore) -> None:
        session = await new_session(store)
        await store.append_snapshot(session.session_id, make_snapshot(START + HOUR, coin=0.0))

        stats = await store.get_session_stats(session.session_id)

        assert stats.total_snapshots == 2
        assert stats.total_trades == 0
        assert stats.duration == END - START

    @pytest.mark.asyncio
    async def test_failed_write_leaves_session_unchanged(
        self, test_settings: Settings, clock: FakeClock
    ) -> None:
        kv = FlakyKeyValueStore()
        store = SessionStore(kv, test_settings, clock=clock)
        session = await new_session(store)
        kv.fail_pushes = True

        with pytest.raises(PersistenceError):
            await store.append_snapshot(session.session_id, make_snapshot(START + HOUR, coin=1.0))

        stored = await store.get_session(session.session_id)
        assert len(stored.snapshots) == 1
        assert stored.status == SessionStatus.PENDING


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    """Actor configuration and explicit transitions."""

    @pytest.mark.asyncio
    async def test_configure_actors_reseeds(self, store: SessionStore) -> None:
        session = await new_session(store)

        updated = await store.configure_actors(
            session.session_id, [coin_actor("solo", initial_cash=5000.0)]
        )

        assert [c.id for c in updated.actor_configs] == ["solo"]
        assert len(updated.snapshots) == 1
        assert updated.snapshots[0].state_for("solo").cash == 5000.0

    @pytest.mark.asyncio
    async def test_configure_actors_after_start_rejected(self, store: SessionStore) -> None:
        session = await new_session(store)
        await store.start_session(session.session_id)

        with pytest.raises(InvalidSessionStateError):
            await store.configure_actors(session.session_id, [coin_actor()])

    @pytest.mark.asyncio
    async def test_transitions_move_forward(self, store: SessionStore) -> None:
        session = await new_session(store)

        running = await store.start_session(session.session_id)
        again = await store.start_session(session.session_id)
        completed = await store.complete_session(session.session_id)

        assert running.status == SessionStatus.RUNNING
        assert again.status == SessionStatus.RUNNING
        assert completed.status == SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_backwards_transition_rejected(self, store: SessionStore) -> None:
        session = await new_session(store)
        await store.complete_session(session.session_id)

        with pytest.raises(InvalidSessionStateError, match="completed to running"):
            await store.start_session(session.session_id)

    @pytest.mark.asyncio
    async def test_status_events(self, memory_kv, test_settings, clock) -> None:
        bus = EventBus()
        seen: list[tuple[EventType, str]] = []

        async def handler(event) -> None:
            seen.append((event.type, event.session_id))

        await bus.subscribe(None, handler)
        store = SessionStore(memory_kv, test_settings, event_bus=bus, clock=clock)

        session = await new_session(store, session_id="s1")
        await store.append_snapshot("s1", make_snapshot(START + HOUR))
        await store.append_snapshot("s1", make_snapshot(START + 2 * HOUR))
        await store.append_snapshot("s1", make_snapshot(END), final=True)
        await store.delete_session(session.session_id)

        assert seen == [
            (EventType.SESSION_CREATED, "s1"),
            (EventType.SESSION_STARTED, "s1"),
            (EventType.SESSION_COMPLETED, "s1"),
            (EventType.SESSION_DELETED, "s1"),
        ]


# =============================================================================
# Listing and Maintenance
# =============================================================================


class TestListing:
    """Listing, editing, deleting and pruning."""

    @pytest.mark.asyncio
    async def test_list_newest_first(self, store: SessionStore, clock: FakeClock) -> None:
        first = await new_session(store, name="first")
        clock.now += 1000
        second = await new_session(store, name="second")

        sessions = await store.list_sessions()

        assert [s.session_id for s in sessions] == [second.session_id, first.session_id]

    @pytest.mark.asyncio
    async def test_list_filters_by_tag(self, store: SessionStore) -> None:
        await new_session(store, session_id="a", tags=["x"])
        await new_session(store, session_id="b", tags=["y"])
        await new_session(store, session_id="c", tags=["x", "y"])

        tagged = await store.list_sessions(tags=["x"])

        assert sorted(s.session_id for s in tagged) == ["a", "c"]

    @pytest.mark.asyncio
    async def test_list_drops_expired_ids(
        self, store: SessionStore, memory_kv: MemoryKeyValueStore
    ) -> None:
        await new_session(store, session_id="gone")
        await new_session(store, session_id="kept")
        await memory_kv.delete("backtest:session:gone")

        sessions = await store.list_sessions()

        assert [s.session_id for s in sessions] == ["kept"]
        assert await memory_kv.set_members("backtest:sessions:list") == {"kept"}

    @pytest.mark.asyncio
    async def test_update_descriptive_fields(self, store: SessionStore, clock: FakeClock) -> None:
        session = await new_session(store)
        clock.now += 5000

        updated = await store.update_session(session.session_id, name="Renamed", tags=["t"])

        assert updated.name == "Renamed"
        assert updated.tags == ["t"]
        assert updated.description is None
        assert updated.updated_at == NOW + 5000
        assert updated.snapshots == session.snapshots

    @pytest.mark.asyncio
    async def test_update_unknown_raises(self, store: SessionStore) -> None:
        with pytest.raises(SessionNotFoundError):
            await store.update_session("nope", name="x")

    @pytest.mark.asyncio
    async def test_delete(self, store: SessionStore) -> None:
        session = await new_session(store)

        assert await store.delete_session(session.session_id) is True
        assert await store.get_session(session.session_id) is None
        assert await store.delete_session(session.session_id) is False
        assert await store.list_sessions() == []

    @pytest.mark.asyncio
    async def test_prune_by_age(self, store: SessionStore, clock: FakeClock) -> None:
        await new_session(store, session_id="old")
        clock.now += 10 * DAY
        await new_session(store, session_id="new")

        pruned = await store.prune_sessions(max_age_days=5)

        assert pruned == 1
        assert [s.session_id for s in await store.list_sessions()] == ["new"]

    @pytest.mark.asyncio
    async def test_prune_zero_deletes_all(self, store: SessionStore) -> None:
        await new_session(store, session_id="a")
        await new_session(store, session_id="b")

        assert await store.prune_sessions(0) == 2
        assert await store.list_sessions() == []

    @pytest.mark.asyncio
    async def test_stats_unknown_session(self, store: SessionStore) -> None:
        assert await store.get_session_stats("nope") is None


# =============================================================================
# Leaderboard
# =============================================================================


class TestLeaderboard:
    """Performance history and ranking."""

    @pytest.mark.asyncio
    async def test_ranking_excludes_zero_returns(self, store: SessionStore) -> None:
        actors = [coin_actor("a"), coin_actor("b"), steady_actor("z")]
        await store.create_session("L", START, END, actors, session_id="s1")
        await store.append_snapshot("s1", make_snapshot(START + HOUR, a=5.0, b=-3.0, z=0.0))

        top = await store.get_top_actors()

        assert [(e.actor_id, e.rank) for e in top] == [("a", 1), ("b", 2)]
        assert top[0].actor_name == "Coin a"
        assert top[0].strategy_type == StrategyType.CUSTOM
        assert top[0].total_return_percent == 5.0
        assert top[0].best_session.session_id == "s1"
        assert top[1].total_return == -3000.0

    @pytest.mark.asyncio
    async def test_best_of_several_records(self, store: SessionStore) -> None:
        await store.create_session("L", START, END, [coin_actor("a")], session_id="s1")
        await store.append_snapshot("s1", make_snapshot(START + HOUR, a=5.0))
        await store.append_snapshot("s1", make_snapshot(START + 2 * HOUR, a=2.0))

        history = await store.get_performance_history("a")
        best = await store.get_actor_best_performance("a")
        top = await store.get_top_actors()

        assert [r.total_return_percent for r in history] == [2.0, 5.0]
        assert history[0].timestamp == START + 2 * HOUR
        assert best.total_return_percent == 5.0
        assert best.timestamp == START + HOUR
        assert top[0].total_sessions == 2
        assert top[0].total_return_percent == 5.0

    @pytest.mark.asyncio
    async def test_newest_record_wins_ties(self, store: SessionStore) -> None:
        await store.create_session("L", START, END, [coin_actor("a")], session_id="s1")
        await store.append_snapshot("s1", make_snapshot(START + HOUR, a=4.0))
        await store.append_snapshot("s1", make_snapshot(START + 2 * HOUR, a=4.0))

        best = await store.get_actor_best_performance("a")

        assert best.timestamp == START + 2 * HOUR

    @pytest.mark.asyncio
    async def test_limit(self, store: SessionStore) -> None:
        actors = [coin_actor("a"), coin_actor("b"), coin_actor("c")]
        await store.create_session("L", START, END, actors, session_id="s1")
        await store.append_snapshot("s1", make_snapshot(START + HOUR, a=1.0, b=3.0, c=2.0))

        top = await store.get_top_actors(limit=2)

        assert [e.actor_id for e in top] == ["b", "c"]
        assert [e.rank for e in top] == [1, 2]

    @pytest.mark.asyncio
    async def test_history_is_capped(self, memory_kv, clock) -> None:
        store = SessionStore(memory_kv, make_settings(performance_history_limit=2), clock=clock)
        await store.create_session("L", START, END, [coin_actor("a")], session_id="s1")
        for i in range(1, 5):
            await store.append_snapshot("s1", make_snapshot(START + i * HOUR, a=float(i)))

        history = await store.get_performance_history("a")

        assert [r.total_return_percent for r in history] == [4.0, 3.0]

    @pytest.mark.asyncio
    async def test_unknown_actor(self, store: SessionStore) -> None:
        assert await store.get_actor_best_performance("ghost") is None
        assert await store.get_actor_profile("ghost") is None
