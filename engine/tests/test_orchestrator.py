"""
Tests for tick orchestration, auto-run and replay.

The session covers Monday 2025-06-02 09:30 to Tuesday 2025-06-03 15:00
(Asia/Shanghai), eleven ticks after the seed snapshot. The coin actor buys
on one tick and sells on the next; the steady actor only holds.
"""

import asyncio
from dataclasses import dataclass

import pytest

from arena_engine.backtest.models import TickRequest
from arena_engine.backtest.orchestrator import TickOrchestrator, working_symbols
from arena_engine.backtest.replay import replay_session
from arena_engine.config import Settings
from arena_engine.domain import SessionStatus, TradeKind
from arena_engine.errors import (
    ConfigurationError,
    OutOfOrderTickError,
    SessionClosedError,
    SessionNotFoundError,
)
from arena_engine.market_data.store import MarketDataStore
from arena_engine.runtime.event_bus import EventBus, EventType
from arena_engine.runtime.kv_store import MemoryKeyValueStore
from arena_engine.sessions.store import SessionStore
from tests.fixtures.market_data import (
    FakeClock,
    FakeMarketDataSource,
    coin_actor,
    shanghai_ms,
    steady_actor,
    trading_slots,
)

START = shanghai_ms(2025, 6, 2, 9, 30)
END = shanghai_ms(2025, 6, 3, 15, 0)
AFTER_RANGE = shanghai_ms(2025, 6, 20, 20, 0)

# =============================================================================
# Fixtures
# =============================================================================


@dataclass
class Stack:
    """Stores and orchestrator wired over one in-memory backend."""

    source: FakeMarketDataSource
    market_data: MarketDataStore
    sessions: SessionStore
    orchestrator: TickOrchestrator
    clock: FakeClock

    async def preload(self, actors) -> None:
        await self.market_data.load(working_symbols(actors), START, END)

    async def create(self, actors=None, session_id: str = "session_test"):
        actors = actors or [coin_actor(), steady_actor()]
        return await self.sessions.create_session(
            "Arena", START, END, actors, session_id=session_id
        )


def build_stack(
    settings: Settings,
    source: FakeMarketDataSource | None = None,
    event_bus: EventBus | None = None,
    now: int = AFTER_RANGE,
) -> Stack:
    source = source or FakeMarketDataSource(
        base_prices={"600519.SS": 100.0, "000001.SZ": 10.0, "600036.SS": 40.0},
        failing={"600000.SS"},
    )
    kv = MemoryKeyValueStore(max_entries=10000)
    market_data = MarketDataStore(kv, source, settings)
    sessions = SessionStore(kv, settings)
    clock = FakeClock(now)
    orchestrator = TickOrchestrator(
        market_data, sessions, settings, event_bus=event_bus, clock=clock
    )
    return Stack(source, market_data, sessions, orchestrator, clock)


@pytest.fixture
def stack(test_settings: Settings, fake_source: FakeMarketDataSource) -> Stack:
    return build_stack(test_settings, fake_source)


def at(hour: int, minute: int = 0, day: int = 2) -> int:
    return shanghai_ms(2025, 6, day, hour, minute)


# =============================================================================
# Single Tick
# =============================================================================


class TestTick:
    """One tick across all actors."""

    @pytest.mark.asyncio
    async def test_first_tick_trades_and_snapshots(self, stack: Stack) -> None:
        actors = [coin_actor(), steady_actor()]
        await stack.preload(actors)
        await stack.create(actors)

        result = await stack.orchestrator.tick(
            TickRequest(session_id="session_test", timestamp=at(10, 30))
        )

        assert result.timestamp == at(10, 30)
        assert result.snapshot_count == 2
        assert result.session_status == SessionStatus.RUNNING
        assert result.is_final is False
        assert result.next_timestamp == at(11, 30)

        assert [(t.symbol, t.kind, t.quantity) for t in result.trades] == [
            ("600519.SS", TradeKind.BUY, 100),
            ("000001.SZ", TradeKind.BUY, 100),
        ]
        assert [t.amount for t in result.trades] == [10130.12, 1013.01]
        assert len(result.decisions) == 3
        assert [q.symbol for q in result.market_data] == ["600519.SS", "000001.SZ", "600036.SS"]

        coin = next(s for s in result.actor_states if s.actor_id == "coin")
        assert coin.cash == pytest.approx(88856.87)
        assert coin.total_assets == pytest.approx(99988.87)
        assert coin.last_update_time == at(10, 30)
        steady = next(s for s in result.actor_states if s.actor_id == "steady")
        assert steady.cash == 100000.0
        assert steady.portfolio == []

    @pytest.mark.asyncio
    async def test_snapshot_is_persisted(self, stack: Stack) -> None:
        actors = [coin_actor(), steady_actor()]
        await stack.preload(actors)
        await stack.create(actors)

        result = await stack.orchestrator.tick(
            TickRequest(session_id="session_test", timestamp=at(10, 30))
        )

        session = await stack.sessions.get_session("session_test")
        snapshot = session.last_snapshot
        assert snapshot.timestamp == result.timestamp
        assert snapshot.trades == result.trades
        assert snapshot.actor_states == result.actor_states
        assert session.metadata.total_trades == 2

    @pytest.mark.asyncio
    async def test_second_tick_sells(self, stack: Stack) -> None:
        actors = [coin_actor(), steady_actor()]
        await stack.preload(actors)
        await stack.create(actors)
        await stack.orchestrator.tick(TickRequest(session_id="session_test", timestamp=at(10, 30)))

        result = await stack.orchestrator.tick(
            TickRequest(session_id="session_test", timestamp=at(11, 30))
        )

        assert [t.kind for t in result.trades] == [TradeKind.SELL, TradeKind.SELL]
        coin = next(s for s in result.actor_states if s.actor_id == "coin")
        assert coin.portfolio == []
        assert coin.total_assets == coin.cash

    @pytest.mark.asyncio
    async def test_iso_timestamp_accepted(self, stack: Stack) -> None:
        await stack.create()

        request = TickRequest(session_id="session_test", timestamp="2025-06-02T10:30:00+08:00")

        assert request.timestamp == at(10, 30)

    @pytest.mark.asyncio
    async def test_off_hours_timestamp_snaps_forward(self, stack: Stack) -> None:
        await stack.create()

        result = await stack.orchestrator.tick(
            TickRequest(session_id="session_test", timestamp=at(12, 15))
        )

        assert result.timestamp == at(13, 0)

    @pytest.mark.asyncio
    async def test_weekend_snaps_to_monday(self, stack: Stack) -> None:
        await stack.create()

        result = await stack.orchestrator.tick(
            TickRequest(session_id="session_test", timestamp=shanghai_ms(2025, 6, 7, 10, 0))
        )

        assert result.timestamp == shanghai_ms(2025, 6, 9, 9, 30)
        assert result.is_final is True

    @pytest.mark.asyncio
    async def test_last_slot_is_final(self, stack: Stack) -> None:
        await stack.create()

        result = await stack.orchestrator.tick(
            TickRequest(session_id="session_test", timestamp=END)
        )

        assert result.is_final is True
        assert result.next_timestamp is None
        assert result.session_status == SessionStatus.COMPLETED

        with pytest.raises(SessionClosedError):
            await stack.orchestrator.tick(
                TickRequest(session_id="session_test", timestamp=END + 3_600_000)
            )

    @pytest.mark.asyncio
    async def test_out_of_order_tick(self, stack: Stack) -> None:
        await stack.create()
        await stack.orchestrator.tick(TickRequest(session_id="session_test", timestamp=at(11, 30)))

        with pytest.raises(OutOfOrderTickError):
            await stack.orchestrator.tick(
                TickRequest(session_id="session_test", timestamp=at(10, 30))
            )

        session = await stack.sessions.get_session("session_test")
        assert len(session.snapshots) == 2

    @pytest.mark.asyncio
    async def test_repeat_tick_rejected(self, stack: Stack) -> None:
        await stack.create()
        await stack.orchestrator.tick(TickRequest(session_id="session_test", timestamp=at(10, 30)))

        with pytest.raises(OutOfOrderTickError):
            await stack.orchestrator.tick(
                TickRequest(session_id="session_test", timestamp=at(10, 30))
            )

    @pytest.mark.asyncio
    async def test_missing_parameters(self, stack: Stack) -> None:
        with pytest.raises(ConfigurationError, match="timestamp"):
            await stack.orchestrator.tick(TickRequest(session_id="session_test"))
        with pytest.raises(ConfigurationError, match="session_id"):
            await stack.orchestrator.tick(TickRequest(timestamp=at(10, 30)))

    @pytest.mark.asyncio
    async def test_unknown_session(self, stack: Stack) -> None:
        with pytest.raises(SessionNotFoundError):
            await stack.orchestrator.tick(TickRequest(session_id="nope", timestamp=at(10, 30)))


# =============================================================================
# Data Edge Cases
# =============================================================================


class TestMarketDataFallbacks:
    """Live fallback and missing symbols."""

    @pytest.mark.asyncio
    async def test_live_quotes_without_preload(self, stack: Stack) -> None:
        await stack.create([coin_actor()])

        result = await stack.orchestrator.tick(
            TickRequest(session_id="session_test", timestamp=at(10, 30))
        )

        assert stack.source.quote_calls == ["600519.SS", "000001.SZ"]
        assert stack.source.history_calls == []
        assert [t.amount for t in result.trades] == [10010.0, 1001.0]

    @pytest.mark.asyncio
    async def test_failed_symbol_is_skipped(self, stack: Stack) -> None:
        actors = [coin_actor(pool=["600519", "600000"])]
        await stack.preload(actors)
        await stack.create(actors)

        result = await stack.orchestrator.tick(
            TickRequest(session_id="session_test", timestamp=at(10, 30))
        )

        assert [d.symbol for d in result.decisions] == ["600519.SS"]
        assert [t.symbol for t in result.trades] == ["600519.SS"]
        assert [q.symbol for q in result.market_data] == ["600519.SS"]

    @pytest.mark.asyncio
    async def test_unrelated_preload_uses_live_quotes(self, stack: Stack) -> None:
        await stack.preload([steady_actor()])
        await stack.create([coin_actor()])

        result = await stack.orchestrator.tick(
            TickRequest(session_id="session_test", timestamp=at(10, 30))
        )

        assert stack.source.quote_calls == ["600519.SS", "000001.SZ"]
        assert len(result.decisions) == 2
        assert [t.amount for t in result.trades] == [10010.0, 1001.0]

    @pytest.mark.asyncio
    async def test_range_start_loads_missing_symbols(self, stack: Stack) -> None:
        await stack.create([coin_actor()])

        result = await stack.orchestrator.tick(
            TickRequest(session_id="session_test", timestamp=at(10, 30), range_start=START)
        )

        assert sorted(stack.source.history_calls) == [("000001.SZ", "1h"), ("600519.SS", "1h")]
        assert stack.source.quote_calls == []
        assert [t.amount for t in result.trades] == [10130.12, 1013.01]

    @pytest.mark.asyncio
    async def test_range_start_skips_loaded_symbols(self, stack: Stack) -> None:
        actors = [coin_actor()]
        await stack.preload(actors)
        await stack.create(actors)
        stack.source.history_calls.clear()

        await stack.orchestrator.tick(
            TickRequest(session_id="session_test", timestamp=at(10, 30), range_start=START)
        )

        assert stack.source.history_calls == []

    @pytest.mark.asyncio
    async def test_inactive_actor_is_carried_forward(self, stack: Stack) -> None:
        idle = coin_actor("idle", pool=["600036"]).model_copy(update={"is_active": False})
        actors = [coin_actor(), idle]
        await stack.preload(actors)
        await stack.create(actors)

        result = await stack.orchestrator.tick(
            TickRequest(session_id="session_test", timestamp=at(10, 30))
        )

        state = next(s for s in result.actor_states if s.actor_id == "idle")
        assert state.cash == 100000.0
        assert state.total_assets == 100000.0
        assert state.portfolio == []
        assert all(d.actor_id != "idle" for d in result.decisions)
        assert [q.symbol for q in result.market_data] == ["600519.SS", "000001.SZ"]


# =============================================================================
# Auto-run
# =============================================================================


class TestRun:
    """Hour-by-hour runs to completion."""

    @pytest.mark.asyncio
    async def test_run_to_completion(self, stack: Stack) -> None:
        actors = [coin_actor(), steady_actor()]
        await stack.create(actors)

        result = await stack.orchestrator.run("session_test")

        assert result.ticks == 11
        assert result.total_trades == 22
        assert result.first_timestamp == at(10, 30)
        assert result.last_timestamp == END
        assert result.stopped_reason == "completed"
        assert result.session_status == SessionStatus.COMPLETED

        session = await stack.sessions.get_session("session_test")
        assert [s.timestamp for s in session.snapshots] == trading_slots(START, END)
        assert session.status == SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_run_loads_missing_data(self, stack: Stack) -> None:
        await stack.create()

        await stack.orchestrator.run("session_test", max_ticks=1)

        assert sorted(s for s, _ in stack.source.history_calls) == [
            "000001.SZ",
            "600036.SS",
            "600519.SS",
        ]
        assert await stack.market_data.is_loaded(["600519.SS", "000001.SZ", "600036.SS"])

    @pytest.mark.asyncio
    async def test_max_ticks(self, stack: Stack) -> None:
        await stack.create()

        result = await stack.orchestrator.run("session_test", max_ticks=3)

        assert result.ticks == 3
        assert result.stopped_reason == "max_ticks"
        assert result.session_status == SessionStatus.RUNNING

        resumed = await stack.orchestrator.run("session_test")
        assert resumed.first_timestamp == at(14, 0)
        assert resumed.ticks == 8
        assert resumed.stopped_reason == "completed"

    @pytest.mark.asyncio
    async def test_run_stops_at_last_completed_close(self, test_settings: Settings) -> None:
        stack = build_stack(test_settings, now=shanghai_ms(2025, 6, 3, 12, 0))
        await stack.create()

        result = await stack.orchestrator.run("session_test")

        assert result.ticks == 5
        assert result.last_timestamp == at(15, 0)
        assert result.stopped_reason == "completed"

    @pytest.mark.asyncio
    async def test_run_completed_session_raises(self, stack: Stack) -> None:
        await stack.create()
        await stack.orchestrator.run("session_test")

        with pytest.raises(SessionClosedError):
            await stack.orchestrator.run("session_test")

    @pytest.mark.asyncio
    async def test_events(self, test_settings: Settings) -> None:
        bus = EventBus()
        seen: list[EventType] = []

        async def handler(event) -> None:
            seen.append(event.type)

        await bus.subscribe(None, handler)
        stack = build_stack(test_settings, event_bus=bus)
        await stack.create()

        await stack.orchestrator.run("session_test", max_ticks=2)

        assert seen == [EventType.TICK_COMPLETED, EventType.TICK_COMPLETED, EventType.RUN_COMPLETED]


# =============================================================================
# Determinism and Replay
# =============================================================================


class TestDeterminism:
    """Same inputs, same snapshots."""

    @pytest.mark.asyncio
    async def test_independent_runs_match(self, test_settings: Settings) -> None:
        actors = [coin_actor(buy=0.5, sell=0.5), steady_actor()]
        first = build_stack(test_settings)
        second = build_stack(test_settings)
        await first.create(actors, session_id="session_same")
        await second.create(actors, session_id="session_same")

        await first.orchestrator.run("session_same")
        await second.orchestrator.run("session_same")

        a = await first.sessions.get_session("session_same")
        b = await second.sessions.get_session("session_same")
        assert a.snapshots == b.snapshots

    @pytest.mark.asyncio
    async def test_coin_decisions_depend_on_session(self, test_settings: Settings) -> None:
        actors = [coin_actor(buy=0.5, sell=0.5)]
        stack = build_stack(test_settings)
        await stack.create(actors, session_id="session_one")
        await stack.create(actors, session_id="session_two")

        await stack.orchestrator.run("session_one")
        await stack.orchestrator.run("session_two")

        one = await stack.sessions.get_session("session_one")
        two = await stack.sessions.get_session("session_two")
        draws_one = [d.signal_breakdown.random_draw for s in one.snapshots for d in s.decisions]
        draws_two = [d.signal_breakdown.random_draw for s in two.snapshots for d in s.decisions]
        assert draws_one != draws_two


class TestConcurrentTicks:
    """Ticks on one session commit one after another."""

    @pytest.mark.asyncio
    async def test_gathered_ticks_build_on_each_other(self, stack: Stack) -> None:
        actors = [coin_actor(), steady_actor()]
        await stack.preload(actors)
        await stack.create(actors)

        first, second = await asyncio.gather(
            stack.orchestrator.tick(TickRequest(session_id="session_test", timestamp=at(10, 30))),
            stack.orchestrator.tick(TickRequest(session_id="session_test", timestamp=at(11, 30))),
        )

        assert [t.kind for t in first.trades] == [TradeKind.BUY, TradeKind.BUY]
        assert [t.kind for t in second.trades] == [TradeKind.SELL, TradeKind.SELL]
        assert second.snapshot_count == 3

        session = await stack.sessions.get_session("session_test")
        assert [s.timestamp for s in session.snapshots] == [START, at(10, 30), at(11, 30)]
        assert session.snapshots[1].state_for("coin").cash == pytest.approx(88856.87)
        assert replay_session(session).consistent

    @pytest.mark.asyncio
    async def test_gathered_earlier_tick_after_later_is_rejected(self, stack: Stack) -> None:
        await stack.create()

        later, earlier = await asyncio.gather(
            stack.orchestrator.tick(TickRequest(session_id="session_test", timestamp=at(11, 30))),
            stack.orchestrator.tick(TickRequest(session_id="session_test", timestamp=at(10, 30))),
            return_exceptions=True,
        )

        assert later.timestamp == at(11, 30)
        assert isinstance(earlier, OutOfOrderTickError)
        session = await stack.sessions.get_session("session_test")
        assert len(session.snapshots) == 2
        assert replay_session(session).consistent


class TestReplay:
    """Stored snapshots re-derive from trades and quotes."""

    @pytest.mark.asyncio
    async def test_completed_run_replays_exactly(self, stack: Stack) -> None:
        await stack.create([coin_actor(buy=0.6, sell=0.4), steady_actor()])
        await stack.orchestrator.run("session_test")

        session = await stack.sessions.get_session("session_test")
        report = replay_session(session)

        assert report.consistent
        assert report.snapshots == 12
        assert report.states["coin"] == session.last_snapshot.state_for("coin")

    @pytest.mark.asyncio
    async def test_tampered_state_detected(self, stack: Stack) -> None:
        await stack.create()
        await stack.orchestrator.run("session_test")
        session = await stack.sessions.get_session("session_test")

        snapshot = session.snapshots[3]
        coin = snapshot.state_for("coin")
        tampered = snapshot.model_copy(
            update={
                "actor_states": [
                    coin.model_copy(update={"cash": coin.cash + 1}) if s.actor_id == "coin" else s
                    for s in snapshot.actor_states
                ]
            }
        )
        session = session.model_copy(
            update={"snapshots": [*session.snapshots[:3], tampered, *session.snapshots[4:]]}
        )

        report = replay_session(session)

        assert not report.consistent
        assert report.mismatches == [f"{snapshot.timestamp}: coin differs"]


class TestWorkingSymbols:
    def test_union_in_first_seen_order(self) -> None:
        actors = [
            coin_actor("a", pool=["000001", "600519"]),
            coin_actor("b", pool=["600519.SS", "600036"]),
        ]
        assert working_symbols(actors) == ["000001.SZ", "600519.SS", "600036.SS"]

    def test_inactive_pools_ignored(self) -> None:
        idle = coin_actor("idle", pool=["600036"]).model_copy(update={"is_active": False})
        assert working_symbols([coin_actor(), idle]) == ["600519.SS", "000001.SZ"]