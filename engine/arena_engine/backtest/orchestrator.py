"""
Tick orchestration.

One tick advances every actor of a session to a timestamp:

    validate -> snap -> symbols -> market data -> actors (parallel)
        -> mark to market -> snapshot -> append

Actors are independent: each runs as its own task and folds over its own
symbol pool in pool order, so one actor's trades never see another's state.
Ticks on one session are serialized by the orchestrator, and the session
store rejects a snapshot whose base is no longer the last snapshot.
"""

import asyncio
import random
from collections.abc import Callable
from dataclasses import dataclass, field

from arena_engine.backtest.executor import TradeExecutor
from arena_engine.backtest.models import RunResult, TickRequest, TickResult
from arena_engine.backtest.portfolio import (
    apply_trade,
    check_invariants,
    initial_capital_for,
    mark_to_market,
)
from arena_engine.config import Settings
from arena_engine.domain import (
    ActorConfig,
    ActorState,
    ComprehensiveAnalysis,
    Decision,
    Indicators,
    Quote,
    Session,
    SessionStatus,
    Snapshot,
    Trade,
    now_millis,
)
from arena_engine.errors import (
    ConfigurationError,
    DataUnavailableError,
    OutOfOrderTickError,
    SessionClosedError,
)
from arena_engine.interfaces.strategy import DecisionContext
from arena_engine.logging import get_logger, session_context
from arena_engine.market_data.calendar import TradingCalendar
from arena_engine.market_data.store import MarketDataStore
from arena_engine.market_data.symbols import base_symbol, normalize_symbols
from arena_engine.runtime.event_bus import Event, EventBus, EventType
from arena_engine.sessions.store import SessionStore
from arena_engine.strategies.probabilistic import seed_for
from arena_engine.strategies.registry import create_decision_engine

logger = get_logger(__name__)


@dataclass
class MarketView:
    """Market data for one tick, keyed by normalized symbol."""

    quotes: dict[str, Quote] = field(default_factory=dict)
    indicators: dict[str, Indicators] = field(default_factory=dict)
    analyses: dict[str, ComprehensiveAnalysis] = field(default_factory=dict)
    live: bool = False

    @property
    def prices(self) -> dict[str, float]:
        return {symbol: q.price for symbol, q in self.quotes.items()}

    def quote(self, symbol: str, ts: int) -> Quote:
        quote = self.quotes.get(symbol)
        if quote is None:
            raise DataUnavailableError(symbol, ts)
        return quote


@dataclass
class ActorStep:
    """One actor's output for a tick."""

    state: ActorState
    trades: list[Trade] = field(default_factory=list)
    decisions: list[Decision] = field(default_factory=list)


def working_symbols(actor_configs: list[ActorConfig]) -> list[str]:
    """Union of active actors' pools, normalized, in first-seen order."""
    pools = [
        symbol
        for config in actor_configs
        if config.is_active
        for symbol in config.strategy_config.symbol_pool
    ]
    return normalize_symbols(pools)


class TickOrchestrator:
    """
    Runs ticks against stored sessions.

    Probabilistic engines are seeded from (session, actor, tick timestamp),
    so a tick's draws do not depend on how many ticks ran before it in this
    process.
    """

    def __init__(
        self,
        market_data: MarketDataStore,
        sessions: SessionStore,
        settings: Settings,
        calendar: TradingCalendar | None = None,
        executor: TradeExecutor | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        self._market_data = market_data
        self._sessions = sessions
        self._settings = settings
        self._calendar = calendar or TradingCalendar(tz=settings.tz)
        self._executor = executor or TradeExecutor()
        self._event_bus = event_bus
        self._clock = clock
        self._tick_locks: dict[str, asyncio.Lock] = {}

    @property
    def calendar(self) -> TradingCalendar:
        return self._calendar

    # =========================================================================
    # Tick
    # =========================================================================

    async def tick(self, request: TickRequest) -> TickResult:
        """
        Advance one session to request.timestamp.

        Raises:
            ConfigurationError: Missing session_id or timestamp
            SessionNotFoundError: Unknown session
            SessionClosedError: Session already completed
            OutOfOrderTickError: Snapped timestamp not after the last snapshot
            StateInvariantViolation: Accounting bug; nothing is written
            PersistenceError: Store failure; nothing is written
        """
        if not request.session_id:
            raise ConfigurationError("session_id is required")
        if request.timestamp is None:
            raise ConfigurationError("timestamp is required")

        lock = self._tick_locks.setdefault(request.session_id, asyncio.Lock())
        with session_context(request.session_id):
            async with lock:
                return await self._tick(request)

    async def _tick(self, request: TickRequest) -> TickResult:
        session_id, requested, range_end = request.session_id, request.timestamp, request.range_end
        session = await self._sessions.require_session(session_id)
        if session.is_completed:
            raise SessionClosedError(
                f"Session {session_id} is completed",
                session_id=session_id,
                status=session.status.value,
            )

        ts = self._calendar.next_trading_time(requested)
        last = session.last_timestamp
        if last is not None and ts <= last:
            raise OutOfOrderTickError(
                f"Tick {ts} is not after last snapshot {last}",
                timestamp=ts,
                last_timestamp=last,
            )
        if ts != requested:
            logger.debug("Snapped tick %d to trading time %d", requested, ts)

        symbols = working_symbols(session.actor_configs)
        end = range_end or session.end_time
        if request.range_start is not None and symbols:
            if not await self._market_data.is_loaded(symbols):
                await self._market_data.load(symbols, request.range_start, end)
        market = await self._market_view(symbols, ts)

        steps = await asyncio.gather(
            *(self._step_actor(session, config, market, ts) for config in session.actor_configs)
        )

        snapshot = Snapshot(
            timestamp=ts,
            actor_states=[step.state for step in steps],
            trades=[t for step in steps for t in step.trades],
            decisions=[d for step in steps for d in step.decisions],
            market_data=[market.quotes[s] for s in symbols if s in market.quotes],
        )

        effective_end = self._calendar.effective_end(end, self._clock())
        next_ts = self._calendar.advance(ts)
        final = next_ts > effective_end

        updated = await self._sessions.append_snapshot(
            session_id, snapshot, final=final, expected_last=last
        )

        logger.info(
            "Tick %d: %d actors, %d decisions, %d trades%s",
            ts,
            len(snapshot.actor_states),
            len(snapshot.decisions),
            len(snapshot.trades),
            " (final)" if final else "",
        )
        await self._publish(
            EventType.TICK_COMPLETED,
            session_id,
            {
                "timestamp": ts,
                "trades": len(snapshot.trades),
                "decisions": len(snapshot.decisions),
                "final": final,
            },
        )

        return TickResult(
            session_id=session_id,
            timestamp=ts,
            actor_states=snapshot.actor_states,
            trades=snapshot.trades,
            decisions=snapshot.decisions,
            market_data=snapshot.market_data,
            snapshot_count=len(updated.snapshots),
            session_status=updated.status,
            is_final=final,
            next_timestamp=None if final else next_ts,
        )

    async def _market_view(self, symbols: list[str], ts: int) -> MarketView:
        """Cached data at ts when every symbol is loaded, otherwise live quotes only."""
        if await self._market_data.is_loaded(symbols):
            quotes, indicators, analyses = await asyncio.gather(
                self._market_data.batch_quotes_at(symbols, ts),
                self._market_data.batch_indicators_at(symbols, ts),
                self._market_data.batch_analysis_at(symbols, ts),
            )
            return MarketView(
                quotes={q.symbol: q for q in quotes},
                indicators=indicators,
                analyses=analyses,
            )

        logger.warning("Market data not loaded, falling back to live quotes")
        quotes = await self._market_data.live_quotes(symbols)
        return MarketView(quotes={q.symbol: q for q in quotes}, live=True)

    async def _step_actor(
        self,
        session: Session,
        config: ActorConfig,
        market: MarketView,
        ts: int,
    ) -> ActorStep:
        previous = session.last_snapshot.state_for(config.id) if session.last_snapshot else None
        state = previous or ActorState.initial(config, ts)
        initial_capital = initial_capital_for(
            config.id, session.snapshots, default=config.initial_cash
        )
        step = ActorStep(state=state)

        if config.is_active:
            rng = random.Random(seed_for(session.session_id, config.id, ts))
            engine = create_decision_engine(config.strategy_config, rng=rng)
            prices = market.prices

            for symbol in normalize_symbols(config.strategy_config.symbol_pool):
                try:
                    quote = market.quote(symbol, ts)
                except DataUnavailableError as e:
                    logger.debug("%s skips %s: %s", config.id, symbol, e)
                    continue

                context = DecisionContext(
                    actor_id=config.id,
                    actor_name=config.name,
                    cash=step.state.cash,
                    quote=quote,
                    timestamp=ts,
                    position=step.state.position(symbol),
                    indicators=market.indicators.get(symbol),
                    analysis=market.analyses.get(symbol),
                    stock_name=base_symbol(symbol),
                )
                decision = engine.decide(context)
                step.decisions.append(decision)

                trade = self._executor.execute(step.state, decision, quote)
                if trade is not None:
                    step.state = apply_trade(step.state, trade, prices)
                    step.trades.append(trade)

        step.state = mark_to_market(step.state, market.prices, initial_capital, ts)
        check_invariants(step.state)
        return step

    # =========================================================================
    # Auto-run
    # =========================================================================

    async def run(
        self,
        session_id: str,
        start: int | None = None,
        end: int | None = None,
        max_ticks: int | None = None,
    ) -> RunResult:
        """
        Tick a session hour by hour until it completes.

        Starts at start (snapped) or one step after the last snapshot, and
        stops after the final tick, after max_ticks, or when the next time
        passes the effective end. Market data for the session range is
        loaded first when missing.

        Raises:
            SessionNotFoundError: Unknown session
            SessionClosedError: Session already completed
        """
        limit = min(max_ticks or self._settings.max_ticks_per_run, self._settings.max_ticks_per_run)
        session = await self._sessions.require_session(session_id)
        if session.is_completed:
            raise SessionClosedError(
                f"Session {session_id} is completed",
                session_id=session_id,
                status=session.status.value,
            )

        end = end or session.end_time
        effective_end = self._calendar.effective_end(end, self._clock())
        last = session.last_timestamp

        if start is not None:
            ts = self._calendar.next_trading_time(start)
        elif last is not None:
            ts = self._calendar.advance(last)
        else:
            ts = self._calendar.next_trading_time(session.start_time)
        while last is not None and ts <= last:
            ts = self._calendar.advance(ts)

        symbols = working_symbols(session.actor_configs)
        if symbols and not await self._market_data.is_loaded(symbols):
            await self._market_data.load(symbols, session.start_time, end)

        result = RunResult(session_id=session_id, session_status=session.status, stopped_reason="")
        reason = "range_exhausted"
        while ts <= effective_end:
            if result.ticks >= limit:
                reason = "max_ticks"
                break
            tick = await self.tick(TickRequest(session_id=session_id, timestamp=ts, range_end=end))
            result.ticks += 1
            result.total_trades += len(tick.trades)
            result.first_timestamp = result.first_timestamp or tick.timestamp
            result.last_timestamp = tick.timestamp
            result.session_status = tick.session_status
            if tick.is_final:
                reason = "completed"
                break
            ts = self._calendar.advance(tick.timestamp)

        if reason == "range_exhausted" and result.session_status != SessionStatus.COMPLETED:
            completed = await self._sessions.complete_session(session_id)
            result.session_status = completed.status

        result.stopped_reason = reason
        logger.info(
            "Run of %s: %d ticks, %d trades, stopped: %s",
            session_id,
            result.ticks,
            result.total_trades,
            reason,
        )
        await self._publish(EventType.RUN_COMPLETED, session_id, result.model_dump())
        return result

    async def _publish(self, event_type: EventType, session_id: str, data: dict) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(
                Event(type=event_type, data=data, session_id=session_id)
            )
