#!/usr/bin/env python3
"""
Create a game session and run it to completion.

Usage:
    python scripts/run_session.py --player Alice --strategy balanced
    python scripts/run_session.py --player Bob --strategy aggressive --start 2025-06-02 --end 2025-06-13
"""

import argparse
import asyncio
from datetime import datetime

from arena_engine.backtest.orchestrator import TickOrchestrator
from arena_engine.backtest.replay import replay_session
from arena_engine.config import get_settings
from arena_engine.domain import StrategyType, now_millis, to_millis
from arena_engine.logging import setup_logging
from arena_engine.market_data.store import MarketDataStore
from arena_engine.market_data.yahoo import YahooFinanceClient
from arena_engine.runtime.event_bus import get_event_bus
from arena_engine.runtime.kv_store import create_kv_store
from arena_engine.sessions.factory import GAME_TAGS, build_game_actors, game_window, new_user_id
from arena_engine.sessions.store import SessionStore


async def run(
    player: str,
    strategy: str,
    start: int | None,
    end: int | None,
    max_ticks: int | None,
) -> int:
    settings = get_settings()
    kv = create_kv_store(settings)
    source = YahooFinanceClient(settings)
    event_bus = get_event_bus()

    market_data = MarketDataStore(kv, source, settings, event_bus=event_bus)
    sessions = SessionStore(kv, settings, event_bus=event_bus)
    orchestrator = TickOrchestrator(market_data, sessions, settings, event_bus=event_bus)

    try:
        now = now_millis()
        default_start, default_end = game_window(now)
        actors = build_game_actors(player, strategy, new_user_id(now))
        session = await sessions.create_session(
            name=f"{player}'s arena",
            start_time=start or default_start,
            end_time=end or default_end,
            actor_configs=actors,
            tags=GAME_TAGS,
        )
        print(f"Session: {session.session_id}")

        result = await orchestrator.run(session.session_id, max_ticks=max_ticks)
        print(f"Ticks: {result.ticks} | Trades: {result.total_trades} | Stopped: {result.stopped_reason}")

        session = await sessions.require_session(session.session_id)
        last = session.last_snapshot
        if last is not None:
            print(f"\n{'Actor':<34} {'Assets':>12} {'Return %':>9}")
            for state in sorted(last.actor_states, key=lambda s: -s.total_return_percent):
                print(f"{state.name:<34} {state.total_assets:>12.2f} {state.total_return_percent:>9.2f}")

        report = replay_session(session)
        print(f"\nReplay consistent: {report.consistent} ({report.snapshots} snapshots)")
        return 0 if report.consistent else 1
    finally:
        await source.close()
        await kv.close()


def main():
    parser = argparse.ArgumentParser(description="Run an Arena game session")
    parser.add_argument("--player", default="Player", help="User actor name")
    parser.add_argument(
        "--strategy",
        default=StrategyType.BALANCED.value,
        choices=[t.value for t in StrategyType if t != StrategyType.CUSTOM],
        help="User actor strategy preset",
    )
    parser.add_argument("--start", help="Start date or ISO timestamp (default: 14 days ago)")
    parser.add_argument("--end", help="End date or ISO timestamp (default: now)")
    parser.add_argument("--max-ticks", type=int, help="Stop after this many ticks")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(level=settings.log_level, json_output=settings.log_json)

    print(f"\n{'='*60}")
    print(f"ARENA SESSION - {datetime.now().strftime('%Y-%m-%d %H:%M')}")
    print(f"{'='*60}")

    start = to_millis(args.start) if args.start else None
    end = to_millis(args.end) if args.end else None
    raise SystemExit(asyncio.run(run(args.player, args.strategy, start, end, args.max_ticks)))


if __name__ == "__main__":
    main()
