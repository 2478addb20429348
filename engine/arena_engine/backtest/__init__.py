"""
Backtest simulation: execution, accounting, tick orchestration and replay.
"""

from arena_engine.backtest.executor import FEE_RATE, MAX_LOT, TradeExecutor
from arena_engine.backtest.models import RunRequest, RunResult, TickRequest, TickResult
from arena_engine.backtest.orchestrator import TickOrchestrator, working_symbols
from arena_engine.backtest.portfolio import (
    apply_trade,
    check_invariants,
    initial_capital_for,
    mark_to_market,
)
from arena_engine.backtest.replay import ReplayReport, replay_session

__all__ = [
    "FEE_RATE",
    "MAX_LOT",
    "ReplayReport",
    "RunRequest",
    "RunResult",
    "TickOrchestrator",
    "TickRequest",
    "TickResult",
    "TradeExecutor",
    "apply_trade",
    "check_invariants",
    "initial_capital_for",
    "mark_to_market",
    "replay_session",
    "working_symbols",
]
