"""
Arena Backtest Engine

A tick-driven backtest simulator for A-share trading strategies:
- Time-indexed market data store backed by a TTL key/value store
- Pluggable decision engines (weighted signal, threshold, probabilistic)
- Average-cost portfolio accounting with mark-to-market every tick
- Append-only, replayable session snapshots served over FastAPI
"""

__version__ = "1.2.0"
__author__ = "Arena Development Team"

from arena_engine.config import Settings, get_settings

__all__ = ["__version__", "Settings", "get_settings"]
