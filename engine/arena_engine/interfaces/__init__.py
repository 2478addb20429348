"""
Interfaces (abstract base classes) for the Arena engine.

These define the contracts that must be implemented by:
- KeyValueStore: TTL key/value persistence (memory, Redis)
- MarketDataSource: Upstream market data (Yahoo Finance)
- DecisionEngine: Trading strategy logic
"""

from arena_engine.interfaces.data_source import MarketDataSource
from arena_engine.interfaces.kv_store import KeyValueStore
from arena_engine.interfaces.strategy import DecisionContext, DecisionEngine

__all__ = [
    "DecisionContext",
    "DecisionEngine",
    "KeyValueStore",
    "MarketDataSource",
]
