"""
Market data: upstream client, time-indexed store, symbols and trading calendar.
"""

from arena_engine.market_data.calendar import TradingCalendar
from arena_engine.market_data.store import MarketDataStore, nearest
from arena_engine.market_data.symbols import base_symbol, normalize_symbol, normalize_symbols
from arena_engine.market_data.yahoo import YahooFinanceClient

__all__ = [
    "MarketDataStore",
    "TradingCalendar",
    "YahooFinanceClient",
    "base_symbol",
    "nearest",
    "normalize_symbol",
    "normalize_symbols",
]
