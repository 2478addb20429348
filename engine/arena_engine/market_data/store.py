"""
Market data store.

Holds per-symbol quote and indicator series in the key/value store and
answers nearest-timestamp lookups. Series are written once by load() and are
read-only afterwards, so concurrent readers never contend.

Key layout (all under settings.cache_prefix):
    quotes:{symbol}       list of Quote, chronological
    indicators:{symbol}   list of Indicators, chronological
    advanced:{symbol}     AdvancedTechnical
    fundamental:{symbol}  Fundamentals
    sentiment:{symbol}    Sentiment
    status                CacheStatus of the last load
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Protocol, TypeVar

from pydantic import BaseModel, TypeAdapter

from arena_engine.config import Settings
from arena_engine.domain import (
    AdvancedTechnical,
    Bar,
    CacheStatus,
    ComprehensiveAnalysis,
    Fundamentals,
    Indicators,
    Quote,
    Sentiment,
    from_millis,
)
from arena_engine.errors import UpstreamFetchError
from arena_engine.interfaces.data_source import MarketDataSource
from arena_engine.interfaces.kv_store import KeyValueStore
from arena_engine.logging import get_logger
from arena_engine.market_data.symbols import normalize_symbol, normalize_symbols
from arena_engine.runtime.cache import BoundedLRUCache
from arena_engine.runtime.event_bus import Event, EventBus, EventType
from arena_engine.strategies.indicators import compute_indicator_series

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

_QUOTES = TypeAdapter(list[Quote])
_INDICATORS = TypeAdapter(list[Indicators])

STATIC_KINDS = ("advanced", "fundamental", "sentiment")
SERIES_KINDS = ("quotes", "indicators")


class _Timestamped(Protocol):
    timestamp: int


T = TypeVar("T", bound=_Timestamped)


def nearest(series: Sequence[T], ts: int) -> T | None:
    """
    Record whose timestamp is closest to ts.

    Linear scan with a strict comparison, so on equal distance the first
    record in stored (chronological) order wins.
    """
    best: T | None = None
    best_distance = 0
    for record in series:
        distance = abs(record.timestamp - ts)
        if best is None or distance < best_distance:
            best = record
            best_distance = distance
    return best


@dataclass
class SymbolLoadResult:
    """Outcome of loading one symbol."""

    symbol: str
    quotes: int = 0
    indicators: int = 0
    skipped: bool = False


class MarketDataStore:
    """
    Time-indexed market data backed by a KeyValueStore.

    Parsed series are kept in a bounded in-process cache so a tick's many
    lookups do not re-decode the same JSON.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        source: MarketDataSource,
        settings: Settings,
        event_bus: EventBus | None = None,
    ) -> None:
        self._kv = kv
        self._source = source
        self._settings = settings
        self._event_bus = event_bus
        self._prefix = settings.cache_prefix
        self._inflight: dict[str, asyncio.Task[SymbolLoadResult]] = {}
        self._series_cache: BoundedLRUCache[str, list] = BoundedLRUCache(
            max_size=512,
            ttl_seconds=settings.quote_ttl_s,
            name="series_cache",
        )

    @property
    def source(self) -> MarketDataSource:
        return self._source

    # =========================================================================
    # Keys
    # =========================================================================

    def key(self, kind: str, symbol: str | None = None) -> str:
        """Full key for a data kind, e.g. backtest:quotes:600519.SS."""
        if symbol is None:
            return f"{self._prefix}{kind}"
        return f"{self._prefix}{kind}:{symbol}"

    # =========================================================================
    # Loading
    # =========================================================================

    async def load(self, symbols: list[str], range_start: int, range_end: int) -> CacheStatus:
        """
        Populate series for every symbol from upstream.

        Symbols already present are skipped. Concurrent callers loading the
        same symbol await the same task. A failing symbol is listed in
        failed_symbols and does not affect the others.
        """
        normalized = normalize_symbols(symbols)
        started = time.perf_counter()
        logger.info(
            "Loading market data for %d symbols (%s -> %s)",
            len(normalized),
            from_millis(range_start).isoformat(),
            from_millis(range_end).isoformat(),
        )
        await self._publish(EventType.DATA_LOAD_STARTED, {"symbols": normalized})

        tasks = [self._load_once(symbol, range_start, range_end) for symbol in normalized]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        loaded: list[SymbolLoadResult] = []
        failed: list[str] = []
        for symbol, result in zip(normalized, results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning("Failed to load %s: %s", symbol, result)
                failed.append(symbol)
                await self._publish(
                    EventType.DATA_SYMBOL_FAILED, {"symbol": symbol, "error": str(result)}
                )
            else:
                loaded.append(result)

        previous = await self.get_status()
        known = dict.fromkeys(previous.symbols if previous else [])
        known.update(dict.fromkeys(r.symbol for r in loaded))
        for symbol in failed:
            known.pop(symbol, None)

        status = CacheStatus(
            is_loaded=bool(known),
            symbols_count=len(known),
            total_quotes=sum(r.quotes for r in loaded),
            total_indicators=sum(r.indicators for r in loaded),
            load_time=int((time.perf_counter() - started) * 1000),
            start_time=range_start,
            end_time=range_end,
            symbols=list(known),
            failed_symbols=failed,
        )
        await self._kv.set(
            self.key("status"),
            status.model_dump_json(by_alias=True),
            ttl_seconds=self._settings.status_ttl_s,
        )

        logger.info(
            "Market data load finished: %d loaded, %d failed, %d quotes in %dms",
            len(loaded),
            len(failed),
            status.total_quotes,
            status.load_time,
        )
        await self._publish(EventType.DATA_LOAD_COMPLETED, status.model_dump(by_alias=True))
        return status

    def _load_once(self, symbol: str, range_start: int, range_end: int) -> Awaitable[SymbolLoadResult]:
        task = self._inflight.get(symbol)
        if task is None or task.done():
            task = asyncio.ensure_future(self._load_symbol(symbol, range_start, range_end))
            self._inflight[symbol] = task
            task.add_done_callback(lambda _t, s=symbol: self._inflight.pop(s, None))
        else:
            logger.debug("Joining in-flight load for %s", symbol)
        # A cancelled caller must not cancel the shared fetch.
        return asyncio.shield(task)

    async def _load_symbol(self, symbol: str, range_start: int, range_end: int) -> SymbolLoadResult:
        existing = await self._read_series("quotes", symbol, _QUOTES)
        if existing:
            indicators = await self._read_series("indicators", symbol, _INDICATORS)
            logger.debug("Skipping %s: %d quotes already cached", symbol, len(existing))
            return SymbolLoadResult(symbol, len(existing), len(indicators), skipped=True)

        bars = await self._fetch_bars(symbol, range_start, range_end)
        quotes = [bar.to_quote() for bar in bars]
        indicators = compute_indicator_series(quotes)

        await self._kv.set(
            self.key("indicators", symbol),
            _INDICATORS.dump_json(indicators, by_alias=True).decode(),
            ttl_seconds=self._settings.indicator_ttl_s,
        )
        # Quotes are written last: their presence marks the symbol as loaded.
        await self._kv.set(
            self.key("quotes", symbol),
            _QUOTES.dump_json(quotes, by_alias=True).decode(),
            ttl_seconds=self._settings.quote_ttl_s,
        )
        await self._load_static_analyses(symbol)

        logger.info("Loaded %s: %d quotes, %d indicators", symbol, len(quotes), len(indicators))
        return SymbolLoadResult(symbol, len(quotes), len(indicators))

    async def _fetch_bars(self, symbol: str, range_start: int, range_end: int) -> list[Bar]:
        start, end = from_millis(range_start), from_millis(range_end)
        bars = await self._source.get_history(symbol, start, end, interval="1h")
        if not bars:
            logger.info("No hourly bars for %s, falling back to daily", symbol)
            bars = await self._source.get_history(symbol, start, end, interval="1d")
        if not bars:
            raise UpstreamFetchError(f"No price history for {symbol}", symbol=symbol)
        return bars

    async def _load_static_analyses(self, symbol: str) -> None:
        fetchers: dict[str, tuple[Callable[[str], Awaitable[BaseModel]], int]] = {
            "advanced": (self._source.get_advanced_technical, self._settings.advanced_ttl_s),
            "fundamental": (self._source.get_fundamentals, self._settings.static_analysis_ttl_s),
            "sentiment": (self._source.get_sentiment, self._settings.static_analysis_ttl_s),
        }
        for kind, (fetch, ttl) in fetchers.items():
            key = self.key(kind, symbol)
            if await self._kv.exists(key):
                continue
            try:
                analysis = await fetch(symbol)
            except UpstreamFetchError as e:
                logger.warning("No %s analysis for %s: %s", kind, symbol, e)
                continue
            await self._kv.set(key, analysis.model_dump_json(by_alias=True), ttl_seconds=ttl)

    # =========================================================================
    # Status
    # =========================================================================

    async def get_status(self) -> CacheStatus | None:
        raw = await self._kv.get(self.key("status"))
        return CacheStatus.model_validate_json(raw) if raw else None

    async def is_loaded(self, symbols: list[str] | None = None) -> bool:
        """Status says loaded and, when given, every symbol has a quote series."""
        status = await self.get_status()
        if status is None or not status.is_loaded:
            return False
        if not symbols:
            return True
        checks = await asyncio.gather(
            *(self._kv.exists(self.key("quotes", normalize_symbol(s))) for s in symbols)
        )
        return all(checks)

    async def clear(self) -> int:
        """Delete every market data key. Sessions are untouched."""
        keys: list[str] = []
        for kind in (*SERIES_KINDS, *STATIC_KINDS):
            keys.extend(await self._kv.scan(self.key(kind) + ":"))
        keys.append(self.key("status"))
        deleted = await self._kv.delete(*keys)
        self._series_cache.clear()
        logger.info("Cleared %d market data keys", deleted)
        return deleted

    # =========================================================================
    # Lookups
    # =========================================================================

    async def _read_series(self, kind: str, symbol: str, adapter: TypeAdapter) -> list:
        key = self.key(kind, symbol)
        cached = self._series_cache.get(key)
        if cached is not None:
            return cached
        raw = await self._kv.get(key)
        if raw is None:
            return []
        series = adapter.validate_json(raw)
        self._series_cache.set(key, series)
        return series

    async def _read_model(self, kind: str, symbol: str, model: type[M]) -> M | None:
        raw = await self._kv.get(self.key(kind, symbol))
        return model.model_validate_json(raw) if raw else None

    async def quote_at(self, symbol: str, ts: int) -> Quote | None:
        """Quote nearest to ts, or None when the series is empty or missing."""
        series = await self._read_series("quotes", normalize_symbol(symbol), _QUOTES)
        return nearest(series, ts)

    async def indicators_at(self, symbol: str, ts: int) -> Indicators | None:
        """Indicators nearest to ts, or None when the series is empty or missing."""
        series = await self._read_series("indicators", normalize_symbol(symbol), _INDICATORS)
        return nearest(series, ts)

    async def batch_quotes_at(self, symbols: list[str], ts: int) -> list[Quote]:
        results = await asyncio.gather(*(self.quote_at(s, ts) for s in symbols))
        return [q for q in results if q is not None]

    async def batch_indicators_at(self, symbols: list[str], ts: int) -> dict[str, Indicators]:
        results = await asyncio.gather(*(self.indicators_at(s, ts) for s in symbols))
        return {ind.symbol: ind for ind in results if ind is not None}

    async def comprehensive_analysis_at(self, symbol: str, ts: int) -> ComprehensiveAnalysis | None:
        """Quote and indicators at ts merged with the cached static analyses."""
        symbol = normalize_symbol(symbol)
        quote, indicators, advanced, fundamental, sentiment = await asyncio.gather(
            self.quote_at(symbol, ts),
            self.indicators_at(symbol, ts),
            self._read_model("advanced", symbol, AdvancedTechnical),
            self._read_model("fundamental", symbol, Fundamentals),
            self._read_model("sentiment", symbol, Sentiment),
        )
        if quote is None:
            return None
        return ComprehensiveAnalysis(
            symbol=symbol,
            price=quote,
            technical=indicators,
            advanced=advanced or AdvancedTechnical(),
            fundamental=fundamental or Fundamentals(),
            sentiment=sentiment or Sentiment(),
        )

    async def batch_analysis_at(self, symbols: list[str], ts: int) -> dict[str, ComprehensiveAnalysis]:
        results = await asyncio.gather(*(self.comprehensive_analysis_at(s, ts) for s in symbols))
        return {a.symbol: a for a in results if a is not None}

    # =========================================================================
    # Live Fallback
    # =========================================================================

    async def live_quotes(self, symbols: list[str]) -> list[Quote]:
        """One live quote per symbol from upstream; failing symbols are skipped."""

        async def fetch(symbol: str) -> Quote | None:
            try:
                return await self._source.get_quote(symbol)
            except UpstreamFetchError as e:
                logger.warning("Live quote unavailable for %s: %s", symbol, e)
                return None

        results = await asyncio.gather(*(fetch(normalize_symbol(s)) for s in symbols))
        return [q for q in results if q is not None]

    async def _publish(self, event_type: EventType, data: dict) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(Event(type=event_type, data=data))
