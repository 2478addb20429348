"""
Async Yahoo Finance client.

Implements MarketDataSource over the public chart, insights and quoteSummary
endpoints, with retry/backoff for transient errors.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any

import httpx
import pandas as pd

from arena_engine.config import Settings
from arena_engine.domain import (
    AdvancedTechnical,
    Bar,
    Fundamentals,
    Quote,
    Sentiment,
    to_millis,
)
from arena_engine.errors import UpstreamFetchError
from arena_engine.interfaces.data_source import MarketDataSource
from arena_engine.logging import get_logger

CHART_PATH = "/v8/finance/chart/{symbol}"
INSIGHTS_PATH = "/ws/insights/v2/finance/insights"
QUOTE_SUMMARY_PATH = "/v10/finance/quoteSummary/{symbol}"

FUNDAMENTAL_MODULES = "financialData,defaultKeyStatistics,summaryDetail"
SENTIMENT_MODULES = "financialData,recommendationTrend"

USER_AGENT = "Mozilla/5.0 (compatible; arena-engine)"


def _raw(node: Any) -> Any:
    """Yahoo wraps numbers as {"raw": 1.2, "fmt": "1.20"}."""
    if isinstance(node, dict):
        return node.get("raw")
    return node


def _dig(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _float_or_none(value: Any) -> float | None:
    value = _raw(value)
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_chart_bars(symbol: str, payload: dict[str, Any]) -> list[Bar]:
    """
    Parse a chart payload into bars, oldest first.

    Rows without a close are dropped; missing open/high/low fall back to the
    close and missing volume to zero.
    """
    result = _chart_result(symbol, payload)
    timestamps = result.get("timestamp") or []
    quote_block = (_dig(result, "indicators", "quote") or [{}])[0]
    if not timestamps:
        return []

    frame = pd.DataFrame(
        {
            "timestamp": timestamps,
            "open": quote_block.get("open"),
            "high": quote_block.get("high"),
            "low": quote_block.get("low"),
            "close": quote_block.get("close"),
            "volume": quote_block.get("volume"),
        }
    ).astype("float64")
    frame = frame.dropna(subset=["close", "timestamp"])
    frame = frame[frame["close"] > 0]
    if frame.empty:
        return []

    for column in ("open", "high", "low"):
        frame[column] = frame[column].fillna(frame["close"])
    frame["volume"] = frame["volume"].fillna(0)
    frame["high"] = frame[["high", "open", "close"]].max(axis=1)
    frame["low"] = frame[["low", "open", "close"]].min(axis=1)
    frame = frame.sort_values("timestamp").drop_duplicates("timestamp", keep="last")

    return [
        Bar(
            symbol=symbol,
            timestamp=int(row.timestamp) * 1000,
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in frame.itertuples(index=False)
    ]


def _chart_result(symbol: str, payload: dict[str, Any]) -> dict[str, Any]:
    chart = payload.get("chart") or {}
    error = chart.get("error")
    if error:
        description = error.get("description") if isinstance(error, dict) else error
        raise UpstreamFetchError(f"Chart error for {symbol}: {description}", symbol=symbol)
    results = chart.get("result") or []
    if not results:
        raise UpstreamFetchError(f"Empty chart result for {symbol}", symbol=symbol)
    return results[0]


def _summary_result(symbol: str, payload: dict[str, Any]) -> dict[str, Any]:
    summary = payload.get("quoteSummary") or {}
    error = summary.get("error")
    if error:
        description = error.get("description") if isinstance(error, dict) else error
        raise UpstreamFetchError(f"quoteSummary error for {symbol}: {description}", symbol=symbol)
    results = summary.get("result") or []
    return results[0] if results else {}


class YahooFinanceClient(MarketDataSource):
    """
    Async client for Yahoo Finance.

    Handles:
    - Hourly/daily chart history and latest quote
    - Insights (support/resistance, outlooks)
    - quoteSummary (fundamentals, analyst consensus)
    - Retry/backoff for 429, 5xx, timeouts and transport errors
    """

    def __init__(self, settings: Settings, logger: logging.Logger | None = None) -> None:
        """
        Initialize Yahoo client.

        Args:
            settings: Application settings
            logger: Logger instance (module logger if omitted)
        """
        self._settings = settings
        self._logger = logger or get_logger(__name__)
        self._base_url = settings.yahoo_base_url.rstrip("/")
        self._timeout = settings.yahoo_request_timeout
        self._max_retries = settings.yahoo_max_retries
        self._client: httpx.AsyncClient | None = None
        self._request_count = 0

    @property
    def request_count(self) -> int:
        """Number of HTTP attempts made (retries included)."""
        return self._request_count

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # Transport
    # =========================================================================

    async def _get_json(
        self,
        path: str,
        symbol: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        GET a Yahoo endpoint and decode JSON, retrying transient failures.

        Raises:
            UpstreamFetchError: Permanent failure or retries exhausted
        """
        url = f"{self._base_url}{path}"
        last_error: Exception | None = None
        last_status: int | None = None

        for attempt in range(self._max_retries + 1):
            try:
                client = await self._get_client()
                self._request_count += 1
                response = await client.get(url, params=params)

                if response.status_code == 429:
                    last_status = 429
                    backoff = 2**attempt
                    self._logger.warning(
                        "Rate limited (429) for %s, backing off %ds (attempt %d/%d)",
                        symbol,
                        backoff,
                        attempt + 1,
                        self._max_retries + 1,
                    )
                    await asyncio.sleep(backoff)
                    continue

                if response.status_code >= 500:
                    last_status = response.status_code
                    backoff = 2**attempt
                    self._logger.warning(
                        "Server error %d for %s, backing off %ds (attempt %d/%d)",
                        response.status_code,
                        symbol,
                        backoff,
                        attempt + 1,
                        self._max_retries + 1,
                    )
                    await asyncio.sleep(backoff)
                    continue

                if response.status_code >= 400:
                    raise UpstreamFetchError(
                        f"Upstream returned {response.status_code} for {symbol}",
                        symbol=symbol,
                        status_code=response.status_code,
                    )

                try:
                    return response.json()
                except ValueError as e:
                    raise UpstreamFetchError(
                        f"Invalid JSON from upstream for {symbol}", symbol=symbol
                    ) from e

            except httpx.TimeoutException as e:
                last_error = e
                backoff = 2**attempt
                self._logger.warning(
                    "Request timeout for %s, backing off %ds (attempt %d/%d)",
                    symbol,
                    backoff,
                    attempt + 1,
                    self._max_retries + 1,
                )
                await asyncio.sleep(backoff)
                continue

            except httpx.RequestError as e:
                last_error = e
                backoff = 2**attempt
                self._logger.warning(
                    "Request error for %s: %s, backing off %ds (attempt %d/%d)",
                    symbol,
                    str(e),
                    backoff,
                    attempt + 1,
                    self._max_retries + 1,
                )
                await asyncio.sleep(backoff)
                continue

        # Exhausted retries
        detail = f": {last_error}" if last_error else ""
        raise UpstreamFetchError(
            f"Request for {symbol} failed after {self._max_retries + 1} attempts{detail}",
            symbol=symbol,
            status_code=last_status,
        )

    # =========================================================================
    # Prices
    # =========================================================================

    async def get_history(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
        interval: str = "1h",
    ) -> list[Bar]:
        """Get OHLCV bars between start and end."""
        params = {
            "period1": to_millis(start) // 1000,
            "period2": to_millis(end) // 1000,
            "interval": interval,
            "includePrePost": "false",
        }
        payload = await self._get_json(CHART_PATH.format(symbol=symbol), symbol, params)
        bars = parse_chart_bars(symbol, payload)
        self._logger.debug("Fetched %d %s bars for %s", len(bars), interval, symbol)
        return bars

    async def get_quote(self, symbol: str) -> Quote:
        """Get the latest quote from the chart endpoint's meta block."""
        payload = await self._get_json(
            CHART_PATH.format(symbol=symbol),
            symbol,
            {"range": "1d", "interval": "1h"},
        )
        result = _chart_result(symbol, payload)
        meta = result.get("meta") or {}

        price = _float_or_none(meta.get("regularMarketPrice"))
        if price is None or price <= 0:
            raise UpstreamFetchError(f"No market price for {symbol}", symbol=symbol)

        previous_close = (
            _float_or_none(meta.get("chartPreviousClose"))
            or _float_or_none(meta.get("previousClose"))
            or price
        )
        bars = parse_chart_bars(symbol, payload)
        open_price = bars[0].open if bars else previous_close
        market_time = meta.get("regularMarketTime")
        timestamp = int(market_time) * 1000 if market_time else to_millis(datetime.now().astimezone())

        change = price - previous_close
        return Quote(
            symbol=symbol,
            price=price,
            change=change,
            change_percent=change / previous_close * 100 if previous_close else 0.0,
            volume=_float_or_none(meta.get("regularMarketVolume")) or 0.0,
            day_high=_float_or_none(meta.get("regularMarketDayHigh")) or price,
            day_low=_float_or_none(meta.get("regularMarketDayLow")) or price,
            open=open_price,
            previous_close=previous_close,
            timestamp=timestamp,
        )

    # =========================================================================
    # Static Analyses
    # =========================================================================

    async def get_advanced_technical(self, symbol: str) -> AdvancedTechnical:
        """Get key technicals and outlooks from the insights endpoint."""
        payload = await self._get_json(INSIGHTS_PATH, symbol, {"symbol": symbol})
        info = _dig(payload, "finance", "result", "instrumentInfo") or {}
        technicals = info.get("keyTechnicals") or {}
        events = info.get("technicalEvents") or {}

        return AdvancedTechnical(
            support=_float_or_none(technicals.get("support")),
            resistance=_float_or_none(technicals.get("resistance")),
            stop_loss=_float_or_none(technicals.get("stopLoss")),
            short_term_outlook=_dig(events, "shortTermOutlook", "direction"),
            intermediate_term_outlook=_dig(events, "intermediateTermOutlook", "direction"),
            long_term_outlook=_dig(events, "longTermOutlook", "direction"),
            valuation=_dig(info, "valuation", "description"),
        )

    async def get_fundamentals(self, symbol: str) -> Fundamentals:
        """Get fundamental ratios from quoteSummary."""
        payload = await self._get_json(
            QUOTE_SUMMARY_PATH.format(symbol=symbol),
            symbol,
            {"modules": FUNDAMENTAL_MODULES},
        )
        result = _summary_result(symbol, payload)
        financial = result.get("financialData") or {}
        statistics = result.get("defaultKeyStatistics") or {}
        detail = result.get("summaryDetail") or {}

        return Fundamentals(
            return_on_equity=_float_or_none(financial.get("returnOnEquity")),
            debt_to_equity=_float_or_none(financial.get("debtToEquity")),
            current_ratio=_float_or_none(financial.get("currentRatio")),
            profit_margins=_float_or_none(financial.get("profitMargins")),
            revenue_growth=_float_or_none(financial.get("revenueGrowth")),
            trailing_pe=_float_or_none(detail.get("trailingPE")),
            price_to_book=_float_or_none(statistics.get("priceToBook")),
        )

    async def get_sentiment(self, symbol: str) -> Sentiment:
        """Get analyst consensus from quoteSummary."""
        payload = await self._get_json(
            QUOTE_SUMMARY_PATH.format(symbol=symbol),
            symbol,
            {"modules": SENTIMENT_MODULES},
        )
        financial = _summary_result(symbol, payload).get("financialData") or {}
        opinions = _float_or_none(financial.get("numberOfAnalystOpinions"))

        return Sentiment(
            analyst_rating=financial.get("recommendationKey"),
            recommendation_mean=_float_or_none(financial.get("recommendationMean")),
            number_of_analyst_opinions=int(opinions) if opinions is not None else None,
        )
