"""
Market data API routes: preload, cache status and cache reset.
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import Field, field_validator

from arena_engine.api.dependencies import get_market_data, http_error_for
from arena_engine.domain import CacheStatus, now_millis, to_millis
from arena_engine.domain.base import ArenaModel
from arena_engine.errors import ArenaError
from arena_engine.logging import get_logger
from arena_engine.market_data.store import MarketDataStore
from arena_engine.sessions.factory import GAME_WINDOW_MS
from arena_engine.strategies.presets import PRESETS

router = APIRouter(prefix="/backtest", tags=["Market Data"])
logger = get_logger(__name__)


def default_symbols() -> list[str]:
    """Every symbol in the preset pools, first-seen order."""
    return list(dict.fromkeys(s for preset in PRESETS.values() for s in preset.symbol_pool))


class PreloadRequest(ArenaModel):
    """Symbols and range to load. Defaults: preset pools, last 14 days."""

    symbols: list[str] = Field(default_factory=list)
    start: int | None = None
    end: int | None = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def coerce_millis(cls, v: Any) -> int | None:
        return None if v is None else to_millis(v)


class ClearResponse(ArenaModel):
    deleted: int


@router.post("/preload", response_model=CacheStatus)
async def preload(
    request: PreloadRequest | None = None,
    market_data: MarketDataStore = Depends(get_market_data),
) -> CacheStatus:
    """
    Load quote and indicator series for the requested symbols.

    Symbols already loaded are skipped; failed symbols are reported in
    failedSymbols without failing the request.
    """
    request = request or PreloadRequest()
    end = request.end or now_millis()
    start = request.start or end - GAME_WINDOW_MS
    symbols = request.symbols or default_symbols()
    try:
        return await market_data.load(symbols, start, end)
    except ArenaError as e:
        raise http_error_for(e) from e


@router.get("/cache-status", response_model=CacheStatus)
async def cache_status(
    market_data: MarketDataStore = Depends(get_market_data),
) -> CacheStatus:
    try:
        status = await market_data.get_status()
    except ArenaError as e:
        raise http_error_for(e) from e
    return status or CacheStatus()


@router.delete("/cache", response_model=ClearResponse)
async def clear_cache(
    market_data: MarketDataStore = Depends(get_market_data),
) -> ClearResponse:
    """Delete all cached market data. Sessions are kept."""
    try:
        return ClearResponse(deleted=await market_data.clear())
    except ArenaError as e:
        raise http_error_for(e) from e
