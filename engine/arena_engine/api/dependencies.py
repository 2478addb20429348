"""
Shared API dependencies.

Module-level singletons, created lazily on first request and reset between
tests. Each getter takes its collaborators through Depends so tests can
override any layer.
"""

from fastapi import Depends, HTTPException

from arena_engine.backtest.orchestrator import TickOrchestrator
from arena_engine.config import Settings, get_settings_dep
from arena_engine.errors import (
    ArenaError,
    ConfigurationError,
    InvalidSessionStateError,
    OutOfOrderTickError,
    PersistenceError,
    SessionNotFoundError,
    UpstreamFetchError,
)
from arena_engine.interfaces.data_source import MarketDataSource
from arena_engine.interfaces.kv_store import KeyValueStore
from arena_engine.logging import get_logger
from arena_engine.market_data.store import MarketDataStore
from arena_engine.market_data.yahoo import YahooFinanceClient
from arena_engine.runtime.event_bus import get_event_bus
from arena_engine.runtime.kv_store import create_kv_store
from arena_engine.sessions.store import SessionStore

logger = get_logger(__name__)

_kv_store: KeyValueStore | None = None
_data_source: MarketDataSource | None = None
_market_data: MarketDataStore | None = None
_session_store: SessionStore | None = None
_orchestrator: TickOrchestrator | None = None


def get_kv_store(settings: Settings = Depends(get_settings_dep)) -> KeyValueStore:
    """Get or create the key/value store singleton."""
    global _kv_store
    if _kv_store is None:
        _kv_store = create_kv_store(settings)
    return _kv_store


def get_data_source(settings: Settings = Depends(get_settings_dep)) -> MarketDataSource:
    """Get or create the upstream market data client."""
    global _data_source
    if _data_source is None:
        _data_source = YahooFinanceClient(settings)
    return _data_source


def get_market_data(
    settings: Settings = Depends(get_settings_dep),
    kv: KeyValueStore = Depends(get_kv_store),
    source: MarketDataSource = Depends(get_data_source),
) -> MarketDataStore:
    """Get or create the market data store."""
    global _market_data
    if _market_data is None:
        _market_data = MarketDataStore(kv, source, settings, event_bus=get_event_bus())
    return _market_data


def get_session_store(
    settings: Settings = Depends(get_settings_dep),
    kv: KeyValueStore = Depends(get_kv_store),
) -> SessionStore:
    """Get or create the session store."""
    global _session_store
    if _session_store is None:
        _session_store = SessionStore(kv, settings, event_bus=get_event_bus())
    return _session_store


def get_orchestrator(
    settings: Settings = Depends(get_settings_dep),
    market_data: MarketDataStore = Depends(get_market_data),
    sessions: SessionStore = Depends(get_session_store),
) -> TickOrchestrator:
    """Get or create the tick orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = TickOrchestrator(
            market_data,
            sessions,
            settings,
            event_bus=get_event_bus(),
        )
    return _orchestrator


async def close_resources() -> None:
    """Close the upstream client and the key/value store, if created."""
    if _data_source is not None:
        await _data_source.close()
    if _kv_store is not None:
        await _kv_store.close()


def reset_dependencies() -> None:
    """Drop every singleton. Used by tests."""
    global _kv_store, _data_source, _market_data, _session_store, _orchestrator
    _kv_store = None
    _data_source = None
    _market_data = None
    _session_store = None
    _orchestrator = None


def http_error_for(exc: ArenaError) -> HTTPException:
    """Map an engine error to its HTTP response."""
    if isinstance(exc, SessionNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidSessionStateError | OutOfOrderTickError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, PersistenceError):
        logger.error("Store unavailable: %s", exc)
        return HTTPException(status_code=503, detail="Session store unavailable")
    if isinstance(exc, UpstreamFetchError):
        return HTTPException(status_code=502, detail=str(exc))
    logger.error("Unhandled engine error: %s", exc, exc_info=exc)
    return HTTPException(status_code=500, detail="Internal engine error")
