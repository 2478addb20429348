"""
Arena Backtest Engine - FastAPI Application

Main entry point for the simulation service.
Provides REST endpoints for sessions, ticks, market data and the leaderboard.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from arena_engine import __version__
from arena_engine.api.data_routes import router as data_router
from arena_engine.api.dependencies import close_resources, reset_dependencies
from arena_engine.api.leaderboard_routes import router as leaderboard_router
from arena_engine.api.session_routes import router as session_router
from arena_engine.api.tick_routes import router as tick_router
from arena_engine.config import Settings, get_settings, get_settings_dep
from arena_engine.logging import get_in_memory_logs, get_logger, setup_logging
from arena_engine.runtime.event_bus import Event, EventType, get_event_bus

# Setup logging
setup_logging(level=get_settings().log_level, json_output=get_settings().log_json)
logger = get_logger(__name__)


# =============================================================================
# Response Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    time: str
    uptime_seconds: float


class ConfigResponse(BaseModel):
    """Configuration response (redacted)."""

    env: str
    kv_backend: str
    market_timezone: str
    config: dict[str, Any]


# =============================================================================
# Application State
# =============================================================================


class AppState:
    """Application state container."""

    def __init__(self) -> None:
        self.start_time: datetime = datetime.now(UTC)


state = AppState()


# =============================================================================
# Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    # Startup
    logger.info("Starting Arena Engine v%s (%s)", __version__, settings.env.value)
    logger.info("Key/value backend: %s", settings.kv_backend.value)
    logger.info("Server: http://%s:%d", settings.host, settings.port)

    event_bus = get_event_bus()
    await event_bus.publish(Event(type=EventType.ENGINE_STARTED))

    yield

    # Shutdown
    logger.info("Shutting down Arena Engine")
    await close_resources()
    reset_dependencies()
    await event_bus.publish(Event(type=EventType.ENGINE_STOPPED))


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Arena Backtest Engine",
    description="Multi-actor A-share backtest simulation",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(tick_router)
app.include_router(session_router)
app.include_router(leaderboard_router)
app.include_router(data_router)


# =============================================================================
# REST Endpoints
# =============================================================================


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """
    Health check endpoint.

    Returns current status, version, and uptime.
    """
    now = datetime.now(UTC)
    uptime = (now - state.start_time).total_seconds()

    return HealthResponse(
        status="healthy",
        version=__version__,
        time=now.isoformat(),
        uptime_seconds=round(uptime, 2),
    )


@app.get("/config", response_model=ConfigResponse)
async def config(settings: Settings = Depends(get_settings_dep)) -> ConfigResponse:
    """
    Get current configuration (redacted).

    Sensitive values are not exposed.
    """
    return ConfigResponse(
        env=settings.env.value,
        kv_backend=settings.kv_backend.value,
        market_timezone=settings.market_timezone,
        config=settings.get_redacted_config(),
    )


@app.get("/logs")
async def logs(
    level: str = Query(default="INFO"),
    limit: int = Query(default=50, ge=1, le=1000),
    session_id: str | None = Query(default=None, alias="sessionId"),
) -> list[dict[str, Any]]:
    """Recent log lines held in memory, optionally for one session."""
    return get_in_memory_logs(level=level, limit=limit, session_id=session_id)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint with API info."""
    return {
        "name": "Arena Backtest Engine",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Run the server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "arena_engine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.env.value == "development",
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
