"""
Session API routes: lifecycle, configuration and game creation.
"""

from typing import Any
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import Field, field_validator

from arena_engine.api.dependencies import get_session_store, http_error_for
from arena_engine.backtest.replay import replay_session
from arena_engine.config import Settings, get_settings_dep
from arena_engine.domain import (
    ActorConfig,
    Session,
    SessionStats,
    SessionSummary,
    StrategyType,
    now_millis,
    to_millis,
)
from arena_engine.domain.base import ArenaModel
from arena_engine.errors import ArenaError
from arena_engine.logging import get_logger
from arena_engine.sessions.factory import GAME_TAGS, build_game_actors, game_window, new_user_id
from arena_engine.sessions.store import SessionStore
from arena_engine.strategies.presets import resolve_strategy_config

router = APIRouter(prefix="/arena", tags=["Sessions"])
logger = get_logger(__name__)


# =============================================================================
# Request/Response Models
# =============================================================================


class ActorSpec(ArenaModel):
    """An actor as supplied by a client: a preset type plus overrides."""

    id: str | None = None
    name: str
    strategy_type: StrategyType = StrategyType.BALANCED
    overrides: dict[str, Any] = Field(default_factory=dict)
    initial_cash: float | None = Field(default=None, gt=0)
    is_active: bool = True

    def to_config(self, default_cash: float) -> ActorConfig:
        return ActorConfig(
            id=self.id or f"actor_{uuid4().hex[:8]}",
            name=self.name,
            strategy_type=self.strategy_type,
            strategy_config=resolve_strategy_config(self.strategy_type, self.overrides),
            initial_cash=self.initial_cash or default_cash,
            is_active=self.is_active,
        )


class CreateSessionRequest(ArenaModel):
    """Request to create a session."""

    name: str = Field(..., min_length=1)
    description: str | None = None
    start_time: int
    end_time: int
    actors: list[ActorSpec] = Field(..., min_length=1)
    tags: list[str] = Field(default_factory=list)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def coerce_millis(cls, v: Any) -> int:
        return to_millis(v)


class UpdateSessionRequest(ArenaModel):
    name: str | None = None
    description: str | None = None
    tags: list[str] | None = None


class ConfigureActorsRequest(ArenaModel):
    actors: list[ActorSpec] = Field(..., min_length=1)


class CreateGameRequest(ArenaModel):
    """One user against the three system actors over the last 14 days."""

    player_name: str = Field(..., min_length=1)
    strategy_type: StrategyType
    overrides: dict[str, Any] = Field(default_factory=dict)


class CreateGameResponse(ArenaModel):
    session_id: str
    user_id: str
    session: Session


class DeleteResponse(ArenaModel):
    deleted: int


class ReplayResponse(ArenaModel):
    session_id: str
    consistent: bool
    snapshots: int
    mismatches: list[str] = Field(default_factory=list)


# =============================================================================
# Routes
# =============================================================================


@router.get("/sessions", response_model=list[SessionSummary])
async def list_sessions(
    tag: list[str] | None = Query(default=None, description="Keep sessions with any of these tags"),
    store: SessionStore = Depends(get_session_store),
) -> list[SessionSummary]:
    """List sessions, newest first, without their snapshots."""
    try:
        sessions = await store.list_sessions(tags=tag)
    except ArenaError as e:
        raise http_error_for(e) from e
    return [SessionSummary.from_session(s) for s in sessions]


@router.post("/sessions", response_model=Session)
async def create_session(
    request: CreateSessionRequest,
    settings: Settings = Depends(get_settings_dep),
    store: SessionStore = Depends(get_session_store),
) -> Session:
    """Create a pending session from actor specs."""
    try:
        configs = [a.to_config(settings.default_initial_cash) for a in request.actors]
        return await store.create_session(
            name=request.name,
            start_time=request.start_time,
            end_time=request.end_time,
            actor_configs=configs,
            description=request.description,
            tags=request.tags,
        )
    except ArenaError as e:
        raise http_error_for(e) from e


@router.post("/sessions/prune", response_model=DeleteResponse)
async def prune_sessions(
    max_age_days: float = Query(default=0, ge=0, description="0 deletes every session"),
    store: SessionStore = Depends(get_session_store),
) -> DeleteResponse:
    """Delete sessions older than max_age_days."""
    try:
        return DeleteResponse(deleted=await store.prune_sessions(max_age_days))
    except ArenaError as e:
        raise http_error_for(e) from e


@router.get("/sessions/{session_id}", response_model=Session)
async def get_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> Session:
    try:
        return await store.require_session(session_id)
    except ArenaError as e:
        raise http_error_for(e) from e


@router.patch("/sessions/{session_id}", response_model=Session)
async def update_session(
    session_id: str,
    request: UpdateSessionRequest,
    store: SessionStore = Depends(get_session_store),
) -> Session:
    """Edit a session's name, description or tags."""
    try:
        return await store.update_session(
            session_id,
            name=request.name,
            description=request.description,
            tags=request.tags,
        )
    except ArenaError as e:
        raise http_error_for(e) from e


@router.delete("/sessions/{session_id}", response_model=DeleteResponse)
async def delete_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> DeleteResponse:
    try:
        deleted = await store.delete_session(session_id)
    except ArenaError as e:
        raise http_error_for(e) from e
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return DeleteResponse(deleted=1)


@router.post("/sessions/{session_id}/start", response_model=Session)
async def start_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> Session:
    try:
        return await store.start_session(session_id)
    except ArenaError as e:
        raise http_error_for(e) from e


@router.post("/sessions/{session_id}/configure", response_model=Session)
async def configure_session(
    session_id: str,
    request: ConfigureActorsRequest,
    settings: Settings = Depends(get_settings_dep),
    store: SessionStore = Depends(get_session_store),
) -> Session:
    """Replace the actors of a session that has not started yet."""
    try:
        configs = [a.to_config(settings.default_initial_cash) for a in request.actors]
        return await store.configure_actors(session_id, configs)
    except ArenaError as e:
        raise http_error_for(e) from e


@router.get("/sessions/{session_id}/stats", response_model=SessionStats)
async def session_stats(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> SessionStats:
    try:
        stats = await store.get_session_stats(session_id)
    except ArenaError as e:
        raise http_error_for(e) from e
    if stats is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return stats


@router.get("/sessions/{session_id}/replay", response_model=ReplayResponse)
async def replay(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> ReplayResponse:
    """Re-derive every actor's state from the stored trades and quotes."""
    try:
        session = await store.require_session(session_id)
    except ArenaError as e:
        raise http_error_for(e) from e
    report = replay_session(session)
    return ReplayResponse(
        session_id=session_id,
        consistent=report.consistent,
        snapshots=report.snapshots,
        mismatches=report.mismatches,
    )


@router.post("/create-game", response_model=CreateGameResponse)
async def create_game(
    request: CreateGameRequest,
    settings: Settings = Depends(get_settings_dep),
    store: SessionStore = Depends(get_session_store),
) -> CreateGameResponse:
    """Create a session pitting one user actor against the system actors."""
    now = now_millis()
    user_id = new_user_id(now)
    start, end = game_window(now)
    try:
        actors = build_game_actors(
            request.player_name,
            request.strategy_type,
            user_id,
            overrides=request.overrides,
            initial_cash=settings.default_initial_cash,
        )
        session = await store.create_session(
            name=f"{request.player_name}'s arena",
            start_time=start,
            end_time=end,
            actor_configs=actors,
            description=f"{request.player_name} ({request.strategy_type.value}) vs system actors",
            tags=GAME_TAGS,
        )
    except ArenaError as e:
        raise http_error_for(e) from e

    logger.info("Created game %s for %s", session.session_id, request.player_name)
    return CreateGameResponse(session_id=session.session_id, user_id=user_id, session=session)
