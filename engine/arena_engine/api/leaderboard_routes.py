"""
Leaderboard API routes.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from arena_engine.api.dependencies import get_session_store, http_error_for
from arena_engine.domain import LeaderboardEntry, PerformanceRecord
from arena_engine.errors import ArenaError
from arena_engine.sessions.store import SessionStore

router = APIRouter(prefix="/arena", tags=["Leaderboard"])


@router.get("/leaderboard", response_model=list[LeaderboardEntry])
async def leaderboard(
    limit: int = Query(default=50, ge=1, le=500),
    store: SessionStore = Depends(get_session_store),
) -> list[LeaderboardEntry]:
    """Actors ranked by their best session return."""
    try:
        return await store.get_top_actors(limit)
    except ArenaError as e:
        raise http_error_for(e) from e


@router.get("/players/{actor_id}/best", response_model=PerformanceRecord)
async def best_performance(
    actor_id: str,
    store: SessionStore = Depends(get_session_store),
) -> PerformanceRecord:
    try:
        best = await store.get_actor_best_performance(actor_id)
    except ArenaError as e:
        raise http_error_for(e) from e
    if best is None:
        raise HTTPException(status_code=404, detail=f"No performance recorded for {actor_id}")
    return best


@router.get("/players/{actor_id}/history", response_model=list[PerformanceRecord])
async def performance_history(
    actor_id: str,
    store: SessionStore = Depends(get_session_store),
) -> list[PerformanceRecord]:
    """Recorded results, newest first."""
    try:
        return await store.get_performance_history(actor_id)
    except ArenaError as e:
        raise http_error_for(e) from e
