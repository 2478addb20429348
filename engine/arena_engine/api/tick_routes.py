"""
Tick API routes: single ticks and auto-runs.
"""

from fastapi import APIRouter, Depends

from arena_engine.api.dependencies import get_orchestrator, http_error_for
from arena_engine.backtest.models import RunRequest, RunResult, TickRequest, TickResult
from arena_engine.backtest.orchestrator import TickOrchestrator
from arena_engine.errors import ArenaError
from arena_engine.logging import get_logger

router = APIRouter(prefix="/arena", tags=["Arena"])
logger = get_logger(__name__)


@router.post("/tick", response_model=TickResult)
async def tick(
    request: TickRequest,
    orchestrator: TickOrchestrator = Depends(get_orchestrator),
) -> TickResult:
    """
    Advance a session to the requested timestamp.

    The timestamp is snapped into the next trading window and must be after
    the session's last snapshot.
    """
    try:
        return await orchestrator.tick(request)
    except ArenaError as e:
        raise http_error_for(e) from e


@router.post("/sessions/{session_id}/run", response_model=RunResult)
async def run_session(
    session_id: str,
    request: RunRequest | None = None,
    orchestrator: TickOrchestrator = Depends(get_orchestrator),
) -> RunResult:
    """Tick a session hour by hour until it completes or max_ticks is reached."""
    request = request or RunRequest()
    try:
        return await orchestrator.run(
            session_id,
            start=request.start,
            end=request.end,
            max_ticks=request.max_ticks,
        )
    except ArenaError as e:
        raise http_error_for(e) from e
