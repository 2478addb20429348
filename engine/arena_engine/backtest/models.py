"""
Tick and run request/result models.
"""

from typing import Any

from pydantic import Field, field_validator

from arena_engine.domain import (
    ActorState,
    Decision,
    Quote,
    SessionStatus,
    Trade,
    to_millis,
)
from arena_engine.domain.base import ArenaModel


def _millis_or_none(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return to_millis(value)


class TickRequest(ArenaModel):
    """
    One tick of one session.

    Timestamps accept epoch milliseconds or ISO-8601 strings. Presence of
    session_id and timestamp is checked by the orchestrator so a missing
    field surfaces as a ConfigurationError.
    """

    session_id: str | None = None
    timestamp: int | None = None
    range_start: int | None = Field(
        default=None, description="Start of the range to load for uncached symbols (ms)"
    )
    range_end: int | None = Field(default=None, description="Overrides the session end (ms)")

    @field_validator("timestamp", "range_start", "range_end", mode="before")
    @classmethod
    def coerce_millis(cls, v: Any) -> int | None:
        return _millis_or_none(v)


class TickResult(ArenaModel):
    """What one tick produced."""

    session_id: str
    timestamp: int
    actor_states: list[ActorState] = Field(default_factory=list)
    trades: list[Trade] = Field(default_factory=list)
    decisions: list[Decision] = Field(default_factory=list)
    market_data: list[Quote] = Field(default_factory=list)
    snapshot_count: int
    session_status: SessionStatus
    is_final: bool = False
    next_timestamp: int | None = None


class RunRequest(ArenaModel):
    """Auto-run over a time range."""

    start: int | None = None
    end: int | None = None
    max_ticks: int | None = Field(default=None, ge=1)

    @field_validator("start", "end", mode="before")
    @classmethod
    def coerce_millis(cls, v: Any) -> int | None:
        return _millis_or_none(v)


class RunResult(ArenaModel):
    """Summary of an auto-run."""

    session_id: str
    ticks: int = 0
    first_timestamp: int | None = None
    last_timestamp: int | None = None
    total_trades: int = 0
    session_status: SessionStatus
    stopped_reason: str = Field(..., description="completed | max_ticks | range_exhausted")
