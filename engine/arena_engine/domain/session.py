"""
Session domain models.

A session is one backtest run: its actor configs plus an append-only list of
snapshots, one per tick, in strictly increasing timestamp order.
"""

from enum import Enum

from pydantic import Field

from arena_engine.domain.actor import ActorConfig, ActorState, StrategyType
from arena_engine.domain.base import ArenaModel
from arena_engine.domain.market import Quote
from arena_engine.domain.trading import Decision, Trade


class SessionStatus(str, Enum):
    """Session lifecycle. Transitions only move forward."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER[self]

    def can_transition_to(self, target: "SessionStatus") -> bool:
        """Status is monotonic; staying put is allowed."""
        return target.rank >= self.rank


_STATUS_ORDER = {
    SessionStatus.PENDING: 0,
    SessionStatus.RUNNING: 1,
    SessionStatus.COMPLETED: 2,
}


class Snapshot(ArenaModel):
    """Full state recorded at one tick. Never edited once appended."""

    timestamp: int
    actor_states: list[ActorState] = Field(default_factory=list)
    trades: list[Trade] = Field(default_factory=list)
    decisions: list[Decision] = Field(default_factory=list)
    market_data: list[Quote] = Field(default_factory=list)

    def state_for(self, actor_id: str) -> ActorState | None:
        for state in self.actor_states:
            if state.actor_id == actor_id:
                return state
        return None


class SessionMetadata(ArenaModel):
    """Aggregates maintained on every snapshot append."""

    total_ticks: int = 0
    total_trades: int = 0
    best_actor_id: str | None = None
    worst_actor_id: str | None = None


class Session(ArenaModel):
    """One backtest run."""

    session_id: str
    name: str
    description: str | None = None
    status: SessionStatus = SessionStatus.PENDING
    start_time: int
    end_time: int
    created_at: int
    updated_at: int
    tags: list[str] = Field(default_factory=list)
    actor_configs: list[ActorConfig] = Field(default_factory=list)
    snapshots: list[Snapshot] = Field(default_factory=list)
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)

    @property
    def last_snapshot(self) -> Snapshot | None:
        return self.snapshots[-1] if self.snapshots else None

    @property
    def last_timestamp(self) -> int | None:
        return self.snapshots[-1].timestamp if self.snapshots else None

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED

    @property
    def duration(self) -> int:
        return self.end_time - self.start_time

    def actor_config(self, actor_id: str) -> ActorConfig | None:
        for config in self.actor_configs:
            if config.id == actor_id:
                return config
        return None


class SessionSummary(ArenaModel):
    """Session without snapshots, for listings."""

    session_id: str
    name: str
    description: str | None = None
    status: SessionStatus
    start_time: int
    end_time: int
    created_at: int
    updated_at: int
    tags: list[str] = Field(default_factory=list)
    actor_count: int = 0
    snapshot_count: int = 0
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)

    @classmethod
    def from_session(cls, session: Session) -> "SessionSummary":
        return cls(
            session_id=session.session_id,
            name=session.name,
            description=session.description,
            status=session.status,
            start_time=session.start_time,
            end_time=session.end_time,
            created_at=session.created_at,
            updated_at=session.updated_at,
            tags=session.tags,
            actor_count=len(session.actor_configs),
            snapshot_count=len(session.snapshots),
            metadata=session.metadata,
        )


class SessionStats(ArenaModel):
    """Counts over a session's snapshots."""

    total_snapshots: int
    total_trades: int
    total_judgments: int
    duration: int


class PerformanceRecord(ArenaModel):
    """Compact per-actor result appended on every session write."""

    session_id: str
    total_return: float
    total_return_percent: float
    total_assets: float
    total_trades: int
    session_duration: int
    timestamp: int
    recorded_at: int


class ActorProfile(ArenaModel):
    """Display data for an actor on the leaderboard."""

    actor_id: str
    name: str
    strategy_type: StrategyType = StrategyType.CUSTOM


class SessionRef(ArenaModel):
    session_id: str
    return_percent: float


class LeaderboardEntry(ArenaModel):
    """One ranked actor."""

    actor_id: str
    actor_name: str
    strategy_type: StrategyType = StrategyType.CUSTOM
    total_sessions: int = 0
    total_return: float = 0.0
    total_return_percent: float = 0.0
    best_session: SessionRef | None = None
    rank: int = 0
