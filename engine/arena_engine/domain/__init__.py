"""
Domain models for the Arena backtest engine.

These models represent the core concepts used throughout the system:
- Bar / Quote / Indicators: time-indexed market data
- AdvancedTechnical / Fundamentals / Sentiment: static per-symbol analyses
- Decision / Trade / Position: what an actor decided, did, and holds
- StrategyConfig / ActorConfig / ActorState: who is trading and how
- Snapshot / Session: the append-only record of a backtest run
"""

from arena_engine.domain.actor import (
    DEFAULT_INITIAL_CASH,
    ActorConfig,
    ActorState,
    EngineKind,
    StrategyConfig,
    StrategyType,
)
from arena_engine.domain.bar import Bar
from arena_engine.domain.base import from_millis, money, now_millis, to_millis
from arena_engine.domain.market import (
    AdvancedTechnical,
    BollingerBands,
    CacheStatus,
    ComprehensiveAnalysis,
    EMAValues,
    Fundamentals,
    Indicators,
    Quote,
    Sentiment,
    SMAValues,
)
from arena_engine.domain.session import (
    ActorProfile,
    LeaderboardEntry,
    PerformanceRecord,
    Session,
    SessionMetadata,
    SessionRef,
    SessionStats,
    SessionStatus,
    SessionSummary,
    Snapshot,
)
from arena_engine.domain.trading import (
    Decision,
    DecisionAction,
    MarketSentiment,
    Position,
    RiskLevel,
    SignalBreakdown,
    Trade,
    TradeKind,
    decision_id_for,
    trade_id_for,
)

__all__ = [
    "DEFAULT_INITIAL_CASH",
    "ActorConfig",
    "ActorProfile",
    "ActorState",
    "AdvancedTechnical",
    "Bar",
    "BollingerBands",
    "CacheStatus",
    "ComprehensiveAnalysis",
    "Decision",
    "DecisionAction",
    "EMAValues",
    "EngineKind",
    "Fundamentals",
    "Indicators",
    "LeaderboardEntry",
    "MarketSentiment",
    "PerformanceRecord",
    "Position",
    "Quote",
    "RiskLevel",
    "SMAValues",
    "Sentiment",
    "Session",
    "SessionMetadata",
    "SessionRef",
    "SessionStats",
    "SessionStatus",
    "SessionSummary",
    "SignalBreakdown",
    "Snapshot",
    "StrategyConfig",
    "StrategyType",
    "Trade",
    "TradeKind",
    "decision_id_for",
    "from_millis",
    "money",
    "now_millis",
    "to_millis",
    "trade_id_for",
]
