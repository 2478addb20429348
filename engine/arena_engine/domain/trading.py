"""
Trading domain models: positions, trades, and decisions.
"""

from enum import Enum

from pydantic import Field

from arena_engine.domain.base import FrozenArenaModel


class TradeKind(str, Enum):
    """Trade direction."""

    BUY = "buy"
    SELL = "sell"


class DecisionAction(str, Enum):
    """Decision outcome."""

    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class MarketSentiment(str, Enum):
    """Sentiment derived from the tick's price change."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class RiskLevel(str, Enum):
    """Risk derived from the magnitude of the tick's price change."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Position(FrozenArenaModel):
    """
    A holding in one symbol, owned by exactly one actor.

    A position with quantity 0 never exists; it is removed instead.
    """

    symbol: str
    stock_name: str = ""
    quantity: int = Field(..., ge=0)
    cost_price: float = Field(..., description="Weighted average purchase price")
    current_price: float
    profit_loss: float = 0.0
    profit_loss_percent: float = 0.0

    @property
    def market_value(self) -> float:
        return self.quantity * self.current_price


def trade_id_for(actor_id: str, timestamp: int, symbol: str) -> str:
    """Deterministic trade ID so replays are duplicate-detectable."""
    return f"trade_{actor_id}_{timestamp}_{symbol}"


def decision_id_for(actor_id: str, timestamp: int, symbol: str) -> str:
    """Deterministic decision ID, one per (actor, symbol, tick)."""
    return f"judgment_{actor_id}_{timestamp}_{symbol}"


class Trade(FrozenArenaModel):
    """An executed trade. Created once by the executor, never mutated."""

    id: str
    actor_id: str
    kind: TradeKind
    symbol: str
    stock_name: str = ""
    price: float = Field(..., gt=0)
    quantity: int = Field(..., gt=0)
    amount: float = Field(..., description="Cash moved, fees included, 2 dp")
    timestamp: int
    decision_id: str


class SignalBreakdown(FrozenArenaModel):
    """Signal counts and key inputs behind a decision."""

    buy_signals: int = 0
    sell_signals: int = 0
    total_signals: int = 0
    buy_ratio: float = 0.0
    sell_ratio: float = 0.0
    rsi: float | None = None
    support: float | None = None
    resistance: float | None = None
    random_draw: float | None = None


class Decision(FrozenArenaModel):
    """A decision engine's judgment for one actor, symbol and tick."""

    timestamp: int
    actor_id: str
    actor_name: str = ""
    symbol: str
    stock_name: str = ""
    current_price: float
    action: DecisionAction
    confidence: float = Field(..., ge=0, le=100)
    rationale: str = ""
    signal_breakdown: SignalBreakdown = Field(default_factory=SignalBreakdown)
    market_sentiment: MarketSentiment = MarketSentiment.NEUTRAL
    risk_level: RiskLevel = RiskLevel.LOW
    expected_return: float = 0.0

    @property
    def id(self) -> str:
        return decision_id_for(self.actor_id, self.timestamp, self.symbol)
