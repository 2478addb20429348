"""
DecisionEngine interface.

Defines the contract for trading strategies that turn one symbol's market
data into a buy/sell/hold decision for one actor.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from arena_engine.domain import (
    ComprehensiveAnalysis,
    Decision,
    DecisionAction,
    Indicators,
    MarketSentiment,
    Position,
    Quote,
    RiskLevel,
    SignalBreakdown,
    StrategyConfig,
    money,
)


@dataclass(frozen=True)
class DecisionContext:
    """Everything an engine may look at for one (actor, symbol, tick)."""

    actor_id: str
    actor_name: str
    cash: float
    quote: Quote
    timestamp: int
    position: Position | None = None
    indicators: Indicators | None = None
    analysis: ComprehensiveAnalysis | None = None
    stock_name: str = ""

    @property
    def symbol(self) -> str:
        return self.quote.symbol

    @property
    def price(self) -> float:
        return self.quote.price

    @property
    def change_percent(self) -> float:
        return self.quote.change_percent

    @property
    def has_position(self) -> bool:
        return self.position is not None and self.position.quantity > 0

    @property
    def rsi(self) -> float | None:
        if self.indicators is not None and self.indicators.rsi is not None:
            return self.indicators.rsi
        if self.analysis is not None and self.analysis.technical is not None:
            return self.analysis.technical.rsi
        return None


class DecisionEngine(ABC):
    """
    Abstract base class for decision engines.

    Engines are synchronous and free of I/O. Given the same context (and,
    for the probabilistic engine, the same random state) they return the
    same decision.
    """

    def __init__(self, config: StrategyConfig):
        self._config = config

    @property
    def config(self) -> StrategyConfig:
        return self._config

    @property
    @abstractmethod
    def name(self) -> str:
        """Engine identifier, e.g. 'weighted_signal'."""
        pass

    # =========================================================================
    # Core Decision
    # =========================================================================

    @abstractmethod
    def decide(self, context: DecisionContext) -> Decision:
        """
        Produce exactly one decision for the context.

        Args:
            context: Market data and holdings for one actor and symbol

        Returns:
            Decision (hold when no rule fires).
        """
        pass

    # =========================================================================
    # Derived Fields
    # =========================================================================

    @staticmethod
    def market_sentiment(change_percent: float) -> MarketSentiment:
        if change_percent > 2:
            return MarketSentiment.BULLISH
        if change_percent < -2:
            return MarketSentiment.BEARISH
        return MarketSentiment.NEUTRAL

    @staticmethod
    def risk_level(change_percent: float) -> RiskLevel:
        magnitude = abs(change_percent)
        if magnitude > 5:
            return RiskLevel.HIGH
        if magnitude > 2:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    @staticmethod
    def expected_return(action: DecisionAction, change_percent: float) -> float:
        if action == DecisionAction.BUY:
            return money(max(2.0, change_percent * 0.5))
        if action == DecisionAction.SELL:
            return money(-abs(change_percent * 0.3))
        return 0.0

    def build_decision(
        self,
        context: DecisionContext,
        action: DecisionAction,
        confidence: float,
        rationale: str,
        breakdown: SignalBreakdown,
    ) -> Decision:
        """Assemble a Decision, filling the fields derived from change percent."""
        change = context.change_percent
        return Decision(
            timestamp=context.timestamp,
            actor_id=context.actor_id,
            actor_name=context.actor_name,
            symbol=context.symbol,
            stock_name=context.stock_name,
            current_price=context.price,
            action=action,
            confidence=confidence,
            rationale=rationale,
            signal_breakdown=breakdown,
            market_sentiment=self.market_sentiment(change),
            risk_level=self.risk_level(change),
            expected_return=self.expected_return(action, change),
        )
