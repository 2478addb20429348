"""
Actor (player) domain models: strategy configuration, configuration, and state.
"""

from enum import Enum

from pydantic import Field, model_validator

from arena_engine.domain.base import ArenaModel, FrozenArenaModel
from arena_engine.domain.trading import Position

DEFAULT_INITIAL_CASH = 100000.0


class StrategyType(str, Enum):
    """Preset family an actor's strategy came from."""

    AGGRESSIVE = "aggressive"
    BALANCED = "balanced"
    CONSERVATIVE = "conservative"
    CUSTOM = "custom"


class EngineKind(str, Enum):
    """Decision engine implementation."""

    WEIGHTED_SIGNAL = "weighted_signal"
    THRESHOLD = "threshold"
    PROBABILISTIC = "probabilistic"


class StrategyConfig(FrozenArenaModel):
    """
    Strategy parameters for one actor.

    Supplied when the actor is created and immutable afterwards; re-creating
    the actor is the only way to change strategy.
    """

    name: str = "custom"
    description: str | None = None
    strategy_type: StrategyType = StrategyType.CUSTOM
    engine: EngineKind = EngineKind.WEIGHTED_SIGNAL
    symbol_pool: list[str] = Field(..., min_length=1)
    buy_threshold: float = 2.0
    sell_threshold: float = -1.5
    position_size_fraction: float = Field(default=0.15, gt=0, le=1)
    max_shares_per_trade: int = Field(default=100, ge=1)
    signal_sensitivity: float = Field(default=0.3, gt=0, le=1)
    rsi_buy_threshold: float = Field(default=40.0, ge=0, le=100)
    rsi_sell_threshold: float = Field(default=65.0, ge=0, le=100)
    random_mode: bool = False
    random_buy_probability: float | None = Field(default=None, ge=0, le=1)
    random_sell_probability: float | None = Field(default=None, ge=0, le=1)

    @model_validator(mode="after")
    def random_mode_needs_probabilities(self) -> "StrategyConfig":
        """Probabilistic engines need both draw probabilities."""
        if self.is_probabilistic and (
            self.random_buy_probability is None or self.random_sell_probability is None
        ):
            raise ValueError(
                "random_buy_probability and random_sell_probability are required "
                "for the probabilistic engine"
            )
        return self

    @property
    def is_probabilistic(self) -> bool:
        return self.random_mode or self.engine == EngineKind.PROBABILISTIC


class ActorConfig(FrozenArenaModel):
    """How an actor starts a session."""

    id: str = Field(..., min_length=1)
    name: str
    strategy_type: StrategyType = StrategyType.CUSTOM
    strategy_config: StrategyConfig
    initial_cash: float = Field(default=DEFAULT_INITIAL_CASH, gt=0)
    is_active: bool = True


class ActorState(ArenaModel):
    """
    An actor's state after a tick.

    Mutated only by the tick orchestrator through the executor and the
    portfolio accountant; a new instance is produced for every change.
    """

    actor_id: str
    name: str = ""
    cash: float = Field(..., ge=0)
    portfolio: list[Position] = Field(default_factory=list)
    total_assets: float
    total_return: float = 0.0
    total_return_percent: float = 0.0
    is_active: bool = True
    last_update_time: int = 0

    @classmethod
    def initial(cls, config: ActorConfig, timestamp: int = 0) -> "ActorState":
        """State of an actor before its first tick."""
        return cls(
            actor_id=config.id,
            name=config.name,
            cash=config.initial_cash,
            portfolio=[],
            total_assets=config.initial_cash,
            is_active=config.is_active,
            last_update_time=timestamp,
        )

    def position(self, symbol: str) -> Position | None:
        """Get the open position for a symbol, if any."""
        for pos in self.portfolio:
            if pos.symbol == symbol and pos.quantity > 0:
                return pos
        return None

    def has_position(self, symbol: str) -> bool:
        return self.position(symbol) is not None

    @property
    def stock_value(self) -> float:
        return sum(pos.market_value for pos in self.portfolio)
