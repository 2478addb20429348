"""
Probabilistic decision engine.

Baseline/control strategy: ignores every signal and acts on one random draw
per decision. Seed the Random instance for reproducible runs.
"""

import hashlib
import random

from arena_engine.domain import Decision, DecisionAction, SignalBreakdown, StrategyConfig
from arena_engine.interfaces.strategy import DecisionContext, DecisionEngine

MIN_BUY_LOT = 10


def seed_for(session_id: str, actor_id: str, timestamp: int | None = None) -> int:
    """Stable seed for one actor within one session, optionally per tick."""
    material = f"{session_id}:{actor_id}"
    if timestamp is not None:
        material += f":{timestamp}"
    digest = hashlib.sha256(material.encode()).digest()
    return int.from_bytes(digest[:8], "big")


class ProbabilisticStrategy(DecisionEngine):
    """
    Draw r in [0, 1):
        buy  if r > 1 - buy_probability, no position and cash > price * 10
        sell if r <= sell_probability and a position is held
        hold otherwise
    """

    def __init__(self, config: StrategyConfig, rng: random.Random | None = None):
        super().__init__(config)
        self._rng = rng or random.Random()
        self._buy_probability = config.random_buy_probability or 0.0
        self._sell_probability = config.random_sell_probability or 0.0

    @property
    def name(self) -> str:
        return "probabilistic"

    def decide(self, context: DecisionContext) -> Decision:
        draw = self._rng.random()
        label = self.config.name.upper()
        price = context.price
        change = context.change_percent

        if (
            draw > 1 - self._buy_probability
            and not context.has_position
            and context.cash > price * MIN_BUY_LOT
        ):
            action = DecisionAction.BUY
            confidence = float(60 + self._rng.randint(0, 29))
            rationale = f"[{label}] Random buy, price={price:.2f}, change={change:.2f}%"
        elif draw <= self._sell_probability and context.has_position:
            action = DecisionAction.SELL
            confidence = float(55 + self._rng.randint(0, 24))
            rationale = (
                f"[{label}] Random sell, price={price:.2f}, change={change:.2f}%, "
                f"holding={context.position.quantity}"
            )
        else:
            action = DecisionAction.HOLD
            confidence = 0.0
            rationale = f"[{label}] Hold, price={price:.2f}, change={change:.2f}%"

        breakdown = SignalBreakdown(rsi=context.rsi, random_draw=draw)
        return self.build_decision(context, action, confidence, rationale, breakdown)
