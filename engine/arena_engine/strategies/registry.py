"""
Decision engine registry.
"""

import random

from arena_engine.domain import EngineKind, StrategyConfig
from arena_engine.interfaces.strategy import DecisionEngine
from arena_engine.strategies.probabilistic import ProbabilisticStrategy
from arena_engine.strategies.threshold import ThresholdStrategy
from arena_engine.strategies.weighted_signal import WeightedSignalStrategy

ENGINES: dict[EngineKind, type[DecisionEngine]] = {
    EngineKind.WEIGHTED_SIGNAL: WeightedSignalStrategy,
    EngineKind.THRESHOLD: ThresholdStrategy,
    EngineKind.PROBABILISTIC: ProbabilisticStrategy,
}


def create_decision_engine(
    config: StrategyConfig,
    rng: random.Random | None = None,
) -> DecisionEngine:
    """
    Build the engine for a strategy config.

    random_mode forces the probabilistic engine whatever `engine` says.
    """
    if config.is_probabilistic:
        return ProbabilisticStrategy(config, rng=rng)
    return ENGINES[config.engine](config)
