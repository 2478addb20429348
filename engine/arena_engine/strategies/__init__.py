"""
Decision engines, indicators and strategy presets.
"""

from arena_engine.strategies.presets import (
    PRESETS,
    get_preset,
    resolve_strategy_config,
)
from arena_engine.strategies.probabilistic import ProbabilisticStrategy, seed_for
from arena_engine.strategies.registry import create_decision_engine
from arena_engine.strategies.threshold import ThresholdStrategy
from arena_engine.strategies.weighted_signal import WeightedSignalStrategy

__all__ = [
    "PRESETS",
    "ProbabilisticStrategy",
    "ThresholdStrategy",
    "WeightedSignalStrategy",
    "create_decision_engine",
    "get_preset",
    "resolve_strategy_config",
    "seed_for",
]
