"""
Strategy presets for system actors.
"""

from typing import Any

from pydantic import ValidationError

from arena_engine.domain import EngineKind, StrategyConfig, StrategyType
from arena_engine.errors import ConfigurationError

AGGRESSIVE = StrategyConfig(
    name="aggressive",
    description="High-volatility growth names, random entries and exits",
    strategy_type=StrategyType.AGGRESSIVE,
    engine=EngineKind.PROBABILISTIC,
    symbol_pool=["300750", "002594", "002475", "300059", "300142", "002230"],
    buy_threshold=0.3,
    sell_threshold=-0.3,
    position_size_fraction=0.30,
    max_shares_per_trade=250,
    signal_sensitivity=0.15,
    rsi_buy_threshold=55,
    rsi_sell_threshold=55,
    random_mode=True,
    random_buy_probability=0.7,
    random_sell_probability=0.3,
)

BALANCED = StrategyConfig(
    name="balanced",
    description="Blue chips across consumer, banking and property",
    strategy_type=StrategyType.BALANCED,
    engine=EngineKind.WEIGHTED_SIGNAL,
    symbol_pool=["600519", "000858", "600036", "000001", "600000", "600887", "000002", "600276"],
    buy_threshold=2.0,
    sell_threshold=-1.5,
    position_size_fraction=0.15,
    max_shares_per_trade=150,
    signal_sensitivity=0.3,
    rsi_buy_threshold=40,
    rsi_sell_threshold=65,
)

CONSERVATIVE = StrategyConfig(
    name="conservative",
    description="Large banks, insurers and utilities",
    strategy_type=StrategyType.CONSERVATIVE,
    engine=EngineKind.WEIGHTED_SIGNAL,
    symbol_pool=["601398", "601318", "600900", "600028", "601288", "600104", "000002", "600276"],
    buy_threshold=3.0,
    sell_threshold=-2.0,
    position_size_fraction=0.10,
    max_shares_per_trade=100,
    signal_sensitivity=0.4,
    rsi_buy_threshold=35,
    rsi_sell_threshold=70,
)

PRESETS: dict[StrategyType, StrategyConfig] = {
    StrategyType.AGGRESSIVE: AGGRESSIVE,
    StrategyType.BALANCED: BALANCED,
    StrategyType.CONSERVATIVE: CONSERVATIVE,
}


def get_preset(strategy_type: StrategyType | str) -> StrategyConfig:
    """Get a preset by type. Raises ConfigurationError for unknown or custom types."""
    try:
        return PRESETS[StrategyType(strategy_type)]
    except (KeyError, ValueError) as e:
        raise ConfigurationError(f"No preset for strategy type: {strategy_type}") from e


def resolve_strategy_config(
    strategy_type: StrategyType | str,
    overrides: dict[str, Any] | None = None,
) -> StrategyConfig:
    """
    Merge overrides onto a preset.

    Custom strategies start from the balanced parameters and must supply
    their own symbol pool.

    Raises:
        ConfigurationError: Unknown type or invalid merged config
    """
    try:
        kind = StrategyType(strategy_type)
    except ValueError as e:
        raise ConfigurationError(f"Unknown strategy type: {strategy_type}") from e

    overrides = dict(overrides or {})
    if kind == StrategyType.CUSTOM:
        base = BALANCED.model_dump(exclude={"symbol_pool", "name", "description"})
        base.update(name="custom", strategy_type=StrategyType.CUSTOM)
        if not (overrides.get("symbol_pool") or overrides.get("symbolPool")):
            raise ConfigurationError("Custom strategies require a symbol pool")
    else:
        base = PRESETS[kind].model_dump()

    # Accept camelCase override keys as well.
    field_names = {name: name for name in StrategyConfig.model_fields}
    field_names.update(
        {info.alias: name for name, info in StrategyConfig.model_fields.items() if info.alias}
    )
    for key, value in overrides.items():
        if key not in field_names:
            raise ConfigurationError(f"Unknown strategy parameter: {key}")
        base[field_names[key]] = value

    try:
        return StrategyConfig.model_validate(base)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid strategy config: {e}") from e
