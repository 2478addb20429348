"""
Actor line-ups for new sessions.
"""

from typing import Any
from uuid import uuid4

from arena_engine.domain import DEFAULT_INITIAL_CASH, ActorConfig, StrategyType
from arena_engine.strategies.presets import get_preset, resolve_strategy_config

GAME_WINDOW_MS = 14 * 24 * 60 * 60 * 1000
GAME_TAGS = ("single-player", "auto-generated")

SYSTEM_ACTORS: tuple[tuple[str, str, StrategyType], ...] = (
    ("player_0", "Aggressive growth-board trader", StrategyType.AGGRESSIVE),
    ("player_1", "Balanced main-board investor", StrategyType.BALANCED),
    ("player_2", "Conservative blue-chip investor", StrategyType.CONSERVATIVE),
)


def new_user_id(now: int) -> str:
    return f"user_{now}_{uuid4().hex[:6]}"


def system_actors(initial_cash: float = DEFAULT_INITIAL_CASH) -> list[ActorConfig]:
    """The three preset opponents."""
    return [
        ActorConfig(
            id=actor_id,
            name=name,
            strategy_type=kind,
            strategy_config=get_preset(kind),
            initial_cash=initial_cash,
        )
        for actor_id, name, kind in SYSTEM_ACTORS
    ]


def build_game_actors(
    user_name: str,
    user_strategy: StrategyType | str,
    user_id: str,
    overrides: dict[str, Any] | None = None,
    initial_cash: float = DEFAULT_INITIAL_CASH,
) -> list[ActorConfig]:
    """
    One user actor followed by the three system actors.

    Raises:
        ConfigurationError: Unknown strategy type or invalid overrides
    """
    config = resolve_strategy_config(user_strategy, overrides)
    user = ActorConfig(
        id=user_id,
        name=user_name,
        strategy_type=config.strategy_type,
        strategy_config=config,
        initial_cash=initial_cash,
    )
    return [user, *system_actors(initial_cash)]


def game_window(now: int) -> tuple[int, int]:
    """Start and end of a new game: the 14 days up to now."""
    return now - GAME_WINDOW_MS, now
