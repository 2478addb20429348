"""
Shared pieces for domain models.

Wire format is camelCase JSON; Python attributes are snake_case.
Timestamps are integer epoch milliseconds.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ArenaModel(BaseModel):
    """Base model: camelCase aliases, populate by either name."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class FrozenArenaModel(ArenaModel):
    """Immutable record (quotes, trades, decisions)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


def money(value: float) -> float:
    """Round a monetary amount to 2 decimal places."""
    return round(value, 2)


def to_millis(value: Any) -> int:
    """
    Coerce a timestamp to epoch milliseconds.

    Accepts int/float milliseconds, aware or naive (UTC) datetimes and
    ISO-8601 strings (a trailing 'Z' is accepted).
    """
    if isinstance(value, bool):
        raise ValueError("timestamp must not be a boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, datetime):
        dt = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return int(dt.timestamp() * 1000)
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return to_millis(datetime.fromisoformat(text))
    raise ValueError(f"Unsupported timestamp: {value!r}")


def from_millis(ms: int, tz: Any = UTC) -> datetime:
    """Convert epoch milliseconds to an aware datetime in the given timezone."""
    return datetime.fromtimestamp(ms / 1000, tz=tz)


def now_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(datetime.now(UTC).timestamp() * 1000)
