"""
Logging configuration for the Arena backtest engine.

Every line emitted while a tick or run is in progress carries the session ID,
set with session_context(). Recent lines are kept in memory per process and
served by the /logs endpoint, filterable by session.
"""

import json
import logging
import sys
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

current_session_id: ContextVar[str | None] = ContextVar("current_session_id", default=None)

TEXT_FORMAT = "%(timestamp)s | %(levelname)-8s | %(name)s | %(session_prefix)s%(message)s"


def _stamp(record: logging.LogRecord) -> None:
    if not hasattr(record, "timestamp"):
        record.timestamp = datetime.fromtimestamp(record.created, UTC).isoformat()
    if not hasattr(record, "session_id"):
        record.session_id = current_session_id.get()
    record.session_prefix = f"[{record.session_id}] " if record.session_id else ""


class ArenaFormatter(logging.Formatter):
    """
    Formats records as text or as one JSON object per line.

    Text lines look like:
        2025-06-02T01:30:00+00:00 | INFO     | arena_engine.backtest.orchestrator | [session_ab12] Tick ...
    """

    def __init__(self, json_output: bool = False) -> None:
        super().__init__(TEXT_FORMAT)
        self._json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        _stamp(record)
        if not self._json_output:
            return super().format(record)

        payload = {
            "timestamp": record.timestamp,
            "level": record.levelname,
            "logger": record.name,
            "session_id": record.session_id,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


class SessionLogBuffer(logging.Handler):
    """Ring buffer of recent records for the /logs endpoint."""

    def __init__(self, capacity: int = 1000):
        super().__init__()
        self.entries: deque[dict[str, Any]] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            _stamp(record)
            self.entries.append(
                {
                    "timestamp": record.timestamp,
                    "level": record.levelname,
                    "level_no": record.levelno,
                    "logger": record.name,
                    "session_id": record.session_id,
                    "message": record.getMessage(),
                }
            )
        except Exception:
            self.handleError(record)

    def query(
        self,
        min_level: int = logging.INFO,
        limit: int = 50,
        session_id: str | None = None,
    ) -> list[dict[str, Any]]:
        matched = [
            entry
            for entry in self.entries
            if entry["level_no"] >= min_level
            and (session_id is None or entry["session_id"] == session_id)
        ]
        return matched[-limit:]


_buffer = SessionLogBuffer()


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """
    Configure the root logger with a stdout handler and the in-memory buffer.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Emit JSON lines instead of text

    Returns:
        Configured root logger
    """
    root = logging.getLogger()
    root.handlers.clear()

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(ArenaFormatter(json_output=json_output))
    root.addHandler(handler)

    _buffer.setLevel(numeric_level)
    root.addHandler(_buffer)

    # Suppress noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_in_memory_logs(
    level: str = "INFO",
    limit: int = 50,
    session_id: str | None = None,
) -> list[dict[str, Any]]:
    """Most recent buffered lines at or above level, oldest first."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    return _buffer.query(min_level=numeric_level, limit=limit, session_id=session_id)


@contextmanager
def session_context(session_id: str) -> Iterator[None]:
    """Tag log lines emitted inside the block with session_id."""
    token = current_session_id.set(session_id)
    try:
        yield
    finally:
        current_session_id.reset(token)
