"""
Session lifecycle, snapshot log and leaderboard.
"""

from arena_engine.sessions.factory import (
    GAME_TAGS,
    build_game_actors,
    game_window,
    new_user_id,
    system_actors,
)
from arena_engine.sessions.store import SessionStore, new_session_id

__all__ = [
    "GAME_TAGS",
    "SessionStore",
    "build_game_actors",
    "game_window",
    "new_session_id",
    "new_user_id",
    "system_actors",
]
