"""
FastAPI route modules for the Arena engine.
"""

from arena_engine.api.data_routes import router as data_router
from arena_engine.api.leaderboard_routes import router as leaderboard_router
from arena_engine.api.session_routes import router as session_router
from arena_engine.api.tick_routes import router as tick_router

__all__ = ["data_router", "leaderboard_router", "session_router", "tick_router"]
