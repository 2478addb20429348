"""
Pytest configuration and shared fixtures.
"""

import os
from collections.abc import Generator

import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("ARENA_ENV", "development")
os.environ.setdefault("ARENA_KV_BACKEND", "memory")

# Import shared fixtures from api_fixtures
from tests.api_fixtures import *  # noqa: E402, F403


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure no local settings leak into tests from the environment."""
    for var in list(os.environ):
        if var.startswith("ARENA_") and var not in ("ARENA_ENV", "ARENA_KV_BACKEND"):
            monkeypatch.delenv(var, raising=False)

    # Force the in-memory backend
    monkeypatch.setenv("ARENA_KV_BACKEND", "memory")


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset module-level singletons between tests."""
    # Run the test
    yield

    # Reset singletons after each test
    from arena_engine.api import dependencies
    from arena_engine.config import get_settings
    from arena_engine.runtime.event_bus import reset_event_bus

    dependencies.reset_dependencies()
    reset_event_bus()
    get_settings.cache_clear()
