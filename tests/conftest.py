"""Pytest configuration and fixtures shared across all test modules.

Environment variables are pinned before anything imports the settings
module, so tests never pick up a developer's .env file values.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_CLAIM_INVALID_AS_NOT_FOUND", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("RATE_LIMIT_REQUESTS", "100")
os.environ.setdefault("RATE_LIMIT_WINDOW_SECONDS", "3600")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from rendezvous.api.routes.phrase import close_rendezvous_store
from rendezvous.core.rate_limit import reset_rate_limiter


@pytest.fixture(autouse=True)
def _fresh_process_state():
    """Give every test an empty store and a fresh rate limiter."""
    close_rendezvous_store()
    reset_rate_limiter()
    yield
    close_rendezvous_store()
    reset_rate_limiter()


class FakeClock:
    """Deterministic clock used to test window and expiry logic."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
