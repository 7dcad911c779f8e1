"""
tests/conftest.py -- Shared test fixtures for Gatekeeper.

This module provides:
  - FakeClock / clock: a controllable clock so expiry tests move time instead of sleeping
  - engine / user_store / session_store / reset_store: isolated in-memory SQLite stores
  - service: an AuthService wired to those stores and the fake clock
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: unit fixtures use plain sqlite:///:memory: (one connection per thread,
one fresh DB per engine). The TestClient fixture uses a named shared-memory
URI because TestClient runs sync route handlers in a thread pool; plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

Environment must be set before any auth/core import: DEBUG lets
BCRYPT_ROUNDS=4 through the production floor, and ALLOWED_HOSTS admits the
TestClient's "testserver" host.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set before any auth/core import so get_settings() sees them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.service import AuthService
from auth.store import SQLResetTokenStore, SQLSessionStore, SQLUserStore, create_store_engine

# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    """ResetNotifier that keeps every (email, token) hand-off for assertions."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send_reset(self, email: str, token: str) -> None:
        self.sent.append((email, token))


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine():
    eng = create_store_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


@pytest.fixture
def user_store(engine) -> SQLUserStore:
    return SQLUserStore(engine)


@pytest.fixture
def session_store(engine) -> SQLSessionStore:
    return SQLSessionStore(engine)


@pytest.fixture
def reset_store(engine) -> SQLResetTokenStore:
    return SQLResetTokenStore(engine)


@pytest.fixture
def service(user_store, session_store, reset_store, clock) -> AuthService:
    return AuthService(user_store, session_store, reset_store, clock=clock)


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(engine, notifier: RecordingNotifier):
    """Return an async context manager that replaces the real lifespan.

    Wires a test engine, stores and a recording notifier into app.state so
    TestClient routes see an isolated DB and tests can read reset tokens.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.auth_service = AuthService(SQLUserStore(engine), SQLSessionStore(engine), SQLResetTokenStore(engine))
        app.state.reset_notifier = notifier
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, RecordingNotifier], None, None]:
    """Yield (client, notifier) for API integration tests.

    One TestClient per test module for speed; tests use distinct usernames so
    they do not collide in the shared DB.
    """
    engine = create_store_engine("sqlite:///file:test_gatekeeper_api?mode=memory&cache=shared&uri=true")
    notifier = RecordingNotifier()
    app.router.lifespan_context = _patch_lifespan(engine, notifier)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, notifier

    engine.dispose()
