"""
tests/conftest.py -- Shared test fixtures for TokenWarden.

This module provides:
  - FrozenClock: an injectable clock that only moves when a test advances it
  - unit fixtures: in-memory engine, stores, hasher, signer and AuthService,
    all sharing one FrozenClock
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: unit fixtures use plain sqlite:///:memory: -- SQLAlchemy keeps one
connection per thread for it, and unit tests run in one thread. TestClient
runs sync route handlers in a thread pool, so the API fixture uses a named
shared-memory URI (file:name?mode=memory&cache=shared&uri=true) that every
worker thread sees.

bcrypt runs at 4 rounds in tests. The cost factor changes timing, not
behavior.

The DEBUG env var must be set before any api/ import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any api/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import PrincipalStore, RefreshTokenStore, create_auth_engine
from auth.tokens import TokenSigner

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789"
OTHER_SECRET = "other-secret-key-fedcba9876543210fedcba987"

# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FrozenClock:
    """Callable clock pinned to a fixed instant until advance() is called."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    """One hasher for the whole session -- building it computes the dummy hash."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def engine():
    eng = create_auth_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


@pytest.fixture
def signer(clock: FrozenClock) -> TokenSigner:
    return TokenSigner(secret_key=TEST_SECRET, clock=clock)


@pytest.fixture
def principals(engine, clock: FrozenClock) -> PrincipalStore:
    return PrincipalStore(engine, clock=clock)


@pytest.fixture
def refresh_tokens(engine, clock: FrozenClock) -> RefreshTokenStore:
    return RefreshTokenStore(engine, clock=clock)


@pytest.fixture
def service(
    hasher: PasswordHasher,
    signer: TokenSigner,
    principals: PrincipalStore,
    refresh_tokens: RefreshTokenStore,
) -> AuthService:
    return AuthService(hasher, signer, principals, refresh_tokens)


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test service into app.state so routes hit isolated
    in-memory storage rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_service = service
        app.state.request_timeout = 10.0
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(hasher: PasswordHasher) -> Generator[tuple[TestClient, AuthService], None, None]:
    """Yield (client, service) for API integration tests.

    The service uses the real wall clock: HTTP tests exercise wiring and
    status codes, expiry arithmetic is covered by the unit tests.
    """
    from api.main import app

    engine = create_auth_engine("sqlite:///file:test_api?mode=memory&cache=shared&uri=true")
    service = AuthService(
        hasher,
        TokenSigner(secret_key=TEST_SECRET),
        PrincipalStore(engine),
        RefreshTokenStore(engine),
    )
    app.router.lifespan_context = _patch_lifespan(service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, service

    engine.dispose()
