"""
tests/conftest.py -- Shared test fixtures for ShopDesk tests.

This module provides:
  - FakeClock: a settable clock injected into TokenIssuer and SessionService
  - stores / service: file-backed SQLite stores per test for unit tests
  - api_client: TestClient with a patched lifespan and an admin JWT

Design: unit tests use a file database under tmp_path rather than
sqlite:///:memory:, because the concurrent-refresh test calls the service from
several threads and SQLAlchemy gives each thread its own :memory: database.

The API fixture uses a named shared-memory SQLite URI. TestClient runs sync
route handlers in a thread pool; the named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory database
across all connections in the process.

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any auth/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import Role, User
from auth.service import SessionService
from auth.store import RefreshTokenStore, UserStore
from auth.tokens import TokenIssuer, hash_password

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789"


class FakeClock:
    """Callable clock whose time only moves when a test moves it."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class Stores:
    users: UserStore
    refresh_tokens: RefreshTokenStore


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@example.com"


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def stores(tmp_path) -> Generator[Stores, None, None]:
    users = UserStore(f"sqlite:///{tmp_path / 'auth.db'}")
    yield Stores(users=users, refresh_tokens=RefreshTokenStore(users.engine))
    users.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def issuer(stores: Stores, clock: FakeClock) -> TokenIssuer:
    return TokenIssuer(stores.refresh_tokens, TEST_SECRET, access_ttl="15m", refresh_ttl="7d", clock=clock)


@pytest.fixture
def service(stores: Stores, issuer: TokenIssuer, clock: FakeClock) -> SessionService:
    return SessionService(stores.users, stores.refresh_tokens, issuer, clock=clock)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, RefreshTokenStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    users = UserStore(url)
    return users, RefreshTokenStore(users.engine)


def _patch_lifespan(users: UserStore, refresh_tokens: RefreshTokenStore, issuer: TokenIssuer):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so routes see the isolated
    test DB. No sweep task is started.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = users
        app.state.refresh_store = refresh_tokens
        app.state.token_issuer = issuer
        app.state.session_service = SessionService(users, refresh_tokens, issuer)
        app.state.sweep_task = None
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    The admin user is created before the client starts and an access token is
    issued for it directly. Rate limiting is switched off so tests can log in
    as often as they need.
    """
    users, refresh_tokens = _make_test_stores(request.module.__name__.rsplit(".", 1)[-1])
    issuer = TokenIssuer(refresh_tokens, TEST_SECRET, access_ttl="15m", refresh_ttl="7d")

    admin = users.create_user(
        User(
            email=unique_email("admin"),
            hashed_password=hash_password("adminpass123"),
            role=Role.ADMIN,
        )
    )
    token = issuer.issue_access_token(admin.id, admin.email, admin.role)

    app.router.lifespan_context = _patch_lifespan(users, refresh_tokens, issuer)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin.id

    limiter.enabled = True
    users.close()
