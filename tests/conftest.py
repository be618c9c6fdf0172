"""
tests/conftest.py -- Shared test fixtures for MemberGate.

This module provides:
  - FakeClock: controllable epoch clock for session expiry tests
  - unit fixtures: hasher, user_store, clock, session_manager, service
  - _make_test_service(): isolated shared-memory SQLite stores + AuthService
  - _patch_lifespan(): wires a test service into app.state, bypassing real startup
  - api_client: TestClient plus an admin session id for API integration tests
  - web_client: TestClient with follow_redirects=False for web route tests
  - tight_rate_limits: low login/signup limits for the 429 tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the TestClient fixtures because route handlers run in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. Unit fixtures run on one thread and use :memory:.

Environment must be set before any app import: DEBUG lets get_settings()
auto-generate SECRET_KEY and accept a cheap bcrypt cost; the rate limits are
raised because every test request comes from the same client address.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("SIGNUP_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from asgi import app
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings

TEST_SECRET = "test-secret-key-with-at-least-32-characters"
TEST_ROUNDS = 4

ADMIN_EMAIL = "root@x.com"
ADMIN_PASSWORD = "rootpass1"


class FakeClock:
    """Callable epoch clock. advance() moves time forward without sleeping."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=TEST_ROUNDS)


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_manager(clock: FakeClock) -> Generator[SessionManager, None, None]:
    manager = SessionManager("sqlite:///:memory:", secret_key=TEST_SECRET, expire_seconds=3600, clock=clock)
    yield manager
    manager.close()


@pytest.fixture
def service(user_store: UserStore, session_manager: SessionManager, hasher: PasswordHasher) -> AuthService:
    return AuthService(user_store, session_manager, hasher)


# ---------------------------------------------------------------------------
# Integration helpers
# ---------------------------------------------------------------------------


def _make_test_service(db_suffix: str, hasher: PasswordHasher) -> AuthService:
    """Create an AuthService over isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'web').
    """
    url = f"sqlite:///file:test_membergate_{db_suffix}?mode=memory&cache=shared&uri=true"
    return AuthService(UserStore(url), SessionManager(url, secret_key=TEST_SECRET), hasher)


def _make_admin(service: AuthService, username: str) -> str:
    """Register username, promote it directly in the store, return an admin session id."""
    service.register_user(username, ADMIN_EMAIL, ADMIN_PASSWORD)
    service.roles.promote(username)
    return service.login(ADMIN_EMAIL, ADMIN_PASSWORD).session_id


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown can cancel a real
    asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = service.users
        app.state.session_manager = service.sessions
        app.state.auth_service = service
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped clients -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def _api_app(hasher: PasswordHasher) -> Generator[tuple[TestClient, AuthService, str], None, None]:
    service = _make_test_service("api", hasher)
    admin_sid = _make_admin(service, "apiadmin")
    app.router.lifespan_context = _patch_lifespan(service)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, service, admin_sid
    service.sessions.close()
    service.users.close()


@pytest.fixture
def api_client(_api_app) -> Generator[tuple[TestClient, AuthService, str], None, None]:
    """Yield (client, service, admin_session_id) with an empty cookie jar.

    The admin session id is meant for Authorization: Bearer headers.
    """
    client, _service, _admin_sid = _api_app
    client.cookies.clear()
    yield _api_app
    client.cookies.clear()


@pytest.fixture(scope="module")
def _web_app(hasher: PasswordHasher) -> Generator[tuple[TestClient, AuthService, str], None, None]:
    service = _make_test_service("web", hasher)
    admin_sid = _make_admin(service, "webadmin")
    app.router.lifespan_context = _patch_lifespan(service)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client, service, admin_sid
    service.sessions.close()
    service.users.close()


@pytest.fixture
def web_client(_web_app) -> Generator[tuple[TestClient, AuthService, str], None, None]:
    """Yield (client, service, admin_session_id) with an empty cookie jar.

    follow_redirects=False is essential: tests assert on redirect locations,
    which are invisible once the client follows them.
    """
    client, _service, _admin_sid = _web_app
    client.cookies.clear()
    yield _web_app
    client.cookies.clear()


@pytest.fixture
def tight_rate_limits(monkeypatch) -> Generator[None, None, None]:
    """Drop the login and signup limits to 2/minute with fresh counters.

    The limits are read from Settings per request, so patching the cached
    instance takes effect without rebuilding the app.
    """
    settings = get_settings()
    monkeypatch.setattr(settings, "login_rate_limit", "2/minute")
    monkeypatch.setattr(settings, "signup_rate_limit", "2/minute")
    limiter.reset()
    yield
    limiter.reset()
