"""
tests/conftest.py -- Shared fixtures for Gatekeeper unit and integration tests.

This module provides:
  - FrozenClock: a controllable clock injected into SessionManager and CookieCodec
  - user_store / session_store / manager / codec / service: isolated auth stack
  - client: TestClient over the real FastAPI app with a patched lifespan
  - make_user() / login(): helpers for arranging accounts and sessions

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. Each fixture instance gets its own uuid-suffixed name, so tests never
share rows.

Environment variables must be set before any api/ or core/ import:
get_settings() is cached on first call and api/main.py reads it at import.
"""

from __future__ import annotations

import asyncio
import base64
import json
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: configure before importing api/ or core/.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver"]')
os.environ.setdefault("HASH_COST", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.cookies import CookieCodec
from auth.models import User, UserRole
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.sessions import SessionManager
from auth.store import SessionStore, UserStore
from auth.strength import StrengthEvaluator

# zxcvbn scores these 4 and 0-1 respectively.
STRONG_PASSWORD = "correct-horse-battery-staple-42"
OTHER_STRONG_PASSWORD = "Vq7!rT2#mZp9$Lx-orbit"
WEAK_PASSWORD = "P@ssWord1"

TEST_SECRET = "test-secret-key-with-at-least-32-characters"
SESSION_VALIDITY = timedelta(days=1)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Auth stack fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore(f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    yield store
    store.close()


@pytest.fixture
def session_store(user_store: UserStore) -> SessionStore:
    return SessionStore(user_store.engine)


@pytest.fixture
def manager(session_store: SessionStore, clock: FrozenClock) -> SessionManager:
    return SessionManager(session_store, validity=SESSION_VALIDITY, clock=clock)


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    # Cost 4 is bcrypt's minimum -- fast enough for a test suite.
    return PasswordHasher(cost=4)


@pytest.fixture
def codec(clock: FrozenClock) -> CookieCodec:
    return CookieCodec(TEST_SECRET, ttl_seconds=int(SESSION_VALIDITY.total_seconds()), clock=clock)


@pytest.fixture
def service(
    user_store: UserStore,
    manager: SessionManager,
    hasher: PasswordHasher,
    codec: CookieCodec,
) -> AuthService:
    return AuthService(user_store, manager, hasher, StrengthEvaluator(), codec)


def make_user(
    service: AuthService,
    email: str,
    password: str = STRONG_PASSWORD,
    role: UserRole = UserRole.USER,
    approved: bool = True,
) -> User:
    """Create a user through the service (strength gate + hashing included)."""
    return service.create_user(email=email, password=password, role=role, is_approved=approved)


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, service: AuthService):
    """Return a lifespan that wires the test stack into app.state.

    The purge_task is a long-sleeping coroutine so shutdown can .cancel() a
    real asyncio.Task, mirroring production.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.auth_service = service
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def client(user_store: UserStore, service: AuthService) -> Generator[TestClient, None, None]:
    """TestClient over the real app, backed by this test's isolated stack."""
    app.router.lifespan_context = _patch_lifespan(user_store, service)
    with TestClient(app, raise_server_exceptions=True) as test_client:
        yield test_client


def login(client: TestClient, email: str, password: str = STRONG_PASSWORD):
    """Drop any current cookie and log in; the client's jar then holds the new session."""
    client.cookies.clear()
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


def set_cookie_headers(resp) -> list[str]:
    return [v for k, v in resp.headers.multi_items() if k.lower() == "set-cookie"]


def forged_token(header: dict) -> str:
    """Compact JWE shape with an attacker-chosen header and junk in the other four segments."""

    def b64(raw: bytes) -> str:
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

    return ".".join([b64(json.dumps(header).encode("utf-8"))] + [b64(b"junk-segment-bytes")] * 4)
