"""
tests/conftest.py -- Shared test fixtures for postkeeper unit and integration tests.

This module provides:
  - engine: file-backed SQLite database under tmp_path, one per test
  - users / refresh_store / hasher / codec / service / guard: the auth core
    wired against that engine exactly as api/main.py wires it
  - _patch_lifespan(): wires the test engine into app.state, bypassing real startup
  - api_client: TestClient against the real app with the patched lifespan

Design: a file database (not :memory:) because TestClient runs sync route
handlers in a thread pool and the concurrency tests start their own threads.
Every connection must see the same schema and the same rows, and SQLite only
serializes writers across connections when they share a file.

The environment must be set before any api/ or core/ import: api/main.py
reads get_settings() at import time for logging, CORS and trusted hosts.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set env before any api/auth/core import.
TEST_SECRET_KEY = "test-secret-key-0123456789abcdef0123456789"  # noqa: S105 # nosec B105
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", TEST_SECRET_KEY)
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, build_auth_components
from auth.dependencies import AccessGuard
from auth.models import Role
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import RefreshTokenStore, UserStore, create_db_engine
from auth.tokens import TokenCodec
from core.config import get_settings

# Rate limits are exercised explicitly in test_api_auth.py; everywhere else
# they would make the suite order-dependent.
limiter.enabled = False

PASSWORD = "Password123"  # noqa: S105 # nosec B105


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine(tmp_path):
    eng = create_db_engine(f"sqlite:///{tmp_path / 'postkeeper_test.db'}")
    yield eng
    eng.dispose()


@pytest.fixture()
def users(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture()
def refresh_store(engine) -> RefreshTokenStore:
    return RefreshTokenStore(engine)


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture()
def secret_key() -> str:
    return TEST_SECRET_KEY


@pytest.fixture()
def codec(secret_key) -> TokenCodec:
    return TokenCodec(secret_key=secret_key)


@pytest.fixture()
def service(users, refresh_store, hasher, codec) -> AuthService:
    return AuthService(users, refresh_store, hasher, codec)


@pytest.fixture()
def guard(codec, users) -> AccessGuard:
    return AccessGuard(codec, users)


@pytest.fixture()
def alice(service):
    """A registered account with role "user"."""
    return service.register("alice@example.com", PASSWORD, "Alice")


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(engine):
    """Return an async context manager that replaces the real lifespan.

    Wires the test engine into app.state through the same builder the real
    lifespan uses, so routes see the test database.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        build_auth_components(app, engine)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture()
def api_client(engine) -> Generator[TestClient, None, None]:
    """Yield a TestClient running the real routes against an isolated database."""
    app.router.lifespan_context = _patch_lifespan(engine)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture()
def make_admin(engine):
    """Register-and-promote helper returning the admin's email."""

    def _make(client: TestClient, email: str = "admin@example.com") -> str:
        resp = client.post("/api/v1/auth/register", json={"email": email, "password": PASSWORD, "name": "Admin"})
        assert resp.status_code == 201
        UserStore(engine).update_role(resp.json()["id"], Role.admin)
        return email

    return _make


@pytest.fixture()
def clean_settings():
    """Clear the settings cache before and after a test that changes the environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
