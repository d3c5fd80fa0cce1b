"""
tests/conftest.py -- Shared test fixtures for SecretKeeper.

This module provides:
  - db_url: a unique named shared-memory SQLite URI per test
  - user_store / vault / session_store: isolated stores on that database
  - app_env: the stores plus an OAuth mock, wired into app.state through a
    patched lifespan
  - client: TestClient with follow_redirects=False for web route tests
  - lenient_client: the same, returning 500 responses for unhandled errors

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any app import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import MagicMock

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from asgi import app
from auth.credentials import CredentialVerifier
from auth.dependencies import AccessGuard
from auth.oauth import FederationAdapter
from auth.sessions import SessionManager, SessionStore
from auth.store import UserStore
from vault.store import SecretStore

# TrustedHostMiddleware only accepts localhost names.
BASE_URL = "http://localhost"


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_url() -> str:
    return f"sqlite:///file:test_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def user_store(db_url: str) -> Generator[UserStore, None, None]:
    store = UserStore(db_url)
    yield store
    store.close()


@pytest.fixture
def vault(db_url: str) -> Generator[SecretStore, None, None]:
    store = SecretStore(db_url)
    yield store
    store.close()


@pytest.fixture
def session_store(db_url: str) -> Generator[SessionStore, None, None]:
    store = SessionStore(db_url)
    yield store
    store.close()


# ---------------------------------------------------------------------------
# Application fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(env: SimpleNamespace):
    """Return an async context manager that replaces the real lifespan.

    Wires the test stores into app.state so TestClient routes see isolated
    test DBs, and installs the OAuth mock so no request leaves the process.
    The purge_task is a long-sleeping coroutine that keeps asyncio happy.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = env.user_store
        app.state.vault = env.vault
        app.state.sessions = env.sessions
        app.state.guard = AccessGuard(env.sessions)
        app.state.credentials = CredentialVerifier(env.user_store)
        app.state.federation = FederationAdapter(env.user_store)
        app.state.oauth = env.oauth
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def app_env(user_store: UserStore, vault: SecretStore, session_store: SessionStore) -> SimpleNamespace:
    """Collaborators the app will use. Tests may reconfigure env.oauth before starting a client."""
    oauth = MagicMock()
    # No provider registered unless a test says otherwise.
    oauth.create_client.return_value = None
    return SimpleNamespace(
        user_store=user_store,
        vault=vault,
        sessions=SessionManager(session_store, user_store, expire_seconds=3600),
        oauth=oauth,
    )


@pytest.fixture
def client(app_env: SimpleNamespace) -> Generator[TestClient, None, None]:
    """TestClient over the real app with patched lifespan.

    follow_redirects=False is essential: tests assert on redirect locations,
    which are invisible once the client follows the redirect.
    """
    app.router.lifespan_context = _patch_lifespan(app_env)
    with TestClient(app, base_url=BASE_URL, follow_redirects=False, raise_server_exceptions=True) as c:
        yield c


@pytest.fixture
def lenient_client(app_env: SimpleNamespace) -> Generator[TestClient, None, None]:
    """Like client, but unhandled errors come back as 500 responses instead of raising."""
    app.router.lifespan_context = _patch_lifespan(app_env)
    with TestClient(app, base_url=BASE_URL, follow_redirects=False, raise_server_exceptions=False) as c:
        yield c
