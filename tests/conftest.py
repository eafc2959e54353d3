"""
tests/conftest.py -- Shared test fixtures for AuthLab integration tests.

This module provides:
  - make_test_store(): an isolated named shared-memory user store with
    seeded accounts
  - _patch_lifespan(): wires test stores and a gate into app.state
  - api_client: TestClient over the real app, nonce clock under test control

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers and dependencies in a thread
pool. Plain :memory: DBs are per-connection and would present a blank schema
to each worker thread.

DEBUG and ALLOWED_HOSTS must be set before any app import: get_settings() is
cached at first call and api/main.py reads it at import time.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.gate import AuthGate
from auth.models import User
from auth.nonce import NonceStore
from auth.store import UserStore
from auth.tokens import hash_password
from helpers import NONCE_TTL, REALM, FakeClock

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_test_store(db_suffix: str) -> UserStore:
    """Create an isolated named shared-memory user store seeded with test accounts.

    Accounts:
      admin / secret     -- Digest + Basic enabled
      nodigest / secret  -- Basic only (no digest_secret)
      retired / secret   -- deactivated
    """
    store = UserStore(db_url=f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")
    if not store.has_users():
        hashed = hash_password("secret")
        store.create_user(User(username="admin", hashed_password=hashed, digest_secret="secret"))
        store.create_user(User(username="nodigest", hashed_password=hashed))
        store.create_user(User(username="retired", hashed_password=hashed, digest_secret="secret", is_active=False))
    return store


def _patch_lifespan(user_store: UserStore, nonces: NonceStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the test stores and a gate into app.state. The sweep task is a
    long-sleeping coroutine so shutdown still has a real Task to cancel.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.nonces = nonces
        app.state.auth_gate = AuthGate(nonces=nonces, lookup_user=user_store.get_digest_record, realm=REALM)
        app.state.sweep_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.sweep_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, FakeClock, NonceStore], None, None]:
    """Yield (client, clock, nonces) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers and dependencies while the nonce clock is
    under test control.
    """
    clock = FakeClock()
    nonces = NonceStore(ttl=NONCE_TTL, clock=clock)
    user_store = make_test_store("api")

    app.router.lifespan_context = _patch_lifespan(user_store, nonces)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, clock, nonces

    user_store.close()
