"""
tests/test_lifespan.py -- Startup wiring in api/main.py.

The other API modules swap in a test lifespan; this one covers what that
replaces:
  - _seed_admin(): first-run account in DEBUG, none in production without
    SEED_ADMIN_PASSWORD, and never on a non-empty store
  - _sweep_loop(): expired nonces are purged on the interval
  - lifespan(): the real gate, seed and sweep task wired end to end, with
    only the UserStore location redirected to shared memory
"""

from __future__ import annotations

import asyncio
import base64
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from api.main import _seed_admin, _sweep_loop, app, lifespan
from auth.gate import AuthGate
from auth.models import User
from auth.nonce import NonceStore
from auth.store import UserStore
from core.config import Settings
from helpers import FakeClock, digest_authorization, nonce_from

_KEY = "k" * 32


def _basic(username: str, password: str) -> dict[str, str]:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


@pytest.fixture
def store():
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


# ---------------------------------------------------------------------------
# _seed_admin
# ---------------------------------------------------------------------------


class TestSeedAdmin:
    def test_debug_seeds_dev_account(self, store):
        settings = Settings(secret_key=_KEY, debug=True, seed_admin_password="")
        assert _seed_admin(store, settings) is True
        record = store.get_digest_record("admin")
        assert record is not None
        assert record.secret == "secret"

    def test_production_without_password_seeds_nothing(self, store, caplog):
        settings = Settings(secret_key=_KEY, debug=False, seed_admin_password="")
        caplog.set_level("WARNING", logger="authlab.api")
        assert _seed_admin(store, settings) is False
        assert store.has_users() is False
        assert "SEED_ADMIN_PASSWORD is not set" in caplog.text

    def test_production_with_explicit_password(self, store):
        settings = Settings(secret_key=_KEY, debug=False, seed_admin_password="correct-horse")
        assert _seed_admin(store, settings) is True
        record = store.get_digest_record("admin")
        assert record is not None
        assert record.secret == "correct-horse"

    def test_non_empty_store_is_left_alone(self, store):
        store.create_user(User(username="alice", hashed_password="h", digest_secret="pw"))
        settings = Settings(secret_key=_KEY, debug=True)
        assert _seed_admin(store, settings) is False
        assert store.get_digest_record("admin") is None
        assert store.get_digest_record("alice") is not None

    def test_second_call_does_not_duplicate(self, store):
        settings = Settings(secret_key=_KEY, debug=True)
        assert _seed_admin(store, settings) is True
        assert _seed_admin(store, settings) is False


# ---------------------------------------------------------------------------
# _sweep_loop
# ---------------------------------------------------------------------------


def test_sweep_loop_purges_expired_nonces():
    clock = FakeClock()
    nonces = NonceStore(ttl=300, clock=clock)
    for _ in range(3):
        nonces.generate()
    clock.advance(301)
    fresh = nonces.generate()
    fake_app = SimpleNamespace(state=SimpleNamespace(nonces=nonces))

    async def run() -> None:
        task = asyncio.create_task(_sweep_loop(fake_app, 0.01))
        for _ in range(200):
            await asyncio.sleep(0.01)
            if len(nonces) == 1:
                break
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())

    assert len(nonces) == 1
    assert nonces.is_valid(fresh)


# ---------------------------------------------------------------------------
# lifespan
# ---------------------------------------------------------------------------


def _real_lifespan_client(monkeypatch, suffix: str, settings: Settings | None = None) -> TestClient:
    user_store = UserStore(db_url=f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true")
    monkeypatch.setattr("api.main.UserStore", lambda: user_store)
    if settings is not None:
        monkeypatch.setattr("api.main._settings", settings)
    monkeypatch.setattr(app.router, "lifespan_context", lifespan)
    return TestClient(app)


def test_real_lifespan_serves_digest_with_seeded_admin(monkeypatch):
    with _real_lifespan_client(monkeypatch, "lifespan_debug") as client:
        assert isinstance(app.state.auth_gate, AuthGate)
        assert not app.state.sweep_task.done()

        challenge = client.get("/protected")
        assert challenge.status_code == 401
        nonce = nonce_from(challenge.headers["www-authenticate"])

        header = digest_authorization(nonce, qop="auth", cnonce="5eed")
        resp = client.get("/protected", headers={"Authorization": header})
        assert resp.status_code == 200
        assert resp.json()["username"] == "admin"


def test_real_lifespan_in_production_has_no_default_account(monkeypatch):
    settings = Settings(secret_key=_KEY, debug=False, seed_admin_password="")
    with _real_lifespan_client(monkeypatch, "lifespan_prod", settings) as client:
        resp = client.get("/api/v1/auth/basic", headers=_basic("admin", "secret"))
        assert resp.status_code == 401

        nonce = nonce_from(client.get("/protected").headers["www-authenticate"])
        resp = client.get("/protected", headers={"Authorization": digest_authorization(nonce)})
        assert resp.status_code == 401
