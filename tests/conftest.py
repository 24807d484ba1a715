from types import SimpleNamespace

import pytest
import fakeredis

import ladder.storage as storage
from ladder.services import users as user_service
from ladder.services import ladders as ladder_service

PLAYERS = ["p1", "p2", "p3", "p4"]


@pytest.fixture(autouse=True)
def use_sqlite(tmp_path, monkeypatch):
    monkeypatch.setattr(storage, "DB_FILE", tmp_path / "ladder.db")
    monkeypatch.setattr(storage, "DATABASE_URL", "")
    monkeypatch.setattr(storage, "IS_PG", False)
    cache = fakeredis.FakeRedis()
    cache.flushall()
    monkeypatch.setattr(storage, "_redis", cache)
    monkeypatch.delenv("SENDGRID_API_KEY", raising=False)
    monkeypatch.delenv("LEAGUE_ADMIN_EMAIL", raising=False)
    yield
    cache.flushall()
    storage._pending_ladders.clear()


@pytest.fixture(autouse=True)
def inject_auth_header(monkeypatch):
    from fastapi.testclient import TestClient

    orig_request = TestClient.request

    def wrapped(self, method, url, *args, **kwargs):
        headers = dict(kwargs.get("headers") or {})
        kwargs["headers"] = headers

        if "json" in kwargs and isinstance(kwargs["json"], dict):
            token = kwargs["json"].pop("token", None)
            if token:
                headers["Authorization"] = f"Bearer {token}"

        if "params" in kwargs and isinstance(kwargs["params"], dict):
            token = kwargs["params"].pop("token", None)
            if token:
                headers["Authorization"] = f"Bearer {token}"

        return orig_request(self, method, url, *args, **kwargs)

    monkeypatch.setattr(TestClient, "request", wrapped)
    yield
    monkeypatch.setattr(TestClient, "request", orig_request)


@pytest.fixture
def register():
    def _register(uid, name=None, *, admin=False, email=None, phone=None, password="pw"):
        data = SimpleNamespace(
            user_id=uid,
            name=name or uid.upper(),
            email=email or f"{uid}@example.com",
            phone=phone,
            password=password,
        )
        return user_service.create_user(data, is_admin=admin)

    return _register


@pytest.fixture
def league(register):
    """An admin, a ladder ``summer`` and four players ranked p1..p4."""
    register("admin", "Admin", admin=True)
    for uid in PLAYERS:
        register(uid)
    ladder_service.create_ladder("admin", "Summer Ladder", ladder_id="summer")
    members = {uid: ladder_service.join_ladder("summer", uid) for uid in PLAYERS}
    return SimpleNamespace(ladder_id="summer", admin="admin", players=list(PLAYERS), members=members)
