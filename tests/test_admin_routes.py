import pytest
from fastapi.testclient import TestClient

from app.config.settings import settings
from app.main import app
from app.routes import health
from app.services import session_store
from app.services.llm_engine import UpstreamProviderError
from app.services.word_store import Corpus

from conftest import StubGenerator, StubOracle, entry

TOKEN = "test-admin-token"


@pytest.fixture
def generator():
    return StubGenerator([[entry("owl"), entry("cat")]])


@pytest.fixture
def client(store, generator, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_TOKEN", TOKEN)
    store.insert_many([entry("cat")])
    session_store.configure(corpus=Corpus(store, generator, min_words=0), oracle=StubOracle())
    yield TestClient(app)
    session_store.configure()


def auth(token=TOKEN):
    return {"Authorization": f"Bearer {token}"}


def test_root_and_health(client):
    assert client.get("/").json() == {"ok": True, "service": settings.APP_NAME}
    assert client.get("/health").json()["ok"] is True


def test_admin_requires_token(client):
    assert client.get("/admin/corpus").status_code == 401
    assert client.get("/admin/corpus", headers=auth("nope")).status_code == 403


def test_corpus_count_and_replenish(client, generator):
    assert client.get("/admin/corpus", headers=auth()).json() == {"ok": True, "count": 1}

    res = client.post("/admin/corpus/replenish", headers=auth())
    assert res.status_code == 200
    assert res.json() == {"ok": True, "inserted": 1, "count": 2}
    assert generator.calls == 1

    # plus aucun lot disponible : le provider "échoue"
    res = client.post("/admin/corpus/replenish", headers=auth())
    assert res.status_code == 502


def test_sessions_listing_and_peers(client):
    assert client.get("/admin/sessions", headers=auth()).json() == {"ok": True, "sessions": []}
    assert client.get("/admin/sessions/ghost/peers", headers=auth()).status_code == 404

    session_store.get_session("lobby")
    listed = client.get("/admin/sessions", headers=auth()).json()["sessions"]
    assert listed == [{"session_id": "lobby", "players": 0, "round": 0, "phase": "UNINITIALIZED"}]
    peers = client.get("/admin/sessions/lobby/peers", headers=auth()).json()
    assert peers == {"connected": [], "connected_total": 0, "queued_frames": 0}


def test_health_llm_reports_provider_failure(client, monkeypatch):
    def boom(name):
        raise UpstreamProviderError("Unknown completion provider 'x'")

    monkeypatch.setattr(health, "build_backend", boom)

    body = client.get("/health/llm").json()
    assert body["ok"] is False
    assert body["provider"] == settings.ORACLE_PROVIDER
    assert "Unknown completion provider" in body["error"]


def test_health_llm_pings_requested_provider(client, monkeypatch):
    seen = []

    class Pong:
        name = "groq"

        def complete(self, prompt, *, system_prompt=None):
            return "pong"

    monkeypatch.setattr(health, "build_backend", lambda name: seen.append(name) or Pong())

    body = client.get("/health/llm", params={"provider": "groq"}).json()
    assert body["ok"] is True
    assert body["provider"] == "groq"
    assert body["sample"] == "pong"
    assert seen == ["groq"]


def test_close_session_forgets_room(client):
    assert client.delete("/admin/sessions/ghost", headers=auth()).status_code == 404

    session_store.get_session("lobby")
    res = client.delete("/admin/sessions/lobby", headers=auth())
    assert res.json() == {"ok": True, "closed": "lobby"}
    assert session_store.find_session("lobby") is None
