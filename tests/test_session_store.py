import asyncio
import os

import pytest

from app.config.settings import Settings
from app.services import session_store
from app.services.word_store import Corpus

from conftest import FakeSocket, StubGenerator, StubOracle


@pytest.fixture(autouse=True)
def isolated_store(store):
    session_store.configure(corpus=Corpus(store, StubGenerator(), min_words=0), oracle=StubOracle())
    yield
    session_store.configure()


def test_room_is_discarded_only_once_empty():
    session = session_store.get_session("  room  ")
    assert session.session_id == "room"

    async def scenario():
        player = session.join(FakeSocket())
        kept = session_store.discard_if_empty(session)
        session.leave(player.id)
        await session.wait_idle()
        return kept, session_store.discard_if_empty(session)

    kept, discarded = asyncio.run(scenario())
    assert kept is False
    assert discarded is True
    assert session_store.find_session("room") is None
    assert session_store.list_sessions() == []


def test_stale_instance_does_not_evict_new_room():
    old = session_store.get_session("room")
    session_store.drop_session("room")
    fresh = session_store.get_session("room")

    assert session_store.discard_if_empty(old) is False
    assert session_store.find_session("room") is fresh


def test_words_db_path_follows_data_dir(tmp_path, monkeypatch):
    monkeypatch.delenv("WORDS_DB_PATH", raising=False)

    assert Settings(DATA_DIR=str(tmp_path)).words_db_path() == os.path.join(str(tmp_path), "words.db")
    assert Settings(DATA_DIR=str(tmp_path), WORDS_DB_PATH="/srv/words.db").words_db_path() == "/srv/words.db"
