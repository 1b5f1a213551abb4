from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional

import orjson
import pytest

from app.models.word import WordEntry
from app.services.game_session import GameSession
from app.services.llm_engine import UpstreamProviderError
from app.services.oracle import Classification, Question
from app.services.word_store import Corpus, WordStore


def entry(word: str, category: str = "animal", facts: str = "It is alive. It has fur.") -> WordEntry:
    return WordEntry(word=word, category=category, facts=facts)


class FakeSocket:
    """Enregistre les trames envoyées par le serveur."""

    def __init__(self) -> None:
        self.sent: List[dict] = []
        self.closed = False

    async def send_text(self, text: str) -> None:
        self.sent.append(orjson.loads(text))

    async def close(self) -> None:
        self.closed = True

    def types(self) -> List[str]:
        return [frame["type"] for frame in self.sent]

    def of_type(self, kind: str) -> List[dict]:
        return [frame for frame in self.sent if frame["type"] == kind]


class StubOracle:
    """Oracle déterministe; `hold(message)` bloque l'appel jusqu'à `release(message)`."""

    def __init__(self) -> None:
        self.classifications: Dict[str, Classification] = {}
        self.answers: Dict[str, str] = {}
        self.failures: set[str] = set()
        self._gates: Dict[str, asyncio.Event] = {}
        self.classify_calls: List[str] = []

    def hold(self, message: str) -> None:
        self._gates[message] = asyncio.Event()

    def release(self, message: str) -> None:
        self._gates[message].set()

    async def classify(self, message: str) -> Classification:
        self.classify_calls.append(message)
        gate = self._gates.get(message)
        if gate is not None:
            await gate.wait()
        if message in self.failures:
            raise UpstreamProviderError("provider down")
        return self.classifications.get(message, Question())

    async def answer(self, question: str, entry: WordEntry) -> str:
        return self.answers.get(question, "Yes, it is!")


class StubGenerator:
    def __init__(self, batches: Iterable[List[WordEntry]] = ()) -> None:
        self.batches = list(batches)
        self.calls = 0

    async def generate_batch(self) -> List[WordEntry]:
        self.calls += 1
        await asyncio.sleep(0)
        if not self.batches:
            raise UpstreamProviderError("no batch available")
        return self.batches.pop(0)


async def settle(session: GameSession, rounds: int = 20) -> None:
    """Laisse tourner la boucle sans attendre les requêtes bloquées, puis vide les files WS."""
    for _ in range(rounds):
        await asyncio.sleep(0)
    await session.registry.flush()


@pytest.fixture
def store(tmp_path) -> WordStore:
    return WordStore(tmp_path / "words.db")


@pytest.fixture
def make_session(store):
    def _make(
        words: Iterable[str] = ("cat",),
        batches: Iterable[List[WordEntry]] = (),
        min_words: int = 1,
        oracle: Optional[StubOracle] = None,
        grace_seconds: float = 0.0,
    ) -> GameSession:
        store.insert_many(entry(w) for w in words)
        generator = StubGenerator(batches)
        corpus = Corpus(store, generator, min_words=min_words)
        return GameSession(corpus=corpus, oracle=oracle or StubOracle(), grace_seconds=grace_seconds)

    return _make
