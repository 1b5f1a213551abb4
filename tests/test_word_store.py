import asyncio

import pytest

from app.services.llm_engine import UpstreamProviderError
from app.services.word_store import (
    CORPUS_GENERATOR_PROMPT,
    Corpus,
    CorpusGenerator,
    parse_word_batch,
    unwrap_json_payload,
)

from conftest import StubGenerator, entry


def test_insert_many_ignores_duplicates(store):
    assert store.insert_many([entry("cat"), entry("dog")]) == 2
    assert store.insert_many([entry("cat"), entry("owl")]) == 1
    assert store.count() == 3
    assert store.words() == ["cat", "dog", "owl"]


def test_delete_and_pick(store):
    assert store.pick_random() is None
    store.insert_many([entry("cat", facts="Purrs.")])

    picked = store.pick_random()
    assert picked.word == "cat"
    assert picked.facts == "Purrs."

    assert store.delete_by_word("cat") is True
    assert store.delete_by_word("cat") is False
    assert store.count() == 0


def test_store_persists_across_instances(tmp_path):
    from app.services.word_store import WordStore

    path = tmp_path / "nested" / "words.db"
    WordStore(path).insert_many([entry("cat")])
    assert WordStore(path).words() == ["cat"]


def test_unwrap_json_payload_strips_fences():
    assert unwrap_json_payload('```json\n{"words": []}\n```') == '{"words": []}'
    assert unwrap_json_payload('Here:\n```\n{"a": 1}\n```\nbye') == '{"a": 1}'
    assert unwrap_json_payload('  {"a": 1} ') == '{"a": 1}'


def test_parse_word_batch_drops_malformed_entries():
    text = """```json
    {"words": [
        {"word": "Eiffel Tower", "category": "place", "facts": "Tall."},
        {"word": "Mystery", "category": "vegetable", "facts": "Unknown."},
        {"word": "", "category": "thing", "facts": "Empty."},
        {"category": "thing", "facts": "No word."},
        {"word": "Kubernetes", "category": "concept", "facts": "Orchestrates."}
    ]}
    ```"""

    entries = parse_word_batch(text)

    assert [e.word for e in entries] == ["Eiffel Tower", "Kubernetes"]


@pytest.mark.parametrize("text", ['{"items": []}', "not json at all", "[1, 2]"])
def test_parse_word_batch_rejects_unusable_payloads(text):
    with pytest.raises(UpstreamProviderError):
        parse_word_batch(text)


def test_corpus_generator_formats_prompt():
    class Backend:
        name = "fake"
        prompt = None

        def complete(self, prompt, *, system_prompt=None):
            Backend.prompt = prompt
            return '{"words": [{"word": "cat", "category": "animal", "facts": "Purrs."}]}'

    generator = CorpusGenerator(Backend(), batch_size=3)
    entries = asyncio.run(generator.generate_batch())

    assert [e.word for e in entries] == ["cat"]
    assert "Create exactly 3 diverse words" in Backend.prompt
    assert "Generate 3 diverse entries now:" in Backend.prompt
    assert CORPUS_GENERATOR_PROMPT.count("{count}") == 2


def test_initialize_generates_only_below_floor(store):
    store.insert_many([entry(w) for w in ("a1", "a2", "a3", "a4", "a5")])
    generator = StubGenerator([[entry("cat")]])
    corpus = Corpus(store, generator, min_words=5)

    asyncio.run(corpus.initialize())

    assert generator.calls == 0
    assert store.count() == 5


def test_initialize_propagates_generation_failure(store):
    corpus = Corpus(store, StubGenerator(), min_words=5)

    with pytest.raises(UpstreamProviderError):
        asyncio.run(corpus.initialize())


def test_concurrent_replenish_shares_one_batch(store):
    generator = StubGenerator([[entry("cat"), entry("dog")], [entry("owl")]])
    corpus = Corpus(store, generator, min_words=5)

    async def scenario():
        return await asyncio.gather(corpus.replenish(), corpus.replenish(), corpus.replenish())

    results = asyncio.run(scenario())

    assert results == [2, 2, 2]
    assert generator.calls == 1
    assert store.words() == ["cat", "dog"]


def test_pick_or_replenish_returns_none_when_generation_fails(store):
    corpus = Corpus(store, StubGenerator(), min_words=0)

    assert asyncio.run(corpus.pick_or_replenish()) is None


def test_consume_removes_word(store):
    store.insert_many([entry("cat"), entry("dog")])
    corpus = Corpus(store, StubGenerator(), min_words=0)

    corpus.consume("cat")
    corpus.consume("unknown")

    assert store.words() == ["dog"]
