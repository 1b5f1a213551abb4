import asyncio

import pytest

from app.services.oracle import (
    GUESS_DETECTOR_PROMPT,
    ORACLE_SYSTEM_PROMPT,
    Guess,
    LLMOracle,
    Question,
    check_guess,
    normalize_term,
    parse_classification,
)

from conftest import entry


@pytest.mark.parametrize(
    "guess,secret,expected",
    [
        ("the pizza", "Pizza", True),
        ("pizzas", "pizza", True),
        ("cat", "cats", True),
        ("Eiffel", "Eiffel Tower", True),
        ("a big telescope", "telescope", True),
        ("piz", "pizza", False),
        ("cat", "catalog", False),
        ("dog", "cat", False),
        ("an apple", "apple", True),
    ],
)
def test_check_guess(guess, secret, expected):
    assert check_guess(guess, secret) is expected


def test_check_guess_without_secret_word():
    assert check_guess("cat", None) is False
    assert check_guess("cat", "") is False


def test_normalize_term_strips_leading_article_only():
    assert normalize_term("  The Eiffel Tower ") == "eiffel tower"
    assert normalize_term("theater") == "theater"


@pytest.mark.parametrize(
    "response,expected",
    [
        ("GUESS: Eiffel Tower", Guess("Eiffel Tower")),
        ("guess:   dog  ", Guess("dog")),
        ("NOT_A_GUESS", Question()),
        ("GUESS:", Question()),
        ("", Question()),
        ("I think GUESS: cat", Question()),
    ],
)
def test_parse_classification(response, expected):
    assert parse_classification(response) == expected


class RecordingBackend:
    name = "recording"

    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.calls = []

    def complete(self, prompt, *, system_prompt=None):
        self.calls.append((prompt, system_prompt))
        return self.reply


def test_llm_oracle_classify_uses_detector_prompt():
    backend = RecordingBackend("GUESS: cat")
    oracle = LLMOracle(backend)

    result = asyncio.run(oracle.classify("Is it a cat?"))

    assert result == Guess("cat")
    prompt, system_prompt = backend.calls[0]
    assert '"Is it a cat?"' in prompt
    assert prompt.startswith(GUESS_DETECTOR_PROMPT.split("{message}")[0])
    assert system_prompt is None


def test_llm_oracle_answer_injects_facts_and_word():
    backend = RecordingBackend("Yes, it's alive!")
    oracle = LLMOracle(backend)
    word = entry("cat", facts="Cats purr. They have whiskers.")

    answer = asyncio.run(oracle.answer("Is it alive?", word))

    assert answer == "Yes, it's alive!"
    prompt, system_prompt = backend.calls[0]
    assert "Cats purr. They have whiskers." in prompt
    assert "Is it alive?" in prompt
    assert 'NEVER say or imply "cat"' in prompt
    assert system_prompt == ORACLE_SYSTEM_PROMPT


def test_llm_oracle_does_not_expand_placeholders_in_user_text():
    backend = RecordingBackend("No.")
    oracle = LLMOracle(backend)

    asyncio.run(oracle.answer("Is it {secret_word}?", entry("cat")))

    prompt, _ = backend.calls[0]
    assert "QUESTION:\nIs it {secret_word}?" in prompt
