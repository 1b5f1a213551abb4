"""
Service: oracle.py
Rôle:
- Capacité "Oracle" : classer un message (proposition vs question) et répondre
  à une question sur le mot secret sans jamais le révéler.
- `check_guess` décide de la justesse d'une proposition par simple comparaison de
  chaînes (jamais par le LLM).

Intégrations:
- `llm_engine.acomplete` pour les appels (thread worker, point de suspension).
- Le moteur de session ne dépend que du protocole `Oracle` : un stub déterministe
  peut le remplacer en test.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol, Union

from app.models.word import WordEntry
from app.services.llm_engine import CompletionBackend, acomplete

logger = logging.getLogger(__name__)

ORACLE_SYSTEM_PROMPT = """
You are a friendly, conversational Oracle answering yes/no questions about a secret word.

ABSOLUTE RULES (never break these):
1. Respond with exactly ONE short sentence.
2. Begin with "Yes," "No," or a very broad category (e.g. "It's a thing.", "It's a place.").
3. NEVER say the secret word.
4. NEVER describe, explain, define, compare, hint at, or give examples of what it is.
5. NEVER add extra facts beyond what is directly asked.

STYLE RULES:
- Sound warm, natural, and conversational.
- Avoid robotic phrasing.
- No reasoning, no elaboration, no follow-ups.

GOOD:
"Yes, it's alive!"
"No, not edible."
"It's a thing!"
"Yes, quite famous!"

BAD:
"The answer is..."
"It's similar to..."
"Think about..."
"It's a tall metal structure"
"""

QUESTION_PROMPT = """
FACTS (may be empty or incomplete):
{facts}

QUESTION:
{question}

INSTRUCTIONS:
- Answer ONLY the question asked.
- Use ONE short, friendly sentence.
- Start with "Yes," "No," or a broad category.
- Do NOT infer, guess, or add new information.
- NEVER say or imply "{secret_word}".
- NEVER describe, define, compare, or hint at what it is.

ANSWER:
"""

GUESS_DETECTOR_PROMPT = """
A GUESS directly names or clearly identifies a specific thing.
A QUESTION asks only about properties, traits, or categories.

GUESS examples:
"Is it a dog?" → GUESS: dog
"Pizza?" → GUESS: pizza
"Is it the Eiffel Tower?" → GUESS: Eiffel Tower
"Is it Taylor Swift?" → GUESS: Taylor Swift

NOT_A_GUESS examples:
"Is it alive?" → NOT_A_GUESS
"Is it a person?" → NOT_A_GUESS
"Is it edible?" → NOT_A_GUESS
"Is it famous?" → NOT_A_GUESS
"What color is it?" → NOT_A_GUESS
"Is it an animal?" → NOT_A_GUESS

Message:
"{message}"

Respond with EXACTLY ONE line:
- "GUESS: <named thing>" OR
- "NOT_A_GUESS"
"""


@dataclass(frozen=True)
class Guess:
    target: str


@dataclass(frozen=True)
class Question:
    pass


Classification = Union[Guess, Question]


class Oracle(Protocol):
    async def classify(self, message: str) -> Classification:
        ...

    async def answer(self, question: str, entry: WordEntry) -> str:
        ...


def parse_classification(response: str) -> Classification:
    """`GUESS: <cible>` (insensible à la casse) → Guess, tout le reste → Question."""
    text = (response or "").strip()
    if text.upper().startswith("GUESS:"):
        target = text[len("GUESS:"):].strip()
        if target:
            return Guess(target=target)
    return Question()


class LLMOracle:
    """Oracle adossé à un backend de complétion."""

    def __init__(self, backend: CompletionBackend) -> None:
        self.backend = backend

    async def classify(self, message: str) -> Classification:
        prompt = GUESS_DETECTOR_PROMPT.replace("{message}", message)
        response = await acomplete(self.backend, prompt)
        result = parse_classification(response)
        logger.debug("Message classified", extra={"classification": type(result).__name__})
        return result

    async def answer(self, question: str, entry: WordEntry) -> str:
        prompt = (
            QUESTION_PROMPT
            .replace("{secret_word}", entry.word)
            .replace("{facts}", entry.facts)
            .replace("{question}", question)
        )
        return await acomplete(self.backend, prompt, system_prompt=ORACLE_SYSTEM_PROMPT)


_ARTICLE_RE = re.compile(r"^(the|a|an)\s+", re.IGNORECASE)


def normalize_term(term: str) -> str:
    return _ARTICLE_RE.sub("", term.lower().strip())


def check_guess(guess: str, secret_word: str | None) -> bool:
    """Compare une proposition au mot secret (articles, pluriel, inclusion)."""
    if not secret_word:
        return False
    g = normalize_term(guess)
    w = normalize_term(secret_word)

    if g == w:
        return True
    if g + "s" == w or g == w + "s":
        return True
    # Inclusion (mots composés) : la partie incluse doit dépasser 3 caractères
    if w in g:
        return len(w) > 3
    if g in w:
        return len(g) > 3
    return False
