"""
Service: word_store.py
Rôle:
- `WordStore` : table SQLite durable `words(word UNIQUE, category, facts)`.
- `CorpusGenerator` : génère un lot de mots + faits via un backend de complétion.
- `Corpus` : politique de réapprovisionnement (plancher à l'initialisation, lot
  immédiat quand la table est vide) et consommation d'un mot trouvé.

Règles:
- Un mot n'est supprimé QUE lorsqu'il est correctement deviné (un round passé
  le laisse dans la table, il pourra ressortir).
- Insertion en "INSERT OR IGNORE" : jamais de doublon de `word`.
"""
from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Iterable, List, Optional

import orjson
from pydantic import ValidationError

from app.models.word import WordEntry
from app.services.llm_engine import CompletionBackend, UpstreamProviderError, acomplete

logger = logging.getLogger(__name__)


class WordStore:
    def __init__(self, db_path: str | Path) -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def ensure_schema(self) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS words (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    word TEXT NOT NULL UNIQUE,
                    category TEXT NOT NULL,
                    facts TEXT NOT NULL
                )
                """
            )

    def count(self) -> int:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT COUNT(*) AS count FROM words").fetchone()
            return int(row["count"])

    def insert_many(self, entries: Iterable[WordEntry]) -> int:
        """Insère les entrées en ignorant les doublons; renvoie le nombre réellement ajouté."""
        rows = [(e.word, e.category, e.facts) for e in entries]
        if not rows:
            return 0
        with closing(self._connect()) as conn, conn:
            before = conn.total_changes
            conn.executemany(
                "INSERT OR IGNORE INTO words (word, category, facts) VALUES (?, ?, ?)",
                rows,
            )
            return conn.total_changes - before

    def delete_by_word(self, word: str) -> bool:
        with closing(self._connect()) as conn, conn:
            cur = conn.execute("DELETE FROM words WHERE word = ?", (word,))
            return cur.rowcount > 0

    def pick_random(self) -> Optional[WordEntry]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT word, category, facts FROM words ORDER BY RANDOM() LIMIT 1"
            ).fetchone()
        if row is None:
            return None
        return WordEntry(word=row["word"], category=row["category"], facts=row["facts"])

    def words(self) -> List[str]:
        with closing(self._connect()) as conn:
            return [r["word"] for r in conn.execute("SELECT word FROM words ORDER BY id")]


CORPUS_GENERATOR_PROMPT = """Generate a comprehensive knowledge corpus for a word guessing game. Create exactly {count} diverse words with EXTENSIVE facts about each (minimum 500 words per entry).

Requirements:
- Mix of categories: people (real/fictional), places, things, animals, concepts, brands, characters
- Mix of difficulty: some easy (cat, pizza), some medium (telescope, democracy), some hard (Cleopatra, Kubernetes)
- Facts must be EXTREMELY comprehensive - at least 500 words per entry

Respond ONLY with valid JSON in this exact format:
{{
  "words": [
    {{
      "word": "Eiffel Tower",
      "category": "place",
      "facts": "[500+ words of comprehensive facts here]"
    }}
  ]
}}

The "category" field MUST be one of: person, place, thing, animal, concept, brand, character.

Each "facts" field MUST contain at least 500 words covering ALL of these aspects in great detail:

1. IDENTITY & CLASSIFICATION: category, type/subcategory, scientific classification if applicable, official names, nicknames, alternative names.
2. PHYSICAL PROPERTIES (if applicable): size, weight, colors and appearance, material, shape, texture, smell and taste, sound.
3. EXISTENCE & NATURE: alive or not, real or fictional, natural or man-made, edible or not, dangerous or safe, common or rare, visible to the naked eye, moves on its own.
4. TEMPORAL ASPECTS: when it was created/born/discovered, age, historical significance, evolution over time, lifespan, era.
5. SPATIAL ASPECTS: location, geographic distribution, origin, associated countries/regions, indoors or outdoors, portable or stationary.
6. POPULARITY & CULTURE: fame, pop culture references, appearances in media, awards, cultural significance, symbolism.
7. FUNCTION & PURPOSE: uses, how it works, who uses it, benefits, problems it solves.
8. RELATIONSHIPS & ASSOCIATIONS: related items, common associations, larger system it belongs to, what it contains, what depends on it.
9. COMPARISONS: bigger than, smaller than, similar to, different from, cheaper or more expensive than, more common or rarer than.
10. MISCELLANEOUS: trivia, common misconceptions, fun facts, records, controversies, future outlook.

Write each facts entry as a continuous, dense paragraph with hundreds of factual statements. Do not use bullet points or formatting - just plain text sentences.

Generate {count} diverse entries now:"""

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def unwrap_json_payload(text: str) -> str:
    """Retire un éventuel bloc ```json ... ``` autour de la réponse."""
    match = _FENCE_RE.search(text or "")
    if match:
        return match.group(1).strip()
    return (text or "").strip()


def parse_word_batch(text: str) -> List[WordEntry]:
    try:
        parsed = orjson.loads(unwrap_json_payload(text))
    except orjson.JSONDecodeError as exc:
        raise UpstreamProviderError("Corpus batch is not valid JSON") from exc
    raw_words = parsed.get("words") if isinstance(parsed, dict) else None
    if not isinstance(raw_words, list):
        raise UpstreamProviderError("Corpus batch has no 'words' list")

    entries: List[WordEntry] = []
    for raw in raw_words:
        try:
            entries.append(WordEntry.model_validate(raw))
        except ValidationError:
            logger.warning("Dropping malformed corpus entry", extra={"entry": str(raw)[:120]})
    return entries


class CorpusGenerator:
    def __init__(self, backend: CompletionBackend, batch_size: int = 10) -> None:
        self.backend = backend
        self.batch_size = batch_size

    async def generate_batch(self) -> List[WordEntry]:
        prompt = CORPUS_GENERATOR_PROMPT.format(count=self.batch_size)
        logger.info("Generating new words", extra={"provider": self.backend.name, "count": self.batch_size})
        text = await acomplete(self.backend, prompt)
        return parse_word_batch(text)


class Corpus:
    """Stock de mots + politique de réapprovisionnement."""

    def __init__(self, store: WordStore, generator: CorpusGenerator, min_words: int = 5) -> None:
        self.store = store
        self.generator = generator
        self.min_words = min_words
        self._inflight: Optional[asyncio.Task] = None

    async def replenish(self) -> int:
        """Génère et insère un lot; les appels concurrents partagent le même lot."""
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._generate_and_save())
        return await asyncio.shield(self._inflight)

    async def _generate_and_save(self) -> int:
        entries = await self.generator.generate_batch()
        inserted = self.store.insert_many(entries)
        logger.info(
            "Generated and saved words",
            extra={"generated": len(entries), "inserted": inserted, "total": self.store.count()},
        )
        return inserted

    async def initialize(self) -> None:
        """Premier chargement : un lot si la table est sous le plancher."""
        count = self.store.count()
        logger.info("Corpus has %d words", count)
        if count < self.min_words:
            await self.replenish()

    async def pick_or_replenish(self) -> Optional[WordEntry]:
        entry = self.store.pick_random()
        if entry is not None:
            return entry
        logger.info("No words left in corpus, generating more")
        try:
            await self.replenish()
        except UpstreamProviderError:
            logger.error("Failed to generate new words", exc_info=True)
            return None
        return self.store.pick_random()

    def consume(self, word: str) -> None:
        if self.store.delete_by_word(word):
            logger.info("Removed word from corpus (correctly guessed)", extra={"word": word})
