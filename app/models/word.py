"""
Models / word.py
Rôle:
- Entrée du corpus de mots (persistée en base SQLite).

Champs:
- word: le mot secret (unique dans le corpus, casse conservée telle que générée).
- category: grande catégorie, restreinte à un jeu de valeurs (Literal).
- facts: paragraphe dense de faits, injecté dans le prompt de l'Oracle.
"""
from pydantic import BaseModel, Field
from typing import Literal

WordCategory = Literal["person", "place", "thing", "animal", "concept", "brand", "character"]


class WordEntry(BaseModel):
    word: str = Field(min_length=1)
    category: WordCategory
    facts: str
