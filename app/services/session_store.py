"""
Session store registry
======================

Expose des helpers pour récupérer la `GameSession` d'une salle (`/ws/<session_id>`).
Les instances vivent en mémoire seulement (rien n'est persisté hormis le corpus) et
sont créées à la demande, puis oubliées quand leur dernier joueur part. Toutes les
sessions partagent le même corpus et le même Oracle, construits paresseusement
depuis les settings.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional

from app.config.settings import settings
from .game_session import DEFAULT_SESSION_ID, GameSession
from .llm_engine import build_backend, build_corpus_backend
from .oracle import LLMOracle, Oracle
from .word_store import Corpus, CorpusGenerator, WordStore

logger = logging.getLogger(__name__)

_SESSIONS: Dict[str, GameSession] = {}
_CORPUS: Optional[Corpus] = None
_ORACLE: Optional[Oracle] = None


def normalize_session_id(session_id: Optional[str]) -> str:
    return (session_id or DEFAULT_SESSION_ID).strip() or DEFAULT_SESSION_ID


def get_corpus() -> Corpus:
    global _CORPUS
    if _CORPUS is None:
        _CORPUS = Corpus(
            WordStore(settings.words_db_path()),
            CorpusGenerator(build_corpus_backend(), batch_size=settings.CORPUS_BATCH_SIZE),
            min_words=settings.CORPUS_MIN_WORDS,
        )
    return _CORPUS


def get_oracle() -> Oracle:
    global _ORACLE
    if _ORACLE is None:
        _ORACLE = LLMOracle(build_backend(settings.ORACLE_PROVIDER))
    return _ORACLE


def configure(*, corpus: Optional[Corpus] = None, oracle: Optional[Oracle] = None) -> None:
    """Remplace corpus/Oracle (tests, outils) et oublie les sessions existantes."""
    global _CORPUS, _ORACLE
    _CORPUS = corpus
    _ORACLE = oracle
    _SESSIONS.clear()


def get_session(session_id: str = DEFAULT_SESSION_ID) -> GameSession:
    """Retourne la session associée à `session_id` (créée si nécessaire)."""
    normalized = normalize_session_id(session_id)
    session = _SESSIONS.get(normalized)
    if session is None:
        session = GameSession(
            corpus=get_corpus(),
            oracle=get_oracle(),
            session_id=normalized,
            max_players=settings.MAX_PLAYERS,
            grace_seconds=settings.ROUND_GRACE_SECONDS,
        )
        _SESSIONS[normalized] = session
    return session


def drop_session(session_id: str) -> None:
    """Retire une session du cache."""
    _SESSIONS.pop(normalize_session_id(session_id), None)


def discard_if_empty(session: GameSession) -> bool:
    """Oublie une salle sans joueur (seulement si c'est encore l'instance en cache)."""
    key = normalize_session_id(session.session_id)
    if session.players or _SESSIONS.get(key) is not session:
        return False
    del _SESSIONS[key]
    logger.info("Empty session discarded", extra={"session_id": key, "round": session.round})
    return True


async def close_session(session_id: str) -> bool:
    """Ferme toutes les sockets d'une salle puis l'oublie (False si inconnue)."""
    session = find_session(session_id)
    if session is None:
        return False
    await session.registry.close_all()
    if _SESSIONS.get(session.session_id) is session:
        drop_session(session.session_id)
    return True


async def close_all_sessions() -> None:
    for session_id in list(_SESSIONS):
        await close_session(session_id)


def list_sessions() -> list[dict]:
    return [
        {
            "session_id": sid,
            "players": len(s.players),
            "round": s.round,
            "phase": s.phase,
        }
        for sid, s in _SESSIONS.items()
    ]


def find_session(session_id: str) -> Optional[GameSession]:
    """Session existante ou None (sans la créer)."""
    return _SESSIONS.get(normalize_session_id(session_id))
