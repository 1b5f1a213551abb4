"""
Oracle query pipeline.

Per-message workflow: post the player's message, mark the player as thinking,
classify (guess vs question), then either check the guess or ask the Oracle for
an answer. Every resumption after an awaited Oracle call re-checks the round
epoch captured at submission; stale results are dropped without touching state.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from app.models.chat import ChatMessage
from app.models.player import Player
from app.services.llm_engine import UpstreamProviderError
from app.services.oracle import Guess, check_guess

if TYPE_CHECKING:
    from app.services.game_session import GameSession

logger = logging.getLogger(__name__)

WRONG_GUESS_REPLY = "No, that's not it. Keep trying!"


class StaleResultError(RuntimeError):
    """The round moved on (or the player left) while an Oracle call was in flight."""


def submit_query(session: "GameSession", player_id: str, content: str) -> Optional[asyncio.Task]:
    """Synchronous half: preconditions, chat message, thinking flag, then spawn the Oracle work.

    Returns None when the submission is ignored (no active word, player already
    waiting on a query, empty content).
    """
    player = session.find_player(player_id)
    if player is None:
        return None
    if not session.secret_word or player_id in session.thinking_for_players:
        return None
    text = (content or "").strip()
    if not text:
        return None

    session.post(ChatMessage.from_player(player, text))
    epoch = session.round
    session.set_thinking(player_id, True)
    return session.spawn(run_query(session, player, text, epoch))


def _ensure_current(session: "GameSession", player: Player, epoch: int) -> None:
    if not session.is_current(epoch, player.id):
        raise StaleResultError(f"round {epoch} result for {player.id} is stale")


async def run_query(session: "GameSession", player: Player, text: str, epoch: int) -> None:
    try:
        classification = await session.oracle.classify(text)
        _ensure_current(session, player, epoch)

        if isinstance(classification, Guess):
            if check_guess(classification.target, session.secret_word):
                session.award_win(player)
            else:
                session.post(ChatMessage.oracle_reply(player, WRONG_GUESS_REPLY))
                session.set_thinking(player.id, False)
            return

        entry = session.current_word_entry
        answer = await session.oracle.answer(text, entry)
        _ensure_current(session, player, epoch)
        if not answer or not answer.strip():
            raise UpstreamProviderError("Empty answer from Oracle")

        session.post(ChatMessage.oracle_reply(player, answer.strip()))
        session.set_thinking(player.id, False)
    except StaleResultError:
        logger.debug(
            "Discarding stale Oracle result",
            extra={"session_id": session.session_id, "player_id": player.id, "epoch": epoch},
        )
    except Exception:
        logger.warning(
            "Error processing message",
            exc_info=True,
            extra={"session_id": session.session_id, "player_id": player.id},
        )
        if session.is_current(epoch, player.id):
            session.set_thinking(player.id, False)
