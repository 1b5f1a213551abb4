"""
Service: game_session.py
Rôle:
- `GameSession` : propriétaire unique de l'état d'une session (joueurs, round, mot
  secret, fil de discussion, joueurs "en réflexion", dernier gagnant).
- Orchestration des rounds (chargement du corpus → round actif → délai de lecture
  après une bonne réponse → round suivant) et diffusion WS des deltas.

Phases:
- UNINITIALIZED   : corpus jamais chargé
- CORPUS_LOADING  : premier chargement du corpus en cours
- ROUND_ACTIVE    : un mot secret est en jeu
- ROUND_RESOLVING : mot trouvé, round suivant programmé après `grace_seconds`
- IDLE            : corpus prêt mais aucun mot en jeu (échec de tirage)

Concurrence:
- Tout s'exécute sur la boucle asyncio ; les seuls points de suspension sont les
  appels Oracle/corpus. Chaque continuation revérifie le numéro de round capturé
  (l'"époque") avant de muter l'état : pas de verrou.
- Les envois WS sont des mises en file synchrones (voir ws_manager), l'ordre de
  diffusion suit donc l'ordre des mutations.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Coroutine, Dict, List, Optional, Set
from uuid import uuid4

from starlette.websockets import WebSocket

from app.models.chat import ChatMessage
from app.models.messages import (
    AskMessage,
    InboundMessage,
    LobbyMessage,
    NewRoundRequest,
    Ping,
    SkipRoundRequest,
)
from app.models.player import Player, player_color, player_name
from app.models.word import WordEntry
from app.services.llm_engine import UpstreamProviderError
from app.services.oracle import Oracle
from app.services.oracle_pipeline import submit_query
from app.services.word_store import Corpus
from app.services.ws_manager import (
    PONG,
    ConnectionRegistry,
    chat_event,
    new_round_event,
    round_skipped_event,
    state_event,
    thinking_event,
    welcome_event,
)

logger = logging.getLogger(__name__)

DEFAULT_SESSION_ID = "default"

PHASE_UNINITIALIZED = "UNINITIALIZED"
PHASE_CORPUS_LOADING = "CORPUS_LOADING"
PHASE_ROUND_ACTIVE = "ROUND_ACTIVE"
PHASE_ROUND_RESOLVING = "ROUND_RESOLVING"
PHASE_IDLE = "IDLE"


class CapacityError(RuntimeError):
    """La session a déjà son nombre maximal de joueurs."""


@dataclass
class GameSession:
    corpus: Corpus
    oracle: Oracle
    session_id: str = DEFAULT_SESSION_ID
    max_players: int = 8
    grace_seconds: float = 3.0
    registry: ConnectionRegistry = field(default_factory=ConnectionRegistry)

    # === état de session ===
    players: List[Player] = field(default_factory=list)
    round: int = 0
    secret_word: Optional[str] = None
    current_word_entry: Optional[WordEntry] = None
    chat_history: List[ChatMessage] = field(default_factory=list)
    thinking_for_players: Set[str] = field(default_factory=set)
    last_winner: Optional[Player] = None
    corpus_ready: bool = False

    _joined_total: int = field(default=0, init=False, repr=False)
    _corpus_loading: bool = field(default=False, init=False, repr=False)
    _resolving: bool = field(default=False, init=False, repr=False)
    _tasks: Set[asyncio.Task] = field(default_factory=set, init=False, repr=False)

    # ---------------- lecture ----------------
    @property
    def phase(self) -> str:
        if self._resolving:
            return PHASE_ROUND_RESOLVING
        if self.secret_word:
            return PHASE_ROUND_ACTIVE
        if self._corpus_loading:
            return PHASE_CORPUS_LOADING
        if not self.corpus_ready:
            return PHASE_UNINITIALIZED
        return PHASE_IDLE

    def find_player(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def snapshot(self) -> Dict[str, Any]:
        """État complet tel qu'envoyé dans `welcome` et `state`."""
        return {
            "players": [p.model_dump() for p in self.players],
            "playerCount": len(self.players),
            "round": self.round,
            "chatHistory": [m.to_wire() for m in self.chat_history],
            "thinkingForPlayers": sorted(self.thinking_for_players),
            "lastWinner": self.last_winner.model_dump() if self.last_winner else None,
            "hasSecretWord": bool(self.secret_word),
            "corpusReady": self.corpus_ready,
            "phase": self.phase,
        }

    def is_current(self, epoch: int, player_id: str) -> bool:
        """Une requête lancée au round `epoch` peut-elle encore muter l'état ?"""
        return (
            self.round == epoch
            and self.secret_word is not None
            and player_id in self.thinking_for_players
        )

    # ---------------- diffusion ----------------
    def broadcast_state(self) -> None:
        self.registry.broadcast(state_event(self.snapshot()))

    def post(self, message: ChatMessage) -> None:
        """Ajoute un message au fil et le diffuse."""
        self.chat_history.append(message)
        self.registry.broadcast(chat_event(message.to_wire()))

    def set_thinking(self, player_id: str, is_thinking: bool) -> None:
        if is_thinking:
            self.thinking_for_players.add(player_id)
        else:
            self.thinking_for_players.discard(player_id)
        self.registry.broadcast(thinking_event(player_id, is_thinking, self.thinking_for_players))

    def clear_thinking(self) -> None:
        self.thinking_for_players.clear()
        self.registry.broadcast(thinking_event(None, False, ()))

    # ---------------- tâches ----------------
    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Session task failed",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"session_id": self.session_id},
            )

    async def wait_idle(self) -> None:
        """Attend la fin des tâches en cours puis le vidage des files WS."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.registry.flush()

    # ---------------- connexions ----------------
    def join(self, ws: WebSocket) -> Player:
        """Enregistre une nouvelle socket comme nouveau joueur (lève CapacityError si plein)."""
        if len(self.players) >= self.max_players:
            raise CapacityError("Game is full!")

        index = self._joined_total
        self._joined_total += 1
        player = Player(id=uuid4().hex[:8], name=player_name(index), color=player_color(index))

        self.registry.register(player.id, ws)
        self.players.append(player)
        self.registry.send(player.id, welcome_event(player.model_dump(), self.snapshot()))

        self.chat_history.append(ChatMessage.system(f"{player.name} joined the game!"))
        self.broadcast_state()
        logger.info(
            "Player joined",
            extra={"session_id": self.session_id, "player_id": player.id, "players": len(self.players)},
        )

        if len(self.players) == 1 and self.phase in (PHASE_UNINITIALIZED, PHASE_IDLE):
            self.spawn(self.start_round())
        return player

    def leave(self, player_id: str) -> None:
        player = self.find_player(player_id)
        if player is None:
            return
        self.players.remove(player)
        self.registry.unregister(player_id)
        self.thinking_for_players.discard(player_id)

        self.chat_history.append(ChatMessage.system(f"{player.name} left the game."))
        logger.info(
            "Player left",
            extra={"session_id": self.session_id, "player_id": player_id, "players": len(self.players)},
        )
        self.broadcast_state()

    # ---------------- messages entrants ----------------
    def dispatch(self, player_id: str, message: InboundMessage) -> None:
        if self.find_player(player_id) is None:
            return
        if isinstance(message, Ping):
            self.registry.send(player_id, PONG)
        elif isinstance(message, AskMessage):
            submit_query(self, player_id, message.content)
        elif isinstance(message, NewRoundRequest):
            self.request_new_round()
        elif isinstance(message, SkipRoundRequest):
            self.skip_round()
        elif isinstance(message, LobbyMessage):
            logger.debug("Lobby message ignored", extra={"kind": message.type, "player_id": player_id})

    def request_new_round(self) -> bool:
        """Nouveau round manuel, seulement si aucune requête n'est en attente."""
        if self.thinking_for_players:
            return False
        self.spawn(self.start_round())
        return True

    def skip_round(self) -> bool:
        """Révèle le mot à tous sans toucher à l'état ; le round avance sur `new_round`."""
        if self.thinking_for_players or not self.secret_word:
            return False
        category = self.current_word_entry.category if self.current_word_entry else None
        self.registry.broadcast(round_skipped_event(self.secret_word, category))
        logger.info("Round skipped", extra={"session_id": self.session_id, "round": self.round})
        return True

    # ---------------- cycle de round ----------------
    async def start_round(self, winner: Optional[Player] = None) -> None:
        self.round += 1
        epoch = self.round
        self.chat_history = []
        self.last_winner = winner
        self.secret_word = None
        self.current_word_entry = None
        self._resolving = False
        self.clear_thinking()

        if not self.corpus_ready:
            self.chat_history.append(ChatMessage.system("The Oracle is preparing... please wait."))
            self._corpus_loading = True
            self.broadcast_state()
            try:
                await self.corpus.initialize()
            except (UpstreamProviderError, sqlite3.Error):
                logger.error("Failed to initialize corpus", exc_info=True, extra={"session_id": self.session_id})
                self._corpus_loading = False
                if self.round != epoch:
                    return
                self.chat_history.append(ChatMessage.system("Failed to initialize the Oracle. Please try again."))
                self.broadcast_state()
                return
            self._corpus_loading = False
            self.corpus_ready = True
            if self.round != epoch:
                logger.info("Round start superseded", extra={"session_id": self.session_id, "round": epoch})
                return

        entry = await self.corpus.pick_or_replenish()
        if self.round != epoch:
            logger.info("Round start superseded", extra={"session_id": self.session_id, "round": epoch})
            return
        if entry is None:
            logger.error("No words available", extra={"session_id": self.session_id, "round": epoch})
            return

        self.secret_word = entry.word
        self.current_word_entry = entry

        if winner:
            content = f"Round {self.round} begins! {winner.name} won the last round!"
        else:
            content = f"Round {self.round} begins! I'm thinking of something... Ask yes/no questions to figure out what it is!"
        message = ChatMessage.system(content)
        self.chat_history.append(message)

        self.registry.broadcast(
            new_round_event(
                self.round,
                winner.model_dump() if winner else None,
                [p.model_dump() for p in self.players],
            )
        )
        self.registry.broadcast(chat_event(message.to_wire()))
        logger.info("Round started", extra={"session_id": self.session_id, "round": self.round})

    def award_win(self, player: Player) -> None:
        """Bonne réponse : score, consommation du mot, annonce, round suivant différé."""
        word = self.secret_word
        if word:
            try:
                self.corpus.consume(word)
            except sqlite3.Error:
                # le round se termine quand même ; le mot pourra ressortir
                logger.error(
                    "Failed to remove guessed word",
                    exc_info=True,
                    extra={"session_id": self.session_id, "word": word},
                )
        self.clear_thinking()
        player.score += 1

        self.secret_word = None
        self.current_word_entry = None
        self.last_winner = player
        self._resolving = True

        self.post(ChatMessage.oracle_reply(player, f'YES! The word was "{word}"! {player.name} wins this round!'))
        logger.info(
            "Word guessed",
            extra={"session_id": self.session_id, "round": self.round, "player_id": player.id},
        )
        self.spawn(self._start_round_after_grace(player, self.round))

    async def _start_round_after_grace(self, winner: Player, epoch: int) -> None:
        await asyncio.sleep(self.grace_seconds)
        # un `new_round` manuel a pu passer pendant le délai
        if self.round != epoch:
            return
        await self.start_round(winner)
