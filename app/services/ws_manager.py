# app/services/ws_manager.py
"""
Service: ws_manager.py
- Mapping player_id -> socket (une socket = un joueur, pas de reprise de session).
- Une file d'envoi (outbox) par connexion, vidée par une tâche dédiée : `send()` et
  `broadcast()` sont synchrones, donc les trames arrivent sur chaque socket dans
  l'ordre exact des mutations qui les ont produites.
- Socket en échec → retirée sans impacter les autres.
- Constructeurs d'événements sortants (welcome, state, chat_message, thinking,
  new_round, round_skipped, error, pong).
- Admin: stats(), flush(), close_all().
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import orjson
from starlette.websockets import WebSocket

logger = logging.getLogger(__name__)


def encode_frame(payload: Any) -> str:
    return orjson.dumps(payload).decode("utf-8")


@dataclass
class Connection:
    player_id: str
    ws: WebSocket
    outbox: asyncio.Queue = field(default_factory=asyncio.Queue)
    writer: Optional[asyncio.Task] = None


@dataclass
class ConnectionRegistry:
    connections: Dict[str, Connection] = field(default_factory=dict)

    def register(self, player_id: str, ws: WebSocket) -> Connection:
        """Associe la socket au joueur et démarre sa tâche d'envoi."""
        conn = Connection(player_id=player_id, ws=ws)
        conn.writer = asyncio.create_task(self._drain(conn))
        self.connections[player_id] = conn
        return conn

    def unregister(self, player_id: str) -> None:
        conn = self.connections.pop(player_id, None)
        if conn and conn.writer and not conn.writer.done():
            conn.writer.cancel()

    async def _drain(self, conn: Connection) -> None:
        while True:
            text = await conn.outbox.get()
            try:
                await conn.ws.send_text(text)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("WS send failed, dropping connection", extra={"player_id": conn.player_id})
                conn.outbox.task_done()
                self._discard(conn)
                return
            conn.outbox.task_done()

    def _discard(self, conn: Connection) -> None:
        if self.connections.get(conn.player_id) is conn:
            self.connections.pop(conn.player_id, None)
        # vide la file pour débloquer flush()
        while not conn.outbox.empty():
            conn.outbox.get_nowait()
            conn.outbox.task_done()

    # ---------- envois ----------
    def send(self, player_id: str, payload: Any) -> bool:
        conn = self.connections.get(player_id)
        if conn is None:
            return False
        conn.outbox.put_nowait(encode_frame(payload))
        return True

    def broadcast(self, payload: Any) -> int:
        """Même trame, même ordre, pour toutes les sockets (aucun filtrage par client)."""
        text = encode_frame(payload)
        conns = list(self.connections.values())
        for conn in conns:
            conn.outbox.put_nowait(text)
        return len(conns)

    async def flush(self) -> None:
        """Attend que toutes les files d'envoi soient vidées."""
        for conn in list(self.connections.values()):
            await conn.outbox.join()

    # ---------- admin ----------
    def stats(self) -> dict:
        return {
            "connected": sorted(self.connections.keys()),
            "connected_total": len(self.connections),
            "queued_frames": sum(c.outbox.qsize() for c in self.connections.values()),
        }

    async def close_all(self) -> dict:
        """Ferme TOUTES les sockets."""
        for player_id, conn in list(self.connections.items()):
            self.unregister(player_id)
            try:
                await conn.ws.close()
            except Exception:
                logger.debug("WS already closed", extra={"player_id": player_id})
        return self.stats()


# =====================================================
# Événements sortants
# =====================================================

def welcome_event(player: dict, snapshot: dict) -> dict:
    return {"type": "welcome", "playerId": player["id"], "player": player, **snapshot}


def state_event(snapshot: dict) -> dict:
    return {"type": "state", **snapshot}


def chat_event(message: dict) -> dict:
    return {"type": "chat_message", "message": message}


def thinking_event(player_id: Optional[str], is_thinking: bool, thinking_for: Iterable[str]) -> dict:
    return {
        "type": "thinking",
        "playerId": player_id,
        "isThinking": is_thinking,
        "thinkingForPlayers": sorted(thinking_for),
    }


def new_round_event(round_number: int, winner: Optional[dict], players: List[dict]) -> dict:
    return {"type": "new_round", "round": round_number, "winner": winner, "players": players}


def round_skipped_event(word: str, category: Optional[str]) -> dict:
    return {"type": "round_skipped", "word": word, "category": category}


def error_event(message: str) -> dict:
    return {"type": "error", "message": message}


PONG = {"type": "pong"}
