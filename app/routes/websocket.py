# app/routes/websocket.py
"""
WebSocket endpoints.

- /ws : salle par défaut.
- /ws/{session_id} : salle nommée (une `GameSession` indépendante par identifiant).

Chaque connexion devient un nouveau joueur (pas de reprise d'identité). Les trames
invalides (texte ou binaire) sont journalisées et ignorées, la connexion reste ouverte.
Une salle vidée de ses joueurs est oubliée.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket

from app.models.messages import ProtocolError, parse_inbound
from app.services.game_session import CapacityError
from app.services.session_store import DEFAULT_SESSION_ID, discard_if_empty, get_session, normalize_session_id
from app.services.ws_manager import encode_frame, error_event

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await _serve_player(ws, DEFAULT_SESSION_ID)


@router.websocket("/ws/{session_id}")
async def websocket_room(ws: WebSocket, session_id: str):
    await _serve_player(ws, normalize_session_id(session_id))


async def _serve_player(ws: WebSocket, session_id: str) -> None:
    """
    Boucle d'écoute d'un joueur.
    - Salle pleine → message `error` puis fermeture.
    - Sinon : dispatch de chaque trame vers la session jusqu'à la déconnexion.
    """
    await ws.accept()
    session = get_session(session_id)
    try:
        player = session.join(ws)
    except CapacityError as exc:
        await ws.send_text(encode_frame(error_event(str(exc))))
        await ws.close()
        return

    try:
        while True:
            event = await ws.receive()
            if event["type"] == "websocket.disconnect":
                break
            raw = event.get("text")
            if raw is None:
                raw = event.get("bytes")
            if raw is None:
                continue
            try:
                message = parse_inbound(raw)
            except ProtocolError as exc:
                logger.warning(
                    "Invalid message",
                    extra={"session_id": session_id, "player_id": player.id, "error": str(exc)},
                )
                continue
            session.dispatch(player.id, message)
    finally:
        session.leave(player.id)
        discard_if_empty(session)
