"""
Models / messages.py
Rôle:
- Messages entrants du canal WebSocket joueur, sous forme d'union discriminée par `type`.
- `parse_inbound(raw)` valide une trame texte et lève `ProtocolError` si elle est invalide.

Types reconnus:
- ping                    → pong
- message | question      → question ou proposition ({content})
- new_round               → demande manuelle de nouveau round
- skip_round              → révèle le mot courant
- create_room, join_room, vote_theme, confirm_theme, change_theme
                          → émis par les clients "lobby", acceptés mais sans effet
"""
from __future__ import annotations

from typing import Annotated, Literal, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class ProtocolError(ValueError):
    """Trame entrante illisible (JSON invalide, type inconnu, champs manquants)."""


class _Inbound(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Ping(_Inbound):
    type: Literal["ping"]


class AskMessage(_Inbound):
    type: Literal["message", "question"]
    content: str


class NewRoundRequest(_Inbound):
    type: Literal["new_round"]


class SkipRoundRequest(_Inbound):
    type: Literal["skip_round"]


class LobbyMessage(_Inbound):
    type: Literal["create_room", "join_room", "vote_theme", "confirm_theme", "change_theme"]


InboundMessage = Annotated[
    Union[Ping, AskMessage, NewRoundRequest, SkipRoundRequest, LobbyMessage],
    Field(discriminator="type"),
]

_INBOUND = TypeAdapter(InboundMessage)


def parse_inbound(raw: str | bytes) -> InboundMessage:
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise ProtocolError("invalid JSON frame") from exc
    if not isinstance(data, dict):
        raise ProtocolError("frame must be a JSON object")
    try:
        return _INBOUND.validate_python(data)
    except ValidationError as exc:
        raise ProtocolError(f"invalid message: {exc.errors()[0].get('msg', 'unknown')}") from exc
