"""
Models / chat.py
Rôle:
- Message du fil de discussion d'un round (questions, réponses de l'Oracle, annonces).

Notes:
- Les noms de champs JSON sont en camelCase (`playerId`, `replyTo`) pour le front.
- `playerId` vaut "system" (annonces du jeu) ou "ai" (Oracle) pour les messages non joueurs.
- L'historique est vidé (pas archivé) à chaque nouveau round.
"""
import time
from typing import Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from app.models.player import Player

MessageType = Literal["question", "guess", "answer", "system"]

SYSTEM_ID = "system"
SYSTEM_NAME = "Game"
SYSTEM_COLOR = "#8B7355"
ORACLE_ID = "ai"
ORACLE_NAME = "Oracle"
ORACLE_COLOR = "#6B5B95"


def _message_id() -> str:
    return uuid4().hex[:10]


def _now_ms() -> int:
    return int(time.time() * 1000)


class ReplyTo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    player_name: str = Field(alias="playerName")
    player_color: str = Field(alias="playerColor")


class ChatMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_message_id)
    player_id: str = Field(alias="playerId")
    player_name: str = Field(alias="playerName")
    player_color: str = Field(alias="playerColor")
    type: MessageType
    content: str
    timestamp: int = Field(default_factory=_now_ms)
    reply_to: Optional[ReplyTo] = Field(default=None, alias="replyTo")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(
            player_id=SYSTEM_ID,
            player_name=SYSTEM_NAME,
            player_color=SYSTEM_COLOR,
            type="system",
            content=content,
        )

    @classmethod
    def from_player(cls, player: Player, content: str) -> "ChatMessage":
        return cls(
            player_id=player.id,
            player_name=player.name,
            player_color=player.color,
            type="question",
            content=content,
        )

    @classmethod
    def oracle_reply(cls, player: Player, content: str) -> "ChatMessage":
        return cls(
            player_id=ORACLE_ID,
            player_name=ORACLE_NAME,
            player_color=ORACLE_COLOR,
            type="answer",
            content=content,
            reply_to=ReplyTo(player_name=player.name, player_color=player.color),
        )
