"""
Входящие сообщения клиента: размеченное объединение по полю type.
"""
import json
import logging
from typing import Annotated, Any, Literal, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, StrictInt, TypeAdapter, field_validator

from .constants import (
    DEFAULT_GRID,
    MSG_ERROR,
    MSG_FLIP_CARD,
    MSG_JOIN_GAME,
    MSG_LEAVE_ROOM,
    MSG_PING,
    MSG_REMATCH,
)
from .errors import ProtocolError, ValidationError

logger = logging.getLogger(__name__)

GridSize = Literal["4x4", "4x6", "6x6"]


class JoinPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    playerName: str | None = Field(default=None, max_length=32)
    avatar: str | None = Field(default=None, max_length=16)
    gridSize: GridSize = DEFAULT_GRID

    @field_validator("gridSize", mode="before")
    @classmethod
    def _default_grid(cls, value: Any) -> Any:
        # null и "" означают размер по умолчанию
        if value is None or value == "":
            return DEFAULT_GRID
        return value


class FlipPayload(BaseModel):
    cardIndex: StrictInt


class JoinGame(BaseModel):
    type: Literal["JOIN_GAME"]
    payload: JoinPayload = Field(default_factory=JoinPayload)


class FlipCard(BaseModel):
    type: Literal["FLIP_CARD"]
    payload: FlipPayload


class LeaveRoom(BaseModel):
    type: Literal["LEAVE_ROOM"]
    payload: Any = None


class Rematch(BaseModel):
    type: Literal["REMATCH"]
    payload: Any = None


class Ping(BaseModel):
    type: Literal["PING"]
    payload: Any = None


ClientMessage = Annotated[
    Union[JoinGame, FlipCard, LeaveRoom, Rematch, Ping],
    Field(discriminator="type"),
]

_adapter = TypeAdapter(ClientMessage)

KNOWN_TYPES = {MSG_JOIN_GAME, MSG_FLIP_CARD, MSG_LEAVE_ROOM, MSG_REMATCH, MSG_PING}


def parse_client_message(raw: str | bytes) -> JoinGame | FlipCard | LeaveRoom | Rematch | Ping:
    """
    Разобрать сырое сообщение (текстовый или бинарный кадр).
    ProtocolError — невалидный JSON или неизвестный type;
    ValidationError — известный type с некорректным payload.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolError("message is not an object")
    t = data.get("type")
    if not isinstance(t, str) or t not in KNOWN_TYPES:
        raise ProtocolError(f"unknown message type: {t!r}")
    if data.get("payload") is None:
        data.pop("payload", None)
    try:
        return _adapter.validate_python(data)
    except pydantic.ValidationError as e:
        logger.debug("WS: invalid payload for %s: %s", t, e)
        raise ValidationError(f"Invalid payload for {t}") from e


def error_payload(message: str) -> dict:
    return {"type": MSG_ERROR, "message": message}
