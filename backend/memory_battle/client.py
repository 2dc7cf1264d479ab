"""
Клиентский адаптер соединения: держит локальную копию состояния комнаты,
пингует сервер и переподключается после обрыва.
"""
import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .constants import (
    MSG_CARD_FLIPPED,
    MSG_CONNECTED,
    MSG_ERROR,
    MSG_FLIP_CARD,
    MSG_GAME_ENDED,
    MSG_GAME_STARTED,
    MSG_JOIN_GAME,
    MSG_JOINED_ROOM,
    MSG_LEAVE_ROOM,
    MSG_LEFT_ROOM,
    MSG_MATCH_RESULT,
    MSG_PING,
    MSG_PLAYER_JOINED,
    MSG_PLAYER_LEFT,
    MSG_REMATCH,
    MSG_TURN_CHANGED,
    MSG_TURN_TIME_UPDATE,
    MSG_TURN_TIMEOUT,
)

logger = logging.getLogger(__name__)

PING_INTERVAL = 30.0
RECONNECT_DELAY = 3.0

# События, которые несут полный roomState
_FULL_STATE_EVENTS = {
    MSG_PLAYER_JOINED,
    MSG_PLAYER_LEFT,
    MSG_TURN_CHANGED,
    MSG_TURN_TIMEOUT,
    MSG_GAME_STARTED,
    MSG_GAME_ENDED,
}


class ClientState:
    """Состояние клиента, собранное из событий сервера."""

    def __init__(self):
        self.is_connected = False
        self.is_connecting = False
        self.server_version: str | None = None
        self.room_state: dict | None = None
        self.player_id: str | None = None
        self.player_index: int | None = None
        self.last_error: str | None = None

    @property
    def is_my_turn(self) -> bool:
        if not self.room_state or self.player_index is None:
            return False
        return (
            self.room_state["status"] == "playing"
            and self.room_state["currentPlayerIndex"] == self.player_index
        )

    def apply(self, message: dict[str, Any]) -> None:
        t = message.get("type")
        if t == MSG_CONNECTED:
            self.server_version = message.get("version")
        elif t == MSG_JOINED_ROOM:
            self.player_id = message["playerId"]
            self.player_index = message["playerIndex"]
            self.room_state = message["roomState"]
        elif t in _FULL_STATE_EVENTS:
            self.room_state = message["roomState"]
        elif t == MSG_CARD_FLIPPED:
            if self.room_state is None:
                return
            card = message["card"]
            self.room_state["cards"][message["cardIndex"]].update(
                isFlipped=True,
                symbol=card["symbol"],
                symbolId=card["symbolId"],
            )
        elif t == MSG_MATCH_RESULT:
            self._apply_match_result(message)
        elif t == MSG_TURN_TIME_UPDATE:
            if self.room_state is not None:
                self.room_state["turnTimeLeft"] = message["timeLeft"]
        elif t == MSG_LEFT_ROOM:
            self.clear_room()
        elif t == MSG_ERROR:
            self.last_error = message.get("message")
            logger.warning("Client: server error: %s", self.last_error)

    def clear_room(self) -> None:
        self.room_state = None
        self.player_id = None
        self.player_index = None

    def _apply_match_result(self, message: dict[str, Any]) -> None:
        if self.room_state is None:
            return
        cards = self.room_state["cards"]
        if message["isMatch"]:
            for idx in message["cardIndices"]:
                cards[idx]["isMatched"] = True
            for p in self.room_state["players"]:
                if p["id"] == message.get("playerId"):
                    p["score"] = message["playerScore"]
            self.room_state["matchedPairs"] = message["matchedPairs"]
        else:
            for idx in message["cardIndices"]:
                cards[idx].update(isFlipped=False, symbol=None, symbolId=None)


class GameClient:
    """
    Соединение с сервером. run() держит соединение до close():
    раз в ping_interval шлёт PING, после обрыва ждёт reconnect_delay.
    """

    def __init__(
        self,
        url: str,
        ping_interval: float = PING_INTERVAL,
        reconnect_delay: float = RECONNECT_DELAY,
        on_message: Callable[[dict[str, Any]], None] | None = None,
    ):
        self.url = url
        self.ping_interval = ping_interval
        self.reconnect_delay = reconnect_delay
        self.on_message = on_message
        self.state = ClientState()
        self._ws = None
        self._closed = asyncio.Event()

    async def run(self) -> None:
        while not self._closed.is_set():
            self.state.is_connecting = True
            try:
                async with websockets.connect(self.url, ping_interval=None) as ws:
                    self._ws = ws
                    self.state.is_connected = True
                    self.state.is_connecting = False
                    logger.info("Client: connected to %s", self.url)
                    pinger = asyncio.create_task(self._ping_loop())
                    try:
                        async for raw in ws:
                            self._handle(raw)
                    finally:
                        pinger.cancel()
            except (OSError, WebSocketException) as e:
                logger.warning("Client: connection lost: %s", e)
            finally:
                self._ws = None
                self.state.is_connected = False
                self.state.is_connecting = False
                # Сервер считает разрыв выходом из комнаты
                self.state.clear_room()
            if self._closed.is_set():
                break
            try:
                await asyncio.wait_for(self._closed.wait(), self.reconnect_delay)
            except asyncio.TimeoutError:
                pass

    async def close(self) -> None:
        self._closed.set()
        if self._ws is not None:
            await self._ws.close()

    async def send(self, msg_type: str, payload: dict[str, Any] | None = None) -> bool:
        """Отправить сообщение; False, если соединения нет."""
        if self._ws is None:
            return False
        message: dict[str, Any] = {"type": msg_type}
        if payload is not None:
            message["payload"] = payload
        try:
            await self._ws.send(json.dumps(message))
            return True
        except ConnectionClosed:
            return False

    async def join_game(self, player_name: str, avatar: str, grid_size: str) -> bool:
        return await self.send(MSG_JOIN_GAME, {"playerName": player_name, "avatar": avatar, "gridSize": grid_size})

    async def flip_card(self, card_index: int) -> bool:
        return await self.send(MSG_FLIP_CARD, {"cardIndex": card_index})

    async def leave_room(self) -> bool:
        return await self.send(MSG_LEAVE_ROOM)

    async def request_rematch(self) -> bool:
        return await self.send(MSG_REMATCH)

    async def _ping_loop(self) -> None:
        while True:
            await asyncio.sleep(self.ping_interval)
            await self.send(MSG_PING)

    def _handle(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Client: failed to parse message: %s", e)
            return
        try:
            self.state.apply(message)
            if self.on_message is not None:
                self.on_message(message)
        except Exception:
            logger.exception("Client: failed to handle message")
