"""
Обработка сообщений WebSocket: JOIN_GAME, FLIP_CARD, LEAVE_ROOM, REMATCH, PING.
Все изменения комнаты идут через GameServer; рассылка — после изменения.
"""
import asyncio
import functools
import logging

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from .config import get_config
from .constants import (
    DEFAULT_AVATAR,
    DEFAULT_PLAYER_NAME,
    MSG_CONNECTED,
    MSG_JOINED_ROOM,
    MSG_LEFT_ROOM,
    MSG_PONG,
    MSG_TURN_TIMEOUT,
    STATUS_FINISHED,
    STATUS_PLAYING,
    STATUS_WAITING,
    VERSION,
)
from .errors import ProtocolError, ValidationError
from .game import Player, Room
from .messages import FlipCard, JoinGame, LeaveRoom, Ping, Rematch, error_payload, parse_client_message
from .pairing import RoomRegistry
from .timers import TurnTimer, schedule
from .ws_manager import Connection, WSManager

logger = logging.getLogger(__name__)

IDLE_CLOSE_CODE = 4008


class GameServer:
    """Реестр комнат, сессии соединений и маршрутизация сообщений одного сервера."""

    def __init__(self, config=None, registry: RoomRegistry | None = None, manager: WSManager | None = None):
        self.config = config or get_config()
        self.registry = registry or RoomRegistry(
            turn_time_limit=self.config.turn_time_limit,
            warning_threshold=self.config.warning_threshold,
        )
        self.manager = manager or WSManager()

    def stats(self) -> dict:
        return {"rooms": len(self.registry), "connections": len(self.manager)}

    # --- цикл соединения ---

    async def ws_loop(self, ws: WebSocket) -> None:
        """Принять соединение, отправить CONNECTED и обрабатывать сообщения до закрытия."""
        await ws.accept()
        conn = self.manager.connect(ws)
        logger.info("WS: accepted connection %s", conn.id[:8])
        try:
            await self.manager.send(conn, {"type": MSG_CONNECTED, "version": VERSION})
            while True:
                raw = await self._receive(ws)
                if raw is None:
                    logger.info("WS: connection %s idle, closing", conn.id[:8])
                    await ws.close(code=IDLE_CLOSE_CODE)
                    break
                await self.handle_ws_message(conn, raw)
        except WebSocketDisconnect as e:
            logger.info("WS: client disconnected code=%s conn=%s", e.code, conn.id[:8])
        except Exception as e:
            logger.exception("WS: error conn=%s: %s", conn.id[:8], e)
        finally:
            await self.leave(conn)
            self.manager.disconnect(conn)
            logger.info("WS: disconnected conn=%s", conn.id[:8])

    async def _receive(self, ws: WebSocket) -> str | bytes | None:
        """
        Следующий кадр, текстовый или бинарный; None, если клиент молчит
        дольше idle_timeout.
        """
        timeout = self.config.idle_timeout
        if not timeout:
            message = await ws.receive()
        else:
            try:
                message = await asyncio.wait_for(ws.receive(), timeout)
            except asyncio.TimeoutError:
                return None
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
        if message.get("text") is not None:
            return message["text"]
        return message.get("bytes") or b""

    async def handle_ws_message(self, conn: Connection, raw: str | bytes) -> None:
        """Обрабатывает одно сообщение; ошибки не закрывают соединение."""
        try:
            msg = parse_client_message(raw)
        except ProtocolError as e:
            logger.warning("WS: dropped message from %s: %s", conn.id[:8], e.message)
            return
        except ValidationError as e:
            await self.manager.send(conn, error_payload(e.message))
            return
        logger.info("WS: msg from %s type=%s", conn.id[:8], msg.type)
        try:
            if isinstance(msg, JoinGame):
                await self.handle_join(conn, msg)
            elif isinstance(msg, FlipCard):
                await self.handle_flip(conn, msg)
            elif isinstance(msg, LeaveRoom):
                await self.leave(conn)
                await self.manager.send(conn, {"type": MSG_LEFT_ROOM})
            elif isinstance(msg, Rematch):
                await self.handle_rematch(conn)
            elif isinstance(msg, Ping):
                await self.manager.send(conn, {"type": MSG_PONG})
        except ValidationError as e:
            logger.info("WS: rejected %s from %s: %s", msg.type, conn.id[:8], e.message)
            await self.manager.send(conn, error_payload(e.message))

    # --- обработчики ---

    async def handle_join(self, conn: Connection, msg: JoinGame) -> None:
        if conn.in_room:
            await self.leave(conn)
        payload = msg.payload
        player = Player(
            name=payload.playerName or DEFAULT_PLAYER_NAME,
            avatar=payload.avatar or DEFAULT_AVATAR,
        )
        room = self.registry.find_or_create_room(payload.gridSize)
        event = room.join(player)
        self.manager.bind(conn, room.id, player.id)
        if room.is_full and room.status == STATUS_WAITING:
            self._schedule_auto_start(room)
        await self.manager.broadcast_room(room.id, event)
        await self.manager.send(conn, {
            "type": MSG_JOINED_ROOM,
            "playerId": player.id,
            "roomId": room.id,
            "playerIndex": room.player_index(player.id),
            "roomState": room.public_state(),
        })

    async def handle_flip(self, conn: Connection, msg: FlipCard) -> None:
        room = self._require_room(conn)
        event = room.flip(conn.player_id, msg.payload.cardIndex)
        if room.pair_pending:
            self._schedule_resolution(room)
        await self.manager.broadcast_room(room.id, event)

    async def handle_rematch(self, conn: Connection) -> None:
        room = self._require_room(conn)
        await self._start_game(room, rematch=True)

    async def leave(self, conn: Connection) -> None:
        """Общий путь выхода: LEAVE_ROOM, разрыв соединения, таймаут простоя."""
        room = self.registry.get(conn.room_id)
        player_id = conn.player_id
        self.manager.unbind(conn)
        if room is None or player_id is None:
            return
        room.cancel_tasks()
        event = room.remove_player(player_id)
        if room.is_empty:
            self.registry.remove(room.id)
        elif event is not None:
            await self.manager.broadcast_room(room.id, event)

    def _require_room(self, conn: Connection) -> Room:
        room = self.registry.get(conn.room_id)
        if room is None or conn.player_id is None or room.get_player(conn.player_id) is None:
            raise ValidationError("Not in a room")
        return room

    # --- партия и таймеры ---

    def _is_current(self, room: Room, generation: int) -> bool:
        return self.registry.is_live(room) and room.generation == generation

    async def _start_game(self, room: Room, rematch: bool = False) -> None:
        event = room.rematch() if rematch else room.start()
        self._restart_timer(room)
        await self.manager.broadcast_room(room.id, event)

    def _schedule_auto_start(self, room: Room) -> None:
        generation = room.generation

        async def auto_start() -> None:
            if not self._is_current(room, generation):
                return
            if room.status != STATUS_WAITING or not room.is_full:
                return
            await self._start_game(room)

        schedule(self.config.auto_start_delay, auto_start, room.tasks)

    def _schedule_resolution(self, room: Room) -> None:
        generation = room.generation

        async def resolve() -> None:
            if not self._is_current(room, generation):
                return
            if room.status != STATUS_PLAYING or not room.pair_pending:
                return
            events = room.resolve_match()
            if room.status == STATUS_FINISHED:
                self._stop_timer(room)
            else:
                self._restart_timer(room)
            for event in events:
                await self.manager.broadcast_room(room.id, event)

        schedule(self.config.match_check_delay, resolve, room.tasks)

    def _restart_timer(self, room: Room) -> None:
        if room.timer is None:
            room.timer = TurnTimer(functools.partial(self._on_tick, room), self.config.tick_interval)
        room.timer.start()

    def _stop_timer(self, room: Room) -> None:
        if room.timer is not None:
            room.timer.stop()

    async def _on_tick(self, room: Room) -> None:
        if not self.registry.is_live(room) or room.status != STATUS_PLAYING:
            self._stop_timer(room)
            return
        events = room.tick()
        for event in events:
            await self.manager.broadcast_room(room.id, event)
        # Перезапуск последним: текущая задача таймера будет отменена
        if any(e["type"] == MSG_TURN_TIMEOUT for e in events):
            self._restart_timer(room)
