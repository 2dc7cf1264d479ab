"""
Менеджер WebSocket: соединения, их привязка к комнате/игроку и рассылка.
"""
import logging
import uuid
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Connection:
    def __init__(self, ws: WebSocket):
        self.ws = ws
        self.id = uuid.uuid4().hex
        self.room_id: str | None = None
        self.player_id: str | None = None

    @property
    def in_room(self) -> bool:
        return self.room_id is not None and self.player_id is not None

    def __repr__(self) -> str:
        return f"<Connection {self.id[:8]} room={self.room_id} player={self.player_id}>"


class WSManager:
    """Таблица сессий по id соединения (player_id до входа в комнату ещё нет)."""

    def __init__(self):
        self._by_id: dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def connect(self, ws: WebSocket) -> Connection:
        conn = Connection(ws)
        self._by_id[conn.id] = conn
        return conn

    def disconnect(self, conn: Connection) -> None:
        self._by_id.pop(conn.id, None)

    def bind(self, conn: Connection, room_id: str, player_id: str) -> None:
        conn.room_id = room_id
        conn.player_id = player_id

    def unbind(self, conn: Connection) -> None:
        conn.room_id = None
        conn.player_id = None

    def in_room(self, room_id: str) -> list[Connection]:
        return [c for c in self._by_id.values() if c.room_id == room_id]

    async def send(self, conn: Connection, payload: dict[str, Any]) -> bool:
        try:
            await conn.ws.send_json(payload)
            return True
        except Exception as e:
            logger.warning("WS: send to %s failed: %s", conn.id[:8], e)
            return False

    async def broadcast_room(self, room_id: str, payload: dict[str, Any]) -> None:
        """Отправить всем в комнате; ошибка одного сокета не мешает остальным."""
        for conn in self.in_room(room_id):
            await self.send(conn, payload)
