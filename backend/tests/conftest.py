import asyncio
import random

import pytest

from memory_battle.config import build_config
from memory_battle.constants import CARD_SYMBOLS
from memory_battle.deck import Card
from memory_battle.game import Player, Room
from memory_battle.pairing import RoomRegistry
from memory_battle.ws_handlers import GameServer


class FakeWebSocket:
    """
    Заглушка WebSocket: копит отправленное, по желанию падает на send.
    receive отдаёт incoming (str — текстовый кадр, bytes — бинарный),
    затем либо разрыв, либо ждёт вечно (block).
    """

    def __init__(self, incoming: list[str | bytes] | None = None, fail: bool = False, block: bool = False):
        self.sent: list[dict] = []
        self.incoming = list(incoming or [])
        self.fail = fail
        self.block = block
        self.accepted = False
        self.close_code: int | None = None

    async def accept(self):
        self.accepted = True

    async def close(self, code: int = 1000):
        self.close_code = code

    async def receive(self) -> dict:
        if self.incoming:
            frame = self.incoming.pop(0)
            key = "bytes" if isinstance(frame, bytes) else "text"
            return {"type": "websocket.receive", key: frame}
        if self.block:
            await asyncio.Event().wait()
        return {"type": "websocket.disconnect", "code": 1000}

    async def send_json(self, payload):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(payload)

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]

    def of_type(self, msg_type: str) -> list[dict]:
        return [m for m in self.sent if m["type"] == msg_type]


def make_cards(symbol_ids: list[int]) -> list[Card]:
    """Колода с заданным порядком symbolId (id карты = позиция)."""
    return [
        Card(id=i, symbol_id=sid, symbol=CARD_SYMBOLS[sid]["symbol"])
        for i, sid in enumerate(symbol_ids)
    ]


# Для 4x4: индексы 0 и 5 — символ 3, индексы 1 и 2 — разные
SCENARIO_4X4 = [3, 0, 5, 1, 2, 3, 0, 5, 1, 2, 4, 6, 4, 6, 7, 7]


def make_config(**overrides):
    env = {
        "MATCH_CHECK_DELAY": "0",
        "AUTO_START_DELAY": "0",
        "TICK_INTERVAL": "60",
        "IDLE_TIMEOUT": "0",
    }
    env.update({k.upper(): str(v) for k, v in overrides.items()})
    return build_config(env)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def room(rng):
    return Room(id="ROOM0001", grid_size="4x4", rng=rng)


@pytest.fixture
def playing_room(room):
    """Комната 4x4 с двумя игроками, партия идёт, колода из SCENARIO_4X4."""
    room.join(Player(name="Alice"))
    room.join(Player(name="Bob"))
    room.start()
    room.cards = make_cards(SCENARIO_4X4)
    return room


@pytest.fixture
def registry(rng):
    return RoomRegistry(rng=rng)


@pytest.fixture
def server():
    return GameServer(config=make_config())
