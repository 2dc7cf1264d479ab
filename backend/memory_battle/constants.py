"""Константы игры: палитра символов, размеры поля, типы сообщений."""
from typing import TypedDict

VERSION = "1.0.0"


class CardSymbol(TypedDict):
    id: int
    symbol: str
    name: str


class GridConfig(TypedDict):
    rows: int
    cols: int
    total_cards: int
    total_pairs: int


CARD_SYMBOLS: list[CardSymbol] = [
    {"id": 0, "symbol": "🦊", "name": "Fox"},
    {"id": 1, "symbol": "🐺", "name": "Wolf"},
    {"id": 2, "symbol": "🦁", "name": "Lion"},
    {"id": 3, "symbol": "🐯", "name": "Tiger"},
    {"id": 4, "symbol": "🦋", "name": "Butterfly"},
    {"id": 5, "symbol": "🌸", "name": "Cherry Blossom"},
    {"id": 6, "symbol": "🌙", "name": "Moon"},
    {"id": 7, "symbol": "⭐", "name": "Star"},
    {"id": 8, "symbol": "🔮", "name": "Crystal Ball"},
    {"id": 9, "symbol": "🗡️", "name": "Sword"},
    {"id": 10, "symbol": "🛡️", "name": "Shield"},
    {"id": 11, "symbol": "🏰", "name": "Castle"},
    {"id": 12, "symbol": "🐉", "name": "Dragon"},
    {"id": 13, "symbol": "🧙", "name": "Wizard"},
    {"id": 14, "symbol": "👑", "name": "Crown"},
    {"id": 15, "symbol": "💎", "name": "Gem"},
    {"id": 16, "symbol": "🔥", "name": "Fire"},
    {"id": 17, "symbol": "💧", "name": "Water"},
]

GRID_CONFIGS: dict[str, GridConfig] = {
    "4x4": {"rows": 4, "cols": 4, "total_cards": 16, "total_pairs": 8},
    "4x6": {"rows": 4, "cols": 6, "total_cards": 24, "total_pairs": 12},
    "6x6": {"rows": 6, "cols": 6, "total_cards": 36, "total_pairs": 18},
}

GRID_SIZE_KEYS = list(GRID_CONFIGS)
DEFAULT_GRID = "4x4"

MAX_PLAYERS = 2
DEFAULT_PLAYER_NAME = "Player"
DEFAULT_AVATAR = "👤"

# Статусы комнаты
STATUS_WAITING = "waiting"
STATUS_PLAYING = "playing"
STATUS_FINISHED = "finished"

# Входящие сообщения
MSG_JOIN_GAME = "JOIN_GAME"
MSG_FLIP_CARD = "FLIP_CARD"
MSG_LEAVE_ROOM = "LEAVE_ROOM"
MSG_REMATCH = "REMATCH"
MSG_PING = "PING"

# Исходящие сообщения
MSG_CONNECTED = "CONNECTED"
MSG_JOINED_ROOM = "JOINED_ROOM"
MSG_PLAYER_JOINED = "PLAYER_JOINED"
MSG_PLAYER_LEFT = "PLAYER_LEFT"
MSG_GAME_STARTED = "GAME_STARTED"
MSG_CARD_FLIPPED = "CARD_FLIPPED"
MSG_MATCH_RESULT = "MATCH_RESULT"
MSG_TURN_CHANGED = "TURN_CHANGED"
MSG_TURN_TIME_UPDATE = "TURN_TIME_UPDATE"
MSG_TURN_TIMEOUT = "TURN_TIMEOUT"
MSG_GAME_ENDED = "GAME_ENDED"
MSG_LEFT_ROOM = "LEFT_ROOM"
MSG_ERROR = "ERROR"
MSG_PONG = "PONG"


def total_pairs(grid_size: str) -> int:
    return GRID_CONFIGS[grid_size]["total_pairs"]
