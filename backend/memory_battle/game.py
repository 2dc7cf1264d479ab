"""
Комната: авторитетное состояние партии и её машина состояний.
waiting -> playing -> finished, finished -> playing (реванш).

Методы синхронные и возвращают payload событий; рассылкой и таймерами
занимается GameServer.
"""
import asyncio
import logging
import random
import uuid
from dataclasses import dataclass, field

from .constants import (
    DEFAULT_AVATAR,
    DEFAULT_PLAYER_NAME,
    MAX_PLAYERS,
    MSG_CARD_FLIPPED,
    MSG_GAME_ENDED,
    MSG_GAME_STARTED,
    MSG_MATCH_RESULT,
    MSG_PLAYER_JOINED,
    MSG_PLAYER_LEFT,
    MSG_TURN_CHANGED,
    MSG_TURN_TIME_UPDATE,
    MSG_TURN_TIMEOUT,
    STATUS_FINISHED,
    STATUS_PLAYING,
    STATUS_WAITING,
    total_pairs,
)
from .deck import Card, generate_deck
from .errors import CapacityError, ValidationError
from .timers import TurnTimer

logger = logging.getLogger(__name__)

TURN_TIME_LIMIT = 30
WARNING_THRESHOLD = 10


@dataclass
class Player:
    name: str = DEFAULT_PLAYER_NAME
    avatar: str = DEFAULT_AVATAR
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    score: int = 0
    is_ready: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "avatar": self.avatar,
            "score": self.score,
            "isReady": self.is_ready,
        }


@dataclass(eq=False)
class Room:
    id: str
    grid_size: str
    turn_time_limit: int = TURN_TIME_LIMIT
    warning_threshold: int = WARNING_THRESHOLD
    rng: random.Random | None = None
    players: list[Player] = field(default_factory=list)
    cards: list[Card] = field(default_factory=list)
    current_player_index: int = 0
    flipped_indices: list[int] = field(default_factory=list)
    matched_pairs: int = 0
    status: str = STATUS_WAITING
    turn_time_left: int = 0
    # Растёт при старте, смене состава и таймауте; отложенные задачи сверяют его
    generation: int = 0
    timer: TurnTimer | None = None
    tasks: set[asyncio.Task] = field(default_factory=set)

    def __post_init__(self) -> None:
        # Заглушка до старта; при start() колода генерируется заново
        self.cards = generate_deck(self.grid_size, self.rng)
        self.turn_time_left = self.turn_time_limit

    @property
    def total_pairs(self) -> int:
        return total_pairs(self.grid_size)

    @property
    def is_full(self) -> bool:
        return len(self.players) >= MAX_PLAYERS

    @property
    def is_empty(self) -> bool:
        return not self.players

    @property
    def pair_pending(self) -> bool:
        return len(self.flipped_indices) == 2

    def get_player(self, player_id: str) -> Player | None:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def player_index(self, player_id: str) -> int:
        for i, p in enumerate(self.players):
            if p.id == player_id:
                return i
        return -1

    def public_state(self) -> dict:
        """Публичная проекция комнаты; символы закрытых карт скрыты."""
        return {
            "id": self.id,
            "gridSize": self.grid_size,
            "players": [p.to_dict() for p in self.players],
            "cards": [c.public_dict() for c in self.cards],
            "currentPlayerIndex": self.current_player_index,
            "matchedPairs": self.matched_pairs,
            "totalPairs": self.total_pairs,
            "status": self.status,
            "turnTimeLeft": self.turn_time_left,
        }

    # --- состав ---

    def join(self, player: Player) -> dict:
        if self.is_full:
            raise CapacityError("Failed to join room")
        self.players.append(player)
        self.generation += 1
        logger.info("Room: player %s joined room %s", player.name, self.id)
        return {
            "type": MSG_PLAYER_JOINED,
            "player": player.to_dict(),
            "roomState": self.public_state(),
        }

    def remove_player(self, player_id: str) -> dict | None:
        """
        Убрать игрока. Оставшийся игрок возвращается в ожидание.
        Возвращает PLAYER_LEFT или None, если комната опустела.
        """
        player = self.get_player(player_id)
        if player is None:
            return None
        self.players.remove(player)
        self.generation += 1
        self._revert_flipped()
        self.current_player_index = 0
        self.turn_time_left = self.turn_time_limit
        logger.info("Room: player %s left room %s", player.name, self.id)
        if self.is_empty:
            return None
        self.status = STATUS_WAITING
        return {
            "type": MSG_PLAYER_LEFT,
            "playerId": player.id,
            "roomState": self.public_state(),
        }

    # --- партия ---

    def start(self) -> dict:
        if len(self.players) != MAX_PLAYERS:
            raise ValidationError("Need two players to start")
        self.status = STATUS_PLAYING
        self.current_player_index = 0
        self.flipped_indices = []
        self.matched_pairs = 0
        self.turn_time_left = self.turn_time_limit
        self.cards = generate_deck(self.grid_size, self.rng)
        for p in self.players:
            p.score = 0
        self.generation += 1
        logger.info("Game: started game in room %s", self.id)
        return {"type": MSG_GAME_STARTED, "roomState": self.public_state()}

    def rematch(self) -> dict:
        if self.status != STATUS_FINISHED:
            raise ValidationError("Game is not finished")
        if len(self.players) != MAX_PLAYERS:
            raise ValidationError("Opponent has left")
        return self.start()

    def flip(self, player_id: str, card_index: int) -> dict:
        """Открыть карту. ValidationError без изменения состояния при нарушении правил."""
        if self.status != STATUS_PLAYING:
            raise ValidationError("Game not in progress")
        index = self.player_index(player_id)
        if index < 0:
            raise ValidationError("Not in a room")
        if index != self.current_player_index:
            raise ValidationError("Not your turn!")
        if card_index < 0 or card_index >= len(self.cards):
            raise ValidationError("Invalid card index")
        card = self.cards[card_index]
        if card.is_revealed or card_index in self.flipped_indices:
            raise ValidationError("Card already revealed")
        if len(self.flipped_indices) >= 2:
            raise ValidationError("Two cards already flipped")
        card.is_flipped = True
        self.flipped_indices.append(card_index)
        return {
            "type": MSG_CARD_FLIPPED,
            "cardIndex": card_index,
            "card": card.to_dict(),
            "playerId": player_id,
        }

    def resolve_match(self) -> list[dict]:
        """
        Сравнить две открытые карты.
        Совпадение — очко и ход остаётся; иначе карты закрываются, ход переходит.
        """
        if self.status != STATUS_PLAYING or not self.pair_pending:
            raise ValidationError("No pair to resolve")
        idx1, idx2 = self.flipped_indices
        card1, card2 = self.cards[idx1], self.cards[idx2]
        player = self.players[self.current_player_index]
        if card1.symbol_id == card2.symbol_id:
            card1.is_matched = card2.is_matched = True
            self.matched_pairs += 1
            player.score += 1
            self.flipped_indices = []
            logger.info("Game: match! %s scored in room %s", player.name, self.id)
            events = [{
                "type": MSG_MATCH_RESULT,
                "isMatch": True,
                "cardIndices": [idx1, idx2],
                "playerId": player.id,
                "playerScore": player.score,
                "matchedPairs": self.matched_pairs,
                "totalPairs": self.total_pairs,
            }]
            if self.matched_pairs == self.total_pairs:
                events.append(self.finish())
            else:
                self.turn_time_left = self.turn_time_limit
            return events
        card1.is_flipped = card2.is_flipped = False
        self.flipped_indices = []
        self._pass_turn()
        return [
            {"type": MSG_MATCH_RESULT, "isMatch": False, "cardIndices": [idx1, idx2]},
            {
                "type": MSG_TURN_CHANGED,
                "currentPlayerIndex": self.current_player_index,
                "roomState": self.public_state(),
            },
        ]

    def finish(self) -> dict:
        self.status = STATUS_FINISHED
        winner_id, is_draw = self.winner()
        logger.info("Game: game ended in room %s, winner=%s", self.id, winner_id or "draw")
        return {
            "type": MSG_GAME_ENDED,
            "winnerId": winner_id,
            "isDraw": is_draw,
            "finalScores": {p.id: p.score for p in self.players},
            "roomState": self.public_state(),
        }

    def winner(self) -> tuple[str | None, bool]:
        """(id победителя, ничья). Побеждает строго больший счёт."""
        first, second = self.players
        if first.score > second.score:
            return first.id, False
        if second.score > first.score:
            return second.id, False
        return None, True

    # --- таймер хода ---

    def tick(self) -> list[dict]:
        """Одна секунда хода. На нуле — таймаут и передача хода."""
        if self.status != STATUS_PLAYING:
            return []
        self.turn_time_left -= 1
        if self.turn_time_left <= 0:
            return [self.timeout_turn()]
        if self.turn_time_left <= self.warning_threshold:
            return [{
                "type": MSG_TURN_TIME_UPDATE,
                "timeLeft": self.turn_time_left,
                "isWarning": True,
            }]
        return []

    def timeout_turn(self) -> dict:
        logger.info("Game: time's up in room %s", self.id)
        self._revert_flipped()
        self._pass_turn()
        self.generation += 1
        return {
            "type": MSG_TURN_TIMEOUT,
            "currentPlayerIndex": self.current_player_index,
            "roomState": self.public_state(),
        }

    def cancel_tasks(self) -> None:
        """Остановить таймер и отложенные задачи комнаты."""
        if self.timer is not None:
            self.timer.stop()
        for task in list(self.tasks):
            task.cancel()
        self.tasks.clear()

    def _pass_turn(self) -> None:
        self.current_player_index = (self.current_player_index + 1) % MAX_PLAYERS
        self.turn_time_left = self.turn_time_limit

    def _revert_flipped(self) -> None:
        for idx in self.flipped_indices:
            card = self.cards[idx]
            if not card.is_matched:
                card.is_flipped = False
        self.flipped_indices = []
