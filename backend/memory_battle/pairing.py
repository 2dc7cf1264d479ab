"""
Реестр комнат и подбор соперника (in-memory).
Жадный подбор: первая ожидающая комната с тем же размером поля, иначе новая.
"""
import logging
import random
import uuid
from collections.abc import Iterator

from .constants import GRID_CONFIGS, STATUS_WAITING
from .game import TURN_TIME_LIMIT, WARNING_THRESHOLD, Room

logger = logging.getLogger(__name__)

ROOM_ID_LENGTH = 8


class RoomRegistry:
    def __init__(
        self,
        turn_time_limit: int = TURN_TIME_LIMIT,
        warning_threshold: int = WARNING_THRESHOLD,
        rng: random.Random | None = None,
    ):
        self._rooms: dict[str, Room] = {}
        self._turn_time_limit = turn_time_limit
        self._warning_threshold = warning_threshold
        self._rng = rng

    def __len__(self) -> int:
        return len(self._rooms)

    def __iter__(self) -> Iterator[Room]:
        return iter(list(self._rooms.values()))

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def get(self, room_id: str | None) -> Room | None:
        if room_id is None:
            return None
        return self._rooms.get(room_id)

    def is_live(self, room: Room) -> bool:
        """Комната всё ещё зарегистрирована под своим id (не удалена и не подменена)."""
        return self._rooms.get(room.id) is room

    def find_available_room(self, grid_size: str) -> Room | None:
        for room in self._rooms.values():
            if room.grid_size == grid_size and room.status == STATUS_WAITING and not room.is_full:
                return room
        return None

    def find_or_create_room(self, grid_size: str) -> Room:
        room = self.find_available_room(grid_size)
        if room is None:
            room = self.create_room(grid_size)
        return room

    def create_room(self, grid_size: str) -> Room:
        if grid_size not in GRID_CONFIGS:
            raise ValueError(f"Invalid grid size: {grid_size}")
        room = Room(
            id=self._new_room_id(),
            grid_size=grid_size,
            turn_time_limit=self._turn_time_limit,
            warning_threshold=self._warning_threshold,
            rng=self._rng,
        )
        self._rooms[room.id] = room
        logger.info("Room: created room %s with grid %s", room.id, grid_size)
        return room

    def remove(self, room_id: str) -> Room | None:
        room = self._rooms.pop(room_id, None)
        if room is not None:
            room.cancel_tasks()
            logger.info("Room: deleted room %s", room_id)
        return room

    def _new_room_id(self) -> str:
        while True:
            room_id = uuid.uuid4().hex[:ROOM_ID_LENGTH].upper()
            if room_id not in self._rooms:
                return room_id
