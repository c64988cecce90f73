from typing import Optional

from constants import ADMIN_PARTICIPANT_PREFIX, IDLE_TIMEOUT_SECONDS, SEND_TIMEOUT_SECONDS, SWEEP_INTERVAL_SECONDS
from logging_config import get_logger
from room import Room

logger = get_logger(__name__)


class RoomRegistry:
    """
    Process-wide map of room key -> live Room.

    Rooms are created on first use and evicted as soon as their last session
    closes, so at most one Room per key is active at a time.
    """

    def __init__(
        self,
        idle_timeout: float = IDLE_TIMEOUT_SECONDS,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        admin_prefix: str = ADMIN_PARTICIPANT_PREFIX,
        send_timeout: float = SEND_TIMEOUT_SECONDS,
    ):
        self.idle_timeout = idle_timeout
        self.sweep_interval = sweep_interval
        self.admin_prefix = admin_prefix
        self.send_timeout = send_timeout
        self._rooms: dict[str, Room] = {}

    def __len__(self) -> int:
        return len(self._rooms)

    def get(self, key: str) -> Optional[Room]:
        return self._rooms.get(key)

    def get_or_create(self, key: str) -> Room:
        room = self._rooms.get(key)
        if room is not None and not room.closed:
            return room

        room = Room(
            key,
            idle_timeout=self.idle_timeout,
            sweep_interval=self.sweep_interval,
            admin_prefix=self.admin_prefix,
            send_timeout=self.send_timeout,
            on_empty=self.evict,
        )
        self._rooms[key] = room
        room.start()
        logger.info(f"Created room {key} (active rooms: {len(self._rooms)})")
        return room

    def evict(self, room: Room) -> bool:
        if not room.is_empty():
            logger.debug(f"Room {room.key} still has {len(room)} sessions, not evicting")
            return False
        room.stop()
        if self._rooms.get(room.key) is room:
            del self._rooms[room.key]
            logger.info(f"Evicted empty room {room.key} (active rooms: {len(self._rooms)})")
        return True

    def close_all(self) -> None:
        for room in list(self._rooms.values()):
            room.stop()
        self._rooms.clear()
        logger.info("Room registry cleared")


room_registry = RoomRegistry()


def get_room_registry() -> RoomRegistry:
    return room_registry
