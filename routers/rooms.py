from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Request
from constants import ROOM_INFO_SUFFIX
from room_registry import RoomRegistry, get_room_registry
from schemas.rooms import RoomInfo
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/p2p/room", tags=["rooms"])


@rooms_router.get("/{room_key}" + ROOM_INFO_SUFFIX, response_model=RoomInfo)
async def get_room_info(room_key: str, request: Request, registry: RoomRegistry = Depends(get_room_registry)):
    """
    Read-only presence snapshot of a room.

    A room nobody is connected to has no live instance; it is reported as
    empty and is not created by this call.
    """
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room info request for {room_key} from {client_host}")

    room = registry.get(room_key)
    if room is None:
        logger.debug(f"Room {room_key} has no live instance, reporting it empty")
        return RoomInfo(
            room_id=room_key,
            participant_count=0,
            participants=[],
            snapshot_taken_at=datetime.now(timezone.utc).isoformat(),
        )

    info = room.snapshot()
    logger.debug(f"Room info for {room_key}: {info.participant_count} participants")
    return info
