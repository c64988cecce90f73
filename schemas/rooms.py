from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Literal, Optional


class CamelModel(BaseModel):
    # Wire format is camelCase; Python code uses snake_case names
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PresenceEntry(CamelModel):
    participant_id: str
    room_id: Optional[str]
    nickname: str
    role: Literal["admin", "client"]
    connected_at: str

class RoomInfo(CamelModel):
    room_id: Optional[str]
    participant_count: int
    participants: list[PresenceEntry]
    snapshot_taken_at: str

class BanStatus(CamelModel):
    is_banned: bool
    reason: Optional[Literal["IP_BANNED", "MACHINE_ID_BANNED"]] = None
    message: Optional[str] = None

class BanListStats(CamelModel):
    available: bool = True
    banned_ips: int = 0
    banned_participant_ids: int = 0
    total_banned: int = 0
    last_updated: Optional[str] = None

class HealthResponse(CamelModel):
    status: str
    message: str
    ban_list_stats: BanListStats
    active_rooms: int
    timestamp: str
