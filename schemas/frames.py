"""
Signaling frames exchanged over a room websocket.

Inbound frames form a discriminated union on ``type``; anything that does
not validate against it (bad JSON, unknown or missing ``type``, wrong field
types) is rejected by ``parse_inbound_frame`` with a ``ValidationError``.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import Field, TypeAdapter, ValidationError

from schemas.rooms import CamelModel, PresenceEntry


class ChatMessageIn(CamelModel):
    type: Literal["chat-message"]
    text: str
    from_: Optional[str] = Field(default=None, alias="from")
    timestamp: Optional[Union[int, float, str]] = None

class PingIn(CamelModel):
    type: Literal["ping"]

class GetUsersIn(CamelModel):
    type: Literal["get-users"]


InboundFrame = Annotated[Union[ChatMessageIn, PingIn, GetUsersIn], Field(discriminator="type")]

_inbound_adapter = TypeAdapter(InboundFrame)


def parse_inbound_frame(raw: Union[str, bytes]) -> Union[ChatMessageIn, PingIn, GetUsersIn]:
    return _inbound_adapter.validate_json(raw)


def is_unknown_type(error: ValidationError) -> bool:
    return any(item["type"] == "union_tag_invalid" for item in error.errors())


class ConnectedOut(CamelModel):
    type: Literal["connected"] = "connected"
    participant_id: str
    room_id: Optional[str]
    nickname: str
    participants: list[str]

class UserJoinedOut(CamelModel):
    type: Literal["user-joined"] = "user-joined"
    participant_id: str
    nickname: str
    room_id: Optional[str]

class UserLeftOut(CamelModel):
    type: Literal["user-left"] = "user-left"
    participant_id: str
    nickname: str
    room_id: Optional[str]

class ChatMessageOut(CamelModel):
    type: Literal["chat-message"] = "chat-message"
    from_: str = Field(alias="from")
    from_participant_id: str
    text: str
    timestamp: Union[int, float, str]
    room_id: Optional[str]

class PongOut(CamelModel):
    type: Literal["pong"] = "pong"
    timestamp: str
    participants: list[str]
    room_id: Optional[str]

class UserListOut(CamelModel):
    type: Literal["user-list"] = "user-list"
    users: list[PresenceEntry]
    room_id: Optional[str]


OutboundFrame = Union[ConnectedOut, UserJoinedOut, UserLeftOut, ChatMessageOut, PongOut, UserListOut]


def encode_frame(frame: OutboundFrame) -> str:
    return frame.model_dump_json(by_alias=True)
