"""
In-memory signaling room.

A Room owns its session table and presence directory and is the only code
that mutates them. Every event (connect, inbound frame, close, sweep tick)
runs under the room's lock, so events for one room never interleave even
though sends suspend. Rooms for different keys run independently.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Union

from pydantic import ValidationError

from constants import ADMIN_PARTICIPANT_PREFIX, IDLE_TIMEOUT_SECONDS, SEND_TIMEOUT_SECONDS, SWEEP_INTERVAL_SECONDS
from logging_config import get_logger
from schemas.frames import (
    ChatMessageIn,
    ChatMessageOut,
    ConnectedOut,
    GetUsersIn,
    OutboundFrame,
    PingIn,
    PongOut,
    UserJoinedOut,
    UserLeftOut,
    UserListOut,
    encode_frame,
    is_unknown_type,
    parse_inbound_frame,
)
from schemas.rooms import PresenceEntry, RoomInfo

logger = get_logger(__name__)

IDLE_CLOSE_CODE = 1001
SEND_FAILURE_CLOSE_CODE = 1011


class Connection(Protocol):
    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None: ...


class RoomClosedError(Exception):
    """Raised when connecting to a room that has already been evicted."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def participant_role(participant_id: str, admin_prefix: str = ADMIN_PARTICIPANT_PREFIX) -> str:
    return "admin" if participant_id.startswith(admin_prefix) else "client"


@dataclass(eq=False)
class Session:
    participant_id: str
    room_id: str
    nickname: str
    connection: Connection
    connected_at: datetime = field(default_factory=utcnow)
    last_activity_at: datetime = field(default_factory=utcnow)
    is_alive: bool = True

    def touch(self, now: Optional[datetime] = None) -> None:
        self.last_activity_at = now or utcnow()


class Room:
    def __init__(
        self,
        key: str,
        idle_timeout: float = IDLE_TIMEOUT_SECONDS,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        admin_prefix: str = ADMIN_PARTICIPANT_PREFIX,
        send_timeout: float = SEND_TIMEOUT_SECONDS,
        on_empty: Optional[Callable[["Room"], None]] = None,
    ):
        self.key = key
        self.room_id: Optional[str] = None
        self.idle_timeout = idle_timeout
        self.sweep_interval = sweep_interval
        self.admin_prefix = admin_prefix
        self.send_timeout = send_timeout
        self.closed = False
        self._connecting = False
        self._on_empty = on_empty
        self._sessions: dict[str, Session] = {}
        self._presence: dict[str, PresenceEntry] = {}
        self._lock = asyncio.Lock()
        self._sweep_task: Optional[asyncio.Task] = None
        self._handlers = {
            ChatMessageIn: self._handle_chat,
            PingIn: self._handle_ping,
            GetUsersIn: self._handle_get_users,
        }
        logger.info(f"Room {key} initialized")

    # -- state accessors -------------------------------------------------

    def is_empty(self) -> bool:
        return not self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def participant_ids(self) -> list[str]:
        return list(self._sessions)

    def get_session(self, participant_id: str) -> Optional[Session]:
        return self._sessions.get(participant_id)

    def presence(self) -> list[PresenceEntry]:
        return list(self._presence.values())

    def snapshot(self) -> RoomInfo:
        """Room Info: presence as of this call, no side effects."""
        participants = [entry.model_copy() for entry in self._presence.values()]
        return RoomInfo(
            room_id=self.room_id if self.room_id is not None else self.key,
            participant_count=len(self._sessions),
            participants=participants,
            snapshot_taken_at=utcnow().isoformat(),
        )

    # -- lifecycle -------------------------------------------------------

    def start(self) -> None:
        if self._sweep_task is None and self.sweep_interval > 0:
            self._sweep_task = asyncio.create_task(self._sweep_loop(), name=f"room-sweep:{self.key}")

    def stop(self) -> None:
        self.closed = True
        task = self._sweep_task
        self._sweep_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def connect(
        self,
        connection: Connection,
        participant_id: str,
        room_id: str,
        nickname: Optional[str] = None,
    ) -> Session:
        """
        Register an accepted connection, acknowledge it with ``connected`` and
        announce it to everyone else with ``user-joined``.
        """
        async with self._lock:
            if self.closed:
                raise RoomClosedError(self.key)
            # Emptiness in the middle of a join is transient
            self._connecting = True
            try:
                session = await self._join(connection, participant_id, room_id, nickname)
            finally:
                self._connecting = False
            self._reclaim_if_empty()
            return session

    async def _join(
        self,
        connection: Connection,
        participant_id: str,
        room_id: str,
        nickname: Optional[str],
    ) -> Session:
        if self.room_id is None:
            self.room_id = room_id
            logger.info(f"Room {self.key} identity fixed to {room_id}")

        previous = self._sessions.get(participant_id)
        if previous is not None:
            logger.info(f"Participant {participant_id} reconnected to room {self.key}, replacing old session")
            await self._close_session(previous, reason="replaced", close_code=1000)

        nickname = nickname or participant_id
        session = Session(
            participant_id=participant_id,
            room_id=self.room_id,
            nickname=nickname,
            connection=connection,
        )
        self._sessions[participant_id] = session
        self._presence[participant_id] = PresenceEntry(
            participant_id=participant_id,
            room_id=self.room_id,
            nickname=nickname,
            role=participant_role(participant_id, self.admin_prefix),
            connected_at=session.connected_at.isoformat(),
        )
        logger.info(f"Participant {participant_id} ({nickname}) joined room {self.room_id} (sessions: {len(self._sessions)})")

        connected = ConnectedOut(
            participant_id=participant_id,
            room_id=self.room_id,
            nickname=nickname,
            participants=[pid for pid in self._sessions if pid != participant_id],
        )
        if not await self._send(session, connected):
            await self._close_session(session, reason="send failed", close_code=SEND_FAILURE_CLOSE_CODE)
            return session

        await self._broadcast(
            UserJoinedOut(participant_id=participant_id, nickname=nickname, room_id=self.room_id),
            exclude=participant_id,
        )
        return session

    async def disconnect(self, session: Session, reason: str = "closed") -> bool:
        """Closed path for a transport close or error. Idempotent."""
        async with self._lock:
            return await self._close_session(session, reason=reason)

    async def close_participant(self, participant_id: str, reason: str = "closed") -> bool:
        async with self._lock:
            session = self._sessions.get(participant_id)
            if session is None:
                logger.debug(f"Close for unknown participant {participant_id} in room {self.key} ignored")
                return False
            return await self._close_session(session, reason=reason, close_code=1000)

    async def _close_session(
        self,
        session: Session,
        reason: str,
        close_code: Optional[int] = None,
    ) -> bool:
        participant_id = session.participant_id
        if self._sessions.get(participant_id) is not session:
            # Already closed through another trigger, or replaced by a reconnect
            return False

        del self._sessions[participant_id]
        self._presence.pop(participant_id, None)
        logger.info(f"Participant {participant_id} left room {self.room_id} ({reason}), remaining sessions: {len(self._sessions)}")

        if close_code is not None:
            try:
                await asyncio.wait_for(session.connection.close(code=close_code), timeout=self.send_timeout)
            except Exception as e:
                logger.debug(f"Error closing connection for {participant_id}: {e}")

        await self._broadcast(
            UserLeftOut(participant_id=participant_id, nickname=session.nickname, room_id=self.room_id)
        )

        self._reclaim_if_empty()
        return True

    def _reclaim_if_empty(self) -> None:
        if self._connecting or self._sessions or self.closed:
            return
        logger.info(f"All participants left room {self.key}, room can be reclaimed")
        if self._on_empty is not None:
            self._on_empty(self)

    # -- broadcast -------------------------------------------------------

    async def broadcast(self, frame: OutboundFrame, exclude: Optional[str] = None) -> int:
        async with self._lock:
            return await self._broadcast(frame, exclude=exclude)

    async def _send(self, session: Session, frame: Union[OutboundFrame, str]) -> bool:
        payload = frame if isinstance(frame, str) else encode_frame(frame)
        try:
            await asyncio.wait_for(session.connection.send_text(payload), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Send to participant {session.participant_id} in room {self.room_id} timed out after {self.send_timeout}s")
            return False
        except Exception as e:
            logger.warning(f"Error sending to participant {session.participant_id} in room {self.room_id}: {e}")
            return False

    async def _broadcast(self, frame: OutboundFrame, exclude: Optional[str] = None) -> int:
        payload = encode_frame(frame)
        targets = [
            session
            for participant_id, session in self._sessions.items()
            if participant_id != exclude and session.is_alive
        ]
        results = await asyncio.gather(*(self._send(session, payload) for session in targets), return_exceptions=True)
        sent = 0
        failed: list[Session] = []
        for session, result in zip(targets, results):
            if result is True:
                sent += 1
            else:
                failed.append(session)

        # A failed send means the connection is dead
        for session in failed:
            await self._close_session(session, reason="send failed", close_code=SEND_FAILURE_CLOSE_CODE)

        logger.debug(f"Broadcast {frame.type} in room {self.room_id} delivered to {sent} participants")
        return sent

    # -- message routing -------------------------------------------------

    async def handle_message(self, session: Session, raw: Union[str, bytes]) -> None:
        async with self._lock:
            try:
                frame = parse_inbound_frame(raw)
            except ValidationError as e:
                if is_unknown_type(e):
                    logger.warning(f"Unknown message type from {session.participant_id} in room {self.room_id}")
                else:
                    logger.warning(f"Dropping malformed frame from {session.participant_id} in room {self.room_id}: {e.error_count()} errors")
                return

            if self._sessions.get(session.participant_id) is not session:
                logger.debug(f"Frame from closed session {session.participant_id} ignored")
                return

            logger.debug(f"Received {frame.type} from {session.participant_id} in room {self.room_id}")
            await self._handlers[type(frame)](session, frame)

    async def _handle_chat(self, session: Session, frame: ChatMessageIn) -> None:
        if not session.is_alive:
            logger.debug(f"Chat message from inactive session {session.participant_id}")
            return

        now = utcnow()
        session.touch(now)
        message = ChatMessageOut(
            from_=frame.from_ or session.nickname,
            from_participant_id=session.participant_id,
            text=frame.text,
            timestamp=frame.timestamp or now.isoformat(),
            room_id=self.room_id,
        )
        recipients = await self._broadcast(message, exclude=session.participant_id)
        logger.debug(f"Chat message from {session.participant_id} ({len(frame.text)} chars) delivered to {recipients} participants")

    async def _handle_ping(self, session: Session, frame: PingIn) -> None:
        if not session.is_alive:
            return

        now = utcnow()
        session.touch(now)
        pong = PongOut(timestamp=now.isoformat(), participants=self.participant_ids(), room_id=self.room_id)
        if not await self._send(session, pong):
            await self._close_session(session, reason="send failed", close_code=SEND_FAILURE_CLOSE_CODE)

    async def _handle_get_users(self, session: Session, frame: GetUsersIn) -> None:
        if not session.is_alive:
            return

        user_list = UserListOut(users=self.presence(), room_id=self.room_id)
        if not await self._send(session, user_list):
            await self._close_session(session, reason="send failed", close_code=SEND_FAILURE_CLOSE_CODE)

    # -- idle sweep ------------------------------------------------------

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Mark sessions with no ping/chat activity within the idle timeout as not
        alive, then reclaim sessions older than the timeout that are not alive.
        Returns the number of sessions reclaimed.
        """
        async with self._lock:
            now = now or utcnow()
            reclaimed = 0
            for session in list(self._sessions.values()):
                if (now - session.last_activity_at).total_seconds() > self.idle_timeout:
                    session.is_alive = False
                connection_age = (now - session.connected_at).total_seconds()
                if connection_age > self.idle_timeout and not session.is_alive:
                    logger.info(f"Cleaning up inactive session {session.participant_id} in room {self.key}")
                    if await self._close_session(session, reason="idle", close_code=IDLE_CLOSE_CODE):
                        reclaimed += 1
            return reclaimed

    async def _sweep_loop(self) -> None:
        logger.debug(f"Starting idle sweep for room {self.key} every {self.sweep_interval}s")
        try:
            while not self.closed:
                await asyncio.sleep(self.sweep_interval)
                await self.sweep()
        except asyncio.CancelledError:
            logger.debug(f"Idle sweep for room {self.key} cancelled")
            raise
        except Exception as e:
            logger.error(f"Idle sweep for room {self.key} failed: {e}", exc_info=True)
