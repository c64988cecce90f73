from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from routers.rooms import rooms_router
from backend import BanListBackend, ban_list_backend, get_ban_list
from room import RoomClosedError
from room_registry import RoomRegistry, get_room_registry, room_registry
from schemas.rooms import HealthResponse
from constants import ALLOWED_ORIGINS, BANNED_IPS, BANNED_PARTICIPANT_IDS
from typing import Optional
from datetime import datetime, timezone
from logging_config import get_logger, setup_logging
import os

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if ban_list_backend.ping():
        ban_list_backend.seed(BANNED_IPS, BANNED_PARTICIPANT_IDS)
    else:
        logger.warning("Redis unavailable at startup, ban checks will fail open")
    yield
    room_registry.close_all()
    logger.info("Signaling service shut down")


app = FastAPI(title="Support Signaling", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(rooms_router)

logger.info("FastAPI application initialized")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        logger.info(f"Path not found: {request.method} {request.url.path}")
        content = {"error": "Not found", "path": request.url.path}
    else:
        content = {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": "P2P signaling error", "message": str(exc)})


@app.get("/", response_model=HealthResponse)
async def health(
    ban_list: BanListBackend = Depends(get_ban_list),
    registry: RoomRegistry = Depends(get_room_registry),
):
    return HealthResponse(
        status="running",
        message="Support signaling service is running!",
        ban_list_stats=ban_list.get_stats(),
        active_rooms=len(registry),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


def get_client_address(websocket: WebSocket) -> Optional[str]:
    forwarded = websocket.headers.get("cf-connecting-ip")
    if forwarded:
        return forwarded.strip()
    forwarded = websocket.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return websocket.client.host if websocket.client else None


async def reject_connection(websocket: WebSocket, response: Response, reason: str):
    """Answer the upgrade request with a plain HTTP response instead of accepting it."""
    try:
        await websocket.send_denial_response(response)
    except RuntimeError:
        # Server does not support the websocket denial response extension
        await websocket.close(code=1008, reason=reason)


@app.websocket("/p2p/room/{room_key}")
async def signaling_endpoint(
    websocket: WebSocket,
    room_key: str,
    participant_id: Optional[str] = Query(None, alias="peerID"),
    room_id: Optional[str] = Query(None, alias="roomID"),
    nickname: Optional[str] = Query(None),
    ban_list: BanListBackend = Depends(get_ban_list),
    registry: RoomRegistry = Depends(get_room_registry),
):
    """Signaling websocket for one participant of a room.

    Query parameters:
    - peerID: participant identifier, required
    - roomID: room identifier, required
    - nickname: optional display name, defaults to peerID
    """
    logger.info(f"WebSocket connection attempt for room: {room_key}, peerID: {participant_id}")

    if not participant_id or not room_id:
        logger.info(f"WebSocket connection rejected for room {room_key}: missing peerID or roomID")
        await reject_connection(
            websocket,
            PlainTextResponse("Missing peerID or roomID", status_code=400),
            reason="Missing peerID or roomID",
        )
        return

    ban_status = ban_list.check_ban_status(get_client_address(websocket), participant_id)
    if ban_status.is_banned:
        await reject_connection(
            websocket,
            JSONResponse(
                status_code=403,
                content={"status": "banned", "reason": ban_status.reason, "message": ban_status.message},
            ),
            reason=ban_status.message or "Banned",
        )
        return

    await websocket.accept()
    logger.info(f"WebSocket connection accepted for room: {room_key}, peerID: {participant_id}")

    while True:
        room = registry.get_or_create(room_key)
        try:
            session = await room.connect(websocket, participant_id, room_id, nickname or None)
            break
        except RoomClosedError:
            logger.debug(f"Room {room_key} was evicted while connecting, retrying on a fresh instance")

    reason = "closed"
    try:
        message_count = 0
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            data = message.get("text")
            if data is None:
                data = message.get("bytes")
            if data is None:
                continue
            message_count += 1
            logger.debug(f"Received message #{message_count} from {participant_id} in room {room_key}")
            await room.handle_message(session, data)
    except WebSocketDisconnect as e:
        logger.info(f"WebSocket disconnected normally for {participant_id} in room {room_key} (code {e.code})")
    except Exception as e:
        reason = "error"
        logger.error(f"WebSocket error for {participant_id} in room {room_key}: {e}", exc_info=True)
    finally:
        await room.disconnect(session, reason=reason)
