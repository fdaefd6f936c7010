"""Push feed: one WebSocket per subscriber of a draft session.

On connect the client gets a "connected" frame carrying the current status
view, then every engine event for that session as it is committed, and a
heartbeat whenever the session has been quiet for heartbeat_seconds. Clients
may send {"type": "ping"} and get a pong back. All frames are MessagePack.
"""

from __future__ import annotations

import asyncio
import contextlib
import re
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from draft.logic.exceptions import DraftError, SessionNotFoundError
from draft.messaging.encoder import DecodeError, decode, encode_model
from draft.messaging.types import (
    ClientMessageType,
    FeedErrorCode,
    FeedErrorMessage,
    FeedMessageType,
    HeartbeatMessage,
)

if TYPE_CHECKING:
    from pydantic import BaseModel

    from draft.logic.events import DraftEvent
    from draft.session.manager import DraftSessionManager

logger = structlog.get_logger()

_SESSION_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
_MAX_SESSION_ID_LENGTH = 100

# Disconnect after this many consecutive malformed client frames
_MAX_DECODE_ERRORS = 5


class FeedConnection:
    """A subscriber socket. Sends are serialized: events, heartbeats and pongs come from different tasks."""

    def __init__(self, websocket: WebSocket, session_id: str) -> None:
        self._websocket = websocket
        self._session_id = session_id
        self._connection_id = str(uuid4())
        self._send_lock = asyncio.Lock()

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def session_id(self) -> str:
        return self._session_id

    async def send_frame(self, frame_type: str, model: BaseModel) -> None:
        async with self._send_lock:
            try:
                await self._websocket.send_bytes(encode_model(frame_type, model))
            except WebSocketDisconnect:
                raise ConnectionError("WebSocket already disconnected") from None

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


async def _pump_events(
    connection: FeedConnection,
    queue: asyncio.Queue[DraftEvent],
    manager: DraftSessionManager,
    heartbeat_seconds: float,
) -> None:
    while True:
        try:
            event = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
        except TimeoutError:
            heartbeat = HeartbeatMessage(server_time=manager.clock.now().isoformat())
            await connection.send_frame(FeedMessageType.HEARTBEAT, heartbeat)
            continue
        await connection.send_frame(event.type, event)


async def _read_client(connection: FeedConnection, websocket: WebSocket, manager: DraftSessionManager) -> None:
    decode_errors = 0
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
        raw = message.get("bytes")
        try:
            if raw is None:
                raise DecodeError("expected a binary MessagePack frame")
            data = decode(raw)
        except DecodeError as e:
            decode_errors += 1
            logger.warning("decode error", error=str(e), strikes=decode_errors)
            await connection.send_frame(
                FeedMessageType.ERROR,
                FeedErrorMessage(code=FeedErrorCode.INVALID_MESSAGE, message=str(e)),
            )
            if decode_errors >= _MAX_DECODE_ERRORS:
                logger.info("too many decode errors, disconnecting", connection_id=connection.connection_id)
                await connection.close(code=4004, reason="too_many_decode_errors")
                return
            continue

        decode_errors = 0
        message_type = data.get("type")
        if message_type == ClientMessageType.PING:
            pong = HeartbeatMessage(server_time=manager.clock.now().isoformat())
            await connection.send_frame(FeedMessageType.PONG, pong)
        else:
            error = FeedErrorMessage(code=FeedErrorCode.UNKNOWN_MESSAGE, message=f"unknown type {message_type!r}")
            await connection.send_frame(FeedMessageType.ERROR, error)


async def draft_feed_endpoint(websocket: WebSocket, manager: DraftSessionManager, heartbeat_seconds: float) -> None:
    session_id = websocket.path_params["session_id"]
    if not _SESSION_ID_PATTERN.match(session_id) or len(session_id) > _MAX_SESSION_ID_LENGTH:
        await websocket.close(code=4000, reason="invalid_session_id")
        return
    try:
        await manager.get_session(session_id)
    except SessionNotFoundError:
        await websocket.close(code=4404, reason="session_not_found")
        return

    await websocket.accept()
    structlog.contextvars.bind_contextvars(session_id=session_id)
    connection = FeedConnection(websocket, session_id)
    # subscribe before the snapshot so no event committed in between is lost
    queue = manager.event_bus.subscribe(session_id)
    logger.info("feed connected", connection_id=connection.connection_id)

    tasks: set[asyncio.Task[None]] = set()
    try:
        await connection.send_frame(FeedMessageType.CONNECTED, await manager.get_status(session_id))
        tasks = {
            asyncio.create_task(_pump_events(connection, queue, manager, heartbeat_seconds)),
            asyncio.create_task(_read_client(connection, websocket, manager)),
        }
        done, _pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, (WebSocketDisconnect, ConnectionError, RuntimeError)):
                raise error
    except (WebSocketDisconnect, ConnectionError, RuntimeError):  # fmt: skip
        pass
    except DraftError as e:
        logger.warning("feed closed on engine error", error_code=e.code, error=e.message)
        await connection.close(code=1011, reason=e.code)
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect, ConnectionError, RuntimeError):
                await task
        manager.event_bus.unsubscribe(session_id, queue)
        logger.info("feed disconnected", connection_id=connection.connection_id)
        structlog.contextvars.clear_contextvars()
