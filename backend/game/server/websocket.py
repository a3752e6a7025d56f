from __future__ import annotations

import contextlib
import re
from typing import TYPE_CHECKING

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from game.logic.room_code import is_valid_room_code, normalize_room_code
from game.messaging.encoder import DecodeError, decode
from game.messaging.protocol import ConnectionProtocol
from game.messaging.types import CloseCode, ErrorCode, ErrorMessage
from game.server.rate_limit import TokenBucket

logger = structlog.get_logger()

if TYPE_CHECKING:
    from game.messaging.router import MessageRouter
    from game.server.settings import HostSettings

_PEER_IDENTITY_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


class WebSocketConnection(ConnectionProtocol):
    def __init__(self, websocket: WebSocket, room_code: str, identity: str) -> None:
        self._websocket = websocket
        self._room_code = room_code
        self._identity = identity
        self._closed = False

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def room_code(self) -> str:
        return self._room_code

    @property
    def is_open(self) -> bool:
        return not self._closed and self._websocket.application_state == WebSocketState.CONNECTED

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._websocket.send_bytes(data)
        except WebSocketDisconnect:
            self._closed = True
            raise ConnectionError("WebSocket already disconnected") from None

    async def receive_bytes(self) -> bytes:
        try:
            return await self._websocket.receive_bytes()
        except WebSocketDisconnect:
            self._closed = True
            raise ConnectionError("WebSocket already disconnected") from None

    async def close(self, code: int = CloseCode.NORMAL, reason: str = "") -> None:
        if self._closed:
            return
        self._closed = True
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


async def websocket_endpoint(websocket: WebSocket, router: MessageRouter, settings: HostSettings) -> None:
    room_code = normalize_room_code(websocket.path_params["room_code"])
    if not is_valid_room_code(room_code):
        await websocket.close(code=CloseCode.INVALID_REQUEST, reason="invalid_room_code")
        return
    identity = websocket.query_params.get("peer", "")
    if not _PEER_IDENTITY_PATTERN.match(identity):
        await websocket.close(code=CloseCode.INVALID_REQUEST, reason="invalid_peer_identity")
        return

    await websocket.accept()

    connection = WebSocketConnection(websocket, room_code=room_code, identity=identity)
    structlog.contextvars.bind_contextvars(room_code=room_code, identity=identity)
    logger.info("websocket connected")
    if not await router.handle_connect(connection):
        structlog.contextvars.clear_contextvars()
        return

    bucket = TokenBucket(rate=settings.rate_limit_rate, burst=settings.rate_limit_burst)
    decode_errors = 0

    try:
        while True:
            raw = await connection.receive_bytes()

            # Always decode to maintain the malformed-message strike counter.
            try:
                data = decode(raw)
            except DecodeError as e:
                decode_errors += 1
                logger.warning("decode error", error=str(e), strikes=decode_errors)
                await connection.send_message(
                    ErrorMessage(code=ErrorCode.INVALID_MESSAGE, message=str(e)).to_wire(),
                )
                if decode_errors >= settings.max_decode_errors:
                    logger.info("too many decode errors, disconnecting")
                    await connection.close(code=CloseCode.TOO_MANY_DECODE_ERRORS, reason="too_many_decode_errors")
                    return
                continue

            decode_errors = 0

            if not bucket.consume():
                await connection.send_message(
                    ErrorMessage(code=ErrorCode.RATE_LIMITED, message="Too many messages").to_wire(),
                )
                continue
            await router.handle_message(connection, data)
    except (WebSocketDisconnect, RuntimeError, ConnectionError):  # fmt: skip
        pass
    finally:
        logger.info("websocket disconnected")
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()
