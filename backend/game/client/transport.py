"""
Player-side transport: open a connection to a room's host.

``Connector`` is the seam the player client depends on. ``WebSocketConnector``
talks to the host's ``/ws/{room_code}?peer={identity}`` endpoint with the
``websockets`` client; tests plug in an in-memory connector instead.
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Protocol
from urllib.parse import quote

import structlog
import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake
from websockets.protocol import State

from game.logic.exceptions import PeerUnavailableError, TransportError
from game.messaging.protocol import ConnectionClosedError, ConnectionProtocol

if TYPE_CHECKING:
    from websockets.asyncio.client import ClientConnection

logger = structlog.get_logger()

DEFAULT_OPEN_TIMEOUT_SECONDS = 10.0


class Connector(Protocol):
    async def connect(self, room_code: str, identity: str) -> ConnectionProtocol:
        """Open a connection to the room's host as ``identity``.

        Raises PeerUnavailableError when the host cannot be reached at all,
        TransportError for any other refusal.
        """
        ...


def _close_details(error: ConnectionClosed) -> tuple[int | None, str]:
    if error.rcvd is not None:
        return error.rcvd.code, error.rcvd.reason
    return None, ""


class WebSocketClientConnection(ConnectionProtocol):
    def __init__(self, websocket: ClientConnection, room_code: str, identity: str) -> None:
        self._websocket = websocket
        self._room_code = room_code
        self._identity = identity

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def room_code(self) -> str:
        return self._room_code

    @property
    def is_open(self) -> bool:
        return self._websocket.state is State.OPEN

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._websocket.send(data)
        except ConnectionClosed as e:
            raise ConnectionClosedError(*_close_details(e)) from None

    async def receive_bytes(self) -> bytes:
        try:
            frame = await self._websocket.recv()
        except ConnectionClosed as e:
            raise ConnectionClosedError(*_close_details(e)) from None
        if isinstance(frame, str):
            return frame.encode("utf-8")
        return frame

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(ConnectionClosed, OSError):
            await self._websocket.close(code=code, reason=reason)


class WebSocketConnector:
    def __init__(self, server_url: str, open_timeout_seconds: float = DEFAULT_OPEN_TIMEOUT_SECONDS) -> None:
        self._server_url = server_url.rstrip("/")
        self._open_timeout = open_timeout_seconds

    def url_for(self, room_code: str, identity: str) -> str:
        return f"{self._server_url}/ws/{quote(room_code)}?peer={quote(identity)}"

    async def connect(self, room_code: str, identity: str) -> ConnectionProtocol:
        url = self.url_for(room_code, identity)
        try:
            websocket = await websockets.connect(url, open_timeout=self._open_timeout)
        except InvalidHandshake as e:
            logger.warning("host refused connection", room_code=room_code, error=str(e))
            raise TransportError(f"host refused connection: {e}") from e
        except (OSError, TimeoutError) as e:
            logger.warning("host unreachable", room_code=room_code, error=str(e))
            raise PeerUnavailableError(f"could not reach room {room_code}: {e}") from e
        return WebSocketClientConnection(websocket, room_code=room_code, identity=identity)
