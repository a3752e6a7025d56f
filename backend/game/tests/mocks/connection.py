import asyncio
from typing import Any
from uuid import uuid4

from game.messaging.encoder import decode, encode
from game.messaging.protocol import ConnectionClosedError, ConnectionProtocol
from game.messaging.router import MessageRouter

DEFAULT_ROOM_CODE = "ABCDEF"


class MockConnection(ConnectionProtocol):
    """In-memory connection that records everything sent through it.

    Two connections can be linked with ``connection_pair`` so frames sent on
    one arrive on the other and closing one side closes the other with the
    same code.
    """

    def __init__(self, identity: str | None = None, room_code: str = DEFAULT_ROOM_CODE) -> None:
        self._identity = identity or uuid4().hex
        self._room_code = room_code
        self._inbox: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._outbox: list[dict[str, Any]] = []
        self._peer: MockConnection | None = None
        self._closed = False
        self.close_code: int | None = None
        self.close_reason: str | None = None

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def room_code(self) -> str:
        return self._room_code

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def sent_messages(self) -> list[dict[str, Any]]:
        return self._outbox.copy()

    def sent_of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [m for m in self._outbox if m.get("type") == message_type]

    def clear_sent(self) -> None:
        self._outbox.clear()

    async def send_bytes(self, data: bytes) -> None:
        if self._closed:
            raise ConnectionClosedError(self.close_code, self.close_reason or "")
        # decode and store for test inspection
        self._outbox.append(decode(data))
        if self._peer is not None:
            self._peer._inbox.put_nowait(data)

    async def receive_bytes(self) -> bytes:
        data = await self._inbox.get()
        if data is None:
            # keep failing on every later receive
            self._inbox.put_nowait(None)
            raise ConnectionClosedError(self.close_code, self.close_reason or "")
        return data

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._closed:
            return
        self._mark_closed(code, reason)
        if self._peer is not None and not self._peer.is_closed:
            self._peer._mark_closed(code, reason)

    def _mark_closed(self, code: int, reason: str) -> None:
        self._closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(None)

    async def simulate_receive(self, data: dict[str, Any]) -> None:
        """
        Simulate receiving a message from the other side.
        """
        await self._inbox.put(encode(data))

    def simulate_receive_nowait(self, data: dict[str, Any]) -> None:
        self._inbox.put_nowait(encode(data))

    def simulate_receive_raw(self, data: bytes) -> None:
        self._inbox.put_nowait(data)


def connection_pair(identity: str, room_code: str = DEFAULT_ROOM_CODE) -> tuple[MockConnection, MockConnection]:
    """Return (host side, player side) of one linked in-memory connection."""
    host_side = MockConnection(identity, room_code)
    player_side = MockConnection(identity, room_code)
    host_side._peer = player_side
    player_side._peer = host_side
    return host_side, player_side


class LoopbackConnector:
    """Connects player clients straight to a MessageRouter, no sockets involved.

    Each connect serves the host side of a new connection pair the way the
    WebSocket endpoint does: handshake, then dispatch until the connection
    closes.
    """

    def __init__(self, router: MessageRouter) -> None:
        self._router = router
        self.host_connections: list[MockConnection] = []
        self.connect_count = 0
        self.failures: list[Exception] = []  # raised by the next connect calls, in order
        self._tasks: set[asyncio.Task[None]] = set()

    async def connect(self, room_code: str, identity: str) -> ConnectionProtocol:
        self.connect_count += 1
        if self.failures:
            raise self.failures.pop(0)
        host_side, player_side = connection_pair(identity, room_code)
        self.host_connections.append(host_side)
        task = asyncio.create_task(self._serve(host_side))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return player_side

    async def _serve(self, connection: MockConnection) -> None:
        if not await self._router.handle_connect(connection):
            return
        try:
            while True:
                data = await connection.receive_message()
                await self._router.handle_message(connection, data)
        except ConnectionError:
            pass
        finally:
            await self._router.handle_disconnect(connection)

    @property
    def latest(self) -> MockConnection:
        return self.host_connections[-1]

    async def drop_all(self, code: int = 1006, reason: str = "network lost") -> None:
        """Sever every open connection as a network failure would."""
        for connection in self.host_connections:
            await connection.close(code=code, reason=reason)

    async def shutdown(self) -> None:
        await self.drop_all(code=1000, reason="test over")
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
