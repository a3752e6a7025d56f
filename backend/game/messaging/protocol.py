"""Transport adapter boundary: one logical connection to one peer identity."""

from abc import ABC, abstractmethod
from typing import Any

from game.messaging.encoder import decode, encode


class ConnectionClosedError(ConnectionError):
    """The remote end closed the connection. Carries the close code when one was sent."""

    def __init__(self, code: int | None = None, reason: str = "") -> None:
        self.code = code
        self.reason = reason
        super().__init__(f"connection closed (code={code}, reason={reason!r})")


class ConnectionProtocol(ABC):
    """
    Abstract interface for a connection between the host and one player.

    The host side wraps an accepted WebSocket; the player side wraps a client
    socket; tests use in-memory pairs. Message handling is written against
    this interface only.
    """

    @property
    @abstractmethod
    def identity(self) -> str:
        """Player identity the connection is bound to (remote player on the host, local player on the client)."""
        ...

    @property
    @abstractmethod
    def room_code(self) -> str:
        """Room this connection belongs to."""
        ...

    @property
    @abstractmethod
    def is_open(self) -> bool: ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None: ...

    @abstractmethod
    async def receive_bytes(self) -> bytes:
        """
        Receive one frame. Raises ConnectionError (ConnectionClosedError when
        the close code is known) once the connection is closed.
        """
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def send_message(self, data: dict[str, Any]) -> None:
        await self.send_bytes(encode(data))

    async def receive_message(self) -> dict[str, Any]:
        raw = await self.receive_bytes()
        return decode(raw)
