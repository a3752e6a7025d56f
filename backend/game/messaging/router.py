from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from game.messaging.encoder import DecodeError
from game.messaging.types import (
    CloseCode,
    EmoteMessage,
    ErrorCode,
    ErrorMessage,
    PingMessage,
    ShoutMessage,
    TicketUpdateMessage,
    WaitSignalMessage,
    WinClaimMessage,
    parse_hello,
    parse_player_message,
)

if TYPE_CHECKING:
    from game.messaging.protocol import ConnectionProtocol
    from game.session.host import HostRoom
    from game.session.registry import RoomRegistry

logger = logging.getLogger(__name__)

DEFAULT_HANDSHAKE_TIMEOUT_SECONDS = 10.0


class MessageRouter:
    """
    Routes frames from player connections to the room they joined.

    Pure dispatch: parsing and validation happen here, every state change
    happens in HostRoom. Can be tested without real WebSocket connections.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        *,
        handshake_timeout_seconds: float = DEFAULT_HANDSHAKE_TIMEOUT_SECONDS,
    ) -> None:
        self._registry = registry
        self._handshake_timeout = handshake_timeout_seconds

    def _room_for(self, connection: ConnectionProtocol) -> HostRoom | None:
        room = self._registry.get(connection.room_code)
        if room is None or room.closed:
            return None
        return room

    async def handle_connect(self, connection: ConnectionProtocol) -> bool:
        """Run the handshake: the first frame must be ``hello``.

        Returns True once the player is registered and welcomed. On failure
        the connection is closed with a specific code and False is returned.
        """
        room = self._room_for(connection)
        if room is None:
            await connection.close(code=CloseCode.PEER_UNAVAILABLE, reason="peer-unavailable")
            return False
        if room.is_connected(connection.identity):
            await connection.close(code=CloseCode.IDENTITY_TAKEN, reason="unavailable-id")
            return False

        try:
            data = await asyncio.wait_for(connection.receive_message(), timeout=self._handshake_timeout)
        except TimeoutError:
            logger.info("handshake timed out for %s", connection.identity)
            await connection.close(code=CloseCode.HANDSHAKE_FAILED, reason="handshake_timeout")
            return False
        except DecodeError as e:
            logger.warning("undecodable hello from %s: %s", connection.identity, e)
            await connection.close(code=CloseCode.HANDSHAKE_FAILED, reason="invalid_hello")
            return False
        except ConnectionError:
            return False

        try:
            hello = parse_hello(data)
        except ValidationError as e:
            logger.warning("invalid hello from %s: %s", connection.identity, e)
            await connection.close(code=CloseCode.HANDSHAKE_FAILED, reason="invalid_hello")
            return False

        # Another connection may have claimed the identity while we waited for hello.
        if room.closed or room.is_connected(connection.identity):
            await connection.close(code=CloseCode.IDENTITY_TAKEN, reason="unavailable-id")
            return False

        await room.join(connection, hello)
        return True

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        room = self._room_for(connection)
        if room is None:
            return
        try:
            message = parse_player_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from %s: %s", connection.identity, e)
            await connection.send_message(
                ErrorMessage(code=ErrorCode.INVALID_MESSAGE, message=str(e)).to_wire(),
            )
            return

        identity = connection.identity
        if isinstance(message, WinClaimMessage):
            await room.claim(identity)
        elif isinstance(message, TicketUpdateMessage):
            await self._handle_ticket_update(room, connection, message)
        elif isinstance(message, WaitSignalMessage):
            await room.wait_signal(identity)
        elif isinstance(message, PingMessage):
            await room.ping(identity)
        elif isinstance(message, EmoteMessage):
            await room.emote(message.emoji, sender_id=identity)
        elif isinstance(message, ShoutMessage):
            await room.shout(message.text, sender_id=identity)
        # pong needs no reply

    async def _handle_ticket_update(
        self,
        room: HostRoom,
        connection: ConnectionProtocol,
        message: TicketUpdateMessage,
    ) -> None:
        if room.started:
            logger.info("ticket update after start ignored for %s", connection.identity)
            return
        if not room.update_sheets(connection.identity, message.sheets):
            await connection.send_message(
                ErrorMessage(code=ErrorCode.INVALID_SHEETS, message="Sheets are not valid").to_wire(),
            )

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        room = self._registry.get(connection.room_code)
        if room is not None:
            await room.leave(connection)
