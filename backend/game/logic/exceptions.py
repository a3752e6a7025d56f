"""Typed exceptions for room, transport and persistence failures.

Everything raised across a module boundary derives from LotoError so callers
at the edges (HTTP handlers, the player client, bin scripts) can catch one
base type and turn it into a user-visible notification.
"""


class LotoError(Exception):
    """Base exception for lô tô room failures."""


class TransportError(LotoError):
    """A connection could not be established or was refused by the host."""


class RoomCodeTakenError(TransportError):
    """No free room identity could be claimed after the allowed retries."""

    def __init__(self, room_code: str, attempts: int) -> None:
        self.room_code = room_code
        self.attempts = attempts
        super().__init__(f"unable to claim room code {room_code} after {attempts} attempts")


class PeerUnavailableError(TransportError):
    """The remote identity (room) does not exist. Not retried."""


class IdentityTakenError(TransportError):
    """The requested player identity already has an open connection on the host."""


class HandshakeTimeoutError(TransportError):
    """The host did not complete the handshake in time."""


class InvalidPersistedStateError(LotoError):
    """A persisted session token could not be parsed or migrated."""
