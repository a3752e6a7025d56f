"""Shared broadcast utility for sending messages to a room's connections."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from game.messaging.protocol import ConnectionProtocol


async def send_safely(connection: ConnectionProtocol, message: dict[str, Any]) -> bool:
    """Send to one connection, ignoring a peer that has already gone away."""
    if not connection.is_open:
        return False
    try:
        await connection.send_message(message)
    except (RuntimeError, OSError):  # fmt: skip
        return False
    return True


async def broadcast(
    connections: Mapping[str, ConnectionProtocol],
    message: dict[str, Any],
    exclude_identity: str | None = None,
) -> None:
    """Broadcast a message to every open connection, skipping one if excluded.

    Snapshot the mapping via list() to avoid RuntimeError if a concurrent
    leave mutates it while we yield on send_message.
    """
    for identity, connection in list(connections.items()):
        if identity != exclude_identity and connection.is_open:
            with contextlib.suppress(RuntimeError, OSError):
                await connection.send_message(message)
