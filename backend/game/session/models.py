from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from game.logic.tickets import Sheet


@dataclass
class PlayerRecord:
    """Host-side record of one player, keyed by the player's current identity.

    Lifecycle:
    - Created on first join
    - On leave: connected is cleared, the record stays for a later reconnect
    - On reconnect under a new identity: moved to the new key, old key removed
    - Dropped only when the room is closed
    """

    identity: str
    name: str
    sheets: list[Sheet] = field(default_factory=list)
    connected: bool = True


@dataclass(frozen=True)
class JoinResult:
    """What the host tells a joining connection: its resolved name and sheets."""

    name: str
    sheets: list[Sheet]
    is_reconnect: bool
    was_connected: bool = False
    previous_identity: str | None = None

