"""
Authoritative identity -> player mapping for one room (host only).

Joins are resolved in a fixed order: a known identity reconnecting, a new
identity that names a previous one (identity migration), then a brand new
player. Records are never deleted on leave so a dropped player can come back
with their sheets intact.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from game.logic.rng import create_rng
from game.logic.tickets import generate_sheet, validate_sheets
from game.messaging.types import MAX_SHEETS_PER_PLAYER
from game.session.models import JoinResult, PlayerRecord

if TYPE_CHECKING:
    import random

    from game.logic.tickets import Sheet

logger = structlog.get_logger()

DISPLAY_ID_LENGTH = 4


def valid_sheets(sheets: list[Sheet] | None) -> list[Sheet] | None:
    """Return the sheets when every one of them is well formed, else None."""
    return sheets if validate_sheets(sheets, MAX_SHEETS_PER_PLAYER) else None


class RoomDirectory:
    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or create_rng()
        self._players: dict[str, PlayerRecord] = {}  # identity -> PlayerRecord

    def __contains__(self, identity: object) -> bool:
        return identity in self._players

    def __len__(self) -> int:
        return len(self._players)

    def get(self, identity: str) -> PlayerRecord | None:
        return self._players.get(identity)

    @property
    def player_count(self) -> int:
        return len(self._players)

    @property
    def players(self) -> list[PlayerRecord]:
        return list(self._players.values())

    @property
    def connected_players(self) -> list[PlayerRecord]:
        return [p for p in self._players.values() if p.connected]

    @property
    def names(self) -> list[str]:
        return [p.name for p in self._players.values()]

    def display_name(self, identity: str) -> str:
        record = self._players.get(identity)
        if record is not None and record.name:
            return record.name
        return identity[:DISPLAY_ID_LENGTH]

    def on_join(
        self,
        identity: str,
        name: str | None,
        sheets: list[Sheet] | None,
        last_session_id: str | None = None,
        *,
        started: bool,
    ) -> JoinResult:
        supplied = valid_sheets(sheets)
        if sheets and supplied is None:
            logger.warning("discarding invalid sheets from player", identity=identity)

        existing = self._players.get(identity)
        if existing is not None:
            return self._reconnect_same_identity(existing, name, supplied, started=started)

        if last_session_id and last_session_id != identity and last_session_id in self._players:
            return self._migrate_identity(last_session_id, identity)

        return self._add_player(identity, name, supplied)

    def _reconnect_same_identity(
        self,
        record: PlayerRecord,
        name: str | None,
        supplied: list[Sheet] | None,
        *,
        started: bool,
    ) -> JoinResult:
        was_connected = record.connected
        record.connected = True
        if name:
            record.name = self.resolve_name(name, exclude_identity=record.identity)
        if supplied is not None and (not started or not record.sheets):
            record.sheets = supplied
        elif not record.sheets:
            record.sheets = [generate_sheet(self._rng)]
        logger.info("player reconnected with same identity", identity=record.identity)
        return JoinResult(name=record.name, sheets=record.sheets, is_reconnect=True, was_connected=was_connected)

    def _migrate_identity(self, old_identity: str, new_identity: str) -> JoinResult:
        old = self._players.pop(old_identity)
        record = PlayerRecord(identity=new_identity, name=old.name, sheets=old.sheets, connected=True)
        self._players[new_identity] = record
        logger.info("player identity migrated", old_identity=old_identity, identity=new_identity)
        return JoinResult(
            name=record.name,
            sheets=record.sheets,
            is_reconnect=True,
            previous_identity=old_identity,
        )

    def _add_player(self, identity: str, name: str | None, supplied: list[Sheet] | None) -> JoinResult:
        base_name = (name or "").strip() or f"Player {identity[:DISPLAY_ID_LENGTH]}"
        final_name = self.resolve_name(base_name, exclude_identity=identity)
        sheets = supplied if supplied is not None else [generate_sheet(self._rng)]
        self._players[identity] = PlayerRecord(identity=identity, name=final_name, sheets=sheets)
        logger.info("player joined", identity=identity, player_name=final_name)
        return JoinResult(name=final_name, sheets=sheets, is_reconnect=False)

    def resolve_name(self, name: str, exclude_identity: str | None = None) -> str:
        """Append " (2)", " (3)", ... until the name is unique in the room."""
        taken = {p.name for p in self._players.values() if p.identity != exclude_identity}
        candidate = name
        counter = 2
        while candidate in taken:
            candidate = f"{name} ({counter})"
            counter += 1
        return candidate

    def on_leave(self, identity: str) -> None:
        record = self._players.get(identity)
        if record is not None:
            record.connected = False

    def on_ticket_update(self, identity: str, sheets: list[Sheet], *, started: bool) -> bool:
        """Replace a player's sheets before the round starts. Returns True when applied."""
        if started:
            logger.info("ticket update rejected, round already started", identity=identity)
            return False
        record = self._players.get(identity)
        if record is None:
            return False
        supplied = valid_sheets(sheets)
        if supplied is None:
            logger.warning("ticket update rejected, invalid sheets", identity=identity)
            return False
        record.sheets = supplied
        return True
