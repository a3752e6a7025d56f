"""
Persisted session tokens for surviving a process restart.

A player keeps one ``PlayerSession`` (room, name, sheets, last identity) so a
reload can rejoin with the same sheets. A host keeps one ``HostState`` (room
code and drawn numbers) so a crashed round can be resumed after explicit
confirmation. Tokens are JSON, tagged with ``kind`` and ``version`` and
expire after a fixed window.
"""

from __future__ import annotations

import json
import time
from typing import TYPE_CHECKING, Any, Literal

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from game.logic.enums import Role
from game.logic.exceptions import InvalidPersistedStateError
from game.logic.numbers import DRAW_MAX, DRAW_MIN
from game.logic.tickets import Sheet, coerce_sheets, validate_sheets
from game.messaging.types import MAX_SHEETS_PER_PLAYER

if TYPE_CHECKING:
    from collections.abc import Callable

    from shared.storage import KeyValueStorage

logger = structlog.get_logger()

SESSION_KEY = "loto_session"
HOST_STATE_KEY = "loto_host_state"

SESSION_TTL_SECONDS = 60 * 60
HOST_STATE_TTL_SECONDS = 2 * 60 * 60

TOKEN_VERSION = 1


class PlayerSession(BaseModel):
    kind: Literal["player_session"] = "player_session"
    version: Literal[1] = TOKEN_VERSION
    room_code: str = Field(min_length=1)
    player_name: str = ""
    sheets: list[Sheet]
    last_peer_identity: str | None = None
    timestamp: float

    @field_validator("sheets")
    @classmethod
    def _validate_sheets(cls, v: list[Sheet]) -> list[Sheet]:
        if not validate_sheets(v, MAX_SHEETS_PER_PLAYER):
            raise ValueError("stored sheets are not valid")
        return v


class HostState(BaseModel):
    kind: Literal["host_state"] = "host_state"
    version: Literal[1] = TOKEN_VERSION
    room_code: str = Field(min_length=1)
    called_numbers: list[int] = Field(default_factory=list)
    current_number: int | None = None
    timestamp: float

    @field_validator("called_numbers")
    @classmethod
    def _validate_called(cls, v: list[int]) -> list[int]:
        if any(not DRAW_MIN <= n <= DRAW_MAX for n in v):
            raise ValueError("called number out of range")
        return v


def migrate_legacy_session(data: dict[str, Any]) -> dict[str, Any]:
    """Convert an unversioned player token into the current shape.

    Legacy tokens used camelCase keys, millisecond timestamps and stored
    either ``playerSheets`` (a list of sheets, or a single sheet or ticket in
    older releases) or ``playerTicket`` (a single ticket). The stored value's
    nesting depth decides which.

    Raises InvalidPersistedStateError when the sheets cannot be recovered.
    """
    raw_sheets = data.get("playerSheets", data.get("playerTicket"))
    sheets = coerce_sheets(raw_sheets)
    if sheets is None:
        raise InvalidPersistedStateError("legacy session has no recognizable sheets")
    timestamp = data.get("timestamp")
    if not isinstance(timestamp, int | float):
        raise InvalidPersistedStateError("legacy session has no timestamp")
    return {
        "kind": "player_session",
        "version": TOKEN_VERSION,
        "room_code": data.get("roomCode"),
        "player_name": data.get("playerName") or "",
        "sheets": sheets,
        "last_peer_identity": data.get("peerId"),
        "timestamp": timestamp / 1000,
    }


class SessionStore:
    """Role-scoped access to the persisted session tokens.

    Players only write ``PlayerSession`` and hosts only write ``HostState``;
    the other save is a no-op. Every load enforces the expiry window and
    clears tokens that are expired or malformed. Storage failures are
    logged and otherwise ignored, persistence is best effort.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        role: Role,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._role = role
        self._clock = clock

    @property
    def role(self) -> Role:
        return self._role

    # --- player ---

    def save_session(
        self,
        room_code: str,
        player_name: str,
        sheets: list[Sheet],
        last_peer_identity: str | None,
    ) -> None:
        if self._role != Role.PLAYER:
            return
        try:
            session = PlayerSession(
                room_code=room_code,
                player_name=player_name,
                sheets=sheets,
                last_peer_identity=last_peer_identity,
                timestamp=self._clock(),
            )
        except ValidationError:
            logger.warning("not saving session with invalid sheets", room_code=room_code)
            return
        self._write(SESSION_KEY, session.model_dump_json())

    def load_session(self) -> PlayerSession | None:
        data = self._read_json(SESSION_KEY)
        if data is None:
            return None
        try:
            if "kind" not in data:
                data = migrate_legacy_session(data)
            session = PlayerSession.model_validate(data)
        except (ValidationError, InvalidPersistedStateError) as e:
            logger.warning("discarding malformed session", error=str(e))
            self.clear_session()
            return None
        if self._clock() - session.timestamp > SESSION_TTL_SECONDS:
            logger.info("session expired", room_code=session.room_code)
            self.clear_session()
            return None
        return session

    def clear_session(self) -> None:
        self._delete(SESSION_KEY)

    # --- host ---

    def save_host_state(self, room_code: str, called_numbers: list[int], current_number: int | None) -> None:
        if self._role != Role.HOST:
            return
        state = HostState(
            room_code=room_code,
            called_numbers=sorted(called_numbers),
            current_number=current_number,
            timestamp=self._clock(),
        )
        self._write(HOST_STATE_KEY, state.model_dump_json())

    def load_host_state(self) -> HostState | None:
        data = self._read_json(HOST_STATE_KEY)
        if data is None:
            return None
        try:
            state = HostState.model_validate(data)
        except ValidationError as e:
            logger.warning("discarding malformed host state", error=str(e))
            self.clear_host_state()
            return None
        if self._clock() - state.timestamp > HOST_STATE_TTL_SECONDS:
            logger.info("host state expired", room_code=state.room_code)
            self.clear_host_state()
            return None
        return state

    def clear_host_state(self) -> None:
        self._delete(HOST_STATE_KEY)

    # --- storage access ---

    def _read_json(self, key: str) -> dict[str, Any] | None:
        try:
            raw = self._storage.get(key)
            if raw is None:
                return None
            data = json.loads(raw)
        except OSError:
            logger.exception("failed to read session token", key=key)
            return None
        except ValueError:
            # undecodable bytes or invalid JSON
            data = None
        if not isinstance(data, dict):
            logger.warning("discarding unreadable session token", key=key)
            self._delete(key)
            return None
        return data

    def _write(self, key: str, value: str) -> None:
        try:
            self._storage.set(key, value)
        except OSError:
            logger.exception("failed to persist session token", key=key)

    def _delete(self, key: str) -> None:
        try:
            self._storage.delete(key)
        except OSError:
            logger.exception("failed to delete session token", key=key)


def resolve_host_restore(store: SessionStore, confirm: Callable[[HostState], bool]) -> HostState | None:
    """Ask whether to resume a saved round.

    Returns the saved state when ``confirm`` accepts it. Declining clears the
    token so the next start is a fresh room.
    """
    state = store.load_host_state()
    if state is None:
        return None
    if confirm(state):
        logger.info("restoring host state", room_code=state.room_code, called=len(state.called_numbers))
        return state
    store.clear_host_state()
    return None
