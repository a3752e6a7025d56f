"""Rooms hosted by this process, keyed by room code."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from game.logic.exceptions import RoomCodeTakenError
from game.logic.rng import create_rng
from game.logic.room_code import generate_room_code
from game.session.host import HostRoom, RoomConfig

if TYPE_CHECKING:
    import random

    from game.session.host import Announcer
    from game.session.store import HostState, SessionStore

logger = structlog.get_logger()

DEFAULT_OPEN_ATTEMPTS = 5
DEFAULT_RETRY_SECONDS = 1.5


class RoomRegistry:
    """Open, look up and close hosted rooms.

    The persisted host state is shared by every room in the process, like one
    saved room per device: the most recently changed room is the one a
    restart can resume.
    """

    def __init__(
        self,
        config: RoomConfig | None = None,
        *,
        store: SessionStore | None = None,
        announcer: Announcer | None = None,
        rng: random.Random | None = None,
        open_attempts: int = DEFAULT_OPEN_ATTEMPTS,
        retry_seconds: float = DEFAULT_RETRY_SECONDS,
    ) -> None:
        self._config = config or RoomConfig()
        self._store = store
        self._announcer = announcer
        self._rng = rng or create_rng()
        self._open_attempts = open_attempts
        self._retry_seconds = retry_seconds
        self._rooms: dict[str, HostRoom] = {}  # room_code -> HostRoom

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    @property
    def rooms(self) -> list[HostRoom]:
        return list(self._rooms.values())

    def get(self, room_code: str) -> HostRoom | None:
        return self._rooms.get(room_code)

    async def open_room(self, restore: HostState | None = None) -> HostRoom:
        """Claim a room identity and create the room.

        A fresh room tries a new random code on each attempt. A restored room
        must keep its code, so it waits and retries the same one (the previous
        process may still be releasing it).

        Raises RoomCodeTakenError when every attempt collides.
        """
        code = restore.room_code if restore is not None else ""
        for attempt in range(1, self._open_attempts + 1):
            if restore is None:
                code = generate_room_code(self._rng)
            if code not in self._rooms:
                return self._create(code, restore)
            logger.warning("room identity taken", room_code=code, attempt=attempt)
            if restore is not None and attempt < self._open_attempts:
                await asyncio.sleep(self._retry_seconds)
        raise RoomCodeTakenError(code, self._open_attempts)

    def _create(self, code: str, restore: HostState | None) -> HostRoom:
        room = HostRoom(
            code,
            self._config,
            store=self._store,
            announcer=self._announcer,
            rng=create_rng(self._rng.getrandbits(128)),
        )
        if restore is not None:
            room.restore(restore)
        self._rooms[code] = room
        logger.info("room opened", room_code=code, restored=restore is not None)
        return room

    async def close_room(self, room_code: str) -> bool:
        room = self._rooms.pop(room_code, None)
        if room is None:
            return False
        await room.close()
        return True

    async def close_all(self) -> None:
        for code in list(self._rooms):
            await self.close_room(code)
