"""Batch near-simultaneous winners into one announcement."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from game.logic.win import join_names

DEFAULT_WINDOW_SECONDS = 2.0

logger = logging.getLogger(__name__)

# Called once per window with the combined winner string.
AnnounceCallback = Callable[[str], Awaitable[None]]


class WinAggregator:
    """Collect accepted winners for a fixed window after the first one.

    The first accepted claim opens the window. Every further claim inside the
    window is appended (deduplicated by name). When the window closes the
    names are joined and announced once; the next claim opens a new window.
    """

    def __init__(
        self,
        on_announce: AnnounceCallback,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        conjunction: str = "and",
    ) -> None:
        self._on_announce = on_announce
        self._window_seconds = window_seconds
        self._conjunction = conjunction
        self._pending: list[str] = []
        self._task: asyncio.Task[None] | None = None

    @property
    def pending_winners(self) -> list[str]:
        return list(self._pending)

    @property
    def is_collecting(self) -> bool:
        return self._task is not None and not self._task.done()

    def add(self, name: str) -> bool:
        """Add a winner. Returns True when this claim opened a new window."""
        if name not in self._pending:
            self._pending.append(name)
        if self.is_collecting:
            return False
        self._task = asyncio.create_task(self._close_window())
        return True

    def cancel(self) -> None:
        """Drop the open window and its pending winners without announcing."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._pending.clear()

    async def _close_window(self) -> None:
        try:
            await asyncio.sleep(self._window_seconds)
        except asyncio.CancelledError:
            return
        winners = join_names(self._pending, self._conjunction)
        self._pending = []
        self._task = None
        try:
            await self._on_announce(winners)
        except (RuntimeError, OSError, ConnectionError):  # fmt: skip
            logger.exception("win announcement failed")
