"""
Repeating host-side timer used for automatic drawing.

The tick callback returns whether the timer should keep going, so the owner
can stop it from inside a tick (pool exhausted, win accepted) without
cancelling the task that is running the callback.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

MIN_INTERVAL_SECONDS = 0.01


class RepeatingTimer:
    """Call ``on_tick`` every ``interval`` seconds until it returns False or is stopped."""

    def __init__(self) -> None:
        self._active_task: asyncio.Task[None] | None = None
        self._interval: float | None = None

    @property
    def is_running(self) -> bool:
        return self._active_task is not None and not self._active_task.done()

    @property
    def interval(self) -> float | None:
        return self._interval if self.is_running else None

    def start(
        self,
        interval: float,
        on_tick: Callable[[], Awaitable[bool]],
        *,
        immediate: bool = False,
    ) -> None:
        """Start ticking, replacing any running timer. ``immediate`` ticks once before the first wait."""
        self.stop()
        self._interval = max(interval, MIN_INTERVAL_SECONDS)
        self._active_task = asyncio.create_task(self._run(self._interval, on_tick, immediate=immediate))

    def stop(self) -> None:
        """Cancel the timer. Safe to call when nothing is running."""
        task = self._active_task
        self._active_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(self, interval: float, on_tick: Callable[[], Awaitable[bool]], *, immediate: bool) -> None:
        try:
            if immediate and not await self._tick(on_tick):
                return
            while True:
                await asyncio.sleep(interval)
                if not await self._tick(on_tick):
                    break
        except asyncio.CancelledError:
            pass
        except (RuntimeError, OSError, ConnectionError, ValueError):  # fmt: skip
            logger.exception("timer callback failed")
        finally:
            if self._active_task is asyncio.current_task():
                self._active_task = None

    async def _tick(self, on_tick: Callable[[], Awaitable[bool]]) -> bool:
        keep_going = await on_tick()
        # stop() called from inside the tick only detaches the task
        return keep_going and self._active_task is asyncio.current_task()
