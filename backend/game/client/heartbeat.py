"""Ping/pong liveness check, run when the player process regains focus."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

DEFAULT_TIMEOUT_SECONDS = 5.0

logger = logging.getLogger(__name__)


class Heartbeat:
    """Send one ping and wait for the matching pong.

    The receive loop calls ``on_pong`` for every pong frame; ``check`` resolves
    as soon as one arrives after its ping was sent.
    """

    def __init__(self, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._timeout = timeout_seconds
        self._waiter: asyncio.Future[None] | None = None

    @property
    def pending(self) -> bool:
        return self._waiter is not None and not self._waiter.done()

    def on_pong(self) -> None:
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(None)

    async def check(self, send_ping: Callable[[], Awaitable[None]]) -> bool:
        """Return True when the peer answered within the timeout."""
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiter = waiter
        try:
            await send_ping()
            await asyncio.wait_for(waiter, timeout=self._timeout)
        except TimeoutError:
            logger.info("heartbeat timed out after %.1fs", self._timeout)
            return False
        except (ConnectionError, OSError, RuntimeError) as e:
            logger.info("heartbeat failed: %s", e)
            return False
        finally:
            if self._waiter is waiter:
                self._waiter = None
        return True

    def fail(self) -> None:
        """Resolve a pending check as failed (the connection went away)."""
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_exception(ConnectionError("connection lost"))
        self._waiter = None
