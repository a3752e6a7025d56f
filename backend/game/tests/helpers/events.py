"""Event capture and polling helpers for async tests."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from game.messaging.events import EventChannel, RoomEvent

if TYPE_CHECKING:
    from collections.abc import Callable


class EventRecorder:
    """Subscribes to every RoomEvent on a channel and keeps them in order."""

    def __init__(self, channel: EventChannel) -> None:
        self.events: list[tuple[RoomEvent, dict[str, Any]]] = []
        for event in RoomEvent:
            channel.subscribe(event, self._recorder(event))

    def _recorder(self, event: RoomEvent) -> Callable[..., None]:
        def record(**payload: Any) -> None:
            self.events.append((event, payload))

        return record

    def names(self) -> list[RoomEvent]:
        return [event for event, _ in self.events]

    def of(self, event: RoomEvent) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]

    def clear(self) -> None:
        self.events.clear()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.005) -> None:
    """Poll ``predicate`` until it holds; raise TimeoutError when it never does."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(interval)
