"""
Observer fan-out for room events.

Host rooms and player clients publish events (player joined, number drawn,
reconnecting, ...) to an EventChannel. Observers such as a UI, a speech
announcer or a logger subscribe per event type and are called in
subscription order. Subscribers may be plain functions or coroutines.
"""

from __future__ import annotations

import inspect
from collections import defaultdict
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    Subscriber = Callable[..., Awaitable[None] | None]

logger = structlog.get_logger()


class RoomEvent(StrEnum):
    # host side
    PLAYER_JOINED = "player_joined"
    PLAYER_RECONNECTED = "player_reconnected"
    PLAYER_LEFT = "player_left"
    NUMBER_DRAWN = "number_drawn"
    WIN_PENDING = "win_pending"
    WIN_ANNOUNCED = "win_announced"
    FALSE_CLAIM = "false_claim"
    WAIT_SIGNAL = "wait_signal"
    GAME_RESET = "game_reset"
    AUTO_DRAW_STOPPED = "auto_draw_stopped"
    # player side
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    RECONNECTED = "reconnected"
    DISCONNECTED = "disconnected"
    WELCOME = "welcome"
    WIN_READY = "win_ready"
    WIN_CONFIRMED = "win_confirmed"
    WIN_REJECTED = "win_rejected"
    CLAIM_TIMEOUT = "claim_timeout"
    VOICE_MODE = "voice_mode"
    # both
    TOAST = "toast"
    EMOTE = "emote"
    SHOUT = "shout"


class EventChannel:
    """Ordered subscriber lists keyed by event type."""

    def __init__(self) -> None:
        self._subscribers: dict[RoomEvent, list[Subscriber]] = defaultdict(list)

    def subscribe(self, event: RoomEvent, subscriber: Subscriber) -> Callable[[], None]:
        """Append a subscriber. Returns a function that removes it again."""
        self._subscribers[event].append(subscriber)

        def unsubscribe() -> None:
            subscribers = self._subscribers.get(event)
            if subscribers and subscriber in subscribers:
                subscribers.remove(subscriber)

        return unsubscribe

    def subscriber_count(self, event: RoomEvent) -> int:
        return len(self._subscribers.get(event, ()))

    async def publish(self, event: RoomEvent, **payload: Any) -> None:
        """Call every subscriber of ``event`` in order.

        A failing subscriber is logged and does not stop the others; room
        state has already changed by the time events are published.
        """
        for subscriber in list(self._subscribers.get(event, ())):
            try:
                result = subscriber(**payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("event subscriber failed", room_event=event)
