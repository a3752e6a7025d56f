"""Minimum spacing between repeated actions (claims, emotes, shouts)."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


class Cooldown:
    """Per-key cooldown.

    The host keys it by player identity for win claims; the player client
    uses a single key per action type.
    """

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._seconds = seconds
        self._clock = clock
        self._last: dict[str, float] = {}

    @property
    def seconds(self) -> float:
        return self._seconds

    def try_acquire(self, key: str = "") -> bool:
        """Record an action for ``key`` unless one happened within the cooldown."""
        now = self._clock()
        last = self._last.get(key)
        if last is not None and now - last < self._seconds:
            return False
        self._last[key] = now
        return True

    def remaining(self, key: str = "") -> float:
        last = self._last.get(key)
        if last is None:
            return 0.0
        return max(0.0, self._seconds - (self._clock() - last))

    def reset(self, key: str | None = None) -> None:
        """Forget one key, or every key when none is given."""
        if key is None:
            self._last.clear()
        else:
            self._last.pop(key, None)
