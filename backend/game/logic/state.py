"""
Host-authoritative game state for one round of drawing.

GameState is the shared shape (the host owns one, every player mirrors one).
DrawMachine wraps it with the shuffled pool and the NOT_STARTED -> STARTED
phase, which only a reset takes back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from game.logic.enums import GamePhase
from game.logic.numbers import DRAW_MAX, DRAW_MIN
from game.logic.rng import create_rng, shuffled_range

if TYPE_CHECKING:
    import random
    from collections.abc import Iterable


@dataclass
class GameState:
    called_numbers: set[int] = field(default_factory=set)
    current_number: int | None = None
    started: bool = False

    def apply_draw(self, number: int) -> bool:
        """Record a drawn number. Returns False when it was already known."""
        is_new = number not in self.called_numbers
        self.called_numbers.add(number)
        self.current_number = number
        self.started = True
        return is_new

    def clear(self) -> None:
        self.called_numbers.clear()
        self.current_number = None
        self.started = False

    def sorted_called(self) -> list[int]:
        return sorted(self.called_numbers)


class DrawMachine:
    """Drawn-number ledger with a pre-shuffled pool of 1..90."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or create_rng()
        self.state = GameState()
        self._pool: list[int] = shuffled_range(DRAW_MIN, DRAW_MAX, self._rng)

    @property
    def phase(self) -> GamePhase:
        return GamePhase.STARTED if self.state.started else GamePhase.NOT_STARTED

    @property
    def started(self) -> bool:
        return self.state.started

    @property
    def remaining(self) -> int:
        return len(self._pool)

    @property
    def is_exhausted(self) -> bool:
        return not self._pool

    def draw(self) -> int | None:
        """Pop the next number, or None when the pool is empty."""
        if not self._pool:
            return None
        number = self._pool.pop()
        self.state.apply_draw(number)
        return number

    def reset(self) -> None:
        """Back to NOT_STARTED with a freshly shuffled pool."""
        self.state.clear()
        self._pool = shuffled_range(DRAW_MIN, DRAW_MAX, self._rng)

    def restore(self, called_numbers: Iterable[int], current_number: int | None) -> None:
        """Resume a persisted round. Already-called numbers are removed from the pool."""
        called = {n for n in called_numbers if DRAW_MIN <= n <= DRAW_MAX}
        self.state = GameState(
            called_numbers=called,
            current_number=current_number if current_number in called else None,
            started=bool(called),
        )
        self._pool = [n for n in shuffled_range(DRAW_MIN, DRAW_MAX, self._rng) if n not in called]
