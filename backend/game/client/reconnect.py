"""Exponential backoff for re-establishing a dropped host connection."""

from dataclasses import dataclass

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_SECONDS = 1.0
DEFAULT_MAX_SECONDS = 8.0


@dataclass(frozen=True)
class ReconnectPolicy:
    """Delay before attempt n is ``min(base * 2**(n-1), max)``: 1, 2, 4, 8, 8 seconds by default."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_seconds: float = DEFAULT_BASE_SECONDS
    max_seconds: float = DEFAULT_MAX_SECONDS

    def delay_for(self, attempt: int) -> float:
        if attempt < 1:
            raise ValueError(f"attempt numbers start at 1, got {attempt}")
        return min(self.base_seconds * 2 ** (attempt - 1), self.max_seconds)

    def schedule(self) -> list[float]:
        return [self.delay_for(n) for n in range(1, self.max_attempts + 1)]


class ReconnectTracker:
    """Attempt counter for one reconnecting client. Reset on every successful connect."""

    def __init__(self, policy: ReconnectPolicy | None = None) -> None:
        self.policy = policy or ReconnectPolicy()
        self._attempts = 0

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def exhausted(self) -> bool:
        return self._attempts >= self.policy.max_attempts

    def next_delay(self) -> float | None:
        """Count one more attempt and return its delay, or None once attempts are used up."""
        if self.exhausted:
            return None
        self._attempts += 1
        return self.policy.delay_for(self._attempts)

    def reset(self) -> int:
        """Zero the counter. Returns the count before the reset."""
        previous = self._attempts
        self._attempts = 0
        return previous
