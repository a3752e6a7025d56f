"""
Random sources for drawing and ticket generation.

Every consumer takes an explicit ``random.Random`` so that draws and ticket
layouts are reproducible under a fixed seed in tests. Production code uses
``create_rng()`` without a seed, which seeds from ``secrets`` entropy.
"""

import random
import secrets
from collections.abc import MutableSequence
from typing import TypeVar

T = TypeVar("T")

SEED_BYTES = 32


def create_rng(seed: int | str | None = None) -> random.Random:
    """Create a random source. Without a seed, draw one from the OS CSPRNG."""
    if seed is None:
        seed = secrets.token_hex(SEED_BYTES)
    return random.Random(seed)  # noqa: S311


def fisher_yates_shuffle(items: MutableSequence[T], rng: random.Random) -> MutableSequence[T]:
    """Shuffle items in place (Fisher-Yates, walking from the end) and return them."""
    for i in range(len(items) - 1, 0, -1):
        j = rng.randrange(i + 1)
        items[i], items[j] = items[j], items[i]
    return items


def shuffled_range(start: int, end: int, rng: random.Random) -> list[int]:
    """Return the inclusive range start..end in a random order."""
    pool = list(range(start, end + 1))
    fisher_yates_shuffle(pool, rng)
    return pool
