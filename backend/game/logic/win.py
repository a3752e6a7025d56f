"""
Win detection over a player's sheets.

A row wins when every number on it has been called. Rows without any numbers
(the empty placeholder ticket) never win.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence, Set

    from game.logic.tickets import Row, Sheet

# A row is "waiting" when all but this many of its numbers are called.
WAITING_MISSING_COUNT = 1


class RowRef(NamedTuple):
    """Position of a row within a player's sheets."""

    sheet: int
    ticket: int
    row: int


def row_numbers(row: Row) -> list[int]:
    return [cell for cell in row if cell is not None]


def _iter_rows(sheets: Sequence[Sheet]) -> Iterable[tuple[RowRef, list[int]]]:
    for s, sheet in enumerate(sheets):
        for t, ticket in enumerate(sheet):
            for r, row in enumerate(ticket):
                yield RowRef(s, t, r), row_numbers(row)


def is_row_complete(row: Row, called: Set[int]) -> bool:
    numbers = row_numbers(row)
    return bool(numbers) and all(n in called for n in numbers)


def winning_rows(sheets: Sequence[Sheet], called: Set[int]) -> list[RowRef]:
    """All rows whose numbers have all been called."""
    return [ref for ref, numbers in _iter_rows(sheets) if numbers and all(n in called for n in numbers)]


def waiting_rows(sheets: Sequence[Sheet], called: Set[int]) -> list[RowRef]:
    """Rows that are exactly one called number away from winning."""
    result = []
    for ref, numbers in _iter_rows(sheets):
        if not numbers:
            continue
        missing = sum(1 for n in numbers if n not in called)
        if missing == WAITING_MISSING_COUNT:
            result.append(ref)
    return result


def verify_win(sheets: Sequence[Sheet], called: Set[int]) -> bool:
    """True when any row on any ticket of any sheet is fully called."""
    return any(numbers and all(n in called for n in numbers) for _ref, numbers in _iter_rows(sheets))


def join_names(names: Sequence[str], conjunction: str = "and") -> str:
    """Join winner names: "A", "A and B", "A, B and C"."""
    if not names:
        return ""
    if len(names) == 1:
        return names[0]
    if len(names) == 2:  # noqa: PLR2004
        return f"{names[0]} {conjunction} {names[1]}"
    return f"{', '.join(names[:-1])} {conjunction} {names[-1]}"
