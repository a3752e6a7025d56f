"""
Ticket and sheet generation.

A ticket is a 3x9 grid with exactly five numbers per row. Column ``c`` only
holds numbers from ``COLUMN_RANGES[c]`` and numbers in a column ascend from top
to bottom. A sheet is three tickets generated from shared per-column pools, so
no number appears twice on one sheet.

Generation runs in three steps per ticket:

1. Distribute 15 cells over the 9 columns (1-3 per column).
2. Solve the row layout: depth-first search over columns choosing which rows
   each column occupies, so every row ends up with exactly 5 cells.
3. Draw the numbers for each column from the sheet's shared pool and place
   them in ascending order into the occupied rows.

A failed layout solve is retried; after ``MAX_TICKET_ATTEMPTS`` failures the
ticket degrades to an all-empty placeholder instead of raising.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from game.logic.rng import create_rng, fisher_yates_shuffle, shuffled_range

if TYPE_CHECKING:
    import random
    from collections.abc import Sequence

logger = structlog.get_logger()

Cell = int | None
Row = list[Cell]
Ticket = list[Row]
Sheet = list[Ticket]

ROWS = 3
COLUMNS = 9
CELLS_PER_ROW = 5
CELLS_PER_TICKET = ROWS * CELLS_PER_ROW
TICKETS_PER_SHEET = 3
MAX_CELLS_PER_COLUMN = 3
MAX_TICKET_ATTEMPTS = 50

COLUMN_RANGES: tuple[tuple[int, int], ...] = (
    (1, 9),
    (10, 19),
    (20, 29),
    (30, 39),
    (40, 49),
    (50, 59),
    (60, 69),
    (70, 79),
    (80, 90),
)

# Admissible row-presence vectors for a column holding k cells.
_COLUMN_OPTIONS: dict[int, tuple[tuple[int, int, int], ...]] = {
    3: ((1, 1, 1),),
    2: ((1, 1, 0), (1, 0, 1), (0, 1, 1)),
    1: ((1, 0, 0), (0, 1, 0), (0, 0, 1)),
    0: ((0, 0, 0),),
}


@dataclass(frozen=True)
class SolvedLayout:
    """Row-presence matrix: ``rows[r][c]`` is 1 when row r holds a number in column c."""

    rows: tuple[tuple[int, ...], ...]

    def column(self, col: int) -> tuple[int, ...]:
        return tuple(row[col] for row in self.rows)


@dataclass(frozen=True)
class NoSolution:
    """The column counts admit no layout with five cells per row."""


LayoutResult = SolvedLayout | NoSolution


def column_for_number(number: int) -> int:
    """Return the column index a number belongs to."""
    for col, (start, end) in enumerate(COLUMN_RANGES):
        if start <= number <= end:
            return col
    raise ValueError(f"number {number} is outside 1-90")


def new_column_pools(rng: random.Random) -> list[list[int]]:
    """Create one shuffled pool per column range for a new sheet."""
    return [shuffled_range(start, end, rng) for start, end in COLUMN_RANGES]


def distribute_column_counts(pools: Sequence[Sequence[int]], rng: random.Random) -> list[int] | None:
    """Spread 15 cells over the columns: one each, then six more at random.

    A column is only eligible for another cell while it holds fewer than three
    and its pool can still supply one. Returns None when no column is eligible.
    """
    counts = [1] * COLUMNS
    extra = CELLS_PER_TICKET - COLUMNS
    while extra > 0:
        eligible = [
            col for col in range(COLUMNS) if counts[col] < MAX_CELLS_PER_COLUMN and counts[col] < len(pools[col])
        ]
        if not eligible:
            return None
        counts[rng.choice(eligible)] += 1
        extra -= 1
    return counts


def solve_layout(column_counts: Sequence[int], rng: random.Random) -> LayoutResult:
    """Assign each column's cells to rows so that every row holds exactly five.

    Pure function of the counts and the random source: options are tried in a
    random order per column (which randomizes the visual layout), partial
    assignments that push any row past five are pruned, and the first complete
    assignment is returned.
    """
    if len(column_counts) != COLUMNS:
        return NoSolution()

    row_totals = [0] * ROWS
    chosen: list[tuple[int, int, int]] = []

    def fill(col: int) -> bool:
        if col == COLUMNS:
            return all(total == CELLS_PER_ROW for total in row_totals)
        options = _COLUMN_OPTIONS.get(column_counts[col])
        if options is None:
            return False
        for option in fisher_yates_shuffle(list(options), rng):
            if any(row_totals[r] + option[r] > CELLS_PER_ROW for r in range(ROWS)):
                continue
            for r in range(ROWS):
                row_totals[r] += option[r]
            chosen.append(option)
            if fill(col + 1):
                return True
            chosen.pop()
            for r in range(ROWS):
                row_totals[r] -= option[r]
        return False

    if not fill(0):
        return NoSolution()
    return SolvedLayout(rows=tuple(tuple(option[r] for option in chosen) for r in range(ROWS)))


def empty_ticket() -> Ticket:
    """All-empty placeholder ticket used when generation gives up."""
    return [[None] * COLUMNS for _ in range(ROWS)]


def generate_ticket(pools: list[list[int]], rng: random.Random) -> Ticket | None:
    """Generate one ticket, consuming numbers from the shared column pools.

    Returns None when the layout cannot be solved. Pools are only consumed
    once a layout has been found.
    """
    counts = distribute_column_counts(pools, rng)
    if counts is None:
        return None
    layout = solve_layout(counts, rng)
    if isinstance(layout, NoSolution):
        return None

    ticket = empty_ticket()
    for col, count in enumerate(counts):
        picks = sorted(pools[col][:count])
        del pools[col][:count]
        occupied = [r for r, present in enumerate(layout.column(col)) if present]
        for row, number in zip(occupied, picks, strict=True):
            ticket[row][col] = number
    return ticket


def generate_sheet(rng: random.Random | None = None) -> Sheet:
    """Generate three tickets whose numbers are pairwise disjoint."""
    rng = rng or create_rng()
    pools = new_column_pools(rng)
    sheet: Sheet = []
    for index in range(TICKETS_PER_SHEET):
        ticket = None
        for _attempt in range(MAX_TICKET_ATTEMPTS):
            ticket = generate_ticket(pools, rng)
            if ticket is not None:
                break
        if ticket is None:
            logger.warning("ticket generation exhausted retries, using empty ticket", ticket_index=index)
            ticket = empty_ticket()
        sheet.append(ticket)
    return sheet


def ticket_numbers(ticket: Ticket) -> list[int]:
    """All numbers on a ticket, row by row."""
    return [cell for row in ticket for cell in row if cell is not None]


def _has_grid_shape(ticket: object) -> bool:
    if not isinstance(ticket, list) or len(ticket) != ROWS:
        return False
    return all(isinstance(row, list) and len(row) == COLUMNS for row in ticket)


def _is_number(cell: object) -> bool:
    return isinstance(cell, int) and not isinstance(cell, bool)


def is_empty_ticket(ticket: object) -> bool:
    """True for the all-empty placeholder grid."""
    return _has_grid_shape(ticket) and all(cell is None for row in ticket for cell in row)  # type: ignore[attr-defined]


def is_valid_ticket(ticket: object) -> bool:
    """Check the structural invariants of a playable ticket.

    Exactly five numbers per row, every number inside its column range,
    numbers ascending down each column, and no number repeated on the ticket.
    """
    if not _has_grid_shape(ticket):
        return False
    seen: set[int] = set()
    column_last: list[int] = [0] * COLUMNS
    for row in ticket:  # type: ignore[attr-defined]
        filled = 0
        for col, cell in enumerate(row):
            if cell is None:
                continue
            if not _is_number(cell):
                return False
            start, end = COLUMN_RANGES[col]
            if not start <= cell <= end or cell in seen or cell <= column_last[col]:
                return False
            seen.add(cell)
            column_last[col] = cell
            filled += 1
        if filled != CELLS_PER_ROW:
            return False
    return True


def is_valid_sheet(sheet: object) -> bool:
    """A sheet is three tickets, each playable or the empty placeholder, with no shared numbers."""
    if not isinstance(sheet, list) or len(sheet) != TICKETS_PER_SHEET:
        return False
    if not all(is_valid_ticket(ticket) or is_empty_ticket(ticket) for ticket in sheet):
        return False
    numbers = list(itertools.chain.from_iterable(ticket_numbers(ticket) for ticket in sheet))
    return len(numbers) == len(set(numbers))


def validate_sheets(sheets: object, max_sheets: int) -> bool:
    """True for a non-empty list of at most ``max_sheets`` valid sheets."""
    if not isinstance(sheets, list) or not sheets or len(sheets) > max_sheets:
        return False
    return all(is_valid_sheet(sheet) for sheet in sheets)


def _list_depth(value: object) -> int:
    depth = 0
    while isinstance(value, list) and value:
        depth += 1
        value = value[0]
    return depth


def coerce_sheets(value: object) -> list[Sheet] | None:
    """Normalize a ticket, a sheet or a list of sheets into a list of sheets.

    Older saved data stored a single 3x9 ticket or a single sheet. The shape
    is told apart by nesting depth: 2 is a ticket, 3 a sheet, 4 a list of
    sheets. Anything else returns None.
    """
    depth = _list_depth(value)
    if depth == 2:  # noqa: PLR2004
        return [[value]]  # type: ignore[list-item]
    if depth == 3:  # noqa: PLR2004
        return [value]  # type: ignore[list-item]
    if depth == 4:  # noqa: PLR2004
        return value  # type: ignore[return-value]
    return None
