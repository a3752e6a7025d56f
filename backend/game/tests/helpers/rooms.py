"""Sheet and room helpers shared by host, router and client tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from game.logic.rng import create_rng
from game.logic.tickets import generate_sheet
from game.logic.win import row_numbers
from game.session.host import RoomConfig

if TYPE_CHECKING:
    from game.logic.tickets import Sheet

TEST_SEED = 20240101

# Short timings so window and timer tests finish quickly.
FAST_ROOM_CONFIG = RoomConfig(
    auto_draw_interval_seconds=0.02,
    announce_timeout_seconds=0.5,
    win_window_seconds=0.05,
    claim_cooldown_seconds=5.0,
)


def make_sheet(seed: int = TEST_SEED) -> Sheet:
    return generate_sheet(create_rng(seed))


def first_row(sheet: Sheet) -> list[int]:
    """Numbers on the first row of the first ticket of a sheet."""
    return row_numbers(sheet[0][0])


def numbers_not_on(sheets: list[Sheet], count: int) -> list[int]:
    """``count`` drawable numbers that appear on none of the sheets."""
    used = {cell for sheet in sheets for ticket in sheet for row in ticket for cell in row if cell is not None}
    return [n for n in range(1, 91) if n not in used][:count]
