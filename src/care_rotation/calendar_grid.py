"""
Calendar grid coordinates shared by the calendar renderers.

Weeks start on Sunday: column 0 is Sunday, column 6 is Saturday, row 0 is
the week holding the first day of the month.
"""

from datetime import date
from typing import List, Optional, Tuple
from dataclasses import dataclass
import calendar

DAYS_PER_WEEK = 7
WEEKDAY_NAMES = ['Sun', 'Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat']


@dataclass(frozen=True)
class GridSegment:
    """Part of a period drawn on a single grid row"""
    row: int
    start_column: int
    end_column: int
    continues_before: bool = False  # period started on an earlier row or month
    continues_after: bool = False  # period goes on past this row or month

    @property
    def span(self) -> int:
        return self.end_column - self.start_column + 1


def leading_blanks(year: int, month: int) -> int:
    """Number of empty cells before day 1"""
    # date.weekday() is Monday=0; shift so Sunday=0
    return (date(year, month, 1).weekday() + 1) % DAYS_PER_WEEK


def month_cells(year: int, month: int) -> List[Optional[date]]:
    """Flat row-major list of grid cells, None for blank cells"""
    days = calendar.monthrange(year, month)[1]
    cells = [None] * leading_blanks(year, month)
    cells.extend(date(year, month, day) for day in range(1, days + 1))
    trailing = (-len(cells)) % DAYS_PER_WEEK
    cells.extend([None] * trailing)
    return cells


def week_rows(year: int, month: int) -> int:
    return len(month_cells(year, month)) // DAYS_PER_WEEK


def cell_index(day: date, year: int, month: int) -> int:
    if (day.year, day.month) != (year, month):
        raise ValueError(f"{day} is not in {year}-{month:02d}")
    return leading_blanks(year, month) + day.day - 1


def grid_position(day: date, year: int, month: int) -> Tuple[int, int]:
    """(row, column) of a date inside the displayed month"""
    return divmod(cell_index(day, year, month), DAYS_PER_WEEK)


def period_segments(start: date, end: date, year: int, month: int) -> List[GridSegment]:
    """
    Split an inclusive [start, end] span into per-row segments of the month grid.

    The span is clipped to the month first; a span outside the month yields no
    segments. The first segment runs from the start column to column 6, middle
    rows are full width, and the last runs from column 0 to the end column.
    """
    first_day = date(year, month, 1)
    last_day = date(year, month, calendar.monthrange(year, month)[1])
    if end < first_day or start > last_day or end < start:
        return []

    clipped_start = max(start, first_day)
    clipped_end = min(end, last_day)
    start_row, start_col = grid_position(clipped_start, year, month)
    end_row, end_col = grid_position(clipped_end, year, month)

    segments = []
    for row in range(start_row, end_row + 1):
        segments.append(GridSegment(
            row=row,
            start_column=start_col if row == start_row else 0,
            end_column=end_col if row == end_row else DAYS_PER_WEEK - 1,
            continues_before=row > start_row or clipped_start > start,
            continues_after=row < end_row or clipped_end < end
        ))
    return segments
