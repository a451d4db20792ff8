"""
Tests for the Sunday-first month grid and period segment splitting.
"""

import pytest
from datetime import date
import sys
from pathlib import Path

# Setup import path for src
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from care_rotation.calendar_grid import (
    GridSegment,
    leading_blanks,
    month_cells,
    week_rows,
    grid_position,
    period_segments,
)


@pytest.mark.parametrize(
    "year, month, blanks, rows",
    [
        (2025, 1, 3, 5),   # starts on a Wednesday
        (2026, 2, 0, 4),   # starts on a Sunday, 28 days
        (2025, 3, 6, 6),   # starts on a Saturday
    ],
)
def test_month_layout(year, month, blanks, rows):
    cells = month_cells(year, month)
    assert leading_blanks(year, month) == blanks
    assert cells[:blanks] == [None] * blanks
    assert cells[blanks] == date(year, month, 1)
    assert len(cells) % 7 == 0
    assert week_rows(year, month) == rows


def test_trailing_cells_are_blank():
    cells = month_cells(2025, 1)
    assert cells[-2] == date(2025, 1, 31)
    assert cells[-1] is None


def test_grid_position():
    assert grid_position(date(2025, 1, 1), 2025, 1) == (0, 3)
    assert grid_position(date(2025, 1, 4), 2025, 1) == (0, 6)
    assert grid_position(date(2025, 1, 5), 2025, 1) == (1, 0)
    assert grid_position(date(2025, 1, 31), 2025, 1) == (4, 5)


def test_grid_position_outside_month():
    with pytest.raises(ValueError):
        grid_position(date(2025, 2, 1), 2025, 1)


def test_period_on_one_row():
    segments = period_segments(date(2025, 1, 1), date(2025, 1, 2), 2025, 1)
    assert segments == [GridSegment(row=0, start_column=3, end_column=4)]
    assert segments[0].span == 2


def test_period_wrapping_to_next_row():
    segments = period_segments(date(2025, 1, 4), date(2025, 1, 5), 2025, 1)
    assert segments == [
        GridSegment(row=0, start_column=6, end_column=6, continues_after=True),
        GridSegment(row=1, start_column=0, end_column=0, continues_before=True),
    ]


def test_long_period_has_full_middle_rows():
    segments = period_segments(date(2025, 1, 3), date(2025, 1, 20), 2025, 1)
    assert [s.row for s in segments] == [0, 1, 2, 3]
    assert (segments[1].start_column, segments[1].end_column) == (0, 6)
    assert (segments[3].start_column, segments[3].end_column) == (0, 1)


def test_period_clipped_at_month_start():
    segments = period_segments(date(2024, 12, 31), date(2025, 1, 1), 2025, 1)
    assert segments == [GridSegment(row=0, start_column=3, end_column=3, continues_before=True)]


def test_period_clipped_at_month_end():
    segments = period_segments(date(2025, 1, 31), date(2025, 2, 1), 2025, 1)
    assert segments == [GridSegment(row=4, start_column=5, end_column=5, continues_after=True)]


@pytest.mark.parametrize(
    "start, end",
    [
        (date(2025, 2, 1), date(2025, 2, 2)),
        (date(2024, 12, 1), date(2024, 12, 31)),
        (date(2025, 1, 10), date(2025, 1, 9)),
    ],
)
def test_period_outside_month_has_no_segments(start, end):
    assert period_segments(start, end, 2025, 1) == []
