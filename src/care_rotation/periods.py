"""
Work Period Reconstruction for Caregiver Rotation Scheduler

Merges flat daily shift records back into contiguous work periods per
caregiver, binds them to display colors, and derives day-by-day coverage
for conflict and gap reporting.
"""

from datetime import date, timedelta
from typing import Dict, List, Optional, Iterable, Tuple
from dataclasses import dataclass
import logging

from .data_manager import Caregiver, ShiftRecord, DEFAULT_START_TIME, parse_date

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24


@dataclass(frozen=True)
class CaregiverColor:
    """Display color bound to a caregiver by list position"""
    name: str
    background: str  # hex, light fill
    border: str  # hex, strong accent
    text: str  # hex


CAREGIVER_COLORS = (
    CaregiverColor("teal", "#CCFBF1", "#14B8A6", "#115E59"),
    CaregiverColor("purple", "#F3E8FF", "#A855F7", "#6B21A8"),
    CaregiverColor("blue", "#DBEAFE", "#3B82F6", "#1E40AF"),
    CaregiverColor("pink", "#FCE7F3", "#EC4899", "#9D174D"),
)


@dataclass(frozen=True)
class WorkPeriod:
    """Maximal run of consecutive work days for one caregiver (end inclusive)"""
    caregiver_id: str
    start_date: date
    end_date: date
    length_days: int

    @property
    def duration_hours(self) -> int:
        return self.length_days * HOURS_PER_DAY

    def to_dict(self) -> Dict[str, object]:
        return {
            "caregiverId": self.caregiver_id,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "lengthDays": self.length_days
        }


@dataclass(frozen=True)
class ColoredPeriod:
    """Work period bound to its caregiver's name, color and start time for rendering"""
    period: WorkPeriod
    caregiver_name: str
    color: CaregiverColor
    lane: int
    start_time: str = DEFAULT_START_TIME

    @property
    def label(self) -> str:
        hours = self.start_time.split(":")[0]
        return f"{hours}hrs {self.caregiver_name} ({self.period.duration_hours}h)"


def _close(caregiver_id: str, start: date, last_seen: date) -> WorkPeriod:
    return WorkPeriod(
        caregiver_id=caregiver_id,
        start_date=start,
        end_date=last_seen,
        length_days=(last_seen - start).days + 1
    )


def reconstruct_periods(records: Iterable[ShiftRecord],
                        caregiver_id: Optional[str] = None) -> List[WorkPeriod]:
    """
    Merge work records into contiguous periods.

    Records of kind ``off`` are ignored, so off days and missing days both
    break a run. Input order does not matter. When ``caregiver_id`` is None the
    records are grouped per caregiver and the periods of each group returned,
    ordered by caregiver then start date. Records with a missing or unusable
    date are skipped.
    """
    work_days: Dict[str, set] = {}
    for record in records or []:
        try:
            if not record.is_work:
                continue
            day = parse_date(record.date)
            owner = str(record.caregiver_id)
        except (AttributeError, TypeError, ValueError):
            logger.warning(f"Ignoring malformed shift record: {record!r}")
            continue
        if caregiver_id is not None and owner != str(caregiver_id):
            continue
        # Duplicate dates collapse into one work day
        work_days.setdefault(owner, set()).add(day)

    periods = []
    for owner in sorted(work_days):
        start = last_seen = None
        for day in sorted(work_days[owner]):
            if start is None:
                start = last_seen = day
            elif (day - last_seen).days == 1:
                last_seen = day
            else:
                periods.append(_close(owner, start, last_seen))
                start = last_seen = day
        if start is not None:
            periods.append(_close(owner, start, last_seen))

    return periods


def caregiver_color(index: int) -> CaregiverColor:
    return CAREGIVER_COLORS[index % len(CAREGIVER_COLORS)]


def assign_colors(caregivers: List[Caregiver]) -> Dict[str, CaregiverColor]:
    """Positional palette assignment over the ordered caregiver list"""
    return {c.id: caregiver_color(index) for index, c in enumerate(caregivers)}


def build_period_overview(caregivers: List[Caregiver],
                          records_by_caregiver: Dict[str, List[ShiftRecord]]) -> List[ColoredPeriod]:
    """Colored periods for every caregiver, in caregiver order then by start date"""
    overview = []
    for index, caregiver in enumerate(caregivers):
        records = records_by_caregiver.get(caregiver.id, [])
        start_times = {r.date: r.start_time for r in records if r.is_work}
        for period in reconstruct_periods(records, caregiver.id):
            overview.append(ColoredPeriod(
                period=period,
                caregiver_name=caregiver.name,
                color=caregiver_color(index),
                lane=index,
                start_time=start_times.get(period.start_date, DEFAULT_START_TIME)
            ))
    return overview


def _date_range(start: date, end: date) -> Iterable[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def coverage_by_date(records: Iterable[ShiftRecord], start: date, end: date) -> Dict[date, List[str]]:
    """Map every date in [start, end] to the caregivers working that day"""
    coverage = {day: [] for day in _date_range(start, end)}
    for record in records:
        if record.is_work and record.date in coverage:
            if record.caregiver_id not in coverage[record.date]:
                coverage[record.date].append(record.caregiver_id)
    return coverage


def find_conflicts(coverage: Dict[date, List[str]]) -> List[Tuple[date, List[str]]]:
    """Dates with more than one caregiver on duty"""
    return [(day, ids) for day, ids in sorted(coverage.items()) if len(ids) > 1]


def find_gaps(coverage: Dict[date, List[str]]) -> List[date]:
    """Dates with nobody on duty"""
    return [day for day, ids in sorted(coverage.items()) if not ids]


def upcoming_shifts(records: Iterable[ShiftRecord], today: date, days: int = 14) -> List[ShiftRecord]:
    """Records from today through the next ``days`` days, sorted by date"""
    horizon = today + timedelta(days=days)
    return sorted((r for r in records if today <= r.date <= horizon), key=lambda r: r.date)


def split_past_upcoming(records: Iterable[ShiftRecord], today: date) -> Tuple[List[ShiftRecord], List[ShiftRecord]]:
    ordered = sorted(records, key=lambda r: r.date)
    return [r for r in ordered if r.date < today], [r for r in ordered if r.date >= today]
