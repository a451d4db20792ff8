"""
Scheduler Logic for Caregiver Rotation Scheduler

Expands a compact 48h on / 48h off rotation description into explicit daily
shift records and persists them through the data manager's store contract.
"""

from datetime import date, timedelta
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
import logging
import time

from .data_manager import (
    DataManager,
    RotationConfig,
    ShiftRecord,
    DEFAULT_START_TIME,
    DEFAULT_END_TIME,
    DEFAULT_HORIZON_MONTHS,
    OFF_TIME,
    SHIFT_WORK,
    SHIFT_OFF,
    parse_date,
    validate_time,
    DataValidationError,
)

logger = logging.getLogger(__name__)

BLOCK_DAYS = 2
GROUP_SIZE = 2


class RotationError(Exception):
    """Base exception for rotation operations"""
    pass


class ValidationError(RotationError):
    """Missing or malformed input, rejected before any write"""
    pass


class NotFoundError(RotationError):
    """Referenced caregiver or configuration does not exist"""
    pass


class InvalidTargetError(RotationError):
    """Operation attempted on an archived or otherwise ineligible caregiver"""
    pass


@dataclass
class GenerationRequest:
    """Request to generate a rotation for one caregiver"""
    caregiver_id: str
    start_date: Optional[date]
    horizon_months: int = DEFAULT_HORIZON_MONTHS
    starts_working: bool = True


@dataclass
class GenerationResult:
    """Result of rotation generation for one caregiver"""
    caregiver_id: str
    success: bool
    created_count: int
    failed_count: int
    message: str
    errors: List[str] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return self.created_count > 0 and self.failed_count > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "caregiverId": self.caregiver_id,
            "success": self.success,
            "createdCount": self.created_count,
            "failedCount": self.failed_count,
            "message": self.message,
            "errors": list(self.errors)
        }


@dataclass
class GroupGenerationResult:
    """Aggregated result of a group generation"""
    results: List[GenerationResult]
    starts_working_id: str
    cleared_count: int = 0

    @property
    def success(self) -> bool:
        return all(r.success for r in self.results)

    @property
    def created_count(self) -> int:
        return sum(r.created_count for r in self.results)

    @property
    def failed_count(self) -> int:
        return sum(r.failed_count for r in self.results)

    @property
    def message(self) -> str:
        succeeded = len([r for r in self.results if r.success])
        if self.failed_count == 0:
            return f"48/48 rotation generated for {succeeded} caregiver(s), {self.created_count} records"
        return (f"Rotation generated with errors: {succeeded} of {len(self.results)} caregiver(s) complete, "
                f"{self.created_count} records written, {self.failed_count} failed")


def add_months(start: date, months: int) -> date:
    """Same day-of-month ``months`` later; a day missing from the target month overflows.

    Jan 31 + 1 month is Mar 3 (Mar 2 in a leap year), the same rollover a plain
    calendar-date advance produces.
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, 1) + timedelta(days=start.day - 1)


def build_rotation(caregiver_id: str, start_date: date,
                   horizon_months: int = DEFAULT_HORIZON_MONTHS,
                   starts_working: bool = True,
                   start_time: str = DEFAULT_START_TIME,
                   end_time: str = DEFAULT_END_TIME) -> List[ShiftRecord]:
    """
    Expand a 48/48 rotation into daily records without touching storage.

    Records are emitted in fixed 2-day blocks alternating work and off until
    the cursor reaches ``start_date + horizon_months``. A block that begins
    before the end date is always emitted whole.
    """
    if start_date is None:
        raise ValidationError("Start date is required")
    if horizon_months is None or horizon_months <= 0:
        raise ValidationError("Horizon must be a positive number of months")

    end_date = add_months(start_date, horizon_months)
    cursor = start_date
    working = starts_working
    records = []

    while cursor < end_date:
        for offset in range(BLOCK_DAYS):
            day = cursor + timedelta(days=offset)
            if working:
                records.append(ShiftRecord(caregiver_id=caregiver_id, date=day, kind=SHIFT_WORK,
                                           start_time=start_time, end_time=end_time))
            else:
                records.append(ShiftRecord(caregiver_id=caregiver_id, date=day, kind=SHIFT_OFF,
                                           start_time=OFF_TIME, end_time=OFF_TIME))
        cursor += timedelta(days=BLOCK_DAYS)
        working = not working

    return records


class RotationScheduler:
    """Generates and persists 48/48 rotations for caregivers"""

    def __init__(self, data_manager: DataManager):
        self.data_manager = data_manager

    def resolve_times(self, caregiver_id: str) -> tuple:
        """Start/end time for work records: caregiver config, then settings, then 18:00-18:00"""
        config = self.data_manager.get_config(caregiver_id)
        if config:
            return config.start_time, config.end_time
        return (
            self.data_manager.get_setting("defaultStartTime", DEFAULT_START_TIME),
            self.data_manager.get_setting("defaultEndTime", DEFAULT_END_TIME),
        )

    @staticmethod
    def _parse_day(value, label: str = "Start date") -> date:
        if value is None:
            raise ValidationError(f"{label} is required")
        try:
            return parse_date(value)
        except ValueError:
            raise ValidationError(f"Invalid {label.lower()} '{value}'")

    def _check_target(self, caregiver_id: str):
        caregiver = self.data_manager.get_caregiver_by_id(caregiver_id)
        if caregiver is None:
            raise NotFoundError(f"Caregiver {caregiver_id} not found")
        if caregiver.archived:
            raise InvalidTargetError(f"Caregiver {caregiver.name} is archived")
        return caregiver

    def generate(self, request: GenerationRequest) -> GenerationResult:
        """
        Generate and persist the rotation for one caregiver.

        Validation, lookup and eligibility errors are raised before any write.
        Each record is written independently; failed writes are logged, counted
        and reported, and the loop carries on with the next record.
        """
        start_date = self._parse_day(request.start_date)
        if request.horizon_months is None or request.horizon_months <= 0:
            raise ValidationError("Horizon must be a positive number of months")

        caregiver = self._check_target(request.caregiver_id)
        start_time, end_time = self.resolve_times(caregiver.id)

        records = build_rotation(caregiver.id, start_date, request.horizon_months,
                                 request.starts_working, start_time, end_time)

        started = time.time()
        logger.info(f"Generating {len(records)} records for {caregiver.name} from {start_date} "
                    f"({request.horizon_months} months, starts_working={request.starts_working})")

        created = 0
        errors = []
        for record in records:
            try:
                self.data_manager.create_shift(record)
                created += 1
            except Exception as e:
                logger.error(f"Failed to write shift {record.date} for {caregiver.name}: {e}", exc_info=True)
                errors.append(f"{record.date.isoformat()}: {e}")

        failed = len(errors)
        if failed == 0:
            message = f"48/48 rotation generated for {caregiver.name}: {created} records"
        else:
            message = f"Partial generation for {caregiver.name}: {created} written, {failed} failed"

        logger.info(f"Generation for {caregiver.name} finished in {time.time() - started:.2f}s: {message}")
        return GenerationResult(
            caregiver_id=caregiver.id,
            success=failed == 0,
            created_count=created,
            failed_count=failed,
            message=message,
            errors=errors
        )

    def generate_group(self, start_date: Optional[date], starts_working_id: Optional[str],
                       horizon_months: int = DEFAULT_HORIZON_MONTHS,
                       caregiver_ids: Optional[List[str]] = None,
                       replace_existing: bool = False) -> GroupGenerationResult:
        """
        Generate opposite-polarity rotations for a group of active caregivers.

        Only the designated caregiver starts on a work block; everybody else
        starts off. Single coverage holds only for exactly two participants, so
        any other group size is rejected.
        """
        start_date = self._parse_day(start_date)
        if not starts_working_id:
            raise ValidationError("Select which caregiver starts working")
        if horizon_months is None or horizon_months <= 0:
            raise ValidationError("Horizon must be a positive number of months")

        if caregiver_ids is None:
            group = self.data_manager.get_active_caregivers()
        else:
            if len(set(map(str, caregiver_ids))) != len(caregiver_ids):
                raise ValidationError("A caregiver can appear only once in a rotation group")
            group = [self._check_target(cid) for cid in caregiver_ids]

        if len(group) != GROUP_SIZE:
            raise ValidationError(
                f"48/48 rotation requires exactly {GROUP_SIZE} active caregivers, got {len(group)}"
            )

        if starts_working_id not in [c.id for c in group]:
            # Raises NotFound/InvalidTarget for unknown or archived caregivers
            self._check_target(starts_working_id)
            raise ValidationError(f"Caregiver {starts_working_id} is not part of the rotation group")

        cleared = 0
        if replace_existing:
            cleared = self.clear_shifts([c.id for c in group])

        results = []
        for caregiver in group:
            request = GenerationRequest(
                caregiver_id=caregiver.id,
                start_date=start_date,
                horizon_months=horizon_months,
                starts_working=caregiver.id == starts_working_id
            )
            results.append(self.generate(request))

        group_result = GroupGenerationResult(results=results, starts_working_id=starts_working_id,
                                             cleared_count=cleared)
        logger.info(group_result.message)
        return group_result

    def clear_shifts(self, caregiver_ids: Optional[List[str]] = None) -> int:
        """Delete the shift records of the given caregivers (all when None), one by one"""
        if caregiver_ids is None:
            caregiver_ids = [c.id for c in self.data_manager.get_caregivers()]

        deleted = 0
        for caregiver_id in caregiver_ids:
            for record in self.data_manager.list_shifts(caregiver_id):
                if self.data_manager.delete_shift(record.id):
                    deleted += 1
        logger.info(f"Cleared {deleted} shift records")
        return deleted

    # Manual entries
    def add_shift(self, caregiver_id: str, day, kind: str = SHIFT_WORK,
                  start_time: Optional[str] = None, end_time: Optional[str] = None,
                  note: Optional[str] = None) -> ShiftRecord:
        """Record a single day by hand. A caregiver has at most one record per date."""
        day = self._parse_day(day, "Date")
        if kind not in (SHIFT_WORK, SHIFT_OFF):
            raise ValidationError(f"Shift kind must be '{SHIFT_WORK}' or '{SHIFT_OFF}'")
        caregiver = self._check_target(caregiver_id)

        if any(r.date == day for r in self.data_manager.list_shifts(caregiver.id)):
            raise ValidationError(f"{caregiver.name} already has a record on {day}")

        if kind == SHIFT_WORK:
            default_start, default_end = self.resolve_times(caregiver.id)
        else:
            default_start = default_end = OFF_TIME
        try:
            start_time = validate_time(start_time or default_start)
            end_time = validate_time(end_time or default_end)
        except DataValidationError as e:
            raise ValidationError(str(e))

        record = self.data_manager.create_shift(ShiftRecord(
            caregiver_id=caregiver.id, date=day, kind=kind,
            start_time=start_time, end_time=end_time, note=note
        ))
        logger.info(f"Manual {kind} record for {caregiver.name} on {day}")
        return record

    def edit_shift(self, shift_id: str, kind: Optional[str] = None, start_time: Optional[str] = None,
                   end_time: Optional[str] = None, note: Optional[str] = None) -> ShiftRecord:
        updates = {}
        if kind is not None:
            if kind not in (SHIFT_WORK, SHIFT_OFF):
                raise ValidationError(f"Shift kind must be '{SHIFT_WORK}' or '{SHIFT_OFF}'")
            updates["kind"] = kind
        try:
            if start_time is not None:
                updates["start_time"] = validate_time(start_time)
            if end_time is not None:
                updates["end_time"] = validate_time(end_time)
        except DataValidationError as e:
            raise ValidationError(str(e))
        if note is not None:
            updates["note"] = note
        if not updates:
            raise ValidationError("Nothing to update")

        record = self.data_manager.update_shift(shift_id, **updates)
        if record is None:
            raise NotFoundError(f"Shift {shift_id} not found")
        return record

    def remove_shift(self, shift_id: str):
        if not self.data_manager.delete_shift(shift_id):
            raise NotFoundError(f"Shift {shift_id} not found")

    def register_caregiver(self, name: str, phone: str = "", start_of_work: Optional[date] = None,
                           use_48h: bool = True, start_time: str = DEFAULT_START_TIME,
                           end_time: str = DEFAULT_END_TIME) -> Dict[str, Any]:
        """Create a caregiver, store a 48/48 configuration and generate the default horizon"""
        if not name or not phone:
            raise ValidationError("Name and phone are required")
        try:
            start_time = validate_time(start_time)
            end_time = validate_time(end_time)
        except DataValidationError as e:
            raise ValidationError(str(e))

        caregiver = self.data_manager.add_caregiver(name, phone, start_of_work)
        outcome = {"caregiver": caregiver, "config": None, "generation": None}
        if not use_48h:
            return outcome

        outcome["config"] = self.data_manager.save_config(RotationConfig(
            caregiver_id=caregiver.id,
            start_time=start_time,
            end_time=end_time,
            padrao48h=True
        ))
        if start_of_work:
            horizon = self.data_manager.get_setting("defaultHorizonMonths", DEFAULT_HORIZON_MONTHS)
            outcome["generation"] = self.generate(GenerationRequest(
                caregiver_id=caregiver.id,
                start_date=start_of_work,
                horizon_months=horizon
            ))
        return outcome
