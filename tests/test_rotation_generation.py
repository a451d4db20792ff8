"""
Test Suite for the 48/48 Rotation Generator

Covers the pure expansion, month arithmetic, persistence through the
data manager, group generation and the failure taxonomy.
"""

import pytest
from datetime import date, timedelta
import sys
from pathlib import Path
import tempfile
import os
import json

# Setup import path for src
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from care_rotation.data_manager import DataManager, RotationConfig, DataSaveError, SHIFT_WORK, SHIFT_OFF
from care_rotation.scheduler_logic import (
    RotationScheduler,
    GenerationRequest,
    ValidationError,
    NotFoundError,
    InvalidTargetError,
    add_months,
    build_rotation,
)


@pytest.fixture
def data_manager():
    """Clean DataManager for each test - isolated temp file."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as temp:
        temp_path = temp.name
        json.dump({}, temp)
    dm = DataManager(temp_path, autosave=False)
    dm.add_caregiver("Ana", "11987654321")
    dm.add_caregiver("Beatriz", "11912345678")
    yield dm
    for leftover in (Path(temp_path), Path(temp_path).with_suffix(".bak")):
        if leftover.exists():
            os.unlink(leftover)


@pytest.fixture
def scheduler(data_manager):
    return RotationScheduler(data_manager)


@pytest.mark.parametrize(
    "start, months, expected",
    [
        (date(2025, 1, 1), 1, date(2025, 2, 1)),
        (date(2025, 1, 15), 6, date(2025, 7, 15)),
        (date(2025, 11, 20), 3, date(2026, 2, 20)),
        (date(2025, 1, 31), 1, date(2025, 3, 3)),
        (date(2024, 1, 31), 1, date(2024, 3, 2)),
        (date(2025, 8, 31), 1, date(2025, 10, 1)),
    ],
)
def test_add_months_overflows_missing_days(start, months, expected):
    assert add_months(start, months) == expected


def test_scenario_january_single_caregiver():
    """Work 01-01/02, off 01-03/04, work 01-05/06 ... until the cursor reaches 02-01."""
    records = build_rotation("x", date(2025, 1, 1), horizon_months=1, starts_working=True)

    # 31 days to cover -> 16 blocks of 2 days, the last one spilling into February
    assert len(records) == 32
    assert [r.date for r in records] == [date(2025, 1, 1) + timedelta(days=i) for i in range(32)]

    kinds = [r.kind for r in records]
    assert kinds[:6] == [SHIFT_WORK, SHIFT_WORK, SHIFT_OFF, SHIFT_OFF, SHIFT_WORK, SHIFT_WORK]
    assert records[0].start_time == "18:00" and records[0].end_time == "18:00"
    assert records[2].start_time == "00:00" and records[2].end_time == "00:00"
    # 16th block (index 15) is off: 2025-01-31 and 2025-02-01
    assert records[-1].date == date(2025, 2, 1)
    assert records[-1].kind == SHIFT_OFF


def test_blocks_are_never_partial():
    records = build_rotation("x", date(2025, 2, 1), horizon_months=1)
    assert len(records) % 2 == 0
    for first, second in zip(records[::2], records[1::2]):
        assert first.kind == second.kind
        assert second.date - first.date == timedelta(days=1)


def test_starts_off_polarity():
    records = build_rotation("x", date(2025, 3, 1), horizon_months=1, starts_working=False)
    assert [r.kind for r in records[:4]] == [SHIFT_OFF, SHIFT_OFF, SHIFT_WORK, SHIFT_WORK]


@pytest.mark.parametrize("horizon", [0, -1, None])
def test_build_rotation_rejects_bad_horizon(horizon):
    with pytest.raises(ValidationError):
        build_rotation("x", date(2025, 1, 1), horizon_months=horizon)


def test_generate_persists_records(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    result = scheduler.generate(GenerationRequest(ana.id, date(2025, 1, 1), horizon_months=1))

    assert result.success
    assert result.created_count == 32
    assert result.failed_count == 0
    stored = data_manager.list_shifts(ana.id)
    assert len(stored) == 32
    assert all(r.id for r in stored)
    assert len({r.date for r in stored}) == len(stored)


def test_generate_uses_caregiver_config_times(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    data_manager.save_config(RotationConfig(caregiver_id=ana.id, start_time="07:00", end_time="07:00"))

    scheduler.generate(GenerationRequest(ana.id, date(2025, 1, 1), horizon_months=1))
    work = [r for r in data_manager.list_shifts(ana.id) if r.kind == SHIFT_WORK]
    off = [r for r in data_manager.list_shifts(ana.id) if r.kind == SHIFT_OFF]
    assert {(r.start_time, r.end_time) for r in work} == {("07:00", "07:00")}
    assert {(r.start_time, r.end_time) for r in off} == {("00:00", "00:00")}


def test_generate_falls_back_to_settings_times(scheduler, data_manager):
    data_manager.set_setting("defaultStartTime", "19:00")
    data_manager.set_setting("defaultEndTime", "19:00")
    ana = data_manager.get_caregiver_by_name("Ana")
    assert scheduler.resolve_times(ana.id) == ("19:00", "19:00")


def test_generate_defaults_to_six_months(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    result = scheduler.generate(GenerationRequest(ana.id, date(2025, 1, 1)))
    records = data_manager.list_shifts(ana.id)
    assert result.created_count == len(records)
    # 2025-01-01 .. 2025-07-01 is 181 days -> 91 blocks, the last one ending 2025-07-01
    assert len(records) == 182
    assert max(r.date for r in records) == date(2025, 7, 1)


def test_generate_missing_start_date(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    with pytest.raises(ValidationError):
        scheduler.generate(GenerationRequest(ana.id, None))
    assert data_manager.list_shifts(ana.id) == []


def test_generate_bad_horizon_writes_nothing(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    with pytest.raises(ValidationError):
        scheduler.generate(GenerationRequest(ana.id, date(2025, 1, 1), horizon_months=0))
    assert data_manager.list_shifts(ana.id) == []


def test_generate_unknown_caregiver(scheduler):
    with pytest.raises(NotFoundError):
        scheduler.generate(GenerationRequest("missing", date(2025, 1, 1)))


def test_generate_archived_caregiver(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    data_manager.set_archived(ana.id)
    with pytest.raises(InvalidTargetError):
        scheduler.generate(GenerationRequest(ana.id, date(2025, 1, 1)))
    assert data_manager.list_shifts(ana.id) == []


class FlakyStore(DataManager):
    """Data manager whose every third shift write fails"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = 0

    def create_shift(self, record):
        self.calls += 1
        if self.calls % 3 == 0:
            raise IOError("disk full")
        return super().create_shift(record)


def test_partial_failure_is_reported_not_rolled_back(tmp_path):
    store = FlakyStore(str(tmp_path / "data.json"), autosave=False)
    caregiver = store.add_caregiver("Ana", "1")
    scheduler = RotationScheduler(store)

    result = scheduler.generate(GenerationRequest(caregiver.id, date(2025, 1, 1), horizon_months=1))

    assert not result.success
    assert result.is_partial
    assert result.created_count + result.failed_count == 32
    assert result.failed_count == 10
    assert len(result.errors) == 10
    assert "disk full" in result.errors[0]
    assert len(store.list_shifts(caregiver.id)) == result.created_count
    assert result.to_dict()["failedCount"] == 10


class FailingSaveStore(DataManager):
    """Data manager whose save fails once, on the n-th save after arming"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_at = None
        self.saves = 0

    def save_data(self):
        if self.fail_at is not None:
            self.saves += 1
            if self.saves == self.fail_at:
                raise DataSaveError("disk full")
        return super().save_data()


def test_failed_save_is_not_stored_later(tmp_path):
    """
    Why this is important: a write reported as failed must not reappear on
    disk with the next successful save, or the generation report lies.
    """
    store = FailingSaveStore(str(tmp_path / "data.json"))
    caregiver = store.add_caregiver("Ana", "1")
    store.fail_at = 3

    result = RotationScheduler(store).generate(
        GenerationRequest(caregiver.id, date(2025, 1, 1), horizon_months=1))

    assert result.failed_count == 1
    assert result.created_count == 31
    assert len(store.list_shifts(caregiver.id)) == 31
    reloaded = DataManager(str(tmp_path / "data.json"))
    assert len(reloaded.list_shifts(caregiver.id)) == 31
    assert date(2025, 1, 3) not in {r.date for r in reloaded.list_shifts(caregiver.id)}


def test_group_generation_opposite_polarity(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    beatriz = data_manager.get_caregiver_by_name("Beatriz")

    result = scheduler.generate_group(date(2025, 1, 1), ana.id, horizon_months=1)

    assert result.success
    assert len(result.results) == 2
    assert result.created_count == 64
    ana_days = {r.date: r.kind for r in data_manager.list_shifts(ana.id)}
    beatriz_days = {r.date: r.kind for r in data_manager.list_shifts(beatriz.id)}
    assert ana_days[date(2025, 1, 1)] == SHIFT_WORK
    assert beatriz_days[date(2025, 1, 1)] == SHIFT_OFF
    # Exactly one caregiver on each day
    for day in ana_days:
        assert (ana_days[day] == SHIFT_WORK) != (beatriz_days[day] == SHIFT_WORK)


def test_group_generation_skips_archived(scheduler, data_manager):
    carla = data_manager.add_caregiver("Carla", "11900000000")
    data_manager.set_archived(carla.id)
    ana = data_manager.get_caregiver_by_name("Ana")

    result = scheduler.generate_group(date(2025, 1, 1), ana.id, horizon_months=1)

    assert {r.caregiver_id for r in result.results} == {ana.id, data_manager.get_caregiver_by_name("Beatriz").id}
    assert data_manager.list_shifts(carla.id) == []


def test_group_generation_archived_starter_rejected(scheduler, data_manager):
    carla = data_manager.add_caregiver("Carla", "11900000000")
    data_manager.set_archived(carla.id)
    with pytest.raises(InvalidTargetError):
        scheduler.generate_group(date(2025, 1, 1), carla.id, horizon_months=1)
    assert data_manager.list_shifts() == []


def test_group_generation_unknown_starter(scheduler):
    with pytest.raises(NotFoundError):
        scheduler.generate_group(date(2025, 1, 1), "nobody", horizon_months=1)


def test_group_generation_requires_exactly_two(scheduler, data_manager):
    data_manager.add_caregiver("Carla", "11900000000")
    ana = data_manager.get_caregiver_by_name("Ana")
    with pytest.raises(ValidationError):
        scheduler.generate_group(date(2025, 1, 1), ana.id, horizon_months=1)
    assert data_manager.list_shifts() == []


def test_group_generation_requires_start_and_starter(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    with pytest.raises(ValidationError):
        scheduler.generate_group(None, ana.id)
    with pytest.raises(ValidationError):
        scheduler.generate_group(date(2025, 1, 1), "")


def test_group_generation_replace_existing(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    scheduler.generate_group(date(2025, 1, 1), ana.id, horizon_months=1)
    result = scheduler.generate_group(date(2025, 1, 1), ana.id, horizon_months=1, replace_existing=True)

    assert result.cleared_count == 64
    assert len(data_manager.list_shifts()) == 64


def test_group_generation_bad_date_keeps_existing_records(scheduler, data_manager):
    """
    Why this is important: with replace_existing the old rotation is deleted
    first. A typo in the start date must be rejected before that happens.
    """
    ana = data_manager.get_caregiver_by_name("Ana")
    scheduler.generate_group(date(2025, 1, 1), ana.id, horizon_months=1)

    with pytest.raises(ValidationError):
        scheduler.generate_group("not-a-date", ana.id, horizon_months=1, replace_existing=True)
    assert len(data_manager.list_shifts()) == 64


def test_group_generation_accepts_iso_string_date(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    result = scheduler.generate_group("2025-01-01", ana.id, horizon_months=1)
    assert result.created_count == 64


def test_group_generation_rejects_repeated_caregiver(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    with pytest.raises(ValidationError):
        scheduler.generate_group(date(2025, 1, 1), ana.id, horizon_months=1,
                                 caregiver_ids=[ana.id, ana.id])
    assert data_manager.list_shifts() == []


def test_group_generation_explicit_pair(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    carla = data_manager.add_caregiver("Carla", "11900000000")
    result = scheduler.generate_group(date(2025, 1, 1), carla.id, horizon_months=1,
                                      caregiver_ids=[ana.id, carla.id])
    assert result.success
    first_day = {r.caregiver_id: r.kind for r in data_manager.list_shifts() if r.date == date(2025, 1, 1)}
    assert first_day == {ana.id: SHIFT_OFF, carla.id: SHIFT_WORK}


def test_clear_shifts(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    scheduler.generate_group(date(2025, 1, 1), ana.id, horizon_months=1)
    assert scheduler.clear_shifts([ana.id]) == 32
    assert data_manager.list_shifts(ana.id) == []
    assert scheduler.clear_shifts() == 32
    assert data_manager.list_shifts() == []


def test_register_caregiver_generates_default_rotation(scheduler, data_manager):
    outcome = scheduler.register_caregiver("Carla", "11900000000", date(2025, 1, 1),
                                           start_time="20:00", end_time="20:00")

    carla = outcome["caregiver"]
    assert outcome["config"].padrao48h
    assert data_manager.get_config(carla.id).start_time == "20:00"
    assert outcome["generation"].success
    records = data_manager.list_shifts(carla.id)
    assert len(records) == 182
    assert records[0].start_time == "20:00"


def test_register_caregiver_without_start_date(scheduler, data_manager):
    outcome = scheduler.register_caregiver("Carla", "11900000000")
    assert outcome["generation"] is None
    assert outcome["config"] is not None


def test_register_caregiver_requires_name_and_phone(scheduler):
    with pytest.raises(ValidationError):
        scheduler.register_caregiver("", "11900000000")
    with pytest.raises(ValidationError):
        scheduler.register_caregiver("Carla", "")


def test_add_shift_uses_configured_times(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    data_manager.save_config(RotationConfig(caregiver_id=ana.id, start_time="07:00", end_time="07:00"))

    work = scheduler.add_shift(ana.id, "2025-03-10", note="cover for Beatriz")
    off = scheduler.add_shift(ana.id, date(2025, 3, 11), kind=SHIFT_OFF)

    assert (work.date, work.start_time, work.note) == (date(2025, 3, 10), "07:00", "cover for Beatriz")
    assert (off.start_time, off.end_time) == ("00:00", "00:00")
    assert len(data_manager.list_shifts(ana.id)) == 2


def test_add_shift_one_record_per_date(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    scheduler.generate(GenerationRequest(ana.id, date(2025, 1, 1), horizon_months=1))
    with pytest.raises(ValidationError):
        scheduler.add_shift(ana.id, date(2025, 1, 3))
    assert len(data_manager.list_shifts(ana.id)) == 32


@pytest.mark.parametrize(
    "day, kind, start_time",
    [
        (None, SHIFT_WORK, None),
        ("10/03/2025", SHIFT_WORK, None),
        (date(2025, 3, 10), "holiday", None),
        (date(2025, 3, 10), SHIFT_WORK, "7pm"),
    ],
)
def test_add_shift_rejects_bad_input(scheduler, data_manager, day, kind, start_time):
    ana = data_manager.get_caregiver_by_name("Ana")
    with pytest.raises(ValidationError):
        scheduler.add_shift(ana.id, day, kind=kind, start_time=start_time)
    assert data_manager.list_shifts(ana.id) == []


def test_add_shift_archived_caregiver(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    data_manager.set_archived(ana.id)
    with pytest.raises(InvalidTargetError):
        scheduler.add_shift(ana.id, date(2025, 3, 10))


def test_edit_and_remove_shift(scheduler, data_manager):
    ana = data_manager.get_caregiver_by_name("Ana")
    record = scheduler.add_shift(ana.id, date(2025, 3, 10))

    edited = scheduler.edit_shift(record.id, kind=SHIFT_OFF, start_time="00:00", end_time="00:00")
    assert edited.kind == SHIFT_OFF
    assert not edited.is_work

    with pytest.raises(ValidationError):
        scheduler.edit_shift(record.id)
    with pytest.raises(ValidationError):
        scheduler.edit_shift(record.id, kind="holiday")
    with pytest.raises(NotFoundError):
        scheduler.edit_shift("missing", note="x")

    scheduler.remove_shift(record.id)
    assert data_manager.list_shifts(ana.id) == []
    with pytest.raises(NotFoundError):
        scheduler.remove_shift(record.id)
