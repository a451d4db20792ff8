"""
Data Manager for Caregiver Rotation Scheduler

Handles all file I/O operations, JSON persistence, and CRUD operations
for caregivers, rotation configurations, shift records, and application settings.
"""

import json
import logging
import uuid
from datetime import datetime, date
from typing import Dict, List, Optional, Any, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path


logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"

DEFAULT_START_TIME = "18:00"
DEFAULT_END_TIME = "18:00"
OFF_TIME = "00:00"
DEFAULT_HORIZON_MONTHS = 6
DEFAULT_WEEKLY_HOURS = 84

SHIFT_WORK = "work"
SHIFT_OFF = "off"


class DataManagerError(Exception):
    """Base exception for DataManager operations"""
    pass


class DataFileCorruptedError(DataManagerError):
    """Raised when the data file is corrupted"""
    pass


class DataFileNotFoundError(DataManagerError):
    """Raised when the data file is not found"""
    pass


class DataSaveError(DataManagerError):
    """Raised when saving data fails"""
    pass


class DataValidationError(DataManagerError):
    """Raised when data validation fails"""
    pass


def parse_date(value: Any) -> date:
    """Parse a YYYY-MM-DD string (or pass through a date)"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()


def format_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def validate_time(value: str) -> str:
    """Validate an HH:MM time-of-day string and return it normalized"""
    try:
        return datetime.strptime(value, "%H:%M").strftime("%H:%M")
    except (TypeError, ValueError):
        raise DataValidationError(f"Invalid time of day '{value}', expected HH:MM")


@dataclass
class Caregiver:
    """Caregiver data structure; archived caregivers are kept for history only"""
    id: str
    name: str
    phone: str = ""
    start_of_work: Optional[date] = None
    archived: bool = False
    registered_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "startOfWork": format_date(self.start_of_work) if self.start_of_work else None,
            "archived": self.archived,
            "registeredAt": self.registered_at
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Caregiver':
        start_of_work = data.get("startOfWork")
        return cls(
            id=str(data["id"]),
            name=data["name"],
            phone=data.get("phone", ""),
            start_of_work=parse_date(start_of_work) if start_of_work else None,
            archived=data.get("archived", False),
            registered_at=data.get("registeredAt", "")
        )


@dataclass
class ShiftRecord:
    """One calendar day's assignment for one caregiver: working or off"""
    caregiver_id: str
    date: date
    kind: str  # "work" or "off"
    start_time: str = DEFAULT_START_TIME
    end_time: str = DEFAULT_END_TIME
    note: Optional[str] = None
    id: Optional[str] = None

    @property
    def is_work(self) -> bool:
        return self.kind == SHIFT_WORK

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "caregiverId": self.caregiver_id,
            "date": format_date(self.date),
            "startTime": self.start_time,
            "endTime": self.end_time,
            "kind": self.kind
        }
        if self.note:
            data["note"] = self.note
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ShiftRecord':
        kind = data.get("kind")
        if kind not in (SHIFT_WORK, SHIFT_OFF):
            raise DataValidationError(f"Unknown shift kind '{kind}'")
        return cls(
            id=data.get("id"),
            caregiver_id=str(data["caregiverId"]),
            date=parse_date(data["date"]),
            kind=kind,
            start_time=data.get("startTime", OFF_TIME),
            end_time=data.get("endTime", OFF_TIME),
            note=data.get("note")
        )


@dataclass
class RotationConfig:
    """Per-caregiver default times and weekly target for generated shifts"""
    caregiver_id: str
    start_time: str = DEFAULT_START_TIME
    end_time: str = DEFAULT_END_TIME
    weekly_hours: int = DEFAULT_WEEKLY_HOURS
    padrao48h: bool = True  # 48h on / 48h off applies
    work_days: List[int] = field(default_factory=list)  # weekdays for manual schedules, 0 = Sunday
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "caregiverId": self.caregiver_id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "weeklyHours": self.weekly_hours,
            "padrao48h": self.padrao48h,
            "workDays": list(self.work_days)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RotationConfig':
        return cls(
            id=data.get("id"),
            caregiver_id=str(data["caregiverId"]),
            start_time=data.get("startTime", DEFAULT_START_TIME),
            end_time=data.get("endTime", DEFAULT_END_TIME),
            weekly_hours=data.get("weeklyHours", DEFAULT_WEEKLY_HOURS),
            padrao48h=data.get("padrao48h", True),
            work_days=data.get("workDays", [])
        )


class DataManager:
    """Manages all data persistence and CRUD operations.

    Shift records follow the flat store contract the rotation core depends on:
    ``list_shifts``, ``create_shift`` and ``delete_shift``. Every call mutates the
    in-memory document; ``autosave`` writes the whole file after each change,
    and ``deferred_save`` batches a command's writes into one save.
    """

    def __init__(self, data_file: Optional[str] = None, autosave: bool = True):
        if data_file is None:
            data_file = Path(__file__).parent.parent / "data" / "care_rotation.json"
        self.data_file = Path(data_file)
        self.autosave = autosave
        self._dirty = False
        self.data = self._load_or_create_data()

    def _load_or_create_data(self) -> Dict[str, Any]:
        """Load existing data or create default structure with recovery from backup"""
        backup_file = self.data_file.with_suffix('.bak')
        if self.data_file.exists():
            try:
                with open(self.data_file, 'r', encoding='utf-8') as f:
                    return self._validate_and_migrate_data(json.load(f))
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Error loading main data file {self.data_file}: {e}")
                if not backup_file.exists():
                    raise DataFileCorruptedError(f"Main data file corrupted and no backup available: {e}")
                return self._recover_from_backup(backup_file)
        if backup_file.exists():
            logger.info(f"Main data file missing, attempting recovery from backup {backup_file}")
            return self._recover_from_backup(backup_file)
        logger.info("No data file found, creating default data")
        return self._create_default_data()

    def _recover_from_backup(self, backup_file: Path) -> Dict[str, Any]:
        try:
            with open(backup_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            backup_file.replace(self.data_file)
            logger.info("Successfully recovered data from backup")
            return self._validate_and_migrate_data(data)
        except (json.JSONDecodeError, IOError) as backup_e:
            logger.error(f"Backup file also corrupted: {backup_e}")
            logger.info("Creating default data due to corrupted files")
            return self._create_default_data()

    def _validate_and_migrate_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and migrate data structure to current version"""
        if not isinstance(data, dict):
            raise DataFileCorruptedError("Data file root must be a JSON object")

        default_data = self._create_default_data()
        for key in default_data:
            if key not in data:
                data[key] = default_data[key]

        # Settings added in later versions
        for key, value in default_data["settings"].items():
            data["settings"].setdefault(key, value)

        for caregiver in data.get("caregivers", []):
            caregiver.setdefault("archived", False)
            caregiver.setdefault("phone", "")

        return data

    def _create_default_data(self) -> Dict[str, Any]:
        """Create default data structure"""
        return {
            "settings": {
                "appVersion": APP_VERSION,
                "defaultStartTime": DEFAULT_START_TIME,
                "defaultEndTime": DEFAULT_END_TIME,
                "defaultHorizonMonths": DEFAULT_HORIZON_MONTHS,
                "defaultWeeklyHours": DEFAULT_WEEKLY_HOURS,
                "dataFile": str(self.data_file)
            },
            "caregivers": [],
            "configs": [],
            "shifts": []
        }

    def _validate_saved_data(self) -> bool:
        """Validate that the saved data file matches current data"""
        try:
            if not self.data_file.exists():
                raise DataFileNotFoundError(f"Saved data file {self.data_file} does not exist")

            with open(self.data_file, 'r', encoding='utf-8') as f:
                saved_data = json.load(f)

            for key in ["settings", "caregivers", "configs", "shifts"]:
                if key not in saved_data:
                    raise DataValidationError(f"Required section '{key}' missing from saved data")

            if saved_data.get("settings", {}).get("appVersion") != self.data.get("settings", {}).get("appVersion"):
                raise DataValidationError("App version mismatch in saved data")

            return True

        except (json.JSONDecodeError, IOError) as e:
            raise DataValidationError(f"Failed to validate saved data: {e}")

    def save_data(self) -> bool:
        """Save current data to file atomically with validation"""
        temp_file = None
        backup_file = self.data_file.with_suffix('.bak')

        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            if self.data_file.exists():
                self.data_file.replace(backup_file)

            temp_file = self.data_file.with_suffix('.tmp')
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(self.data, f, indent=2, ensure_ascii=False)

            temp_file.replace(self.data_file)
            self._validate_saved_data()
            self._dirty = False
            return True

        except DataValidationError as e:
            logger.error(f"Data validation failed after save: {e}", exc_info=True)
            if backup_file.exists():
                try:
                    backup_file.replace(self.data_file)
                except OSError as restore_e:
                    logger.error(f"Failed to restore from backup: {restore_e}", exc_info=True)
            raise DataSaveError(f"Save operation failed validation: {e}")

        except (IOError, OSError) as e:
            logger.error(f"I/O error during save operation: {e}", exc_info=True)
            raise DataSaveError(f"Failed to save data due to I/O error: {e}")

        finally:
            if temp_file and temp_file.exists():
                try:
                    temp_file.unlink()
                except OSError as cleanup_e:
                    logger.error(f"Failed to clean up temporary file {temp_file}: {cleanup_e}", exc_info=True)

    def _commit(self):
        self._dirty = True
        if self.autosave:
            self.save_data()

    @contextmanager
    def deferred_save(self) -> Iterator['DataManager']:
        """Hold autosave for a batch of writes and save the file once at the end.

        Nothing is saved when the block raises.
        """
        previous = self.autosave
        self.autosave = False
        try:
            yield self
        finally:
            self.autosave = previous
        if previous and self._dirty:
            self.save_data()

    # Caregiver Management
    def get_caregivers(self, include_archived: bool = True) -> List[Caregiver]:
        """Get caregivers in registration order"""
        caregivers = []
        for data in self.data.get("caregivers", []):
            caregiver = Caregiver.from_dict(data)
            if include_archived or not caregiver.archived:
                caregivers.append(caregiver)
        return caregivers

    def get_active_caregivers(self) -> List[Caregiver]:
        return self.get_caregivers(include_archived=False)

    def get_caregiver_by_id(self, caregiver_id: str) -> Optional[Caregiver]:
        for data in self.data.get("caregivers", []):
            if str(data["id"]) == str(caregiver_id):
                return Caregiver.from_dict(data)
        return None

    def get_caregiver_by_name(self, name: str) -> Optional[Caregiver]:
        for data in self.data.get("caregivers", []):
            if data["name"] == name:
                return Caregiver.from_dict(data)
        return None

    def add_caregiver(self, name: str, phone: str = "", start_of_work: Optional[date] = None) -> Caregiver:
        """Add new caregiver"""
        if not name or not name.strip():
            raise DataValidationError("Caregiver name is required")

        caregiver = Caregiver(
            id=str(uuid.uuid4()),
            name=name.strip(),
            phone=phone,
            start_of_work=start_of_work,
            registered_at=datetime.now().isoformat(timespec="seconds")
        )
        self.data.setdefault("caregivers", []).append(caregiver.to_dict())
        self._commit()
        logger.info(f"Added caregiver {caregiver.name} ({caregiver.id})")
        return caregiver

    def update_caregiver(self, caregiver_id: str, name: str = None, phone: str = None,
                         start_of_work: date = None, archived: bool = None) -> Optional[Caregiver]:
        """Update caregiver information"""
        for data in self.data.get("caregivers", []):
            if str(data["id"]) == str(caregiver_id):
                if name is not None:
                    data["name"] = name
                if phone is not None:
                    data["phone"] = phone
                if start_of_work is not None:
                    data["startOfWork"] = format_date(start_of_work)
                if archived is not None:
                    data["archived"] = archived
                self._commit()
                return Caregiver.from_dict(data)
        return None

    def set_archived(self, caregiver_id: str, archived: bool = True) -> Optional[Caregiver]:
        """Soft delete (or restore) a caregiver; shift history is retained"""
        return self.update_caregiver(caregiver_id, archived=archived)

    def delete_caregiver(self, caregiver_id: str) -> bool:
        """Delete caregiver (hard delete) together with config and shift records"""
        caregivers = self.data.get("caregivers", [])
        remaining = [c for c in caregivers if str(c["id"]) != str(caregiver_id)]
        if len(remaining) == len(caregivers):
            return False

        self.data["caregivers"] = remaining
        self.data["configs"] = [c for c in self.data.get("configs", [])
                                if str(c.get("caregiverId")) != str(caregiver_id)]
        self.data["shifts"] = [s for s in self.data.get("shifts", [])
                               if str(s.get("caregiverId")) != str(caregiver_id)]
        self._commit()
        return True

    # Rotation Configuration
    def get_config(self, caregiver_id: str) -> Optional[RotationConfig]:
        for data in self.data.get("configs", []):
            if str(data.get("caregiverId")) == str(caregiver_id):
                return RotationConfig.from_dict(data)
        return None

    def save_config(self, config: RotationConfig) -> RotationConfig:
        """Create or replace the configuration of a caregiver"""
        config.start_time = validate_time(config.start_time)
        config.end_time = validate_time(config.end_time)
        configs = self.data.setdefault("configs", [])
        for index, data in enumerate(configs):
            if str(data.get("caregiverId")) == str(config.caregiver_id):
                config.id = data.get("id") or config.id or str(uuid.uuid4())
                configs[index] = config.to_dict()
                self._commit()
                return config

        config.id = config.id or str(uuid.uuid4())
        configs.append(config.to_dict())
        self._commit()
        return config

    # Shift records (store contract)
    def list_shifts(self, caregiver_id: Optional[str] = None) -> List[ShiftRecord]:
        """List shift records, optionally for one caregiver; malformed rows are skipped"""
        records = []
        for data in self.data.get("shifts", []):
            if caregiver_id is not None and str(data.get("caregiverId")) != str(caregiver_id):
                continue
            try:
                records.append(ShiftRecord.from_dict(data))
            except (KeyError, ValueError, DataValidationError) as e:
                logger.warning(f"Skipping malformed shift record {data.get('id')}: {e}")
        return records

    def create_shift(self, record: ShiftRecord) -> ShiftRecord:
        """Persist one shift record and return it with its id assigned.

        A failed save leaves no trace of the record in memory.
        """
        record.id = record.id or str(uuid.uuid4())
        shifts = self.data.setdefault("shifts", [])
        shifts.append(record.to_dict())
        try:
            self._commit()
        except DataManagerError:
            shifts.pop()
            raise
        return record

    def create_shifts(self, records: Iterable[ShiftRecord]) -> List[ShiftRecord]:
        """Bulk insert with a single write at the end; all or nothing"""
        shifts = self.data.setdefault("shifts", [])
        size_before = len(shifts)
        created = []
        for record in records:
            record.id = record.id or str(uuid.uuid4())
            shifts.append(record.to_dict())
            created.append(record)
        try:
            self._commit()
        except DataManagerError:
            del shifts[size_before:]
            raise
        return created

    def update_shift(self, shift_id: str, **updates) -> Optional[ShiftRecord]:
        """Manual edit of a single record (kind, times, note)"""
        names = {"kind": "kind", "start_time": "startTime", "end_time": "endTime", "note": "note"}
        for key in updates:
            if key not in names:
                raise DataValidationError(f"Field '{key}' cannot be updated")

        for data in self.data.get("shifts", []):
            if data.get("id") == shift_id:
                original = dict(data)
                data.update({names[key]: value for key, value in updates.items()})
                try:
                    record = ShiftRecord.from_dict(data)
                    self._commit()
                except (DataManagerError, ValueError):
                    data.clear()
                    data.update(original)
                    raise
                return record
        return None

    def delete_shift(self, shift_id: str) -> bool:
        shifts = self.data.get("shifts", [])
        remaining = [s for s in shifts if s.get("id") != shift_id]
        if len(remaining) == len(shifts):
            return False
        self.data["shifts"] = remaining
        try:
            self._commit()
        except DataManagerError:
            self.data["shifts"] = shifts
            raise
        return True

    def get_shifts_by_caregiver(self, caregiver_ids: Optional[Iterable[str]] = None) -> Dict[str, List[ShiftRecord]]:
        """Group records per caregiver, keeping every known caregiver as a key"""
        if caregiver_ids is None:
            caregiver_ids = [c.id for c in self.get_caregivers()]
        grouped = {str(cid): [] for cid in caregiver_ids}
        for record in self.list_shifts():
            if record.caregiver_id in grouped:
                grouped[record.caregiver_id].append(record)
        return grouped

    # Settings
    def get_setting(self, key: str, default=None):
        return self.data.get("settings", {}).get(key, default)

    def set_setting(self, key: str, value):
        self.data.setdefault("settings", {})[key] = value
        self._commit()
