"""Domain entities for device cleanup.

These are pure data structures with no infrastructure dependencies.
Raw Graph payloads are mapped into these records by the field mapper;
everything downstream (classification, planning, reporting) works on
these types only.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union


class ReasonCode(str, Enum):
    """Why a device was flagged as a cleanup candidate."""

    LAST_SYNC_STALE = "LastSyncStale"
    FAILED_ENROLLMENT = "FailedEnrollment"
    NO_USER = "NoUser"
    DUPLICATE_REGISTRATION = "DuplicateRegistration"
    DIRECTORY_STALE = "DirectoryStale"


class CandidateSource(str, Enum):
    """Which collection a candidate came from."""

    MANAGED_DEVICE = "ManagedDevice"
    DIRECTORY_DEVICE = "DirectoryDevice"


class RecommendedAction(str, Enum):
    """Action suggested by the first rule that flagged the device."""

    RETIRE_OR_DELETE = "RetireOrDelete"
    DELETE = "Delete"


class RequestedAction(str, Enum):
    """Action the operator asked the run to perform."""

    EXPORT = "Export"
    RETIRE = "Retire"
    DELETE = "Delete"

    @classmethod
    def parse(cls, value: str) -> "RequestedAction":
        """Case-insensitive lookup ("delete" -> DELETE)."""
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        raise ValueError(f"Unknown action: {value!r}")


class SkipReason(str, Enum):
    """Why a candidate did not make it into the planned actions."""

    EXCLUDED = "Excluded"
    MAX_COUNT_REACHED = "MaxCountReached"
    ACTION_NOT_APPLICABLE = "ActionNotApplicable"


# Trailing digits only ("LAPTOP-01" -> "LAPTOP-")
_TRAILING_DIGITS = re.compile(r"\d+$")


def normalize_device_name(name: str) -> str:
    """Strip the numeric suffix used by repeated enrollments."""
    return _TRAILING_DIGITS.sub("", (name or "").strip())


@dataclass
class DeviceRecord:
    """An Intune managed device.

    Optional values are modeled explicitly: ``last_sync_time=None`` means
    the device never synced, ``directory_id=None`` means no Entra ID
    object is linked.
    """

    id: str
    display_name: str = ""
    directory_id: Optional[str] = None
    user_principal_name: str = ""
    serial_number: str = ""
    last_sync_time: Optional[datetime] = None
    enrollment_state: str = ""
    management_agent: str = ""
    operating_system: str = ""

    # Full API response, kept for reports and pre-delete backups
    raw_data: dict[str, Any] = field(default_factory=dict)

    @property
    def has_user(self) -> bool:
        return bool(self.user_principal_name.strip())

    @property
    def normalized_name(self) -> str:
        return normalize_device_name(self.display_name)

    @property
    def duplicate_group_key(self) -> str:
        """Owner/OS/name-root key used to cluster re-enrollments."""
        return f"{self.user_principal_name}|{self.operating_system}|{self.normalized_name}"


@dataclass
class DirectoryDeviceRecord:
    """An Entra ID device object.

    ``id`` is the directory device ID (the value managed devices reference
    as ``azureADDeviceId``); ``object_id`` is the directory object ID used
    for deletion.
    """

    id: str
    display_name: str = ""
    serial_number: str = ""
    operating_system: str = ""
    object_id: Optional[str] = None
    approximate_last_sign_in: Optional[datetime] = None
    registration_time: Optional[datetime] = None
    created_time: Optional[datetime] = None

    raw_data: dict[str, Any] = field(default_factory=dict)

    @property
    def last_activity_time(self) -> Optional[datetime]:
        """Best-effort activity: sign-in, else registration, else creation."""
        for value in (
            self.approximate_last_sign_in,
            self.registration_time,
            self.created_time,
        ):
            if value is not None:
                return value
        return None

    @property
    def directory_id(self) -> str:
        return self.id

    @property
    def user_principal_name(self) -> str:
        return ""


SourceRecord = Union[DeviceRecord, DirectoryDeviceRecord]


@dataclass
class ClassifiedCandidate:
    """A device flagged by at least one detection rule.

    ``reason_codes`` keeps first-seen order and never holds a code twice.
    ``recommended_action`` is fixed by the first rule and is not revisited
    when later rules add reasons.
    """

    record: SourceRecord
    source: CandidateSource
    recommended_action: RecommendedAction
    reason_codes: list[ReasonCode] = field(default_factory=list)

    def add_reason(self, code: ReasonCode) -> None:
        if code not in self.reason_codes:
            self.reason_codes.append(code)

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def display_name(self) -> str:
        return self.record.display_name

    @property
    def serial_number(self) -> str:
        return self.record.serial_number

    @property
    def directory_id(self) -> Optional[str]:
        return self.record.directory_id

    @property
    def user_principal_name(self) -> str:
        return self.record.user_principal_name

    @property
    def operating_system(self) -> str:
        return self.record.operating_system

    @property
    def last_seen(self) -> Optional[datetime]:
        """Last sync for managed devices, last activity for directory devices."""
        if isinstance(self.record, DeviceRecord):
            return self.record.last_sync_time
        return self.record.last_activity_time

    @property
    def duplicate_group_key(self) -> Optional[str]:
        if isinstance(self.record, DeviceRecord):
            return self.record.duplicate_group_key
        return None

    def to_dict(self) -> dict[str, Any]:
        """Flat representation for reports."""
        last_seen = self.last_seen
        return {
            "id": self.id,
            "source": self.source.value,
            "display_name": self.display_name,
            "directory_id": self.directory_id or "",
            "user_principal_name": self.user_principal_name,
            "serial_number": self.serial_number,
            "operating_system": self.operating_system,
            "last_seen": last_seen.isoformat() if last_seen else "",
            "reason_codes": [code.value for code in self.reason_codes],
            "recommended_action": self.recommended_action.value,
            "duplicate_group_key": self.duplicate_group_key or "",
        }


@dataclass
class ExclusionEntry:
    """One row of the exclusion list. Blank fields never match."""

    device_id: str = ""
    directory_id: str = ""
    serial_number: str = ""
    display_name: str = ""

    @property
    def is_empty(self) -> bool:
        return not any(
            (self.device_id, self.directory_id, self.serial_number, self.display_name)
        )

    def matches(self, candidate: ClassifiedCandidate) -> bool:
        """Exact, case-sensitive match on any populated field."""
        pairs = (
            (self.device_id, candidate.id),
            (self.directory_id, candidate.directory_id),
            (self.serial_number, candidate.serial_number),
            (self.display_name, candidate.display_name),
        )
        return any(wanted and wanted == actual for wanted, actual in pairs)


@dataclass
class SkippedEntry:
    """A candidate that was not planned, with the reason."""

    candidate: ClassifiedCandidate
    skip_reason: SkipReason

    def to_dict(self) -> dict[str, Any]:
        data = self.candidate.to_dict()
        data["skip_reason"] = self.skip_reason.value
        return data


@dataclass
class CleanupPlan:
    """Output of classification + planning for one run."""

    candidates: list[ClassifiedCandidate] = field(default_factory=list)
    planned: list[ClassifiedCandidate] = field(default_factory=list)
    skipped: list[SkippedEntry] = field(default_factory=list)


@dataclass
class ActionOutcome:
    """Result of executing one retire/delete call."""

    device_id: str
    display_name: str
    source: CandidateSource
    action: RequestedAction
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "display_name": self.display_name,
            "source": self.source.value,
            "action": self.action.value,
            "success": self.success,
            "error": self.error,
        }


@dataclass
class CleanupResult:
    """Summary of a cleanup run."""

    success: bool
    requested_action: RequestedAction
    dry_run: bool
    started_at: datetime
    completed_at: Optional[datetime] = None

    managed_devices: int = 0
    directory_devices: int = 0
    candidates: int = 0
    planned: int = 0
    skipped: int = 0

    executed: bool = False
    outcomes: list[ActionOutcome] = field(default_factory=list)
    report_paths: dict[str, str] = field(default_factory=dict)
    error_details: list[str] = field(default_factory=list)

    @property
    def actions_succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def actions_failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and the JSON summary."""
        return {
            "success": self.success,
            "requested_action": self.requested_action.value,
            "dry_run": self.dry_run,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "managed_devices": self.managed_devices,
            "directory_devices": self.directory_devices,
            "candidates": self.candidates,
            "planned": self.planned,
            "skipped": self.skipped,
            "executed": self.executed,
            "actions_succeeded": self.actions_succeeded,
            "actions_failed": self.actions_failed,
            "report_paths": dict(self.report_paths),
            "errors": list(self.error_details),
        }
