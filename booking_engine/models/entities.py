"""Domain entities shared by repositories and services."""

from dataclasses import dataclass, field, fields
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from ..constants import Booking, Sequence, Slots
from ..core.calendar import minutes_between
from ..core.enums import AppointmentStatus


def _to_primitive(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, list):
        return [_to_primitive(v) for v in value]
    return value


class _Serializable:
    """Mixin giving dataclasses a JSON-friendly ``to_dict``."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert entity to dictionary."""
        return {f.name: _to_primitive(getattr(self, f.name)) for f in fields(self)}  # type: ignore[arg-type]


@dataclass
class WeeklyScheduleRule(_Serializable):
    """Recurring working hours of one branch on one weekday (0=Sunday ... 6=Saturday)."""

    branch_id: UUID
    day_of_week: int
    start_time: time
    end_time: time
    slot_duration_minutes: int = Slots.DURATION_MINUTES
    max_capacity_per_slot: int = Slots.CAPACITY_PER_SLOT
    is_active: bool = True
    is_deleted: bool = False
    id: UUID = field(default_factory=uuid4)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def overlaps(self, start: time, end: time) -> bool:
        """Check whether [start, end) intersects this rule's window."""
        return start < self.end_time and end > self.start_time


@dataclass
class HolidayException(_Serializable):
    """A closed date for a branch."""

    branch_id: UUID
    holiday_date: date
    name: str
    reason: Optional[str] = None
    is_recurring_yearly: bool = False
    is_active: bool = True
    is_deleted: bool = False
    id: UUID = field(default_factory=uuid4)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class DailyCapacityOverride(_Serializable):
    """Per-date slot counts; ``service_type_id`` None applies to all services."""

    branch_id: UUID
    capacity_date: date
    total_slots: int
    available_slots: int
    service_type_id: Optional[UUID] = None
    is_override: bool = True
    row_version: int = 0
    id: UUID = field(default_factory=uuid4)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Appointment(_Serializable):
    """A booked appointment."""

    beneficiary_id: UUID
    branch_id: UUID
    service_type_id: UUID
    appointment_date: date
    appointment_time: time
    slot_duration_minutes: int = Slots.DURATION_MINUTES
    status: AppointmentStatus = AppointmentStatus.REQUESTED
    priority: str = Booking.DEFAULT_PRIORITY
    appointment_code: Optional[str] = None
    notes: Optional[str] = None
    idempotency_key: Optional[str] = None
    created_by: Optional[UUID] = None
    cancellation_reason: Optional[str] = None
    action_notes: Optional[str] = None
    is_deleted: bool = False
    id: UUID = field(default_factory=uuid4)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def holds_slot(self) -> bool:
        """Non-deleted, non-terminal appointments occupy their slot."""
        return not self.is_deleted and not self.status.is_terminal


@dataclass
class AppointmentStatusRecord(_Serializable):
    """One row of an appointment's status history."""

    appointment_id: UUID
    status: AppointmentStatus
    reason: Optional[str] = None
    changed_by: Optional[UUID] = None
    changed_at: Optional[datetime] = None
    id: UUID = field(default_factory=uuid4)


@dataclass
class SequenceCounter(_Serializable):
    """Per-branch, per-year appointment number counter.

    ``current_sequence`` is the next number to issue.
    """

    branch_id: UUID
    sequence_year: int
    branch_code: str = Sequence.UNKNOWN_BRANCH_CODE
    current_sequence: int = Sequence.START
    max_sequence: int = Sequence.MAX_NUMBER
    total_created: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_exhausted(self) -> bool:
        """Check whether every number up to ``max_sequence`` has been issued."""
        return self.current_sequence > self.max_sequence

    @property
    def remaining(self) -> int:
        """Numbers still available this year."""
        return max(self.max_sequence - self.current_sequence + 1, 0)


@dataclass
class Branch(_Serializable):
    """A service center as published by the branch directory."""

    branch_id: UUID
    name: str
    code: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_active: bool = True

    @property
    def has_location(self) -> bool:
        """Check whether the branch has coordinates."""
        return self.latitude is not None and self.longitude is not None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Branch":
        """
        Build a branch from an organization-branch API payload.

        Args:
            payload: JSON object with camelCase keys

        Returns:
            Branch entity
        """
        raw_id = payload.get("organizationBranchId") or payload.get("id")
        if raw_id is None:
            raise ValueError("Branch payload has no organizationBranchId")
        latitude = payload.get("latitude")
        longitude = payload.get("longitude")
        is_active = payload.get("isActive")
        return cls(
            branch_id=UUID(str(raw_id)),
            name=payload.get("name") or "",
            code=payload.get("code"),
            address=payload.get("address"),
            latitude=float(latitude) if latitude is not None else None,
            longitude=float(longitude) if longitude is not None else None,
            is_active=True if is_active is None else bool(is_active),
        )


@dataclass
class ServiceType(_Serializable):
    """A node of the service-type tree."""

    id: UUID
    code: str
    parent_id: Optional[UUID] = None
    is_active: bool = True


@dataclass
class WorkingWindow(_Serializable):
    """Effective opening hours of a branch on one date."""

    window_date: date
    start_time: time
    end_time: time
    slot_duration_minutes: int
    capacity_per_slot: int
    total_slots: int
    available_slots: Optional[int] = None
    is_override: bool = False

    @property
    def slots_per_day(self) -> int:
        """Number of whole slots fitting in the window."""
        if self.slot_duration_minutes <= 0:
            return 0
        return max(minutes_between(self.start_time, self.end_time), 0) // self.slot_duration_minutes


@dataclass
class BranchAvailability(_Serializable):
    """First free day found for a branch during a search scan."""

    branch_id: UUID
    available_date: date
    available_time: time
    slot_duration_minutes: int
    free_slots: List[time] = field(default_factory=list)

    @property
    def available_slots_count(self) -> int:
        """Free slots on ``available_date``."""
        return len(self.free_slots)


@dataclass
class AppointmentSuggestion(_Serializable):
    """One ranked search result."""

    branch_id: UUID
    branch_name: str
    distance_km: float
    available_date: date
    available_time: time
    slot_duration_minutes: int
    service_type_id: UUID
    service_type_name: str
    available_slots_count: int
    branch_code: Optional[str] = None
    branch_address: Optional[str] = None
    branch_latitude: Optional[float] = None
    branch_longitude: Optional[float] = None
