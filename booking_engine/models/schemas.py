"""Pydantic models for input validation."""

from datetime import date, time
from typing import Any, List, Optional, Type, TypeVar
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from ..constants import Slots
from ..core.calendar import minutes_between
from ..core.enums import AppointmentPriority, AppointmentStatus, PreferenceType
from ..core.exceptions import ValidationError

M = TypeVar("M", bound=BaseModel)


def parse_model(model: Type[M], error_cls: Type[ValidationError] = ValidationError, **data: Any) -> M:
    """
    Validate keyword arguments into a pydantic model.

    Args:
        model: Pydantic model class
        error_cls: Engine error raised on failure
        **data: Field values

    Returns:
        Validated model instance

    Raises:
        ValidationError: (or ``error_cls``) for the first failing field
    """
    try:
        return model(**data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(part) for part in first.get("loc", ())) or None
        raise error_cls(first.get("msg", "invalid value"), field=loc) from e


class SearchCriteria(BaseModel):
    """Appointment search input.

    ``radius_km``, ``max_results`` and ``search_days`` fall back to the engine
    settings when left empty.
    """

    service_type_id: UUID
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    preferred_date: Optional[date] = None
    preference_type: PreferenceType = PreferenceType.NEAREST_CENTER
    radius_km: Optional[float] = Field(default=None, gt=0)
    max_results: Optional[int] = Field(default=None, ge=1)
    search_days: Optional[int] = Field(default=None, ge=1, le=366)
    include_sub_services: bool = False
    language: Optional[str] = Field(default=None, min_length=2, max_length=8)


class BookingRequest(BaseModel):
    """Booking input validated before any storage access."""

    beneficiary_id: UUID
    branch_id: UUID
    service_type_id: UUID
    appointment_date: date
    appointment_time: time
    slot_duration_minutes: int = Field(default=Slots.DURATION_MINUTES, gt=0, le=Slots.MINUTES_PER_DAY)
    priority: AppointmentPriority = AppointmentPriority.NORMAL
    status: AppointmentStatus = AppointmentStatus.REQUESTED
    branch_code: Optional[str] = Field(default=None, max_length=32)
    notes: Optional[str] = Field(default=None, max_length=2000)
    created_by: Optional[UUID] = None
    idempotency_key: Optional[str] = Field(default=None, min_length=1, max_length=128)

    @field_validator("status")
    @classmethod
    def validate_initial_status(cls, v: AppointmentStatus) -> AppointmentStatus:
        """New bookings start as REQUESTED or CONFIRMED."""
        if v.is_terminal:
            raise ValueError(f"Cannot create an appointment in status {v.value}")
        return v

    @model_validator(mode="after")
    def validate_within_day(self) -> "BookingRequest":
        """Slots never cross midnight."""
        remaining = minutes_between(self.appointment_time, time(23, 59)) + 1
        if self.slot_duration_minutes > remaining:
            raise ValueError("Appointment slot must end before midnight")
        return self


class ScheduleRuleInput(BaseModel):
    """Weekly schedule rule input."""

    branch_id: UUID
    day_of_week: int = Field(..., ge=0, le=6)
    start_time: time
    end_time: time
    slot_duration_minutes: int = Field(default=Slots.DURATION_MINUTES, gt=0)
    max_capacity_per_slot: int = Field(default=Slots.CAPACITY_PER_SLOT, ge=1)
    is_active: bool = True

    @model_validator(mode="after")
    def validate_window(self) -> "ScheduleRuleInput":
        """Start must precede end and the window must fit at least one slot."""
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        if minutes_between(self.start_time, self.end_time) < self.slot_duration_minutes:
            raise ValueError("Working window is shorter than one slot")
        return self


class ScheduleBatchInput(BaseModel):
    """Same working hours applied to several weekdays."""

    branch_id: UUID
    days_of_week: List[int] = Field(..., min_length=1)
    start_time: time
    end_time: time
    slot_duration_minutes: int = Field(default=Slots.DURATION_MINUTES, gt=0)
    max_capacity_per_slot: int = Field(default=Slots.CAPACITY_PER_SLOT, ge=1)

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v: List[int]) -> List[int]:
        """Days must be 0..6; duplicates collapse."""
        for day in v:
            if not 0 <= day <= 6:
                raise ValueError(f"day_of_week must be between 0 and 6, got {day}")
        return sorted(set(v))


class HolidayInput(BaseModel):
    """Holiday exception input."""

    branch_id: UUID
    holiday_date: date
    name: str = Field(..., min_length=1, max_length=200)
    reason: Optional[str] = Field(default=None, max_length=1000)
    is_recurring_yearly: bool = False
    is_active: bool = True


class CapacityOverrideInput(BaseModel):
    """Daily capacity override input; ``available_slots`` defaults to ``total_slots``."""

    branch_id: UUID
    capacity_date: date
    total_slots: int = Field(..., ge=0)
    available_slots: Optional[int] = Field(default=None, ge=0)
    service_type_id: Optional[UUID] = None
    is_override: bool = True
    expected_version: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def validate_counts(self) -> "CapacityOverrideInput":
        """Available slots can never exceed the total."""
        if self.available_slots is None:
            self.available_slots = self.total_slots
        if self.available_slots > self.total_slots:
            raise ValueError("available_slots cannot exceed total_slots")
        return self


__all__ = [
    "parse_model",
    "SearchCriteria",
    "BookingRequest",
    "ScheduleRuleInput",
    "ScheduleBatchInput",
    "HolidayInput",
    "CapacityOverrideInput",
]
