"""Core utilities: configuration, logging, errors, retries and calendar helpers."""

from .enums import (
    AppointmentPriority,
    AppointmentStatus,
    HolidayRecurrenceMode,
    PreferenceType,
    RejectionReason,
)
from .exceptions import (
    ActiveServiceDuplicateError,
    BookingEngineError,
    BookingRejectedError,
    SameDayDuplicateError,
    SequenceExhaustedError,
    SlotConflictError,
    ValidationError,
)

__all__ = [
    "AppointmentPriority",
    "AppointmentStatus",
    "HolidayRecurrenceMode",
    "PreferenceType",
    "RejectionReason",
    "ActiveServiceDuplicateError",
    "BookingEngineError",
    "BookingRejectedError",
    "SameDayDuplicateError",
    "SequenceExhaustedError",
    "SlotConflictError",
    "ValidationError",
]
