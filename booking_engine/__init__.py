"""Slot-availability and booking-allocation engine for branch appointments."""

__version__ = "1.0.0"

from .core.enums import AppointmentStatus, HolidayRecurrenceMode, PreferenceType
from .core.exceptions import (
    ActiveServiceDuplicateError,
    BookingEngineError,
    BookingRejectedError,
    SameDayDuplicateError,
    SequenceExhaustedError,
    SlotConflictError,
    ValidationError,
)
from .engine import BookingEngine
from .models.entities import Appointment, AppointmentSuggestion, Branch
from .models.schemas import BookingRequest, SearchCriteria

__all__ = [
    "__version__",
    "BookingEngine",
    "AppointmentStatus",
    "HolidayRecurrenceMode",
    "PreferenceType",
    "ActiveServiceDuplicateError",
    "BookingEngineError",
    "BookingRejectedError",
    "SameDayDuplicateError",
    "SequenceExhaustedError",
    "SlotConflictError",
    "ValidationError",
    "Appointment",
    "AppointmentSuggestion",
    "Branch",
    "BookingRequest",
    "SearchCriteria",
]
