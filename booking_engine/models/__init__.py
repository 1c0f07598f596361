"""Domain models, input schemas and the database manager."""

from .database import Database
from .entities import (
    Appointment,
    AppointmentStatusRecord,
    AppointmentSuggestion,
    Branch,
    BranchAvailability,
    DailyCapacityOverride,
    HolidayException,
    SequenceCounter,
    ServiceType,
    WeeklyScheduleRule,
    WorkingWindow,
)
from .schemas import BookingRequest, SearchCriteria

__all__ = [
    "Database",
    "Appointment",
    "AppointmentStatusRecord",
    "AppointmentSuggestion",
    "Branch",
    "BranchAvailability",
    "DailyCapacityOverride",
    "HolidayException",
    "SequenceCounter",
    "ServiceType",
    "WeeklyScheduleRule",
    "WorkingWindow",
    "BookingRequest",
    "SearchCriteria",
]
