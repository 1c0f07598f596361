"""Centralized enum definitions for the booking engine."""

from enum import Enum
from typing import FrozenSet


class AppointmentStatus(str, Enum):
    """Lifecycle states of an appointment."""
    REQUESTED = "REQUESTED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @classmethod
    def values(cls) -> list:
        """Return list of all enum values."""
        return [e.value for e in cls]

    @classmethod
    def terminal(cls) -> FrozenSet["AppointmentStatus"]:
        """Statuses that no longer hold a slot or count as an active booking."""
        return frozenset({cls.COMPLETED, cls.CANCELLED})

    @property
    def is_terminal(self) -> bool:
        """Check whether this status ends the appointment lifecycle."""
        return self in AppointmentStatus.terminal()


class AppointmentPriority(str, Enum):
    """Booking priority levels."""
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"

    @classmethod
    def values(cls) -> list:
        """Return list of all enum values."""
        return [e.value for e in cls]


class PreferenceType(str, Enum):
    """Ranking modes for appointment search."""
    NEAREST_CENTER = "NEAREST_CENTER"
    EARLIEST_DATE = "EARLIEST_DATE"

    @classmethod
    def values(cls) -> list:
        """Return list of all enum values."""
        return [e.value for e in cls]


class RejectionReason(str, Enum):
    """Reasons a booking request can be turned down."""
    SLOT_CONFLICT = "SLOT_CONFLICT"
    SAME_DAY_DUPLICATE = "SAME_DAY_DUPLICATE"
    ACTIVE_SERVICE_DUPLICATE = "ACTIVE_SERVICE_DUPLICATE"

    @classmethod
    def values(cls) -> list:
        """Return list of all enum values."""
        return [e.value for e in cls]


class HolidayRecurrenceMode(str, Enum):
    """How yearly-recurring holidays are matched against a calendar date.

    WEEKDAY matches every date falling on the holiday's weekday, which is how
    the schedule data has historically been interpreted. ANNIVERSARY matches
    the same month and day each year.
    """
    WEEKDAY = "weekday"
    ANNIVERSARY = "anniversary"

    @classmethod
    def values(cls) -> list:
        """Return list of all enum values."""
        return [e.value for e in cls]
