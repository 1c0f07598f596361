"""Scheduling, search and sequence defaults."""

from typing import Final


class Search:
    """Appointment search defaults."""

    WINDOW_DAYS: Final[int] = 30
    MAX_RESULTS: Final[int] = 5
    RADIUS_KM: Final[float] = 50.0
    SERVICE_NAME_LANGUAGE: Final[str] = "ar"
    UNKNOWN_SERVICE_NAME: Final[str] = "Unknown Service"


class Slots:
    """Working window and slot defaults."""

    DURATION_MINUTES: Final[int] = 30
    CAPACITY_PER_SLOT: Final[int] = 1
    MINUTES_PER_DAY: Final[int] = 24 * 60


class Sequence:
    """Appointment code sequence defaults."""

    START: Final[int] = 1
    MAX_NUMBER: Final[int] = 9999
    UNKNOWN_BRANCH_CODE: Final[str] = "UNKNOWN"
    CODE_FORMAT: Final[str] = "{branch_code}-{year}-{number:04d}"


class Geo:
    """Geodesic constants."""

    EARTH_RADIUS_KM: Final[float] = 6371.0
    DISTANCE_PRECISION: Final[int] = 2


class Booking:
    """Booking defaults."""

    DEFAULT_PRIORITY: Final[str] = "NORMAL"
    CREATED_REASON: Final[str] = "Appointment created"
    CONFIRMED_REASON: Final[str] = "Appointment confirmed"
    COMPLETED_REASON: Final[str] = "Appointment completed"
