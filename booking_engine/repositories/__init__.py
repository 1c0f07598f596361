"""Repositories: PostgreSQL-backed stores with in-memory counterparts."""

from .appointment_repository import (
    AppointmentRepository,
    BookingTransaction,
    InMemoryAppointmentRepository,
    PostgresAppointmentRepository,
)
from .base import PostgresRepository
from .capacity_repository import (
    CapacityRepository,
    InMemoryCapacityRepository,
    PostgresCapacityRepository,
)
from .catalog_repository import InMemoryServiceCatalog, PostgresServiceCatalog, ServiceCatalog
from .holiday_repository import (
    HolidayRepository,
    InMemoryHolidayRepository,
    PostgresHolidayRepository,
)
from .schedule_repository import (
    InMemoryScheduleRepository,
    PostgresScheduleRepository,
    ScheduleRepository,
)
from .sequence_repository import (
    InMemorySequenceRepository,
    IssuedNumber,
    PostgresSequenceRepository,
    SequenceRepository,
)

__all__ = [
    "PostgresRepository",
    "AppointmentRepository",
    "BookingTransaction",
    "InMemoryAppointmentRepository",
    "PostgresAppointmentRepository",
    "CapacityRepository",
    "InMemoryCapacityRepository",
    "PostgresCapacityRepository",
    "ServiceCatalog",
    "InMemoryServiceCatalog",
    "PostgresServiceCatalog",
    "HolidayRepository",
    "InMemoryHolidayRepository",
    "PostgresHolidayRepository",
    "ScheduleRepository",
    "InMemoryScheduleRepository",
    "PostgresScheduleRepository",
    "SequenceRepository",
    "InMemorySequenceRepository",
    "IssuedNumber",
    "PostgresSequenceRepository",
]
