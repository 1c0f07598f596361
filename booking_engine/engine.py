"""Engine facade wiring stores and services together."""

from datetime import date
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import UUID

from loguru import logger

from .core.calendar import utc_today
from .core.config.settings import EngineSettings, get_settings
from .core.enums import HolidayRecurrenceMode, PreferenceType
from .core.exceptions import ValidationError
from .core.logger import correlation_scope
from .directory import BranchDirectory, HttpBranchDirectory, InMemoryBranchDirectory
from .models.database import Database
from .models.entities import Appointment, AppointmentSuggestion, Branch
from .models.schemas import BookingRequest, SearchCriteria, parse_model
from .repositories.appointment_repository import (
    AppointmentRepository,
    InMemoryAppointmentRepository,
    PostgresAppointmentRepository,
)
from .repositories.capacity_repository import (
    CapacityRepository,
    InMemoryCapacityRepository,
    PostgresCapacityRepository,
)
from .repositories.catalog_repository import (
    InMemoryServiceCatalog,
    PostgresServiceCatalog,
    ServiceCatalog,
)
from .repositories.holiday_repository import (
    HolidayRepository,
    InMemoryHolidayRepository,
    PostgresHolidayRepository,
)
from .repositories.schedule_repository import (
    InMemoryScheduleRepository,
    PostgresScheduleRepository,
    ScheduleRepository,
)
from .repositories.sequence_repository import (
    InMemorySequenceRepository,
    PostgresSequenceRepository,
    SequenceRepository,
)
from .services.availability_index import AvailabilityIndex
from .services.booking_service import BookingService
from .services.center_ranker import CenterRanker
from .services.schedule_admin import ScheduleAdmin
from .services.schedule_calendar import ScheduleCalendar
from .services.sequence_allocator import SequenceAllocator


class BookingEngine:
    """
    In-process entry point for search, code issuance and booking.

    Use ``create_postgres`` for the shared PostgreSQL store or
    ``create_in_memory`` for tests and single-process use.
    """

    def __init__(
        self,
        schedules: ScheduleRepository,
        holidays: HolidayRepository,
        capacities: CapacityRepository,
        appointments: AppointmentRepository,
        sequences: SequenceRepository,
        catalog: ServiceCatalog,
        directory: BranchDirectory,
        settings: Optional[EngineSettings] = None,
        database: Optional[Database] = None,
        clock: Callable[[], date] = utc_today,
    ):
        """
        Initialize booking engine.

        Args:
            schedules: Weekly rule store
            holidays: Holiday store
            capacities: Daily capacity store
            appointments: Appointment store
            sequences: Appointment number store
            catalog: Service offerings and names
            directory: Branch locations
            settings: Engine settings (default from environment)
            database: Database owned by the engine, closed by ``close()``
            clock: Returns today's date
        """
        self.settings = settings or get_settings()
        self.database = database
        self.catalog = catalog
        self.directory = directory

        self.calendar = ScheduleCalendar(
            schedules,
            holidays,
            capacities,
            recurrence_mode=self.settings.holiday_recurrence_mode,
            default_slot_minutes=self.settings.default_slot_minutes,
        )
        self.availability = AvailabilityIndex(appointments)
        self.ranker = CenterRanker(
            self.calendar, self.availability, catalog, directory, self.settings, clock=clock
        )
        self.allocator = SequenceAllocator(
            sequences, max_sequence=self.settings.sequence_max, clock=clock
        )
        self.bookings = BookingService(
            appointments,
            self.allocator,
            capacities=capacities,
            retry_attempts=self.settings.storage_retry_attempts,
        )
        self.admin = ScheduleAdmin(
            schedules, holidays, capacities, recurrence_mode=self.settings.holiday_recurrence_mode
        )

        if self.settings.holiday_recurrence_mode == HolidayRecurrenceMode.WEEKDAY:
            logger.warning(
                "Recurring holidays close every matching weekday "
                "(set HOLIDAY_RECURRENCE_MODE=anniversary to match by month and day)"
            )

    @classmethod
    async def create_postgres(
        cls,
        settings: Optional[EngineSettings] = None,
        directory: Optional[BranchDirectory] = None,
    ) -> "BookingEngine":
        """
        Connect to PostgreSQL and build an engine on it.

        Args:
            settings: Engine settings (default from environment)
            directory: Branch directory; an HTTP client on
                ``branch_directory_url`` when omitted

        Returns:
            Connected engine

        Raises:
            ValidationError: No directory given and no directory URL configured
        """
        settings = settings or get_settings()
        if directory is None:
            if not settings.branch_directory_url:
                raise ValidationError(
                    "A branch directory or BRANCH_DIRECTORY_URL is required",
                    field="branch_directory_url",
                )
            directory = HttpBranchDirectory(
                settings.branch_directory_url, timeout=settings.branch_directory_timeout
            )

        database = Database(
            settings.database_url,
            pool_size=settings.db_pool_size,
            connection_timeout=settings.db_connection_timeout,
        )
        await database.connect()

        return cls(
            schedules=PostgresScheduleRepository(database),
            holidays=PostgresHolidayRepository(database),
            capacities=PostgresCapacityRepository(database),
            appointments=PostgresAppointmentRepository(database),
            sequences=PostgresSequenceRepository(database),
            catalog=PostgresServiceCatalog(database),
            directory=directory,
            settings=settings,
            database=database,
        )

    @classmethod
    def create_in_memory(
        cls,
        settings: Optional[EngineSettings] = None,
        branches: Optional[List[Branch]] = None,
        clock: Optional[Callable[[], date]] = None,
    ) -> "BookingEngine":
        """
        Build an engine on in-memory stores (single process only).

        Args:
            settings: Engine settings (default from environment)
            branches: Branches known to the directory
            clock: Returns today's date

        Returns:
            Engine ready to use
        """
        return cls(
            schedules=InMemoryScheduleRepository(),
            holidays=InMemoryHolidayRepository(),
            capacities=InMemoryCapacityRepository(),
            appointments=InMemoryAppointmentRepository(),
            sequences=InMemorySequenceRepository(),
            catalog=InMemoryServiceCatalog(),
            directory=InMemoryBranchDirectory(branches),
            settings=settings,
            clock=clock or utc_today,
        )

    async def search_available_appointments(
        self,
        service_type_id: UUID,
        latitude: float,
        longitude: float,
        preferred_date: Optional[date] = None,
        preference_type: PreferenceType = PreferenceType.NEAREST_CENTER,
        radius_km: Optional[float] = None,
        max_results: Optional[int] = None,
        include_sub_services: bool = False,
        language: Optional[str] = None,
    ) -> List[AppointmentSuggestion]:
        """
        Search nearby branches for their first free appointment.

        Args:
            service_type_id: Requested service
            latitude: Caller latitude
            longitude: Caller longitude
            preferred_date: Earliest wanted date (never earlier than tomorrow)
            preference_type: Rank by distance or by date
            radius_km: Search radius (default from settings)
            max_results: Result limit (default from settings)
            include_sub_services: Also match child service types
            language: Language of the service name

        Returns:
            Ranked suggestions; empty when nothing is available

        Raises:
            ValidationError: Malformed criteria
        """
        criteria = parse_model(
            SearchCriteria,
            service_type_id=service_type_id,
            latitude=latitude,
            longitude=longitude,
            preferred_date=preferred_date,
            preference_type=preference_type,
            radius_km=radius_km,
            max_results=max_results,
            include_sub_services=include_sub_services,
            language=language,
        )
        with correlation_scope():
            return await self.ranker.search_available_appointments(criteria)

    async def generate_appointment_code(
        self, branch_id: UUID, branch_code: Optional[str] = None
    ) -> str:
        """Issue the next appointment code of a branch outside a booking."""
        return await self.allocator.generate_appointment_code(branch_id, branch_code)

    async def book_appointment(
        self, request: Union[BookingRequest, Dict[str, Any]]
    ) -> Appointment:
        """
        Book an appointment.

        Args:
            request: BookingRequest or its fields as a dict

        Returns:
            Stored appointment

        Raises:
            ValidationError: Malformed request
            BookingRejectedError: Slot taken or duplicate booking
            SequenceExhaustedError: No appointment numbers left this year
        """
        if not isinstance(request, BookingRequest):
            request = parse_model(BookingRequest, **request)
        return await self.bookings.book_appointment(request)

    async def confirm_appointment(
        self, appointment_id: UUID, changed_by: Optional[UUID] = None
    ) -> Appointment:
        return await self.bookings.confirm_appointment(appointment_id, changed_by)

    async def complete_appointment(
        self,
        appointment_id: UUID,
        action_notes: Optional[str] = None,
        changed_by: Optional[UUID] = None,
    ) -> Appointment:
        return await self.bookings.complete_appointment(appointment_id, action_notes, changed_by)

    async def cancel_appointment(
        self, appointment_id: UUID, reason: str, changed_by: Optional[UUID] = None
    ) -> Appointment:
        return await self.bookings.cancel_appointment(appointment_id, reason, changed_by)

    async def health_check(self) -> bool:
        """True when the backing store answers (always True in memory)."""
        if self.database is None:
            return True
        return await self.database.health_check()

    async def close(self) -> None:
        """Release the directory session and the database pool."""
        await self.directory.close()
        if self.database is not None:
            await self.database.close()
