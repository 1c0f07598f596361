"""Find and rank branches with free appointments for a service."""

import asyncio
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional
from uuid import UUID

from loguru import logger

from ..constants import Geo, Search
from ..core.config.settings import EngineSettings
from ..core.calendar import utc_today
from ..core.enums import PreferenceType
from ..core.geo import haversine_km
from ..directory.branch_directory import BranchDirectory
from ..models.entities import AppointmentSuggestion, Branch, BranchAvailability
from ..models.schemas import SearchCriteria
from ..repositories.catalog_repository import ServiceCatalog
from .availability_index import AvailabilityIndex, filter_free
from .schedule_calendar import ScheduleCalendar
from .slot_enumerator import enumerate_window


def rank_suggestions(
    suggestions: List[AppointmentSuggestion],
    preference: PreferenceType,
    limit: int,
) -> List[AppointmentSuggestion]:
    """
    Order and truncate search results.

    NEAREST_CENTER sorts by distance, then date and time. EARLIEST_DATE sorts
    by date and time, then distance. Branch ID breaks any remaining tie.

    Args:
        suggestions: Unordered results
        preference: Ranking mode
        limit: Maximum number of results

    Returns:
        At most ``limit`` results in ranked order
    """
    if preference == PreferenceType.NEAREST_CENTER:
        def key(s: AppointmentSuggestion):
            return (s.distance_km, s.available_date, s.available_time, str(s.branch_id))
    else:
        def key(s: AppointmentSuggestion):
            return (s.available_date, s.available_time, s.distance_km, str(s.branch_id))
    return sorted(suggestions, key=key)[: max(limit, 0)]


class CenterRanker:
    """Search entry point: candidate branches, first free day, ranking."""

    def __init__(
        self,
        calendar: ScheduleCalendar,
        availability: AvailabilityIndex,
        catalog: ServiceCatalog,
        directory: BranchDirectory,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], date] = utc_today,
    ):
        """
        Initialize center ranker.

        Args:
            calendar: Working window resolver
            availability: Booked-slot lookup
            catalog: Service offerings and names
            directory: Branch locations
            settings: Search defaults (radius, limit, window, language)
            clock: Returns today's date (UTC by default)
        """
        self._calendar = calendar
        self._availability = availability
        self._catalog = catalog
        self._directory = directory
        self._settings = settings or EngineSettings()
        self._clock = clock

    def search_start(self, preferred_date: Optional[date]) -> date:
        """First date scanned: the preferred date, never earlier than tomorrow."""
        tomorrow = self._clock() + timedelta(days=1)
        if preferred_date is None or preferred_date < tomorrow:
            return tomorrow
        return preferred_date

    async def find_first_availability(
        self,
        branch_id: UUID,
        start: date,
        days: int,
        service_type_id: Optional[UUID] = None,
    ) -> Optional[BranchAvailability]:
        """
        Scan dates from ``start`` and stop at the first one with a free slot.

        Args:
            branch_id: Branch ID
            start: First date scanned
            days: Number of dates scanned
            service_type_id: Service used to pick capacity overrides

        Returns:
            First free date with its free slots, or None
        """
        windows = await self._calendar.resolve_range(branch_id, start, days, service_type_id)
        if not windows:
            return None
        booked = await self._availability.booked_by_date(
            branch_id, start, start + timedelta(days=days - 1)
        )
        for day, window in windows.items():
            free = filter_free(enumerate_window(window), booked.get(day, set()))
            if free:
                return BranchAvailability(
                    branch_id=branch_id,
                    available_date=day,
                    available_time=free[0],
                    slot_duration_minutes=window.slot_duration_minutes,
                    free_slots=free,
                )
        return None

    @staticmethod
    def _distance_km(criteria: SearchCriteria, branch: Branch) -> float:
        return haversine_km(
            criteria.latitude,
            criteria.longitude,
            branch.latitude,  # type: ignore[arg-type]
            branch.longitude,  # type: ignore[arg-type]
        )

    async def _candidate_branches(
        self, criteria: SearchCriteria, radius_km: float
    ) -> List[Branch]:
        service_ids = {criteria.service_type_id}
        if criteria.include_sub_services:
            service_ids = await self._catalog.expand_service_tree(criteria.service_type_id)

        offering = await self._catalog.list_branches_offering(service_ids)
        if not offering:
            logger.warning(f"No centers provide service type {criteria.service_type_id}")
            return []

        nearby = await self._directory.find_nearby_active_branches(
            criteria.latitude, criteria.longitude, radius_km
        )
        # The directory may round the radius up to whole kilometres
        candidates = [
            b
            for b in nearby
            if b.branch_id in offering
            and b.is_active
            and b.has_location
            and self._distance_km(criteria, b) <= radius_km
        ]
        if not candidates:
            logger.warning(
                f"No nearby active centers provide service type {criteria.service_type_id}"
            )
        return candidates

    async def search_available_appointments(
        self, criteria: SearchCriteria
    ) -> List[AppointmentSuggestion]:
        """
        Search nearby branches for their first free appointment.

        Branches without a free slot in the window are left out. An empty list
        means nothing is available.

        Args:
            criteria: Validated search criteria

        Returns:
            Ranked suggestions
        """
        radius_km = criteria.radius_km or self._settings.search_radius_km
        limit = criteria.max_results or self._settings.max_results
        days = criteria.search_days or self._settings.search_window_days
        language = criteria.language or self._settings.service_name_language
        start = self.search_start(criteria.preferred_date)

        logger.info(
            f"Searching appointments for service {criteria.service_type_id} "
            f"({criteria.preference_type.value}, radius={radius_km}km, from {start} for {days} days)"
        )

        candidates = await self._candidate_branches(criteria, radius_km)
        if not candidates:
            return []

        found = await asyncio.gather(
            *(
                self.find_first_availability(branch.branch_id, start, days, criteria.service_type_id)
                for branch in candidates
            )
        )

        service_name = (
            await self._catalog.get_service_type_name(criteria.service_type_id, language)
            or Search.UNKNOWN_SERVICE_NAME
        )

        suggestions: List[AppointmentSuggestion] = []
        for branch, availability in zip(candidates, found):
            if availability is None:
                continue
            distance = round(self._distance_km(criteria, branch), Geo.DISTANCE_PRECISION)
            suggestions.append(
                AppointmentSuggestion(
                    branch_id=branch.branch_id,
                    branch_name=branch.name,
                    branch_code=branch.code,
                    branch_address=branch.address,
                    branch_latitude=branch.latitude,
                    branch_longitude=branch.longitude,
                    distance_km=distance,
                    available_date=availability.available_date,
                    available_time=availability.available_time,
                    slot_duration_minutes=availability.slot_duration_minutes,
                    service_type_id=criteria.service_type_id,
                    service_type_name=service_name,
                    available_slots_count=availability.available_slots_count,
                )
            )

        ranked = rank_suggestions(suggestions, criteria.preference_type, limit)
        logger.info(
            f"Found {len(suggestions)} centers with availability, returning {len(ranked)}"
        )
        return ranked

    async def branch_availability(
        self, branch_id: UUID, day: date, service_type_id: Optional[UUID] = None
    ) -> Dict[str, object]:
        """
        Capacity summary of a branch on one date.

        Returns:
            ``open``, ``slots_per_day``, ``daily_capacity``, ``booked`` and ``free_slots``
        """
        window = await self._calendar.resolve(branch_id, day, service_type_id)
        if window is None:
            return {
                "open": False,
                "slots_per_day": 0,
                "daily_capacity": 0,
                "booked": 0,
                "free_slots": [],
            }
        free = await self._availability.free_slots_for_window(branch_id, window)
        slots_per_day = window.slots_per_day
        return {
            "open": True,
            "slots_per_day": slots_per_day,
            "daily_capacity": window.total_slots,
            "booked": slots_per_day - len(free),
            "free_slots": free,
        }
