"""Resolve the effective working window of a branch on a date.

Resolution order for one date:

1. An active holiday closes the day. One-off holidays match their exact date;
   yearly-recurring holidays match according to the configured
   HolidayRecurrenceMode.
2. Otherwise the active weekly rule for the weekday supplies hours, slot
   length and capacity. No rule means closed.
3. A capacity override flagged ``is_override`` replaces the slot counts
   (service-specific row first, then the all-services row). It never changes
   the hours.
"""

from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from loguru import logger

from ..constants import Slots
from ..core.calendar import date_range, minutes_between, to_schedule_day
from ..core.enums import HolidayRecurrenceMode
from ..models.entities import (
    DailyCapacityOverride,
    HolidayException,
    WeeklyScheduleRule,
    WorkingWindow,
)
from ..repositories.capacity_repository import CapacityRepository
from ..repositories.holiday_repository import HolidayRepository
from ..repositories.schedule_repository import ScheduleRepository


def holiday_closes(
    holiday: HolidayException,
    day: date,
    mode: HolidayRecurrenceMode = HolidayRecurrenceMode.WEEKDAY,
) -> bool:
    """
    Check whether a holiday closes a date.

    Args:
        holiday: Holiday exception
        day: Date being resolved
        mode: Matching rule for yearly-recurring holidays

    Returns:
        True if the branch is closed on ``day`` because of ``holiday``
    """
    if not holiday.is_active or holiday.is_deleted:
        return False
    if holiday.holiday_date == day:
        return True
    if not holiday.is_recurring_yearly:
        return False
    if mode == HolidayRecurrenceMode.ANNIVERSARY:
        return (holiday.holiday_date.month, holiday.holiday_date.day) == (day.month, day.day)
    return to_schedule_day(holiday.holiday_date) == to_schedule_day(day)


class ScheduleCalendar:
    """Combines weekly rules, holidays and capacity overrides into working windows."""

    def __init__(
        self,
        schedules: ScheduleRepository,
        holidays: HolidayRepository,
        capacities: CapacityRepository,
        recurrence_mode: HolidayRecurrenceMode = HolidayRecurrenceMode.WEEKDAY,
        default_slot_minutes: int = Slots.DURATION_MINUTES,
    ):
        """
        Initialize schedule calendar.

        Args:
            schedules: Weekly rule store
            holidays: Holiday store
            capacities: Capacity override store
            recurrence_mode: Matching rule for yearly-recurring holidays
            default_slot_minutes: Slot length used when a rule has none
        """
        self._schedules = schedules
        self._holidays = holidays
        self._capacities = capacities
        self.recurrence_mode = recurrence_mode
        self.default_slot_minutes = default_slot_minutes

    async def resolve(
        self, branch_id: UUID, day: date, service_type_id: Optional[UUID] = None
    ) -> Optional[WorkingWindow]:
        """
        Resolve the working window of one date.

        Args:
            branch_id: Branch ID
            day: Date to resolve
            service_type_id: Service used to pick a service-specific override

        Returns:
            Working window, or None when the branch is closed
        """
        windows = await self.resolve_range(branch_id, day, 1, service_type_id)
        return windows.get(day)

    async def resolve_range(
        self,
        branch_id: UUID,
        start: date,
        days: int,
        service_type_id: Optional[UUID] = None,
    ) -> Dict[date, WorkingWindow]:
        """
        Resolve every open date in ``[start, start + days)``.

        Rules, holidays and overrides are each fetched once for the whole range.

        Args:
            branch_id: Branch ID
            start: First date
            days: Number of dates
            service_type_id: Service used to pick a service-specific override

        Returns:
            Working windows of open dates, in date order
        """
        if days <= 0:
            return {}
        end = start + timedelta(days=days - 1)

        rules = {
            rule.day_of_week: rule
            for rule in await self._schedules.list_rules(branch_id, include_inactive=False)
        }
        if not rules:
            return {}
        holidays = await self._holidays.list_effective_holidays(branch_id, start, end)
        overrides = self._index_overrides(await self._capacities.list_overrides(branch_id, start, end))

        windows: Dict[date, WorkingWindow] = {}
        for day in date_range(start, days):
            closing = self._closing_holiday(holidays, day)
            if closing is not None:
                logger.debug(f"Branch {branch_id} closed on {day}: holiday '{closing.name}'")
                continue
            rule = rules.get(to_schedule_day(day))
            if rule is None:
                continue
            windows[day] = self._build_window(day, rule, overrides.get(day, {}), service_type_id)
        return windows

    def _closing_holiday(
        self, holidays: Iterable[HolidayException], day: date
    ) -> Optional[HolidayException]:
        for holiday in holidays:
            if holiday_closes(holiday, day, self.recurrence_mode):
                return holiday
        return None

    @staticmethod
    def _index_overrides(
        rows: List[DailyCapacityOverride],
    ) -> Dict[date, Dict[Optional[UUID], DailyCapacityOverride]]:
        indexed: Dict[date, Dict[Optional[UUID], DailyCapacityOverride]] = {}
        for row in rows:
            indexed.setdefault(row.capacity_date, {})[row.service_type_id] = row
        return indexed

    def _build_window(
        self,
        day: date,
        rule: WeeklyScheduleRule,
        overrides: Dict[Optional[UUID], DailyCapacityOverride],
        service_type_id: Optional[UUID],
    ) -> WorkingWindow:
        duration = rule.slot_duration_minutes
        if duration <= 0:
            duration = self.default_slot_minutes
        capacity = rule.max_capacity_per_slot
        if capacity <= 0:
            capacity = Slots.CAPACITY_PER_SLOT
        slots_per_day = max(minutes_between(rule.start_time, rule.end_time), 0) // duration
        window = WorkingWindow(
            window_date=day,
            start_time=rule.start_time,
            end_time=rule.end_time,
            slot_duration_minutes=duration,
            capacity_per_slot=capacity,
            total_slots=slots_per_day * capacity,
        )

        override = overrides.get(service_type_id) if service_type_id is not None else None
        if override is None or not override.is_override:
            override = overrides.get(None)
        if override is not None and override.is_override:
            window.total_slots = override.total_slots
            window.available_slots = override.available_slots
            window.is_override = True
        return window
