"""Maintenance of weekly schedules, holidays and daily capacity overrides."""

from dataclasses import replace
from datetime import date, time
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from loguru import logger

from ..core.calendar import schedule_day_name, to_schedule_day
from ..core.enums import HolidayRecurrenceMode
from ..core.exceptions import RecordNotFoundError, ScheduleValidationError
from ..models.entities import DailyCapacityOverride, HolidayException, WeeklyScheduleRule
from ..models.schemas import (
    CapacityOverrideInput,
    HolidayInput,
    ScheduleBatchInput,
    ScheduleRuleInput,
    parse_model,
)
from ..repositories.capacity_repository import CapacityRepository
from ..repositories.holiday_repository import HolidayRepository
from ..repositories.schedule_repository import ScheduleRepository


class ScheduleAdmin:
    """
    Validating front for the schedule, holiday and capacity stores.

    Every write goes through a pydantic input model first; malformed input
    and configuration conflicts raise ``ScheduleValidationError``.
    """

    def __init__(
        self,
        schedules: ScheduleRepository,
        holidays: HolidayRepository,
        capacities: CapacityRepository,
        recurrence_mode: HolidayRecurrenceMode = HolidayRecurrenceMode.WEEKDAY,
    ):
        self._schedules = schedules
        self._holidays = holidays
        self._capacities = capacities
        self._recurrence_mode = recurrence_mode

    async def _check_day_free(
        self,
        branch_id: UUID,
        day_of_week: int,
        start: time,
        end: time,
        rule_id: Optional[UUID] = None,
    ) -> None:
        existing = await self._schedules.find_rule_for_day(branch_id, day_of_week)
        if existing is not None and existing.id != rule_id:
            day = schedule_day_name(day_of_week)
            if existing.overlaps(start, end):
                raise ScheduleValidationError(
                    f"Working hours on {day} overlap an existing rule "
                    f"({existing.start_time}-{existing.end_time})",
                    field="start_time",
                )
            raise ScheduleValidationError(
                f"A schedule rule for {day} already exists", field="day_of_week"
            )

        # Recurring holidays close a whole weekday in WEEKDAY mode; the rule
        # is still stored and takes effect once the holiday is removed
        if self._recurrence_mode == HolidayRecurrenceMode.WEEKDAY:
            if await self._holidays.has_active_recurring_holiday_on_day(branch_id, day_of_week):
                logger.warning(
                    f"Branch {branch_id}: {schedule_day_name(day_of_week)} is closed by a "
                    f"recurring holiday, rule will not open it"
                )

    # Weekly rules

    async def create_rule(self, **data: Any) -> WeeklyScheduleRule:
        """
        Create a weekly schedule rule.

        Args:
            **data: Fields of ScheduleRuleInput

        Returns:
            Stored rule

        Raises:
            ScheduleValidationError: Invalid window or the day is already configured
        """
        payload = parse_model(ScheduleRuleInput, error_cls=ScheduleValidationError, **data)
        await self._check_day_free(
            payload.branch_id, payload.day_of_week, payload.start_time, payload.end_time
        )
        rule = await self._schedules.create_rule(WeeklyScheduleRule(**payload.model_dump()))
        logger.info(
            f"Created schedule rule for branch {rule.branch_id} on "
            f"{schedule_day_name(rule.day_of_week)} {rule.start_time}-{rule.end_time}"
        )
        return rule

    async def create_rules_batch(
        self, **data: Any
    ) -> Tuple[List[WeeklyScheduleRule], Dict[int, str]]:
        """
        Apply the same working hours to several weekdays.

        Args:
            **data: Fields of ScheduleBatchInput

        Returns:
            Tuple of (created rules, error message per day that was skipped)

        Raises:
            ScheduleValidationError: If no day could be created
        """
        payload = parse_model(ScheduleBatchInput, error_cls=ScheduleValidationError, **data)
        created: List[WeeklyScheduleRule] = []
        errors: Dict[int, str] = {}

        for day in payload.days_of_week:
            try:
                rule = await self.create_rule(
                    branch_id=payload.branch_id,
                    day_of_week=day,
                    start_time=payload.start_time,
                    end_time=payload.end_time,
                    slot_duration_minutes=payload.slot_duration_minutes,
                    max_capacity_per_slot=payload.max_capacity_per_slot,
                )
                created.append(rule)
            except ScheduleValidationError as e:
                errors[day] = e.message

        if not created:
            raise ScheduleValidationError(
                "No schedule rules created: "
                + "; ".join(f"{schedule_day_name(d)}: {msg}" for d, msg in errors.items()),
                field="days_of_week",
            )
        if errors:
            logger.warning(f"Batch schedule skipped {len(errors)} day(s): {errors}")
        return created, errors

    async def update_rule(self, rule_id: UUID, **changes: Any) -> WeeklyScheduleRule:
        """
        Update fields of a weekly rule.

        Raises:
            RecordNotFoundError: Rule does not exist
            ScheduleValidationError: Resulting rule is invalid or collides with another day
        """
        current = await self._schedules.get_rule(rule_id)
        if current is None:
            raise RecordNotFoundError("WeeklyScheduleRule", rule_id)

        merged = {
            "branch_id": current.branch_id,
            "day_of_week": current.day_of_week,
            "start_time": current.start_time,
            "end_time": current.end_time,
            "slot_duration_minutes": current.slot_duration_minutes,
            "max_capacity_per_slot": current.max_capacity_per_slot,
            "is_active": current.is_active,
        }
        merged.update({k: v for k, v in changes.items() if k != "branch_id"})
        payload = parse_model(ScheduleRuleInput, error_cls=ScheduleValidationError, **merged)

        reactivated = payload.is_active and not current.is_active
        if payload.day_of_week != current.day_of_week or reactivated:
            await self._check_day_free(
                payload.branch_id,
                payload.day_of_week,
                payload.start_time,
                payload.end_time,
                rule_id=rule_id,
            )

        updated = await self._schedules.update_rule(replace(current, **payload.model_dump()))
        if updated is None:
            raise RecordNotFoundError("WeeklyScheduleRule", rule_id)
        logger.info(f"Updated schedule rule {rule_id}")
        return updated

    async def delete_rule(self, rule_id: UUID) -> None:
        """Soft-delete a weekly rule."""
        if not await self._schedules.soft_delete_rule(rule_id):
            raise RecordNotFoundError("WeeklyScheduleRule", rule_id)
        logger.info(f"Deleted schedule rule {rule_id}")

    async def list_rules(
        self, branch_id: UUID, include_inactive: bool = True
    ) -> List[WeeklyScheduleRule]:
        """Rules of a branch ordered by weekday."""
        return await self._schedules.list_rules(branch_id, include_inactive=include_inactive)

    # Holidays

    async def create_holiday(self, **data: Any) -> HolidayException:
        """
        Close a branch on a date.

        Args:
            **data: Fields of HolidayInput

        Returns:
            Stored holiday

        Raises:
            ScheduleValidationError: Invalid input or the date is already closed
        """
        payload = parse_model(HolidayInput, error_cls=ScheduleValidationError, **data)
        holiday = await self._holidays.create_holiday(HolidayException(**payload.model_dump()))
        if holiday.is_recurring_yearly and self._recurrence_mode == HolidayRecurrenceMode.WEEKDAY:
            logger.warning(
                f"Recurring holiday '{holiday.name}' closes every "
                f"{schedule_day_name(to_schedule_day(holiday.holiday_date))} "
                f"at branch {holiday.branch_id}"
            )
        logger.info(f"Created holiday '{holiday.name}' on {holiday.holiday_date}")
        return holiday

    async def update_holiday(self, holiday_id: UUID, **changes: Any) -> HolidayException:
        """Update fields of a holiday."""
        current = await self._holidays.get_holiday(holiday_id)
        if current is None:
            raise RecordNotFoundError("HolidayException", holiday_id)

        merged = {
            "branch_id": current.branch_id,
            "holiday_date": current.holiday_date,
            "name": current.name,
            "reason": current.reason,
            "is_recurring_yearly": current.is_recurring_yearly,
            "is_active": current.is_active,
        }
        merged.update({k: v for k, v in changes.items() if k != "branch_id"})
        payload = parse_model(HolidayInput, error_cls=ScheduleValidationError, **merged)

        updated = await self._holidays.update_holiday(replace(current, **payload.model_dump()))
        if updated is None:
            raise RecordNotFoundError("HolidayException", holiday_id)
        logger.info(f"Updated holiday {holiday_id}")
        return updated

    async def delete_holiday(self, holiday_id: UUID) -> None:
        """Soft-delete a holiday."""
        if not await self._holidays.soft_delete_holiday(holiday_id):
            raise RecordNotFoundError("HolidayException", holiday_id)
        logger.info(f"Deleted holiday {holiday_id}")

    async def list_holidays(self, branch_id: UUID, start: date, end: date) -> List[HolidayException]:
        """Holidays in [start, end] plus every recurring holiday of the branch."""
        return await self._holidays.list_effective_holidays(branch_id, start, end)

    # Capacity overrides

    async def set_capacity_override(self, **data: Any) -> DailyCapacityOverride:
        """
        Insert or replace the slot counts of a branch on a date.

        Args:
            **data: Fields of CapacityOverrideInput; ``expected_version`` makes
                the update conditional on the stored row_version

        Returns:
            Stored row

        Raises:
            ScheduleValidationError: Counts out of range
            ConcurrentModificationError: ``expected_version`` is stale
        """
        payload = parse_model(CapacityOverrideInput, error_cls=ScheduleValidationError, **data)
        row = await self._capacities.upsert_override(
            DailyCapacityOverride(
                branch_id=payload.branch_id,
                capacity_date=payload.capacity_date,
                total_slots=payload.total_slots,
                available_slots=payload.available_slots,
                service_type_id=payload.service_type_id,
                is_override=payload.is_override,
            ),
            expected_version=payload.expected_version,
        )
        logger.info(
            f"Capacity for branch {row.branch_id} on {row.capacity_date}: "
            f"{row.available_slots}/{row.total_slots} (version {row.row_version})"
        )
        return row

    async def delete_capacity_override(self, override_id: UUID) -> None:
        """Remove a capacity row."""
        if not await self._capacities.delete_override(override_id):
            raise RecordNotFoundError("DailyCapacityOverride", override_id)
        logger.info(f"Deleted capacity override {override_id}")

    async def list_capacity_overrides(
        self, branch_id: UUID, start: date, end: date
    ) -> List[DailyCapacityOverride]:
        """Capacity rows of a branch in [start, end]."""
        return await self._capacities.list_overrides(branch_id, start, end)
