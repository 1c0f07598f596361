"""Holiday exception storage."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

import asyncpg
from loguru import logger

from ..core.calendar import to_schedule_day
from ..core.exceptions import ScheduleValidationError
from ..models.entities import HolidayException
from .base import PostgresRepository


class HolidayRepository(ABC):
    """Abstract store for branch holidays."""

    @abstractmethod
    async def get_holiday(self, holiday_id: UUID) -> Optional[HolidayException]:
        """Get a non-deleted holiday by ID."""
        pass

    @abstractmethod
    async def find_by_date(self, branch_id: UUID, holiday_date: date) -> Optional[HolidayException]:
        """Get the non-deleted holiday of a branch on an exact date."""
        pass

    @abstractmethod
    async def list_effective_holidays(
        self, branch_id: UUID, start: date, end: date
    ) -> List[HolidayException]:
        """
        List active holidays that can close a date in [start, end].

        Returns every active one-off holiday dated inside the range plus every
        active yearly-recurring holiday regardless of its stored date.

        Args:
            branch_id: Branch ID
            start: First date of the range
            end: Last date of the range (inclusive)

        Returns:
            Matching holidays
        """
        pass

    @abstractmethod
    async def has_active_recurring_holiday_on_day(self, branch_id: UUID, day_of_week: int) -> bool:
        """Check for an active yearly-recurring holiday whose date falls on ``day_of_week``."""
        pass

    @abstractmethod
    async def create_holiday(self, holiday: HolidayException) -> HolidayException:
        """
        Store a new holiday.

        Raises:
            ScheduleValidationError: If the branch already has a holiday on that date
        """
        pass

    @abstractmethod
    async def update_holiday(self, holiday: HolidayException) -> Optional[HolidayException]:
        """Persist changes to a holiday; None if it no longer exists."""
        pass

    @abstractmethod
    async def soft_delete_holiday(self, holiday_id: UUID) -> bool:
        """Mark a holiday deleted and inactive."""
        pass


def _duplicate_date_error(holiday: HolidayException) -> ScheduleValidationError:
    return ScheduleValidationError(
        f"Branch {holiday.branch_id} already has a holiday on {holiday.holiday_date.isoformat()}",
        field="holiday_date",
    )


class PostgresHolidayRepository(PostgresRepository, HolidayRepository):
    """Holidays in the ``center_holidays`` table."""

    def _row_to_holiday(self, row: Any) -> HolidayException:
        return HolidayException(
            id=row["id"],
            branch_id=row["branch_id"],
            holiday_date=row["holiday_date"],
            name=row["name"],
            reason=row.get("reason"),
            is_recurring_yearly=row["is_recurring_yearly"],
            is_active=row["is_active"],
            is_deleted=row["is_deleted"],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    async def get_holiday(self, holiday_id: UUID) -> Optional[HolidayException]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM center_holidays WHERE id = $1 AND is_deleted = FALSE", holiday_id
            )
            return self._row_to_holiday(row) if row else None

    async def find_by_date(self, branch_id: UUID, holiday_date: date) -> Optional[HolidayException]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                SELECT * FROM center_holidays
                WHERE branch_id = $1 AND holiday_date = $2 AND is_deleted = FALSE
                """,
                branch_id,
                holiday_date,
            )
            return self._row_to_holiday(row) if row else None

    async def list_effective_holidays(
        self, branch_id: UUID, start: date, end: date
    ) -> List[HolidayException]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM center_holidays
                WHERE branch_id = $1 AND is_active = TRUE AND is_deleted = FALSE
                  AND (holiday_date BETWEEN $2 AND $3 OR is_recurring_yearly = TRUE)
                ORDER BY holiday_date
                """,
                branch_id,
                start,
                end,
            )
            return [self._row_to_holiday(row) for row in rows]

    async def has_active_recurring_holiday_on_day(self, branch_id: UUID, day_of_week: int) -> bool:
        # EXTRACT(DOW) uses the same 0=Sunday encoding as schedule rules
        async with self._connection() as conn:
            found = await conn.fetchval(
                """
                SELECT EXISTS (
                    SELECT 1 FROM center_holidays
                    WHERE branch_id = $1 AND is_active = TRUE AND is_deleted = FALSE
                      AND is_recurring_yearly = TRUE
                      AND EXTRACT(DOW FROM holiday_date)::int = $2
                )
                """,
                branch_id,
                day_of_week,
            )
            return bool(found)

    async def create_holiday(self, holiday: HolidayException) -> HolidayException:
        async with self._connection() as conn:
            try:
                row = await conn.fetchrow(
                    """
                    INSERT INTO center_holidays (
                        id, branch_id, holiday_date, name, reason, is_recurring_yearly, is_active
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7)
                    RETURNING *
                    """,
                    holiday.id,
                    holiday.branch_id,
                    holiday.holiday_date,
                    holiday.name,
                    holiday.reason,
                    holiday.is_recurring_yearly,
                    holiday.is_active,
                )
            except asyncpg.UniqueViolationError as e:
                raise _duplicate_date_error(holiday) from e
            logger.info(
                f"Created holiday '{holiday.name}' on {holiday.holiday_date} "
                f"for branch {holiday.branch_id}"
            )
            return self._row_to_holiday(row)

    async def update_holiday(self, holiday: HolidayException) -> Optional[HolidayException]:
        async with self._connection() as conn:
            try:
                row = await conn.fetchrow(
                    """
                    UPDATE center_holidays
                    SET holiday_date = $2, name = $3, reason = $4,
                        is_recurring_yearly = $5, is_active = $6, updated_at = NOW()
                    WHERE id = $1 AND is_deleted = FALSE
                    RETURNING *
                    """,
                    holiday.id,
                    holiday.holiday_date,
                    holiday.name,
                    holiday.reason,
                    holiday.is_recurring_yearly,
                    holiday.is_active,
                )
            except asyncpg.UniqueViolationError as e:
                raise _duplicate_date_error(holiday) from e
            return self._row_to_holiday(row) if row else None

    async def soft_delete_holiday(self, holiday_id: UUID) -> bool:
        async with self._connection() as conn:
            result = await conn.execute(
                """
                UPDATE center_holidays
                SET is_deleted = TRUE, is_active = FALSE, updated_at = NOW()
                WHERE id = $1 AND is_deleted = FALSE
                """,
                holiday_id,
            )
            return self._affected(result) > 0


class InMemoryHolidayRepository(HolidayRepository):
    """In-memory holiday store (single process only)."""

    def __init__(self) -> None:
        self._holidays: Dict[UUID, HolidayException] = {}
        self._lock = asyncio.Lock()

    def _live(self, branch_id: UUID) -> List[HolidayException]:
        return [h for h in self._holidays.values() if h.branch_id == branch_id and not h.is_deleted]

    def _date_taken(self, holiday: HolidayException) -> bool:
        return any(
            h.holiday_date == holiday.holiday_date and h.id != holiday.id
            for h in self._live(holiday.branch_id)
        )

    async def get_holiday(self, holiday_id: UUID) -> Optional[HolidayException]:
        holiday = self._holidays.get(holiday_id)
        if holiday is None or holiday.is_deleted:
            return None
        return replace(holiday)

    async def find_by_date(self, branch_id: UUID, holiday_date: date) -> Optional[HolidayException]:
        for holiday in self._live(branch_id):
            if holiday.holiday_date == holiday_date:
                return replace(holiday)
        return None

    async def list_effective_holidays(
        self, branch_id: UUID, start: date, end: date
    ) -> List[HolidayException]:
        matches = [
            h
            for h in self._live(branch_id)
            if h.is_active and (start <= h.holiday_date <= end or h.is_recurring_yearly)
        ]
        return [replace(h) for h in sorted(matches, key=lambda h: h.holiday_date)]

    async def has_active_recurring_holiday_on_day(self, branch_id: UUID, day_of_week: int) -> bool:
        return any(
            h.is_active and h.is_recurring_yearly and to_schedule_day(h.holiday_date) == day_of_week
            for h in self._live(branch_id)
        )

    async def create_holiday(self, holiday: HolidayException) -> HolidayException:
        async with self._lock:
            if self._date_taken(holiday):
                raise _duplicate_date_error(holiday)
            now = datetime.now(timezone.utc)
            stored = replace(holiday, created_at=now, updated_at=now)
            self._holidays[stored.id] = stored
            return replace(stored)

    async def update_holiday(self, holiday: HolidayException) -> Optional[HolidayException]:
        async with self._lock:
            current = self._holidays.get(holiday.id)
            if current is None or current.is_deleted:
                return None
            if self._date_taken(holiday):
                raise _duplicate_date_error(holiday)
            stored = replace(
                holiday,
                branch_id=current.branch_id,
                created_at=current.created_at,
                updated_at=datetime.now(timezone.utc),
            )
            self._holidays[holiday.id] = stored
            return replace(stored)

    async def soft_delete_holiday(self, holiday_id: UUID) -> bool:
        async with self._lock:
            holiday = self._holidays.get(holiday_id)
            if holiday is None or holiday.is_deleted:
                return False
            holiday.is_deleted = True
            holiday.is_active = False
            holiday.updated_at = datetime.now(timezone.utc)
            return True
