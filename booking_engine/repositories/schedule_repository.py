"""Weekly schedule rule storage."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

import asyncpg
from loguru import logger

from ..core.exceptions import ScheduleValidationError
from ..models.entities import WeeklyScheduleRule
from .base import PostgresRepository


class ScheduleRepository(ABC):
    """Abstract store for weekly schedule rules."""

    @abstractmethod
    async def get_rule(self, rule_id: UUID) -> Optional[WeeklyScheduleRule]:
        """Get a non-deleted rule by ID."""
        pass

    @abstractmethod
    async def list_rules(
        self, branch_id: UUID, include_inactive: bool = True
    ) -> List[WeeklyScheduleRule]:
        """
        List non-deleted rules of a branch ordered by day of week.

        Args:
            branch_id: Branch ID
            include_inactive: Include rules switched off by an administrator

        Returns:
            Rules ordered by day_of_week
        """
        pass

    @abstractmethod
    async def find_rule_for_day(
        self, branch_id: UUID, day_of_week: int
    ) -> Optional[WeeklyScheduleRule]:
        """Get the non-deleted rule (active or not) for a branch and weekday."""
        pass

    @abstractmethod
    async def get_active_rule(
        self, branch_id: UUID, day_of_week: int
    ) -> Optional[WeeklyScheduleRule]:
        """Get the active rule for a branch and weekday."""
        pass

    @abstractmethod
    async def create_rule(self, rule: WeeklyScheduleRule) -> WeeklyScheduleRule:
        """
        Store a new rule.

        Raises:
            ScheduleValidationError: If the branch already has a rule for that day
        """
        pass

    @abstractmethod
    async def update_rule(self, rule: WeeklyScheduleRule) -> Optional[WeeklyScheduleRule]:
        """Persist changes to an existing rule; None if it no longer exists."""
        pass

    @abstractmethod
    async def soft_delete_rule(self, rule_id: UUID) -> bool:
        """Mark a rule deleted and inactive."""
        pass


def _duplicate_day_error(rule: WeeklyScheduleRule) -> ScheduleValidationError:
    return ScheduleValidationError(
        f"Branch {rule.branch_id} already has a schedule for day {rule.day_of_week}",
        field="day_of_week",
    )


class PostgresScheduleRepository(PostgresRepository, ScheduleRepository):
    """Weekly schedule rules in the ``weekly_schedules`` table."""

    def _row_to_rule(self, row: Any) -> WeeklyScheduleRule:
        """
        Convert database row to WeeklyScheduleRule entity.

        Args:
            row: Database row

        Returns:
            WeeklyScheduleRule entity
        """
        return WeeklyScheduleRule(
            id=row["id"],
            branch_id=row["branch_id"],
            day_of_week=row["day_of_week"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            slot_duration_minutes=row["slot_duration_minutes"],
            max_capacity_per_slot=row["max_capacity_per_slot"],
            is_active=row["is_active"],
            is_deleted=row["is_deleted"],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    async def get_rule(self, rule_id: UUID) -> Optional[WeeklyScheduleRule]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM weekly_schedules WHERE id = $1 AND is_deleted = FALSE", rule_id
            )
            return self._row_to_rule(row) if row else None

    async def list_rules(
        self, branch_id: UUID, include_inactive: bool = True
    ) -> List[WeeklyScheduleRule]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM weekly_schedules
                WHERE branch_id = $1 AND is_deleted = FALSE
                  AND ($2 OR is_active = TRUE)
                ORDER BY day_of_week
                """,
                branch_id,
                include_inactive,
            )
            return [self._row_to_rule(row) for row in rows]

    async def find_rule_for_day(
        self, branch_id: UUID, day_of_week: int
    ) -> Optional[WeeklyScheduleRule]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                SELECT * FROM weekly_schedules
                WHERE branch_id = $1 AND day_of_week = $2 AND is_deleted = FALSE
                """,
                branch_id,
                day_of_week,
            )
            return self._row_to_rule(row) if row else None

    async def get_active_rule(
        self, branch_id: UUID, day_of_week: int
    ) -> Optional[WeeklyScheduleRule]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                SELECT * FROM weekly_schedules
                WHERE branch_id = $1 AND day_of_week = $2
                  AND is_active = TRUE AND is_deleted = FALSE
                """,
                branch_id,
                day_of_week,
            )
            return self._row_to_rule(row) if row else None

    async def create_rule(self, rule: WeeklyScheduleRule) -> WeeklyScheduleRule:
        async with self._connection() as conn:
            try:
                row = await conn.fetchrow(
                    """
                    INSERT INTO weekly_schedules (
                        id, branch_id, day_of_week, start_time, end_time,
                        slot_duration_minutes, max_capacity_per_slot, is_active
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    RETURNING *
                    """,
                    rule.id,
                    rule.branch_id,
                    rule.day_of_week,
                    rule.start_time,
                    rule.end_time,
                    rule.slot_duration_minutes,
                    rule.max_capacity_per_slot,
                    rule.is_active,
                )
            except asyncpg.UniqueViolationError as e:
                raise _duplicate_day_error(rule) from e
            logger.info(f"Created schedule rule {rule.id} for branch {rule.branch_id}")
            return self._row_to_rule(row)

    async def update_rule(self, rule: WeeklyScheduleRule) -> Optional[WeeklyScheduleRule]:
        async with self._connection() as conn:
            try:
                row = await conn.fetchrow(
                    """
                    UPDATE weekly_schedules
                    SET day_of_week = $2, start_time = $3, end_time = $4,
                        slot_duration_minutes = $5, max_capacity_per_slot = $6,
                        is_active = $7, updated_at = NOW()
                    WHERE id = $1 AND is_deleted = FALSE
                    RETURNING *
                    """,
                    rule.id,
                    rule.day_of_week,
                    rule.start_time,
                    rule.end_time,
                    rule.slot_duration_minutes,
                    rule.max_capacity_per_slot,
                    rule.is_active,
                )
            except asyncpg.UniqueViolationError as e:
                raise _duplicate_day_error(rule) from e
            return self._row_to_rule(row) if row else None

    async def soft_delete_rule(self, rule_id: UUID) -> bool:
        async with self._connection() as conn:
            result = await conn.execute(
                """
                UPDATE weekly_schedules
                SET is_deleted = TRUE, is_active = FALSE, updated_at = NOW()
                WHERE id = $1 AND is_deleted = FALSE
                """,
                rule_id,
            )
            return self._affected(result) > 0


class InMemoryScheduleRepository(ScheduleRepository):
    """In-memory schedule store (single process only)."""

    def __init__(self) -> None:
        self._rules: Dict[UUID, WeeklyScheduleRule] = {}
        self._lock = asyncio.Lock()

    def _live(self, branch_id: UUID) -> List[WeeklyScheduleRule]:
        return [r for r in self._rules.values() if r.branch_id == branch_id and not r.is_deleted]

    async def get_rule(self, rule_id: UUID) -> Optional[WeeklyScheduleRule]:
        rule = self._rules.get(rule_id)
        if rule is None or rule.is_deleted:
            return None
        return replace(rule)

    async def list_rules(
        self, branch_id: UUID, include_inactive: bool = True
    ) -> List[WeeklyScheduleRule]:
        rules = [r for r in self._live(branch_id) if include_inactive or r.is_active]
        return [replace(r) for r in sorted(rules, key=lambda r: r.day_of_week)]

    async def find_rule_for_day(
        self, branch_id: UUID, day_of_week: int
    ) -> Optional[WeeklyScheduleRule]:
        for rule in self._live(branch_id):
            if rule.day_of_week == day_of_week:
                return replace(rule)
        return None

    async def get_active_rule(
        self, branch_id: UUID, day_of_week: int
    ) -> Optional[WeeklyScheduleRule]:
        rule = await self.find_rule_for_day(branch_id, day_of_week)
        return rule if rule is not None and rule.is_active else None

    async def create_rule(self, rule: WeeklyScheduleRule) -> WeeklyScheduleRule:
        async with self._lock:
            if any(r.day_of_week == rule.day_of_week for r in self._live(rule.branch_id)):
                raise _duplicate_day_error(rule)
            now = datetime.now(timezone.utc)
            stored = replace(rule, created_at=now, updated_at=now)
            self._rules[stored.id] = stored
            return replace(stored)

    async def update_rule(self, rule: WeeklyScheduleRule) -> Optional[WeeklyScheduleRule]:
        async with self._lock:
            current = self._rules.get(rule.id)
            if current is None or current.is_deleted:
                return None
            if any(
                r.day_of_week == rule.day_of_week and r.id != rule.id
                for r in self._live(rule.branch_id)
            ):
                raise _duplicate_day_error(rule)
            stored = replace(
                rule,
                branch_id=current.branch_id,
                created_at=current.created_at,
                updated_at=datetime.now(timezone.utc),
            )
            self._rules[rule.id] = stored
            return replace(stored)

    async def soft_delete_rule(self, rule_id: UUID) -> bool:
        async with self._lock:
            rule = self._rules.get(rule_id)
            if rule is None or rule.is_deleted:
                return False
            rule.is_deleted = True
            rule.is_active = False
            rule.updated_at = datetime.now(timezone.utc)
            return True
