"""Daily capacity override storage."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from ..core.exceptions import ConcurrentModificationError
from ..models.database import ALL_SERVICES_SENTINEL
from ..models.entities import DailyCapacityOverride
from .base import PostgresRepository


class CapacityRepository(ABC):
    """Abstract store for per-date capacity overrides."""

    @abstractmethod
    async def get_override(
        self, branch_id: UUID, capacity_date: date, service_type_id: Optional[UUID] = None
    ) -> Optional[DailyCapacityOverride]:
        """Get the row for exactly (branch, date, service); None service means all services."""
        pass

    @abstractmethod
    async def list_overrides(
        self, branch_id: UUID, start: date, end: date
    ) -> List[DailyCapacityOverride]:
        """List rows of a branch dated within [start, end]."""
        pass

    @abstractmethod
    async def upsert_override(
        self, override: DailyCapacityOverride, expected_version: Optional[int] = None
    ) -> DailyCapacityOverride:
        """
        Insert a row or replace the counts of the existing one.

        Args:
            override: Row to store
            expected_version: When given, the update only applies if the stored
                row_version still matches

        Returns:
            Stored row with its new row_version

        Raises:
            ConcurrentModificationError: If ``expected_version`` is stale
        """
        pass

    @abstractmethod
    async def delete_override(self, override_id: UUID) -> bool:
        """Delete a row."""
        pass

    @abstractmethod
    async def decrement_available(
        self,
        branch_id: UUID,
        capacity_date: date,
        service_type_id: Optional[UUID],
        conn: Any = None,
    ) -> bool:
        """
        Take one slot from the matching row when any are left.

        The service-specific row is preferred over the all-services row.

        Returns:
            True if a row was decremented
        """
        pass

    @abstractmethod
    async def increment_available(
        self,
        branch_id: UUID,
        capacity_date: date,
        service_type_id: Optional[UUID],
        conn: Any = None,
    ) -> bool:
        """Give one slot back to the matching row without passing its total."""
        pass


class PostgresCapacityRepository(PostgresRepository, CapacityRepository):
    """Capacity rows in the ``center_daily_capacity`` table."""

    def _row_to_override(self, row: Any) -> DailyCapacityOverride:
        return DailyCapacityOverride(
            id=row["id"],
            branch_id=row["branch_id"],
            capacity_date=row["capacity_date"],
            service_type_id=row.get("service_type_id"),
            total_slots=row["total_slots"],
            available_slots=row["available_slots"],
            is_override=row["is_override"],
            row_version=row["row_version"],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    async def get_override(
        self, branch_id: UUID, capacity_date: date, service_type_id: Optional[UUID] = None
    ) -> Optional[DailyCapacityOverride]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                SELECT * FROM center_daily_capacity
                WHERE branch_id = $1 AND capacity_date = $2
                  AND service_type_id IS NOT DISTINCT FROM $3
                """,
                branch_id,
                capacity_date,
                service_type_id,
            )
            return self._row_to_override(row) if row else None

    async def list_overrides(
        self, branch_id: UUID, start: date, end: date
    ) -> List[DailyCapacityOverride]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM center_daily_capacity
                WHERE branch_id = $1 AND capacity_date BETWEEN $2 AND $3
                ORDER BY capacity_date
                """,
                branch_id,
                start,
                end,
            )
            return [self._row_to_override(row) for row in rows]

    async def upsert_override(
        self, override: DailyCapacityOverride, expected_version: Optional[int] = None
    ) -> DailyCapacityOverride:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO center_daily_capacity (
                    id, branch_id, capacity_date, service_type_id,
                    total_slots, available_slots, is_override
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (
                    branch_id, capacity_date,
                    COALESCE(service_type_id, '{ALL_SERVICES_SENTINEL}'::uuid)
                )
                DO UPDATE SET
                    total_slots = EXCLUDED.total_slots,
                    available_slots = EXCLUDED.available_slots,
                    is_override = EXCLUDED.is_override,
                    row_version = center_daily_capacity.row_version + 1,
                    updated_at = NOW()
                WHERE $8::int IS NULL OR center_daily_capacity.row_version = $8::int
                RETURNING *
                """,
                override.id,
                override.branch_id,
                override.capacity_date,
                override.service_type_id,
                override.total_slots,
                override.available_slots,
                override.is_override,
                expected_version,
            )
            if row is None:
                raise ConcurrentModificationError(
                    "DailyCapacityOverride", override.id, expected_version or 0
                )
            return self._row_to_override(row)

    async def delete_override(self, override_id: UUID) -> bool:
        async with self._connection() as conn:
            result = await conn.execute(
                "DELETE FROM center_daily_capacity WHERE id = $1", override_id
            )
            return self._affected(result) > 0

    async def _adjust(
        self,
        branch_id: UUID,
        capacity_date: date,
        service_type_id: Optional[UUID],
        delta: int,
        conn: Any,
    ) -> bool:
        guard = "available_slots > 0" if delta < 0 else "available_slots < total_slots"
        async with self._connection(conn) as c:
            result = await c.execute(
                f"""
                UPDATE center_daily_capacity
                SET available_slots = available_slots + $4,
                    row_version = row_version + 1,
                    updated_at = NOW()
                WHERE id = (
                    SELECT id FROM center_daily_capacity
                    WHERE branch_id = $1 AND capacity_date = $2
                      AND (service_type_id = $3 OR service_type_id IS NULL)
                    ORDER BY service_type_id NULLS LAST
                    LIMIT 1
                )
                AND {guard}
                """,
                branch_id,
                capacity_date,
                service_type_id,
                delta,
            )
            return self._affected(result) > 0

    async def decrement_available(
        self,
        branch_id: UUID,
        capacity_date: date,
        service_type_id: Optional[UUID],
        conn: Any = None,
    ) -> bool:
        return await self._adjust(branch_id, capacity_date, service_type_id, -1, conn)

    async def increment_available(
        self,
        branch_id: UUID,
        capacity_date: date,
        service_type_id: Optional[UUID],
        conn: Any = None,
    ) -> bool:
        return await self._adjust(branch_id, capacity_date, service_type_id, 1, conn)


class InMemoryCapacityRepository(CapacityRepository):
    """In-memory capacity store (single process only)."""

    def __init__(self) -> None:
        self._rows: Dict[UUID, DailyCapacityOverride] = {}
        self._lock = asyncio.Lock()

    def _find(
        self, branch_id: UUID, capacity_date: date, service_type_id: Optional[UUID]
    ) -> Optional[DailyCapacityOverride]:
        for row in self._rows.values():
            if (
                row.branch_id == branch_id
                and row.capacity_date == capacity_date
                and row.service_type_id == service_type_id
            ):
                return row
        return None

    def _match_for_service(
        self, branch_id: UUID, capacity_date: date, service_type_id: Optional[UUID]
    ) -> Optional[DailyCapacityOverride]:
        if service_type_id is not None:
            specific = self._find(branch_id, capacity_date, service_type_id)
            if specific is not None:
                return specific
        return self._find(branch_id, capacity_date, None)

    async def get_override(
        self, branch_id: UUID, capacity_date: date, service_type_id: Optional[UUID] = None
    ) -> Optional[DailyCapacityOverride]:
        row = self._find(branch_id, capacity_date, service_type_id)
        return replace(row) if row else None

    async def list_overrides(
        self, branch_id: UUID, start: date, end: date
    ) -> List[DailyCapacityOverride]:
        rows = [
            r for r in self._rows.values() if r.branch_id == branch_id and start <= r.capacity_date <= end
        ]
        return [replace(r) for r in sorted(rows, key=lambda r: r.capacity_date)]

    async def upsert_override(
        self, override: DailyCapacityOverride, expected_version: Optional[int] = None
    ) -> DailyCapacityOverride:
        async with self._lock:
            now = datetime.now(timezone.utc)
            current = self._find(override.branch_id, override.capacity_date, override.service_type_id)
            if current is None:
                stored = replace(override, row_version=0, created_at=now, updated_at=now)
                self._rows[stored.id] = stored
                return replace(stored)
            if expected_version is not None and current.row_version != expected_version:
                raise ConcurrentModificationError(
                    "DailyCapacityOverride", current.id, expected_version
                )
            current.total_slots = override.total_slots
            current.available_slots = override.available_slots
            current.is_override = override.is_override
            current.row_version += 1
            current.updated_at = now
            return replace(current)

    async def delete_override(self, override_id: UUID) -> bool:
        async with self._lock:
            return self._rows.pop(override_id, None) is not None

    async def decrement_available(
        self,
        branch_id: UUID,
        capacity_date: date,
        service_type_id: Optional[UUID],
        conn: Any = None,
    ) -> bool:
        row = self._match_for_service(branch_id, capacity_date, service_type_id)
        if row is None or row.available_slots <= 0:
            return False
        row.available_slots -= 1
        row.row_version += 1
        return True

    async def increment_available(
        self,
        branch_id: UUID,
        capacity_date: date,
        service_type_id: Optional[UUID],
        conn: Any = None,
    ) -> bool:
        row = self._match_for_service(branch_id, capacity_date, service_type_id)
        if row is None or row.available_slots >= row.total_slots:
            return False
        row.available_slots += 1
        row.row_version += 1
        return True
