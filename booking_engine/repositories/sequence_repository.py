"""Appointment code counter storage.

Issuing a number is a single atomic step in every backend: there is no
read-the-counter-then-write-it-back window in which two callers could obtain
the same number.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, NamedTuple, Optional, Tuple
from uuid import UUID

from loguru import logger

from ..constants import Sequence
from ..core.exceptions import SequenceExhaustedError, ValidationError
from ..models.entities import SequenceCounter
from .base import PostgresRepository


class IssuedNumber(NamedTuple):
    """A number taken from a counter together with the counter's stored branch code."""

    number: int
    branch_code: str


class SequenceRepository(ABC):
    """Abstract store for per-branch, per-year counters."""

    @abstractmethod
    async def issue_next(
        self,
        branch_id: UUID,
        year: int,
        branch_code: str,
        max_sequence: int,
        conn: Any = None,
    ) -> IssuedNumber:
        """
        Issue the next number of the (branch, year) counter.

        The counter is created on first use starting at 1 with ``max_sequence``
        as its ceiling; existing counters keep their stored ceiling.

        Args:
            branch_id: Branch ID
            year: Sequence year
            branch_code: Code stored when the counter is created
            max_sequence: Ceiling for a newly created counter
            conn: Connection of an enclosing transaction, if any

        Returns:
            Issued number and stored branch code

        Raises:
            SequenceExhaustedError: If the counter has passed its ceiling
        """
        pass

    @abstractmethod
    async def get_counter(self, branch_id: UUID, year: int) -> Optional[SequenceCounter]:
        """Get the counter of a branch and year."""
        pass

    @abstractmethod
    async def raise_max(self, branch_id: UUID, year: int, new_max: int) -> SequenceCounter:
        """
        Raise the ceiling of an existing counter.

        Raises:
            ValidationError: If the counter is missing or ``new_max`` does not raise it
        """
        pass


class PostgresSequenceRepository(PostgresRepository, SequenceRepository):
    """Counters in the ``appointment_sequences`` table."""

    def _row_to_counter(self, row: Any) -> SequenceCounter:
        return SequenceCounter(
            branch_id=row["branch_id"],
            sequence_year=row["sequence_year"],
            branch_code=row["branch_code"],
            current_sequence=row["current_sequence"],
            max_sequence=row["max_sequence"],
            total_created=row["total_created"],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    async def issue_next(
        self,
        branch_id: UUID,
        year: int,
        branch_code: str,
        max_sequence: int,
        conn: Any = None,
    ) -> IssuedNumber:
        async with self._connection(conn) as c:
            await c.execute(
                """
                INSERT INTO appointment_sequences (
                    branch_id, sequence_year, branch_code, current_sequence, max_sequence
                )
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (branch_id, sequence_year) DO NOTHING
                """,
                branch_id,
                year,
                branch_code or Sequence.UNKNOWN_BRANCH_CODE,
                Sequence.START,
                max_sequence,
            )
            # The UPDATE takes the row lock; concurrent callers queue behind it
            row = await c.fetchrow(
                """
                UPDATE appointment_sequences
                SET current_sequence = current_sequence + 1,
                    total_created = total_created + 1,
                    updated_at = NOW()
                WHERE branch_id = $1 AND sequence_year = $2
                  AND current_sequence <= max_sequence
                RETURNING current_sequence - 1 AS issued, branch_code
                """,
                branch_id,
                year,
            )
            if row is None:
                stored_max = await c.fetchval(
                    """
                    SELECT max_sequence FROM appointment_sequences
                    WHERE branch_id = $1 AND sequence_year = $2
                    """,
                    branch_id,
                    year,
                )
                logger.error(f"Appointment sequence exhausted for branch {branch_id}/{year}")
                raise SequenceExhaustedError(branch_id, year, stored_max or max_sequence)
            return IssuedNumber(row["issued"], row["branch_code"])

    async def get_counter(self, branch_id: UUID, year: int) -> Optional[SequenceCounter]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                SELECT * FROM appointment_sequences
                WHERE branch_id = $1 AND sequence_year = $2
                """,
                branch_id,
                year,
            )
            return self._row_to_counter(row) if row else None

    async def raise_max(self, branch_id: UUID, year: int, new_max: int) -> SequenceCounter:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                UPDATE appointment_sequences
                SET max_sequence = $3, updated_at = NOW()
                WHERE branch_id = $1 AND sequence_year = $2 AND max_sequence < $3
                RETURNING *
                """,
                branch_id,
                year,
                new_max,
            )
            if row is None:
                raise ValidationError(
                    f"No counter for branch {branch_id}/{year} with a ceiling below {new_max}",
                    field="max_sequence",
                )
            logger.warning(f"Raised appointment sequence ceiling for {branch_id}/{year} to {new_max}")
            return self._row_to_counter(row)


class InMemorySequenceRepository(SequenceRepository):
    """In-memory counters (single process only)."""

    def __init__(self) -> None:
        self._counters: Dict[Tuple[UUID, int], SequenceCounter] = {}
        self._lock = asyncio.Lock()

    async def issue_next(
        self,
        branch_id: UUID,
        year: int,
        branch_code: str,
        max_sequence: int,
        conn: Any = None,
    ) -> IssuedNumber:
        async with self._lock:
            key = (branch_id, year)
            counter = self._counters.get(key)
            now = datetime.now(timezone.utc)
            if counter is None:
                counter = SequenceCounter(
                    branch_id=branch_id,
                    sequence_year=year,
                    branch_code=branch_code or Sequence.UNKNOWN_BRANCH_CODE,
                    max_sequence=max_sequence,
                    created_at=now,
                )
                self._counters[key] = counter
            if counter.is_exhausted:
                logger.error(f"Appointment sequence exhausted for branch {branch_id}/{year}")
                raise SequenceExhaustedError(branch_id, year, counter.max_sequence)
            issued = counter.current_sequence
            counter.current_sequence += 1
            counter.total_created += 1
            counter.updated_at = now
            return IssuedNumber(issued, counter.branch_code)

    async def get_counter(self, branch_id: UUID, year: int) -> Optional[SequenceCounter]:
        counter = self._counters.get((branch_id, year))
        return replace(counter) if counter else None

    async def raise_max(self, branch_id: UUID, year: int, new_max: int) -> SequenceCounter:
        async with self._lock:
            counter = self._counters.get((branch_id, year))
            if counter is None or counter.max_sequence >= new_max:
                raise ValidationError(
                    f"No counter for branch {branch_id}/{year} with a ceiling below {new_max}",
                    field="max_sequence",
                )
            counter.max_sequence = new_max
            counter.updated_at = datetime.now(timezone.utc)
            logger.warning(f"Raised appointment sequence ceiling for {branch_id}/{year} to {new_max}")
            return replace(counter)
