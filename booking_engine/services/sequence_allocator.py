"""Issue per-branch, per-year appointment codes."""

from datetime import date
from typing import Any, Callable, Optional
from uuid import UUID

from loguru import logger

from ..constants import Sequence
from ..core.calendar import utc_today
from ..models.entities import SequenceCounter
from ..repositories.sequence_repository import SequenceRepository


def format_appointment_code(branch_code: str, year: int, number: int) -> str:
    """
    Format an appointment code as ``BRANCHCODE-YYYY-NNNN``.

    Args:
        branch_code: Branch code
        year: Sequence year
        number: Sequence number (zero-padded to at least 4 digits)

    Returns:
        Appointment code
    """
    return Sequence.CODE_FORMAT.format(branch_code=branch_code, year=year, number=number)


class SequenceAllocator:
    """Hands out gapless appointment numbers.

    Numbers for one (branch, year) start at 1 and rise by exactly one per
    successful call. When issued inside a booking transaction (``conn``), a
    rolled-back booking also rolls back its number.
    """

    def __init__(
        self,
        sequences: SequenceRepository,
        max_sequence: int = Sequence.MAX_NUMBER,
        clock: Callable[[], date] = utc_today,
    ):
        """
        Initialize sequence allocator.

        Args:
            sequences: Counter store
            max_sequence: Ceiling for newly created counters
            clock: Returns today's date; its year selects the counter
        """
        self._sequences = sequences
        self.max_sequence = max_sequence
        self._clock = clock

    def _year(self, year: Optional[int]) -> int:
        return year if year is not None else self._clock().year

    async def generate_appointment_code(
        self,
        branch_id: UUID,
        branch_code: Optional[str] = None,
        year: Optional[int] = None,
        conn: Any = None,
    ) -> str:
        """
        Issue the next appointment code of a branch.

        Args:
            branch_id: Branch ID
            branch_code: Code printed in the appointment code; falls back to the
                code stored on the counter, then to ``UNKNOWN``
            year: Counter year (defaults to the current year)
            conn: Connection of an enclosing booking transaction

        Returns:
            Code formatted as ``BRANCHCODE-YYYY-NNNN``

        Raises:
            SequenceExhaustedError: If the branch used every number of the year
        """
        code_year = self._year(year)
        issued = await self._sequences.issue_next(
            branch_id,
            code_year,
            (branch_code or "").strip(),
            self.max_sequence,
            conn=conn,
        )
        prefix = (branch_code or "").strip() or issued.branch_code or Sequence.UNKNOWN_BRANCH_CODE
        code = format_appointment_code(prefix, code_year, issued.number)
        logger.debug(f"Issued appointment code {code} for branch {branch_id}")
        return code

    async def get_current_sequence_number(self, branch_id: UUID, year: Optional[int] = None) -> int:
        """
        Next number the counter will issue.

        Returns:
            Next number, or 0 when the counter does not exist yet
        """
        counter = await self._sequences.get_counter(branch_id, self._year(year))
        return counter.current_sequence if counter else 0

    async def get_sequence_stats(
        self, branch_id: UUID, year: Optional[int] = None
    ) -> Optional[SequenceCounter]:
        """Counter state of a branch and year."""
        return await self._sequences.get_counter(branch_id, self._year(year))

    async def raise_max_sequence(
        self, branch_id: UUID, new_max: int, year: Optional[int] = None
    ) -> SequenceCounter:
        """
        Raise the ceiling of an exhausted (or nearly exhausted) counter.

        Raises:
            ValidationError: If the counter is missing or ``new_max`` is not higher
        """
        return await self._sequences.raise_max(branch_id, self._year(year), new_max)
