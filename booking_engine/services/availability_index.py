"""Filter candidate slots against existing bookings."""

from datetime import date, time
from typing import Dict, Iterable, List, Set
from uuid import UUID

from ..models.entities import WorkingWindow
from ..repositories.appointment_repository import AppointmentRepository
from .slot_enumerator import enumerate_window


def filter_free(slots: Iterable[time], booked: Set[time]) -> List[time]:
    """Keep the slots not present in ``booked``, preserving order."""
    return [slot for slot in slots if slot not in booked]


class AvailabilityIndex:
    """Looks up booked times with one query per branch and date (or date range)."""

    def __init__(self, appointments: AppointmentRepository):
        self._appointments = appointments

    async def free_slots(self, branch_id: UUID, day: date, slots: Iterable[time]) -> List[time]:
        """
        Subset of ``slots`` without a live appointment.

        Args:
            branch_id: Branch ID
            day: Date of the slots
            slots: Candidate start times

        Returns:
            Free start times in input order
        """
        booked = await self._appointments.booked_times(branch_id, day)
        return filter_free(slots, booked)

    async def free_slots_for_window(self, branch_id: UUID, window: WorkingWindow) -> List[time]:
        """Free start times of a resolved working window."""
        return await self.free_slots(branch_id, window.window_date, enumerate_window(window))

    async def booked_by_date(self, branch_id: UUID, start: date, end: date) -> Dict[date, Set[time]]:
        """Booked times of a branch for every date in [start, end] in one lookup."""
        return await self._appointments.booked_times_in_range(branch_id, start, end)
