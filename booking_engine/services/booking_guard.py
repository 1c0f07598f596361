"""Booking invariants checked before an appointment is written."""

from dataclasses import dataclass
from typing import Optional

from ..core.enums import RejectionReason
from ..core.exceptions import (
    ActiveServiceDuplicateError,
    BookingRejectedError,
    SameDayDuplicateError,
    SlotConflictError,
)
from ..models.schemas import BookingRequest
from ..repositories.appointment_repository import BookingTransaction


@dataclass(frozen=True)
class GuardDecision:
    """Outcome of the booking checks."""

    reason: Optional[RejectionReason] = None

    @property
    def approved(self) -> bool:
        """True when no check failed."""
        return self.reason is None


APPROVED = GuardDecision()


class BookingGuard:
    """Runs the booking checks in a fixed order.

    1. The slot is not held by another live appointment.
    2. The beneficiary has no live appointment for the service on that date.
    3. The beneficiary has no live appointment for the service on any date.

    The checks read through the booking transaction, so they see the same
    state the insert will be written against.
    """

    async def evaluate(self, request: BookingRequest, tx: BookingTransaction) -> GuardDecision:
        """
        Evaluate a booking request.

        Args:
            request: Validated booking request
            tx: Open booking transaction

        Returns:
            APPROVED or a decision carrying the first failing reason
        """
        if await tx.slot_taken(request.branch_id, request.appointment_date, request.appointment_time):
            return GuardDecision(RejectionReason.SLOT_CONFLICT)
        if await tx.has_same_day_duplicate(
            request.beneficiary_id, request.service_type_id, request.appointment_date
        ):
            return GuardDecision(RejectionReason.SAME_DAY_DUPLICATE)
        if await tx.has_active_service_duplicate(request.beneficiary_id, request.service_type_id):
            return GuardDecision(RejectionReason.ACTIVE_SERVICE_DUPLICATE)
        return APPROVED

    @staticmethod
    def to_error(request: BookingRequest, reason: RejectionReason) -> BookingRejectedError:
        """Typed exception for a rejection reason."""
        if reason == RejectionReason.SLOT_CONFLICT:
            return SlotConflictError(
                request.branch_id, request.appointment_date, request.appointment_time
            )
        if reason == RejectionReason.SAME_DAY_DUPLICATE:
            return SameDayDuplicateError(
                request.beneficiary_id, request.service_type_id, request.appointment_date
            )
        return ActiveServiceDuplicateError(request.beneficiary_id, request.service_type_id)

    async def enforce(self, request: BookingRequest, tx: BookingTransaction) -> None:
        """
        Evaluate and raise on rejection.

        Raises:
            BookingRejectedError: Subclass matching the first failing check
        """
        decision = await self.evaluate(request, tx)
        if not decision.approved:
            raise self.to_error(request, decision.reason)  # type: ignore[arg-type]
