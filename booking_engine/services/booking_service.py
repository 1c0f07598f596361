"""Book appointments and move them through their lifecycle."""

from datetime import date
from typing import Any, Dict, FrozenSet, List, Optional
from uuid import UUID

from loguru import logger

from ..constants import Booking
from ..core.enums import AppointmentStatus
from ..core.exceptions import InvalidStatusTransitionError, RecordNotFoundError
from ..core.logger import correlation_scope
from ..core.retry import get_storage_retry
from ..models.entities import Appointment, AppointmentStatusRecord
from ..models.schemas import BookingRequest
from ..repositories.appointment_repository import AppointmentRepository
from ..repositories.capacity_repository import CapacityRepository
from .booking_guard import BookingGuard
from .sequence_allocator import SequenceAllocator

# Target status -> statuses it may be reached from
ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.REQUESTED}),
    AppointmentStatus.COMPLETED: frozenset(
        {AppointmentStatus.REQUESTED, AppointmentStatus.CONFIRMED}
    ),
    AppointmentStatus.CANCELLED: frozenset(
        {AppointmentStatus.REQUESTED, AppointmentStatus.CONFIRMED}
    ),
}


class BookingService:
    """Books appointments atomically and applies status transitions."""

    def __init__(
        self,
        appointments: AppointmentRepository,
        allocator: SequenceAllocator,
        guard: Optional[BookingGuard] = None,
        capacities: Optional[CapacityRepository] = None,
        retry_attempts: int = 3,
    ):
        """
        Initialize booking service.

        Args:
            appointments: Appointment store
            allocator: Appointment code issuer
            guard: Booking checks (default BookingGuard)
            capacities: Capacity store whose counts follow bookings and cancellations
            retry_attempts: Attempts for transient storage errors
        """
        self._appointments = appointments
        self._allocator = allocator
        self._guard = guard or BookingGuard()
        self._capacities = capacities
        self._retry_attempts = retry_attempts

    async def book_appointment(self, request: BookingRequest) -> Appointment:
        """
        Book an appointment.

        The idempotency lookup, the booking checks, code issuance, the insert,
        the creation history row and the capacity decrement all run in one
        booking scope. A retried request carrying an already-used idempotency
        key gets the original appointment back.

        Args:
            request: Validated booking request

        Returns:
            Stored appointment with its code

        Raises:
            SlotConflictError: Slot already booked
            SameDayDuplicateError: Beneficiary already booked the service that day
            ActiveServiceDuplicateError: Beneficiary already holds an active booking for the service
            SequenceExhaustedError: Branch has no appointment numbers left this year
        """
        with correlation_scope():
            book = get_storage_retry(self._retry_attempts)(self._book_once)
            return await book(request)

    async def _book_once(self, request: BookingRequest) -> Appointment:
        async with self._appointments.booking_scope(
            request.branch_id,
            request.appointment_date,
            request.beneficiary_id,
            request.service_type_id,
        ) as tx:
            if request.idempotency_key:
                existing = await tx.find_by_idempotency_key(request.idempotency_key)
                if existing is not None:
                    logger.info(
                        f"Idempotent replay of booking {existing.id} "
                        f"(key={request.idempotency_key})"
                    )
                    return existing

            try:
                await self._guard.enforce(request, tx)
            except Exception as e:
                logger.info(f"Booking rejected for beneficiary {request.beneficiary_id}: {e}")
                raise

            code = await self._allocator.generate_appointment_code(
                request.branch_id, request.branch_code, conn=tx.connection
            )
            appointment = await tx.insert(
                Appointment(
                    beneficiary_id=request.beneficiary_id,
                    branch_id=request.branch_id,
                    service_type_id=request.service_type_id,
                    appointment_date=request.appointment_date,
                    appointment_time=request.appointment_time,
                    slot_duration_minutes=request.slot_duration_minutes,
                    status=request.status,
                    priority=request.priority.value,
                    appointment_code=code,
                    notes=request.notes,
                    idempotency_key=request.idempotency_key,
                    created_by=request.created_by,
                )
            )
            await tx.record_status(
                AppointmentStatusRecord(
                    appointment_id=appointment.id,
                    status=appointment.status,
                    reason=Booking.CREATED_REASON,
                    changed_by=request.created_by,
                )
            )
            if self._capacities is not None:
                await self._capacities.decrement_available(
                    request.branch_id,
                    request.appointment_date,
                    request.service_type_id,
                    conn=tx.connection,
                )

        logger.info(
            f"Booked appointment {appointment.appointment_code} for beneficiary "
            f"{appointment.beneficiary_id} at branch {appointment.branch_id} "
            f"on {appointment.appointment_date} {appointment.appointment_time}"
        )
        return appointment

    async def _transition(
        self,
        appointment_id: UUID,
        target: AppointmentStatus,
        reason: Optional[str],
        changed_by: Optional[UUID],
        **fields: Any,
    ) -> Appointment:
        current = await self._appointments.get_appointment(appointment_id)
        if current is None:
            raise RecordNotFoundError("Appointment", appointment_id)

        allowed = ALLOWED_TRANSITIONS[target]
        if current.status not in allowed:
            raise InvalidStatusTransitionError(appointment_id, current.status.value, target.value)

        updated = await self._appointments.transition_status(
            appointment_id, allowed, target, reason=reason, changed_by=changed_by, **fields
        )
        if updated is None:
            # Status changed between the read and the update
            latest = await self._appointments.get_appointment(appointment_id)
            raise InvalidStatusTransitionError(
                appointment_id, latest.status.value if latest else "DELETED", target.value
            )
        logger.info(f"Appointment {appointment_id}: {current.status.value} -> {target.value}")
        return updated

    async def confirm_appointment(
        self, appointment_id: UUID, changed_by: Optional[UUID] = None
    ) -> Appointment:
        """Move a REQUESTED appointment to CONFIRMED."""
        return await self._transition(
            appointment_id, AppointmentStatus.CONFIRMED, Booking.CONFIRMED_REASON, changed_by
        )

    async def complete_appointment(
        self,
        appointment_id: UUID,
        action_notes: Optional[str] = None,
        changed_by: Optional[UUID] = None,
    ) -> Appointment:
        """
        Mark an appointment as served.

        Args:
            appointment_id: Appointment ID
            action_notes: What was done during the visit
            changed_by: User recording the completion

        Returns:
            Updated appointment
        """
        return await self._transition(
            appointment_id,
            AppointmentStatus.COMPLETED,
            Booking.COMPLETED_REASON,
            changed_by,
            action_notes=action_notes,
        )

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        reason: str,
        changed_by: Optional[UUID] = None,
    ) -> Appointment:
        """
        Cancel an appointment and release its slot.

        Args:
            appointment_id: Appointment ID
            reason: Cancellation reason
            changed_by: User cancelling

        Returns:
            Updated appointment
        """
        return await self._transition(
            appointment_id,
            AppointmentStatus.CANCELLED,
            reason,
            changed_by,
            cancellation_reason=reason,
            on_applied=self._release_capacity if self._capacities is not None else None,
        )

    async def _release_capacity(self, appointment: Appointment, conn: Any) -> None:
        await self._capacities.increment_available(  # type: ignore[union-attr]
            appointment.branch_id,
            appointment.appointment_date,
            appointment.service_type_id,
            conn=conn,
        )

    async def get_appointment(self, appointment_id: UUID) -> Appointment:
        """
        Get an appointment.

        Raises:
            RecordNotFoundError: If it does not exist
        """
        appointment = await self._appointments.get_appointment(appointment_id)
        if appointment is None:
            raise RecordNotFoundError("Appointment", appointment_id)
        return appointment

    async def list_beneficiary_appointments(
        self, beneficiary_id: UUID, active_only: bool = False
    ) -> List[Appointment]:
        """Appointments of a beneficiary, newest first."""
        return await self._appointments.list_by_beneficiary(
            beneficiary_id, include_terminal=not active_only
        )

    async def list_branch_appointments(
        self, branch_id: UUID, start: date, end: date, include_terminal: bool = False
    ) -> List[Appointment]:
        """Appointments of a branch between two dates in slot order."""
        return await self._appointments.list_for_branch(branch_id, start, end, include_terminal)

    async def get_status_history(self, appointment_id: UUID) -> List[AppointmentStatusRecord]:
        """Status history of an appointment, oldest first."""
        return await self._appointments.get_status_history(appointment_id)
