"""Appointment storage and the transactional booking scope."""

import asyncio
import hashlib
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import date, datetime, time, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Optional, Set
from uuid import UUID

import asyncpg
from loguru import logger

from ..core.enums import AppointmentStatus
from ..core.exceptions import SlotConflictError, ValidationError
from ..models.database import ACTIVE_SLOT_INDEX, IDEMPOTENCY_KEY_INDEX
from ..models.entities import Appointment, AppointmentStatusRecord
from .base import PostgresRepository

_TERMINAL_VALUES = tuple(s.value for s in AppointmentStatus.terminal())

# Runs inside a status transition with the updated appointment and the
# connection of the transaction (None for in-memory stores)
TransitionHook = Callable[[Appointment, Any], Awaitable[None]]


def advisory_lock_key(*parts: Any) -> int:
    """
    Derive a signed 64-bit advisory lock key from arbitrary parts.

    Args:
        *parts: Values identifying the locked resource

    Returns:
        Key suitable for ``pg_advisory_xact_lock(bigint)``
    """
    raw = "|".join(str(p) for p in parts).encode("utf-8")
    return int.from_bytes(hashlib.blake2b(raw, digest_size=8).digest(), "big", signed=True)


class BookingTransaction(ABC):
    """Reads and writes that must happen atomically for one booking.

    ``connection`` is the underlying database connection when the store is
    transactional, so other repositories can join the same transaction.
    """

    connection: Any = None

    @abstractmethod
    async def find_by_idempotency_key(self, key: str) -> Optional[Appointment]:
        """Get the appointment created with ``key``."""
        pass

    @abstractmethod
    async def slot_taken(
        self, branch_id: UUID, appointment_date: date, appointment_time: time
    ) -> bool:
        """Check for a live appointment at (branch, date, time)."""
        pass

    @abstractmethod
    async def has_same_day_duplicate(
        self, beneficiary_id: UUID, service_type_id: UUID, appointment_date: date
    ) -> bool:
        """Check for a live appointment of the beneficiary for the service on the date."""
        pass

    @abstractmethod
    async def has_active_service_duplicate(
        self, beneficiary_id: UUID, service_type_id: UUID
    ) -> bool:
        """Check for a live appointment of the beneficiary for the service on any date."""
        pass

    @abstractmethod
    async def insert(self, appointment: Appointment) -> Appointment:
        """
        Insert an appointment.

        Raises:
            SlotConflictError: If storage rejects a second live appointment for the slot
        """
        pass

    @abstractmethod
    async def record_status(self, record: AppointmentStatusRecord) -> None:
        """Append a status history row."""
        pass


class AppointmentRepository(ABC):
    """Abstract appointment store."""

    @abstractmethod
    def booking_scope(
        self,
        branch_id: UUID,
        appointment_date: date,
        beneficiary_id: UUID,
        service_type_id: UUID,
    ) -> Any:
        """
        Open an exclusive booking scope.

        Concurrent scopes for the same (branch, date) or the same
        (beneficiary, service) run one after another. Changes made through the
        yielded transaction are committed when the block exits normally and
        discarded when it raises.

        Returns:
            Async context manager yielding a BookingTransaction
        """
        pass

    @abstractmethod
    async def get_appointment(self, appointment_id: UUID) -> Optional[Appointment]:
        """Get a non-deleted appointment by ID."""
        pass

    @abstractmethod
    async def find_by_code(self, appointment_code: str) -> Optional[Appointment]:
        """Get an appointment by its code."""
        pass

    @abstractmethod
    async def list_by_beneficiary(
        self, beneficiary_id: UUID, include_terminal: bool = True, limit: int = 100
    ) -> List[Appointment]:
        """List appointments of a beneficiary, newest date first."""
        pass

    @abstractmethod
    async def list_for_branch(
        self, branch_id: UUID, start: date, end: date, include_terminal: bool = False
    ) -> List[Appointment]:
        """List appointments of a branch dated within [start, end] ordered by date and time."""
        pass

    @abstractmethod
    async def booked_times(self, branch_id: UUID, appointment_date: date) -> Set[time]:
        """Times held by live appointments at a branch on a date."""
        pass

    @abstractmethod
    async def booked_times_in_range(
        self, branch_id: UUID, start: date, end: date
    ) -> Dict[date, Set[time]]:
        """Times held by live appointments at a branch, keyed by date, for [start, end]."""
        pass

    @abstractmethod
    async def transition_status(
        self,
        appointment_id: UUID,
        from_statuses: Iterable[AppointmentStatus],
        to_status: AppointmentStatus,
        reason: Optional[str] = None,
        changed_by: Optional[UUID] = None,
        cancellation_reason: Optional[str] = None,
        action_notes: Optional[str] = None,
        on_applied: Optional[TransitionHook] = None,
    ) -> Optional[Appointment]:
        """
        Move an appointment to ``to_status`` if it is currently in ``from_statuses``.

        The status change, its history row and ``on_applied`` run in one
        transaction; an exception from the hook rolls the change back.

        Returns:
            Updated appointment, or None if it was missing or in another status
        """
        pass

    @abstractmethod
    async def get_status_history(self, appointment_id: UUID) -> List[AppointmentStatusRecord]:
        """Status history of an appointment, oldest first."""
        pass


def _row_to_appointment(row: Any) -> Appointment:
    """
    Convert database row to Appointment entity.

    Args:
        row: Database row

    Returns:
        Appointment entity
    """
    return Appointment(
        id=row["id"],
        beneficiary_id=row["beneficiary_id"],
        branch_id=row["branch_id"],
        service_type_id=row["service_type_id"],
        appointment_date=row["appointment_date"],
        appointment_time=row["appointment_time"],
        slot_duration_minutes=row["slot_duration_minutes"],
        status=AppointmentStatus(row["status"]),
        priority=row["priority"],
        appointment_code=row.get("appointment_code"),
        notes=row.get("notes"),
        idempotency_key=row.get("idempotency_key"),
        created_by=row.get("created_by"),
        cancellation_reason=row.get("cancellation_reason"),
        action_notes=row.get("action_notes"),
        is_deleted=row["is_deleted"],
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
        cancelled_at=row.get("cancelled_at"),
        completed_at=row.get("completed_at"),
    )


def _row_to_status_record(row: Any) -> AppointmentStatusRecord:
    return AppointmentStatusRecord(
        id=row["id"],
        appointment_id=row["appointment_id"],
        status=AppointmentStatus(row["status"]),
        reason=row.get("reason"),
        changed_by=row.get("changed_by"),
        changed_at=row.get("changed_at"),
    )


async def _insert_status_record(conn: asyncpg.Connection, record: AppointmentStatusRecord) -> None:
    await conn.execute(
        """
        INSERT INTO appointment_status_history (id, appointment_id, status, reason, changed_by)
        VALUES ($1, $2, $3, $4, $5)
        """,
        record.id,
        record.appointment_id,
        record.status.value,
        record.reason,
        record.changed_by,
    )


class _PostgresBookingTransaction(BookingTransaction):
    """Booking transaction bound to one connection inside ``conn.transaction()``."""

    def __init__(self, conn: asyncpg.Connection):
        self.connection = conn

    async def find_by_idempotency_key(self, key: str) -> Optional[Appointment]:
        row = await self.connection.fetchrow(
            "SELECT * FROM appointments WHERE idempotency_key = $1", key
        )
        return _row_to_appointment(row) if row else None

    async def slot_taken(
        self, branch_id: UUID, appointment_date: date, appointment_time: time
    ) -> bool:
        found = await self.connection.fetchval(
            """
            SELECT EXISTS (
                SELECT 1 FROM appointments
                WHERE branch_id = $1 AND appointment_date = $2 AND appointment_time = $3
                  AND is_deleted = FALSE AND status <> ALL($4::text[])
            )
            """,
            branch_id,
            appointment_date,
            appointment_time,
            list(_TERMINAL_VALUES),
        )
        return bool(found)

    async def has_same_day_duplicate(
        self, beneficiary_id: UUID, service_type_id: UUID, appointment_date: date
    ) -> bool:
        found = await self.connection.fetchval(
            """
            SELECT EXISTS (
                SELECT 1 FROM appointments
                WHERE beneficiary_id = $1 AND service_type_id = $2 AND appointment_date = $3
                  AND is_deleted = FALSE AND status <> ALL($4::text[])
            )
            """,
            beneficiary_id,
            service_type_id,
            appointment_date,
            list(_TERMINAL_VALUES),
        )
        return bool(found)

    async def has_active_service_duplicate(
        self, beneficiary_id: UUID, service_type_id: UUID
    ) -> bool:
        found = await self.connection.fetchval(
            """
            SELECT EXISTS (
                SELECT 1 FROM appointments
                WHERE beneficiary_id = $1 AND service_type_id = $2
                  AND is_deleted = FALSE AND status <> ALL($3::text[])
            )
            """,
            beneficiary_id,
            service_type_id,
            list(_TERMINAL_VALUES),
        )
        return bool(found)

    async def insert(self, appointment: Appointment) -> Appointment:
        try:
            row = await self.connection.fetchrow(
                """
                INSERT INTO appointments (
                    id, beneficiary_id, branch_id, service_type_id,
                    appointment_date, appointment_time, slot_duration_minutes,
                    status, priority, appointment_code, notes, idempotency_key, created_by
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
                RETURNING *
                """,
                appointment.id,
                appointment.beneficiary_id,
                appointment.branch_id,
                appointment.service_type_id,
                appointment.appointment_date,
                appointment.appointment_time,
                appointment.slot_duration_minutes,
                appointment.status.value,
                appointment.priority,
                appointment.appointment_code,
                appointment.notes,
                appointment.idempotency_key,
                appointment.created_by,
            )
        except asyncpg.UniqueViolationError as e:
            if e.constraint_name == ACTIVE_SLOT_INDEX:
                raise SlotConflictError(
                    appointment.branch_id, appointment.appointment_date, appointment.appointment_time
                ) from e
            if e.constraint_name == IDEMPOTENCY_KEY_INDEX:
                raise ValidationError(
                    "Idempotency key is already bound to another appointment",
                    field="idempotency_key",
                ) from e
            raise
        return _row_to_appointment(row)

    async def record_status(self, record: AppointmentStatusRecord) -> None:
        await _insert_status_record(self.connection, record)


class PostgresAppointmentRepository(PostgresRepository, AppointmentRepository):
    """Appointments in the ``appointments`` and ``appointment_status_history`` tables."""

    @asynccontextmanager
    async def booking_scope(
        self,
        branch_id: UUID,
        appointment_date: date,
        beneficiary_id: UUID,
        service_type_id: UUID,
    ) -> AsyncIterator[BookingTransaction]:
        # Every scope takes the slot key before the beneficiary key, so two
        # scopes can never wait on each other in opposite order.
        async with self._connection() as conn:
            async with conn.transaction():
                await conn.execute(
                    "SELECT pg_advisory_xact_lock($1)",
                    advisory_lock_key("slot", branch_id, appointment_date.isoformat()),
                )
                await conn.execute(
                    "SELECT pg_advisory_xact_lock($1)",
                    advisory_lock_key("beneficiary", beneficiary_id, service_type_id),
                )
                yield _PostgresBookingTransaction(conn)

    async def get_appointment(self, appointment_id: UUID) -> Optional[Appointment]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM appointments WHERE id = $1 AND is_deleted = FALSE", appointment_id
            )
            return _row_to_appointment(row) if row else None

    async def find_by_code(self, appointment_code: str) -> Optional[Appointment]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM appointments WHERE appointment_code = $1", appointment_code
            )
            return _row_to_appointment(row) if row else None

    async def list_by_beneficiary(
        self, beneficiary_id: UUID, include_terminal: bool = True, limit: int = 100
    ) -> List[Appointment]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM appointments
                WHERE beneficiary_id = $1 AND is_deleted = FALSE
                  AND ($2 OR status <> ALL($3::text[]))
                ORDER BY appointment_date DESC, appointment_time DESC
                LIMIT $4
                """,
                beneficiary_id,
                include_terminal,
                list(_TERMINAL_VALUES),
                limit,
            )
            return [_row_to_appointment(row) for row in rows]

    async def list_for_branch(
        self, branch_id: UUID, start: date, end: date, include_terminal: bool = False
    ) -> List[Appointment]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM appointments
                WHERE branch_id = $1 AND appointment_date BETWEEN $2 AND $3
                  AND is_deleted = FALSE
                  AND ($4 OR status <> ALL($5::text[]))
                ORDER BY appointment_date, appointment_time
                """,
                branch_id,
                start,
                end,
                include_terminal,
                list(_TERMINAL_VALUES),
            )
            return [_row_to_appointment(row) for row in rows]

    async def booked_times(self, branch_id: UUID, appointment_date: date) -> Set[time]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT appointment_time FROM appointments
                WHERE branch_id = $1 AND appointment_date = $2
                  AND is_deleted = FALSE AND status <> ALL($3::text[])
                """,
                branch_id,
                appointment_date,
                list(_TERMINAL_VALUES),
            )
            return {row["appointment_time"] for row in rows}

    async def booked_times_in_range(
        self, branch_id: UUID, start: date, end: date
    ) -> Dict[date, Set[time]]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT appointment_date, appointment_time FROM appointments
                WHERE branch_id = $1 AND appointment_date BETWEEN $2 AND $3
                  AND is_deleted = FALSE AND status <> ALL($4::text[])
                """,
                branch_id,
                start,
                end,
                list(_TERMINAL_VALUES),
            )
            booked: Dict[date, Set[time]] = defaultdict(set)
            for row in rows:
                booked[row["appointment_date"]].add(row["appointment_time"])
            return dict(booked)

    async def transition_status(
        self,
        appointment_id: UUID,
        from_statuses: Iterable[AppointmentStatus],
        to_status: AppointmentStatus,
        reason: Optional[str] = None,
        changed_by: Optional[UUID] = None,
        cancellation_reason: Optional[str] = None,
        action_notes: Optional[str] = None,
        on_applied: Optional[TransitionHook] = None,
    ) -> Optional[Appointment]:
        async with self._connection() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    """
                    UPDATE appointments
                    SET status = $3,
                        cancellation_reason = COALESCE($4, cancellation_reason),
                        action_notes = COALESCE($5, action_notes),
                        cancelled_at = CASE WHEN $3 = 'CANCELLED' THEN NOW() ELSE cancelled_at END,
                        completed_at = CASE WHEN $3 = 'COMPLETED' THEN NOW() ELSE completed_at END,
                        updated_at = NOW()
                    WHERE id = $1 AND is_deleted = FALSE AND status = ANY($2::text[])
                    RETURNING *
                    """,
                    appointment_id,
                    [s.value for s in from_statuses],
                    to_status.value,
                    cancellation_reason,
                    action_notes,
                )
                if row is None:
                    return None
                await _insert_status_record(
                    conn,
                    AppointmentStatusRecord(
                        appointment_id=appointment_id,
                        status=to_status,
                        reason=reason,
                        changed_by=changed_by,
                    ),
                )
                updated = _row_to_appointment(row)
                if on_applied is not None:
                    await on_applied(updated, conn)
                return updated

    async def get_status_history(self, appointment_id: UUID) -> List[AppointmentStatusRecord]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM appointment_status_history
                WHERE appointment_id = $1
                ORDER BY changed_at, id
                """,
                appointment_id,
            )
            return [_row_to_status_record(row) for row in rows]


class _InMemoryBookingTransaction(BookingTransaction):
    """Stages writes and applies them to the owning store on commit."""

    def __init__(self, store: "InMemoryAppointmentRepository"):
        self._store = store
        self._pending: List[Appointment] = []
        self._pending_history: List[AppointmentStatusRecord] = []

    def _visible(self) -> List[Appointment]:
        return list(self._store._appointments.values()) + self._pending

    async def find_by_idempotency_key(self, key: str) -> Optional[Appointment]:
        for appointment in self._visible():
            if appointment.idempotency_key == key:
                return replace(appointment)
        return None

    async def slot_taken(
        self, branch_id: UUID, appointment_date: date, appointment_time: time
    ) -> bool:
        return any(
            a.holds_slot
            and a.branch_id == branch_id
            and a.appointment_date == appointment_date
            and a.appointment_time == appointment_time
            for a in self._visible()
        )

    async def has_same_day_duplicate(
        self, beneficiary_id: UUID, service_type_id: UUID, appointment_date: date
    ) -> bool:
        return any(
            a.holds_slot
            and a.beneficiary_id == beneficiary_id
            and a.service_type_id == service_type_id
            and a.appointment_date == appointment_date
            for a in self._visible()
        )

    async def has_active_service_duplicate(
        self, beneficiary_id: UUID, service_type_id: UUID
    ) -> bool:
        return any(
            a.holds_slot
            and a.beneficiary_id == beneficiary_id
            and a.service_type_id == service_type_id
            for a in self._visible()
        )

    async def insert(self, appointment: Appointment) -> Appointment:
        if await self.slot_taken(
            appointment.branch_id, appointment.appointment_date, appointment.appointment_time
        ):
            raise SlotConflictError(
                appointment.branch_id, appointment.appointment_date, appointment.appointment_time
            )
        if appointment.idempotency_key and await self.find_by_idempotency_key(
            appointment.idempotency_key
        ):
            raise ValidationError(
                "Idempotency key is already bound to another appointment",
                field="idempotency_key",
            )
        now = datetime.now(timezone.utc)
        stored = replace(appointment, created_at=now, updated_at=now)
        self._pending.append(stored)
        return replace(stored)

    async def record_status(self, record: AppointmentStatusRecord) -> None:
        self._pending_history.append(
            replace(record, changed_at=record.changed_at or datetime.now(timezone.utc))
        )

    def commit(self) -> None:
        for appointment in self._pending:
            self._store._appointments[appointment.id] = appointment
        for record in self._pending_history:
            self._store._history[record.appointment_id].append(record)
        self._pending.clear()
        self._pending_history.clear()


class InMemoryAppointmentRepository(AppointmentRepository):
    """In-memory appointment store (single process only).

    One lock serializes every booking scope, which is stricter than the
    per-key locking of the PostgreSQL store but gives the same guarantees.
    """

    def __init__(self) -> None:
        self._appointments: Dict[UUID, Appointment] = {}
        self._history: Dict[UUID, List[AppointmentStatusRecord]] = defaultdict(list)
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def booking_scope(
        self,
        branch_id: UUID,
        appointment_date: date,
        beneficiary_id: UUID,
        service_type_id: UUID,
    ) -> AsyncIterator[BookingTransaction]:
        async with self._lock:
            tx = _InMemoryBookingTransaction(self)
            yield tx
            tx.commit()
            logger.debug(f"Committed booking scope for branch {branch_id} on {appointment_date}")

    def _live(self) -> List[Appointment]:
        return [a for a in self._appointments.values() if not a.is_deleted]

    async def get_appointment(self, appointment_id: UUID) -> Optional[Appointment]:
        appointment = self._appointments.get(appointment_id)
        if appointment is None or appointment.is_deleted:
            return None
        return replace(appointment)

    async def find_by_code(self, appointment_code: str) -> Optional[Appointment]:
        for appointment in self._appointments.values():
            if appointment.appointment_code == appointment_code:
                return replace(appointment)
        return None

    async def list_by_beneficiary(
        self, beneficiary_id: UUID, include_terminal: bool = True, limit: int = 100
    ) -> List[Appointment]:
        matches = [
            a
            for a in self._live()
            if a.beneficiary_id == beneficiary_id and (include_terminal or not a.status.is_terminal)
        ]
        matches.sort(key=lambda a: (a.appointment_date, a.appointment_time), reverse=True)
        return [replace(a) for a in matches[:limit]]

    async def list_for_branch(
        self, branch_id: UUID, start: date, end: date, include_terminal: bool = False
    ) -> List[Appointment]:
        matches = [
            a
            for a in self._live()
            if a.branch_id == branch_id
            and start <= a.appointment_date <= end
            and (include_terminal or not a.status.is_terminal)
        ]
        matches.sort(key=lambda a: (a.appointment_date, a.appointment_time))
        return [replace(a) for a in matches]

    async def booked_times(self, branch_id: UUID, appointment_date: date) -> Set[time]:
        return {
            a.appointment_time
            for a in self._appointments.values()
            if a.holds_slot and a.branch_id == branch_id and a.appointment_date == appointment_date
        }

    async def booked_times_in_range(
        self, branch_id: UUID, start: date, end: date
    ) -> Dict[date, Set[time]]:
        booked: Dict[date, Set[time]] = defaultdict(set)
        for a in self._appointments.values():
            if a.holds_slot and a.branch_id == branch_id and start <= a.appointment_date <= end:
                booked[a.appointment_date].add(a.appointment_time)
        return dict(booked)

    async def transition_status(
        self,
        appointment_id: UUID,
        from_statuses: Iterable[AppointmentStatus],
        to_status: AppointmentStatus,
        reason: Optional[str] = None,
        changed_by: Optional[UUID] = None,
        cancellation_reason: Optional[str] = None,
        action_notes: Optional[str] = None,
        on_applied: Optional[TransitionHook] = None,
    ) -> Optional[Appointment]:
        async with self._lock:
            appointment = self._appointments.get(appointment_id)
            if (
                appointment is None
                or appointment.is_deleted
                or appointment.status not in set(from_statuses)
            ):
                return None
            now = datetime.now(timezone.utc)
            updated = replace(appointment, status=to_status, updated_at=now)
            if cancellation_reason is not None:
                updated.cancellation_reason = cancellation_reason
            if action_notes is not None:
                updated.action_notes = action_notes
            if to_status == AppointmentStatus.CANCELLED:
                updated.cancelled_at = now
            elif to_status == AppointmentStatus.COMPLETED:
                updated.completed_at = now
            # Nothing is stored if the hook fails
            if on_applied is not None:
                await on_applied(replace(updated), None)
            self._appointments[appointment_id] = updated
            self._history[appointment_id].append(
                AppointmentStatusRecord(
                    appointment_id=appointment_id,
                    status=to_status,
                    reason=reason,
                    changed_by=changed_by,
                    changed_at=now,
                )
            )
            return replace(updated)

    async def get_status_history(self, appointment_id: UUID) -> List[AppointmentStatusRecord]:
        return [replace(r) for r in self._history.get(appointment_id, [])]
