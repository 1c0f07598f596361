"""Custom exception classes for the booking engine."""

from datetime import date, datetime, time, timezone
from typing import Any, Dict, Optional

from .enums import RejectionReason


class BookingEngineError(Exception):
    """Base exception for the booking engine."""

    def __init__(
        self, message: str, recoverable: bool = True, details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize booking engine error.

        Args:
            message: Error message
            recoverable: Whether the error is recoverable with retry
            details: Additional error details
        """
        self.message = message
        self.recoverable = recoverable
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class ValidationError(BookingEngineError):
    """Input validation error."""

    def __init__(self, message: str = "Validation error", field: Optional[str] = None):
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation
        """
        self.field = field
        if field:
            message = f"Validation error for field '{field}': {message}"
        super().__init__(message, recoverable=False, details={"field": field} if field else {})


class ScheduleValidationError(ValidationError):
    """A schedule rule, holiday or capacity override breaks a configuration invariant."""


# Booking rejections
class BookingRejectedError(BookingEngineError):
    """Base class for business-rule rejections of a booking request."""

    def __init__(
        self,
        message: str,
        reason: RejectionReason,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.reason = reason
        payload = {"reason": reason.value}
        payload.update(details or {})
        super().__init__(message, recoverable=False, details=payload)


class SlotConflictError(BookingRejectedError):
    """Requested (branch, date, time) is already booked."""

    def __init__(self, branch_id: Any, appointment_date: date, appointment_time: time):
        super().__init__(
            f"Slot {appointment_date.isoformat()} {appointment_time.strftime('%H:%M')} "
            f"at branch {branch_id} is already booked",
            RejectionReason.SLOT_CONFLICT,
            details={
                "branch_id": str(branch_id),
                "date": appointment_date.isoformat(),
                "time": appointment_time.isoformat(),
            },
        )


class SameDayDuplicateError(BookingRejectedError):
    """Beneficiary already holds an active booking for the service on that date."""

    def __init__(self, beneficiary_id: Any, service_type_id: Any, appointment_date: date):
        super().__init__(
            f"Beneficiary {beneficiary_id} already has an appointment for service "
            f"{service_type_id} on {appointment_date.isoformat()}",
            RejectionReason.SAME_DAY_DUPLICATE,
            details={
                "beneficiary_id": str(beneficiary_id),
                "service_type_id": str(service_type_id),
                "date": appointment_date.isoformat(),
            },
        )


class ActiveServiceDuplicateError(BookingRejectedError):
    """Beneficiary already holds an active booking for the service on another date."""

    def __init__(self, beneficiary_id: Any, service_type_id: Any):
        super().__init__(
            f"Beneficiary {beneficiary_id} already has an active appointment for service "
            f"{service_type_id}",
            RejectionReason.ACTIVE_SERVICE_DUPLICATE,
            details={
                "beneficiary_id": str(beneficiary_id),
                "service_type_id": str(service_type_id),
            },
        )


class SequenceExhaustedError(BookingEngineError):
    """Branch has used every appointment number available for the year."""

    def __init__(self, branch_id: Any, year: int, max_sequence: int):
        super().__init__(
            f"Appointment sequence exhausted for branch {branch_id} in {year} "
            f"(max: {max_sequence}). Raise the maximum sequence number to continue.",
            recoverable=False,
            details={"branch_id": str(branch_id), "year": year, "max_sequence": max_sequence},
        )


class InvalidStatusTransitionError(BookingEngineError):
    """Appointment cannot move from its current status to the requested one."""

    def __init__(self, appointment_id: Any, current: str, target: str):
        super().__init__(
            f"Appointment {appointment_id} cannot move from {current} to {target}",
            recoverable=False,
            details={"appointment_id": str(appointment_id), "current": current, "target": target},
        )


# Database Errors
class DatabaseError(BookingEngineError):
    """Base class for database-related errors."""

    def __init__(
        self,
        message: str = "Database error occurred",
        recoverable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable, details)


class DatabaseNotConnectedError(DatabaseError):
    """Raised when operation attempted without connection."""

    def __init__(self):
        super().__init__(
            "Database connection is not established. Call connect() first.", recoverable=False
        )


class DatabasePoolTimeoutError(DatabaseError):
    """Raised when database connection pool is exhausted and timeout occurs."""

    def __init__(self, timeout: float, pool_size: int):
        super().__init__(
            f"Database connection pool exhausted after {timeout}s (pool size: {pool_size}). "
            "Consider increasing DB_POOL_SIZE or optimizing database queries.",
            recoverable=True,
            details={"timeout": timeout, "pool_size": pool_size},
        )


class TransientStorageError(DatabaseError):
    """Deadlock, serialization failure or lock timeout; safe to retry."""

    def __init__(self, message: str = "Transient storage error", sqlstate: Optional[str] = None):
        super().__init__(
            message, recoverable=True, details={"sqlstate": sqlstate} if sqlstate else {}
        )


class ConcurrentModificationError(DatabaseError):
    """Row changed underneath an optimistic update."""

    def __init__(self, resource_type: str, resource_id: Any, expected_version: int):
        super().__init__(
            f"{resource_type} '{resource_id}' was modified concurrently "
            f"(expected version {expected_version})",
            recoverable=True,
            details={
                "resource_type": resource_type,
                "resource_id": str(resource_id),
                "expected_version": expected_version,
            },
        )


class RecordNotFoundError(DatabaseError):
    """Raised when a database record is not found."""

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(
            f"{resource_type} with id '{resource_id}' not found",
            recoverable=False,
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )


class BranchDirectoryError(BookingEngineError):
    """Branch directory lookup failed."""

    def __init__(
        self,
        message: str = "Branch directory request failed",
        status: Optional[int] = None,
        recoverable: bool = True,
    ):
        super().__init__(message, recoverable, details={"status": status} if status else {})
