"""Tests for the exception hierarchy."""

from datetime import date, time
from uuid import uuid4

from booking_engine.core.enums import RejectionReason
from booking_engine.core.exceptions import (
    ActiveServiceDuplicateError,
    BookingEngineError,
    BookingRejectedError,
    BranchDirectoryError,
    ConcurrentModificationError,
    DatabaseError,
    DatabasePoolTimeoutError,
    SameDayDuplicateError,
    SequenceExhaustedError,
    SlotConflictError,
    TransientStorageError,
    ValidationError,
)


def test_to_dict():
    """Test error serialization."""
    error = BookingEngineError("boom", recoverable=False, details={"a": 1})

    data = error.to_dict()

    assert data["error"] == "BookingEngineError"
    assert data["message"] == "boom"
    assert data["recoverable"] is False
    assert data["details"] == {"a": 1}
    assert "timestamp" in data


def test_rejections_carry_reason_and_are_final():
    """Test the booking rejection family."""
    branch_id, beneficiary_id, service_id = uuid4(), uuid4(), uuid4()
    errors = [
        (SlotConflictError(branch_id, date(2025, 6, 15), time(8, 0)), RejectionReason.SLOT_CONFLICT),
        (
            SameDayDuplicateError(beneficiary_id, service_id, date(2025, 6, 15)),
            RejectionReason.SAME_DAY_DUPLICATE,
        ),
        (
            ActiveServiceDuplicateError(beneficiary_id, service_id),
            RejectionReason.ACTIVE_SERVICE_DUPLICATE,
        ),
    ]

    for error, reason in errors:
        assert isinstance(error, BookingRejectedError)
        assert error.reason == reason
        assert error.details["reason"] == reason.value
        assert error.recoverable is False


def test_slot_conflict_details():
    """Test slot details on conflicts."""
    branch_id = uuid4()
    error = SlotConflictError(branch_id, date(2025, 6, 15), time(8, 0))

    assert error.details["branch_id"] == str(branch_id)
    assert "08:00" in error.message


def test_sequence_exhausted():
    """Test that exhaustion is not retryable."""
    error = SequenceExhaustedError(uuid4(), 2025, 9999)

    assert error.recoverable is False
    assert error.details["max_sequence"] == 9999


def test_recoverable_storage_errors():
    """Test which storage errors may be retried."""
    assert TransientStorageError("deadlock", sqlstate="40P01").recoverable is True
    assert DatabasePoolTimeoutError(timeout=5.0, pool_size=10).recoverable is True
    assert ConcurrentModificationError("Row", uuid4(), 3).recoverable is True
    assert isinstance(TransientStorageError(), DatabaseError)


def test_validation_error_field():
    """Test field prefixing."""
    error = ValidationError("must be positive", field="radius_km")

    assert error.field == "radius_km"
    assert "radius_km" in error.message
    assert error.recoverable is False


def test_branch_directory_error_status():
    """Test directory error details."""
    error = BranchDirectoryError("unavailable", status=503)

    assert error.details == {"status": 503}
    assert error.recoverable is True
