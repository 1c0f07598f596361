"""Tests for input validation models."""

from datetime import date, time
from uuid import uuid4

import pytest

from booking_engine.core.enums import AppointmentPriority, AppointmentStatus, PreferenceType
from booking_engine.core.exceptions import ScheduleValidationError, ValidationError
from booking_engine.models.schemas import (
    BookingRequest,
    CapacityOverrideInput,
    ScheduleBatchInput,
    SearchCriteria,
    parse_model,
)
from factories import booking


class TestParseModel:
    """Test cases for parse_model."""

    def test_returns_model(self):
        """Test successful parsing."""
        criteria = parse_model(SearchCriteria, service_type_id=uuid4(), latitude=24.7, longitude=46.6)

        assert criteria.preference_type == PreferenceType.NEAREST_CENTER
        assert criteria.radius_km is None

    def test_maps_first_error_to_field(self):
        """Test error translation."""
        with pytest.raises(ValidationError) as exc_info:
            parse_model(SearchCriteria, service_type_id=uuid4(), latitude=24.7, longitude=200)

        assert exc_info.value.field == "longitude"
        assert exc_info.value.recoverable is False

    def test_custom_error_class(self):
        """Test raising a ValidationError subclass."""
        with pytest.raises(ScheduleValidationError):
            parse_model(
                ScheduleBatchInput,
                error_cls=ScheduleValidationError,
                branch_id=uuid4(),
                days_of_week=[],
                start_time=time(8, 0),
                end_time=time(9, 0),
            )


class TestBookingRequest:
    """Test cases for BookingRequest."""

    def test_defaults(self):
        """Test default status, priority and duration."""
        request = BookingRequest(**booking())

        assert request.status == AppointmentStatus.REQUESTED
        assert request.priority == AppointmentPriority.NORMAL
        assert request.slot_duration_minutes == 30

    def test_confirmed_initial_status_allowed(self):
        """Test that bookings may start confirmed."""
        request = BookingRequest(**booking(status="CONFIRMED"))

        assert request.status == AppointmentStatus.CONFIRMED

    def test_slot_must_end_before_midnight(self):
        """Test the same-day constraint."""
        with pytest.raises(ValueError):
            BookingRequest(**booking(appointment_time=time(23, 45), slot_duration_minutes=30))

    def test_last_slot_of_day(self):
        """Test a slot ending exactly at midnight."""
        request = BookingRequest(**booking(appointment_time=time(23, 30), slot_duration_minutes=30))

        assert request.appointment_time == time(23, 30)


class TestScheduleInputs:
    """Test cases for schedule administration inputs."""

    def test_batch_days_deduplicated_and_sorted(self):
        """Test day normalization."""
        batch = ScheduleBatchInput(
            branch_id=uuid4(), days_of_week=[3, 1, 3], start_time=time(8, 0), end_time=time(9, 0)
        )

        assert batch.days_of_week == [1, 3]

    def test_batch_day_out_of_range(self):
        """Test day bounds in batches."""
        with pytest.raises(ValueError):
            ScheduleBatchInput(
                branch_id=uuid4(), days_of_week=[0, 9], start_time=time(8, 0), end_time=time(9, 0)
            )

    def test_capacity_available_defaults_to_total(self):
        """Test default available slots."""
        row = CapacityOverrideInput(branch_id=uuid4(), capacity_date=date(2025, 1, 1), total_slots=4)

        assert row.available_slots == 4
