"""Tests for the engine facade wiring."""

from datetime import time
from unittest.mock import AsyncMock, patch

import pytest
from loguru import logger

from booking_engine import BookingEngine, BookingRequest
from booking_engine.core.config.settings import EngineSettings
from booking_engine.core.enums import AppointmentStatus, HolidayRecurrenceMode
from booking_engine.core.exceptions import SlotConflictError, ValidationError
from booking_engine.directory import HttpBranchDirectory, InMemoryBranchDirectory
from booking_engine.repositories import (
    InMemoryAppointmentRepository,
    PostgresAppointmentRepository,
    PostgresSequenceRepository,
)
from factories import HQ_ID, PASSPORT_ID, SUNDAY, booking, fixed_clock, make_branches


@pytest.fixture
def warnings_sink():
    """Collect loguru warnings emitted during the test."""
    messages = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="WARNING")
    yield messages
    logger.remove(handler_id)


class TestInMemoryEngine:
    """Tests for the in-memory engine."""

    @pytest.mark.asyncio
    async def test_wiring(self, engine):
        assert isinstance(engine.bookings._appointments, InMemoryAppointmentRepository)
        assert isinstance(engine.directory, InMemoryBranchDirectory)
        assert engine.database is None
        assert engine.allocator.max_sequence == engine.settings.sequence_max

    @pytest.mark.asyncio
    async def test_health_check_without_database(self, engine):
        assert await engine.health_check() is True

    @pytest.mark.asyncio
    async def test_book_from_dict_and_request(self, engine, hq_sunday):
        from_dict = await engine.book_appointment(booking())
        from_request = await engine.book_appointment(
            BookingRequest(**booking(appointment_time=time(8, 30)))
        )

        assert from_dict.appointment_code == "HQ-2025-0001"
        assert from_request.appointment_code == "HQ-2025-0002"

    @pytest.mark.asyncio
    async def test_book_rejects_malformed_dict(self, engine):
        with pytest.raises(ValidationError):
            await engine.book_appointment({"branch_id": HQ_ID})

    @pytest.mark.asyncio
    async def test_lifecycle_through_facade(self, engine, hq_sunday):
        appointment = await engine.book_appointment(booking())

        confirmed = await engine.confirm_appointment(appointment.id)
        completed = await engine.complete_appointment(appointment.id, action_notes="Issued")

        assert confirmed.status == AppointmentStatus.CONFIRMED
        assert completed.status == AppointmentStatus.COMPLETED
        assert completed.action_notes == "Issued"

    @pytest.mark.asyncio
    async def test_cancel_frees_slot(self, engine, hq_sunday):
        first = await engine.book_appointment(booking())
        with pytest.raises(SlotConflictError):
            await engine.book_appointment(booking())

        await engine.cancel_appointment(first.id, reason="Travelling")
        again = await engine.book_appointment(booking())

        assert again.status == AppointmentStatus.REQUESTED

    @pytest.mark.asyncio
    async def test_generate_code_outside_booking(self, engine):
        assert await engine.generate_appointment_code(HQ_ID, "HQ") == "HQ-2025-0001"
        assert await engine.generate_appointment_code(HQ_ID) == "HQ-2025-0002"

    @pytest.mark.asyncio
    async def test_search_through_facade(self, engine, hq_sunday):
        results = await engine.search_available_appointments(PASSPORT_ID, 24.7136, 46.6753)

        assert [r.branch_id for r in results] == [HQ_ID]
        assert results[0].available_date == SUNDAY


class TestRecurrenceWarning:
    """Tests for the recurring-holiday mode warning."""

    def test_weekday_mode_warns(self, warnings_sink):
        BookingEngine.create_in_memory(settings=EngineSettings(), clock=fixed_clock)

        assert any("Recurring holidays" in m for m in warnings_sink)

    def test_anniversary_mode_is_quiet(self, warnings_sink):
        settings = EngineSettings(holiday_recurrence_mode=HolidayRecurrenceMode.ANNIVERSARY)

        BookingEngine.create_in_memory(settings=settings, clock=fixed_clock)

        assert not any("Recurring holidays" in m for m in warnings_sink)


class TestPostgresFactory:
    """Tests for the PostgreSQL factory without a live server."""

    @pytest.mark.asyncio
    async def test_requires_directory(self):
        with pytest.raises(ValidationError) as exc_info:
            await BookingEngine.create_postgres(settings=EngineSettings())

        assert exc_info.value.field == "branch_directory_url"

    @pytest.mark.asyncio
    async def test_builds_postgres_stores(self):
        directory = InMemoryBranchDirectory(make_branches())

        with patch("booking_engine.engine.Database.connect", new_callable=AsyncMock) as connect:
            engine = await BookingEngine.create_postgres(
                settings=EngineSettings(), directory=directory
            )

        connect.assert_awaited_once()
        assert isinstance(engine.bookings._appointments, PostgresAppointmentRepository)
        assert isinstance(engine.allocator._sequences, PostgresSequenceRepository)
        assert engine.directory is directory
        assert engine.database is not None

        with patch("booking_engine.engine.Database.close", new_callable=AsyncMock) as close:
            await engine.close()
        close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_directory_url_builds_http_client(self):
        settings = EngineSettings(branch_directory_url="https://branches.example.com/")

        with patch("booking_engine.engine.Database.connect", new_callable=AsyncMock):
            engine = await BookingEngine.create_postgres(settings=settings)

        assert isinstance(engine.directory, HttpBranchDirectory)
        assert engine.directory.base_url == "https://branches.example.com"
