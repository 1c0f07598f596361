"""End-to-end tests of the engine on PostgreSQL."""

import asyncio
from datetime import time
from uuid import uuid4

import pytest

from booking_engine.core.enums import AppointmentStatus
from booking_engine.core.exceptions import ConcurrentModificationError, SlotConflictError
from booking_engine.models.entities import Appointment
from factories import HQ_ID, PASSPORT_ID, SUNDAY, booking

ORIGIN = {"latitude": 24.7136, "longitude": 46.6753}


async def _open_hq_sunday(engine):
    return await engine.admin.create_rule(
        branch_id=HQ_ID,
        day_of_week=0,
        start_time=time(8, 0),
        end_time=time(12, 0),
        slot_duration_minutes=30,
    )


@pytest.mark.integration
class TestPostgresBooking:
    """Booking flow against the real schema."""

    @pytest.mark.asyncio
    async def test_search_book_cancel_rebook(self, pg_engine):
        await _open_hq_sunday(pg_engine)

        results = await pg_engine.search_available_appointments(PASSPORT_ID, **ORIGIN)
        assert results[0].branch_id == HQ_ID
        assert results[0].available_date == SUNDAY
        assert results[0].available_time == time(8, 0)
        assert results[0].available_slots_count == 8

        first = await pg_engine.book_appointment(booking())
        assert first.appointment_code == "HQ-2025-0001"

        with pytest.raises(SlotConflictError):
            await pg_engine.book_appointment(booking())

        cancelled = await pg_engine.cancel_appointment(first.id, reason="Travelling")
        assert cancelled.status == AppointmentStatus.CANCELLED
        assert cancelled.cancelled_at is not None

        second = await pg_engine.book_appointment(booking())
        assert second.appointment_code == "HQ-2025-0002"

        history = await pg_engine.bookings.get_status_history(first.id)
        assert [h.status for h in history] == [
            AppointmentStatus.REQUESTED,
            AppointmentStatus.CANCELLED,
        ]

    @pytest.mark.asyncio
    async def test_concurrent_bookings_for_one_slot(self, pg_engine):
        await _open_hq_sunday(pg_engine)

        outcomes = await asyncio.gather(
            *(pg_engine.book_appointment(booking()) for _ in range(5)),
            return_exceptions=True,
        )

        booked = [o for o in outcomes if isinstance(o, Appointment)]
        conflicts = [o for o in outcomes if isinstance(o, SlotConflictError)]
        assert len(booked) == 1
        assert len(conflicts) == 4
        assert booked[0].appointment_code == "HQ-2025-0001"

    @pytest.mark.asyncio
    async def test_unique_index_rejects_second_live_appointment(self, pg_engine):
        await _open_hq_sunday(pg_engine)
        await pg_engine.book_appointment(booking())
        intruder = Appointment(
            beneficiary_id=uuid4(),
            branch_id=HQ_ID,
            service_type_id=PASSPORT_ID,
            appointment_date=SUNDAY,
            appointment_time=time(8, 0),
        )

        with pytest.raises(SlotConflictError):
            async with pg_engine.bookings._appointments.booking_scope(
                HQ_ID, SUNDAY, intruder.beneficiary_id, PASSPORT_ID
            ) as tx:
                await tx.insert(intruder)


@pytest.mark.integration
class TestPostgresSequences:
    """Counter issuance under concurrency."""

    @pytest.mark.asyncio
    async def test_concurrent_codes_are_gapless(self, pg_engine):
        codes = await asyncio.gather(
            *(pg_engine.generate_appointment_code(HQ_ID, "HQ") for _ in range(20))
        )

        numbers = sorted(int(code.rsplit("-", 1)[1]) for code in codes)
        assert numbers == list(range(1, 21))
        assert await pg_engine.allocator.get_current_sequence_number(HQ_ID, 2025) == 21


@pytest.mark.integration
class TestPostgresCapacity:
    """Versioned capacity rows and booking counters."""

    @pytest.mark.asyncio
    async def test_versioned_override_and_booking_decrement(self, pg_engine):
        await _open_hq_sunday(pg_engine)
        created = await pg_engine.admin.set_capacity_override(
            branch_id=HQ_ID, capacity_date=SUNDAY, total_slots=5
        )
        assert created.row_version == 0

        updated = await pg_engine.admin.set_capacity_override(
            branch_id=HQ_ID, capacity_date=SUNDAY, total_slots=6, expected_version=0
        )
        assert updated.row_version == 1
        assert updated.available_slots == 6

        with pytest.raises(ConcurrentModificationError):
            await pg_engine.admin.set_capacity_override(
                branch_id=HQ_ID, capacity_date=SUNDAY, total_slots=4, expected_version=0
            )

        await pg_engine.book_appointment(booking())
        [row] = await pg_engine.admin.list_capacity_overrides(HQ_ID, SUNDAY, SUNDAY)
        assert row.available_slots == 5
