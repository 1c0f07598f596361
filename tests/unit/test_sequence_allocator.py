"""Tests for appointment code issuance."""

import asyncio
from uuid import uuid4

import pytest

from booking_engine.core.exceptions import SequenceExhaustedError, ValidationError
from booking_engine.repositories.sequence_repository import InMemorySequenceRepository
from booking_engine.services.sequence_allocator import SequenceAllocator, format_appointment_code
from factories import HQ_ID, fixed_clock


@pytest.fixture
def allocator():
    """Allocator over in-memory counters with the clock pinned to 2025."""
    return SequenceAllocator(InMemorySequenceRepository(), clock=fixed_clock)


class TestFormatAppointmentCode:
    """Test cases for code formatting."""

    def test_zero_padded(self):
        """Test four-digit padding."""
        assert format_appointment_code("HQ", 2025, 1) == "HQ-2025-0001"
        assert format_appointment_code("HQ", 2025, 9999) == "HQ-2025-9999"

    def test_wider_numbers_are_not_truncated(self):
        """Test numbers past four digits after the ceiling was raised."""
        assert format_appointment_code("HQ", 2025, 12345) == "HQ-2025-12345"


@pytest.mark.asyncio
class TestSequenceAllocator:
    """Test cases for SequenceAllocator."""

    async def test_numbers_rise_by_one(self, allocator):
        """Test 1, 2, 3 for consecutive calls."""
        codes = [await allocator.generate_appointment_code(HQ_ID, "HQ") for _ in range(3)]

        assert codes == ["HQ-2025-0001", "HQ-2025-0002", "HQ-2025-0003"]
        assert await allocator.get_current_sequence_number(HQ_ID) == 4

    async def test_counters_are_per_branch(self, allocator):
        """Test that branches do not share numbers."""
        other = uuid4()

        assert await allocator.generate_appointment_code(HQ_ID, "HQ") == "HQ-2025-0001"
        assert await allocator.generate_appointment_code(other, "NC") == "NC-2025-0001"

    async def test_counters_are_per_year(self, allocator):
        """Test that a new year starts at 1 again."""
        await allocator.generate_appointment_code(HQ_ID, "HQ", year=2025)

        assert await allocator.generate_appointment_code(HQ_ID, "HQ", year=2026) == "HQ-2026-0001"

    async def test_unknown_branch_code_fallback(self, allocator):
        """Test the UNKNOWN prefix when no code is known."""
        assert await allocator.generate_appointment_code(HQ_ID) == "UNKNOWN-2025-0001"

    async def test_stored_code_is_reused(self, allocator):
        """Test that the code stored on the counter fills in a missing one."""
        await allocator.generate_appointment_code(HQ_ID, "HQ")

        assert await allocator.generate_appointment_code(HQ_ID) == "HQ-2025-0002"

    async def test_exhaustion(self):
        """Test that the call after the ceiling fails."""
        allocator = SequenceAllocator(InMemorySequenceRepository(), max_sequence=3, clock=fixed_clock)
        for _ in range(3):
            await allocator.generate_appointment_code(HQ_ID, "HQ")

        with pytest.raises(SequenceExhaustedError) as exc_info:
            await allocator.generate_appointment_code(HQ_ID, "HQ")

        assert exc_info.value.recoverable is False
        stats = await allocator.get_sequence_stats(HQ_ID)
        assert stats.is_exhausted is True
        assert stats.total_created == 3

    async def test_ten_thousandth_call_fails_with_default_ceiling(self, allocator):
        """Test that numbers 1..9999 are issued and the next call fails."""
        for _ in range(9999):
            code = await allocator.generate_appointment_code(HQ_ID, "HQ")

        assert code == "HQ-2025-9999"
        with pytest.raises(SequenceExhaustedError):
            await allocator.generate_appointment_code(HQ_ID, "HQ")

    async def test_raise_max_sequence(self):
        """Test that raising the ceiling resumes issuance."""
        allocator = SequenceAllocator(InMemorySequenceRepository(), max_sequence=1, clock=fixed_clock)
        await allocator.generate_appointment_code(HQ_ID, "HQ")

        counter = await allocator.raise_max_sequence(HQ_ID, 2)

        assert counter.max_sequence == 2
        assert await allocator.generate_appointment_code(HQ_ID, "HQ") == "HQ-2025-0002"

    async def test_raise_max_sequence_rejects_lower_ceiling(self, allocator):
        """Test that the ceiling can only go up."""
        await allocator.generate_appointment_code(HQ_ID, "HQ")

        with pytest.raises(ValidationError):
            await allocator.raise_max_sequence(HQ_ID, 10)

    async def test_raise_max_sequence_requires_counter(self, allocator):
        """Test raising the ceiling of a counter that does not exist."""
        with pytest.raises(ValidationError):
            await allocator.raise_max_sequence(uuid4(), 20000)

    async def test_current_number_without_counter(self, allocator):
        """Test that a missing counter reports 0."""
        assert await allocator.get_current_sequence_number(uuid4()) == 0

    async def test_concurrent_calls_get_distinct_gapless_numbers(self, allocator):
        """Test N concurrent calls produce exactly 1..N."""
        codes = await asyncio.gather(
            *(allocator.generate_appointment_code(HQ_ID, "HQ") for _ in range(50))
        )

        numbers = sorted(int(code.rsplit("-", 1)[1]) for code in codes)
        assert numbers == list(range(1, 51))
