"""Tests for slot enumeration."""

from datetime import date, time

import pytest

from booking_engine.models.entities import WorkingWindow
from booking_engine.services.slot_enumerator import enumerate_slots, enumerate_window, iter_slots


class TestEnumerateSlots:
    """Test cases for enumerate_slots."""

    def test_morning_window_has_eight_half_hour_slots(self):
        """Test 08:00-12:00 in 30-minute slots."""
        slots = enumerate_slots(time(8, 0), time(12, 0), 30)

        assert len(slots) == 8
        assert slots[0] == time(8, 0)
        assert slots[-1] == time(11, 30)

    def test_slot_ending_exactly_at_close_is_included(self):
        """Test that the last slot may end on the window end."""
        slots = enumerate_slots(time(9, 0), time(10, 0), 20)

        assert slots == [time(9, 0), time(9, 20), time(9, 40)]

    def test_partial_trailing_slot_is_dropped(self):
        """Test that a slot running past the end is not offered."""
        slots = enumerate_slots(time(9, 0), time(10, 10), 20)

        assert slots[-1] == time(9, 40)
        assert len(slots) == 3

    @pytest.mark.parametrize("duration", [0, -15])
    def test_non_positive_duration_yields_nothing(self, duration):
        """Test that a zero or negative duration gives no slots."""
        assert enumerate_slots(time(8, 0), time(12, 0), duration) == []

    def test_empty_or_inverted_window_yields_nothing(self):
        """Test windows where start is not before end."""
        assert enumerate_slots(time(12, 0), time(12, 0), 30) == []
        assert enumerate_slots(time(13, 0), time(12, 0), 30) == []

    def test_window_shorter_than_one_slot(self):
        """Test a window that cannot hold a single slot."""
        assert enumerate_slots(time(8, 0), time(8, 20), 30) == []

    def test_every_slot_fits_inside_the_window(self):
        """Test that start <= t and t + duration <= end for all slots."""
        start, end, duration = time(7, 45), time(16, 10), 25
        for slot in iter_slots(start, end, duration):
            minutes = slot.hour * 60 + slot.minute
            assert slot >= start
            assert minutes + duration <= end.hour * 60 + end.minute

    def test_window_up_to_end_of_day(self):
        """Test that slots never wrap past midnight."""
        slots = enumerate_slots(time(22, 0), time(23, 59), 60)

        assert slots == [time(22, 0)]


def test_enumerate_window_uses_window_fields():
    """Test enumerating a resolved working window."""
    window = WorkingWindow(
        window_date=date(2025, 6, 15),
        start_time=time(8, 0),
        end_time=time(10, 0),
        slot_duration_minutes=45,
        capacity_per_slot=1,
        total_slots=2,
    )

    assert enumerate_window(window) == [time(8, 0), time(8, 45)]
    assert window.slots_per_day == 2
