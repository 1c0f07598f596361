"""Tests for appointment search and ranking."""

from datetime import time, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from booking_engine.core.calendar import utc_today
from booking_engine.core.enums import PreferenceType
from booking_engine.core.exceptions import ValidationError
from booking_engine.models.entities import AppointmentSuggestion, ServiceType
from booking_engine.services.center_ranker import CenterRanker, rank_suggestions
from factories import (
    FAR_ID,
    HQ_ID,
    MONDAY,
    NORTH_ID,
    ORIGIN,
    PASSPORT_ID,
    SUNDAY,
    TODAY,
    booking,
    make_branches,
)


def suggestion(distance_km, available_date=SUNDAY, available_time=time(8, 0)):
    """Minimal suggestion for ranking tests."""
    return AppointmentSuggestion(
        branch_id=uuid4(),
        branch_name=f"Branch {distance_km}",
        distance_km=distance_km,
        available_date=available_date,
        available_time=available_time,
        slot_duration_minutes=30,
        service_type_id=PASSPORT_ID,
        service_type_name="Passport",
        available_slots_count=1,
    )


async def open_on(engine, branch_id, day_of_week, start=time(8, 0), end=time(12, 0)):
    """Create a weekly rule."""
    return await engine.admin.create_rule(
        branch_id=branch_id, day_of_week=day_of_week, start_time=start, end_time=end
    )


class TestRankSuggestions:
    """Test cases for rank_suggestions."""

    def test_nearest_center_orders_by_distance(self):
        """Test distances [12.0, 3.5, 40.1] come back ascending."""
        ranked = rank_suggestions(
            [suggestion(12.0), suggestion(3.5), suggestion(40.1)],
            PreferenceType.NEAREST_CENTER,
            5,
        )

        assert [s.distance_km for s in ranked] == [3.5, 12.0, 40.1]

    def test_earliest_date_ignores_distance(self):
        """Test that date and time decide the order."""
        ranked = rank_suggestions(
            [
                suggestion(3.5, SUNDAY + timedelta(days=2)),
                suggestion(40.1, SUNDAY, time(9, 0)),
                suggestion(12.0, SUNDAY, time(8, 30)),
            ],
            PreferenceType.EARLIEST_DATE,
            5,
        )

        assert [s.distance_km for s in ranked] == [12.0, 40.1, 3.5]

    def test_nearest_center_breaks_distance_ties_by_date(self):
        """Test equal distances fall back to the earlier slot."""
        later = suggestion(5.0, MONDAY)
        earlier = suggestion(5.0, SUNDAY)

        ranked = rank_suggestions([later, earlier], PreferenceType.NEAREST_CENTER, 5)

        assert ranked == [earlier, later]

    def test_limit_truncates(self):
        """Test that only the first ``limit`` results are kept."""
        ranked = rank_suggestions(
            [suggestion(d) for d in (9.0, 1.0, 5.0, 3.0)], PreferenceType.NEAREST_CENTER, 2
        )

        assert [s.distance_km for s in ranked] == [1.0, 3.0]


@pytest.mark.asyncio
class TestSearchAvailableAppointments:
    """Test cases for searching through the engine."""

    async def test_nearest_center_search(self, engine):
        """Test that all open branches are returned nearest first."""
        for branch_id in (HQ_ID, NORTH_ID, FAR_ID):
            await open_on(engine, branch_id, 0)

        results = await engine.search_available_appointments(PASSPORT_ID, *ORIGIN)

        assert [r.branch_id for r in results] == [HQ_ID, NORTH_ID, FAR_ID]
        assert [r.distance_km for r in results] == [3.5, 12.0, 40.1]
        first = results[0]
        assert first.available_date == SUNDAY
        assert first.available_time == time(8, 0)
        assert first.available_slots_count == 8
        assert first.branch_code == "HQ"
        assert first.service_type_name == "جواز السفر"

    async def test_earliest_date_search(self, engine):
        """Test that an earlier far branch beats a later near one."""
        await open_on(engine, HQ_ID, 1)
        await open_on(engine, FAR_ID, 0, start=time(13, 0), end=time(15, 0))

        results = await engine.search_available_appointments(
            PASSPORT_ID, *ORIGIN, preference_type=PreferenceType.EARLIEST_DATE
        )

        assert [r.branch_id for r in results] == [FAR_ID, HQ_ID]
        assert results[0].available_date == SUNDAY
        assert results[1].available_date == MONDAY

    async def test_search_starts_tomorrow(self, engine):
        """Test that today and past preferred dates are moved to tomorrow."""
        await open_on(engine, HQ_ID, 0)

        for preferred in (None, TODAY, TODAY - timedelta(days=30)):
            results = await engine.search_available_appointments(
                PASSPORT_ID, *ORIGIN, preferred_date=preferred
            )
            assert results[0].available_date == SUNDAY

    async def test_future_preferred_date_is_respected(self, engine):
        """Test scanning from a later preferred date."""
        await open_on(engine, HQ_ID, 0)

        results = await engine.search_available_appointments(
            PASSPORT_ID, *ORIGIN, preferred_date=MONDAY
        )

        assert results[0].available_date == SUNDAY + timedelta(days=7)

    async def test_fully_booked_day_moves_to_next_open_day(self, engine):
        """Test that a day without free slots is skipped."""
        await open_on(engine, HQ_ID, 0, start=time(8, 0), end=time(9, 0))
        for slot in (time(8, 0), time(8, 30)):
            await engine.book_appointment(booking(appointment_time=slot))

        results = await engine.search_available_appointments(PASSPORT_ID, *ORIGIN)

        assert results[0].available_date == SUNDAY + timedelta(days=7)
        assert results[0].available_slots_count == 2

    async def test_booked_slot_is_not_offered(self, engine):
        """Test that the first free slot skips booked times."""
        await open_on(engine, HQ_ID, 0)
        await engine.book_appointment(booking())

        results = await engine.search_available_appointments(PASSPORT_ID, *ORIGIN)

        assert results[0].available_time == time(8, 30)
        assert results[0].available_slots_count == 7

    async def test_branch_outside_radius_is_excluded(self, engine):
        """Test radius filtering."""
        for branch_id in (HQ_ID, NORTH_ID, FAR_ID):
            await open_on(engine, branch_id, 0)

        results = await engine.search_available_appointments(PASSPORT_ID, *ORIGIN, radius_km=20)

        assert FAR_ID not in [r.branch_id for r in results]
        assert len(results) == 2

    async def test_fractional_radius_is_enforced(self, engine):
        """Test that branches the directory over-returns are dropped by distance."""
        for branch_id in (HQ_ID, NORTH_ID):
            await open_on(engine, branch_id, 0)
        engine.directory.find_nearby_active_branches = AsyncMock(return_value=make_branches())

        too_tight = await engine.search_available_appointments(
            PASSPORT_ID, *ORIGIN, radius_km=3.4
        )
        just_enough = await engine.search_available_appointments(
            PASSPORT_ID, *ORIGIN, radius_km=3.6
        )

        assert too_tight == []
        assert [r.branch_id for r in just_enough] == [HQ_ID]
        assert just_enough[0].distance_km <= 3.6

    async def test_branch_without_service_is_excluded(self, engine):
        """Test that branches must offer the service."""
        for branch_id in (HQ_ID, NORTH_ID):
            await open_on(engine, branch_id, 0)
        await engine.catalog.assign_service(HQ_ID, PASSPORT_ID, active=False)

        results = await engine.search_available_appointments(PASSPORT_ID, *ORIGIN)

        assert [r.branch_id for r in results] == [NORTH_ID]

    async def test_branch_without_schedule_is_excluded(self, engine):
        """Test that branches with no open day in the window are left out."""
        await open_on(engine, NORTH_ID, 0)

        results = await engine.search_available_appointments(PASSPORT_ID, *ORIGIN)

        assert [r.branch_id for r in results] == [NORTH_ID]

    async def test_no_availability_is_an_empty_list(self, engine):
        """Test that nothing available is not an error."""
        assert await engine.search_available_appointments(PASSPORT_ID, *ORIGIN) == []
        assert await engine.search_available_appointments(uuid4(), *ORIGIN) == []

    async def test_max_results(self, engine):
        """Test truncation to max_results."""
        for branch_id in (HQ_ID, NORTH_ID, FAR_ID):
            await open_on(engine, branch_id, 0)

        results = await engine.search_available_appointments(PASSPORT_ID, *ORIGIN, max_results=1)

        assert [r.branch_id for r in results] == [HQ_ID]

    async def test_service_name_language_and_fallback(self, engine):
        """Test localized names and the unknown-name fallback."""
        await open_on(engine, HQ_ID, 0)
        unnamed = uuid4()
        await engine.catalog.add_service_type(ServiceType(id=unnamed, code="VISA"))
        await engine.catalog.assign_service(HQ_ID, unnamed)

        english = await engine.search_available_appointments(PASSPORT_ID, *ORIGIN, language="en")
        missing = await engine.search_available_appointments(unnamed, *ORIGIN)

        assert english[0].service_type_name == "Passport"
        assert missing[0].service_type_name == "Unknown Service"

    async def test_include_sub_services(self, engine):
        """Test that child service offerings count when requested."""
        await open_on(engine, NORTH_ID, 0)
        parent = uuid4()
        child = uuid4()
        await engine.catalog.add_service_type(ServiceType(id=parent, code="CIVIL_AFFAIRS"))
        await engine.catalog.add_service_type(
            ServiceType(id=child, code="PASSPORT_RENEWAL", parent_id=parent)
        )
        await engine.catalog.assign_service(NORTH_ID, child)

        plain = await engine.search_available_appointments(parent, *ORIGIN)
        expanded = await engine.search_available_appointments(
            parent, *ORIGIN, include_sub_services=True
        )

        assert plain == []
        assert [r.branch_id for r in expanded] == [NORTH_ID]

    @pytest.mark.parametrize(
        "kwargs, field",
        [
            ({"radius_km": -5}, "radius_km"),
            ({"max_results": 0}, "max_results"),
        ],
    )
    async def test_invalid_criteria(self, engine, kwargs, field):
        """Test that malformed criteria raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            await engine.search_available_appointments(PASSPORT_ID, *ORIGIN, **kwargs)

        assert exc_info.value.field == field

    async def test_out_of_range_coordinates(self, engine):
        """Test latitude bounds."""
        with pytest.raises(ValidationError) as exc_info:
            await engine.search_available_appointments(PASSPORT_ID, 95.0, 46.0)

        assert exc_info.value.field == "latitude"


@pytest.mark.asyncio
async def test_branch_availability_summary(engine):
    """Test the per-day capacity summary."""
    await open_on(engine, HQ_ID, 0)
    await engine.book_appointment(booking())

    open_day = await engine.ranker.branch_availability(HQ_ID, SUNDAY)
    closed_day = await engine.ranker.branch_availability(HQ_ID, MONDAY)

    assert open_day["open"] is True
    assert open_day["slots_per_day"] == 8
    assert open_day["booked"] == 1
    assert len(open_day["free_slots"]) == 7
    assert closed_day == {
        "open": False,
        "slots_per_day": 0,
        "daily_capacity": 0,
        "booked": 0,
        "free_slots": [],
    }


def test_default_clock_is_utc():
    """Test that a ranker built without a clock reads the UTC date."""
    ranker = CenterRanker(MagicMock(), MagicMock(), MagicMock(), MagicMock())

    assert ranker._clock is utc_today
