"""Shared identifiers and builders for tests."""

from datetime import date, time
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from booking_engine.models.entities import Branch

# 2025-06-14 is a Saturday; tomorrow (the first searchable day) is a Sunday
TODAY = date(2025, 6, 14)
SUNDAY = date(2025, 6, 15)
MONDAY = date(2025, 6, 16)

HQ_ID = UUID("00000000-0000-0000-0000-0000000000a1")
NORTH_ID = UUID("00000000-0000-0000-0000-0000000000b2")
FAR_ID = UUID("00000000-0000-0000-0000-0000000000c3")
PASSPORT_ID = UUID("00000000-0000-0000-0000-000000000101")

# Caller location (Riyadh)
ORIGIN = (24.7136, 46.6753)


def fixed_clock() -> date:
    """Clock pinned to TODAY."""
    return TODAY


def make_branches():
    """HQ ~3.5 km north of the origin, North ~12 km, Far ~40 km."""
    return [
        Branch(HQ_ID, "Headquarters", code="HQ", latitude=24.7451, longitude=46.6753),
        Branch(NORTH_ID, "North Center", code="NC", latitude=24.8215, longitude=46.6753),
        Branch(FAR_ID, "Far Center", code="FC", latitude=25.0742, longitude=46.6753),
    ]


def booking(beneficiary_id: Optional[UUID] = None, **overrides: Any) -> Dict[str, Any]:
    """Booking request fields for HQ on SUNDAY at 08:00."""
    data: Dict[str, Any] = {
        "beneficiary_id": beneficiary_id or uuid4(),
        "branch_id": HQ_ID,
        "service_type_id": PASSPORT_ID,
        "appointment_date": SUNDAY,
        "appointment_time": time(8, 0),
        "branch_code": "HQ",
    }
    data.update(overrides)
    return data
