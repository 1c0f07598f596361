"""Constants for the booking engine.

All classes can be imported directly from this package:
    from booking_engine.constants import Search, Sequence, Slots
"""

from .database import Database, PgErrorCodes, Pools
from .scheduling import Booking, Geo, Search, Sequence, Slots

__all__ = [
    "Database",
    "PgErrorCodes",
    "Pools",
    "Booking",
    "Geo",
    "Search",
    "Sequence",
    "Slots",
]
