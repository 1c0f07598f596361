"""Scheduling, search and booking services."""

from .availability_index import AvailabilityIndex
from .booking_guard import BookingGuard, GuardDecision
from .booking_service import ALLOWED_TRANSITIONS, BookingService
from .center_ranker import CenterRanker, rank_suggestions
from .schedule_admin import ScheduleAdmin
from .schedule_calendar import ScheduleCalendar
from .sequence_allocator import SequenceAllocator, format_appointment_code
from .slot_enumerator import enumerate_slots, enumerate_window, iter_slots

__all__ = [
    "AvailabilityIndex",
    "BookingGuard",
    "GuardDecision",
    "ALLOWED_TRANSITIONS",
    "BookingService",
    "CenterRanker",
    "rank_suggestions",
    "ScheduleAdmin",
    "ScheduleCalendar",
    "SequenceAllocator",
    "format_appointment_code",
    "enumerate_slots",
    "enumerate_window",
    "iter_slots",
]
