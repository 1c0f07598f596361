"""Calendar helpers shared by schedule resolution and administration.

Schedule rules store their weekday as 0=Sunday ... 6=Saturday. Python's
``date.isoweekday()`` counts 1=Monday ... 7=Sunday. The conversion between the
two lives here and nowhere else.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator

DAY_NAMES = ("SUNDAY", "MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY")


def utc_today() -> date:
    """Current date in UTC."""
    return datetime.now(timezone.utc).date()


def to_schedule_day(value: date) -> int:
    """
    Get the schedule day-of-week (0=Sunday ... 6=Saturday) of a date.

    Args:
        value: Calendar date

    Returns:
        Day-of-week in schedule encoding
    """
    return value.isoweekday() % 7


def schedule_day_name(day_of_week: int) -> str:
    """Return the upper-case English name of a schedule day-of-week."""
    if not 0 <= day_of_week <= 6:
        raise ValueError(f"day_of_week must be between 0 and 6, got {day_of_week}")
    return DAY_NAMES[day_of_week]


def date_range(start: date, days: int) -> Iterator[date]:
    """Yield ``days`` consecutive dates starting at ``start``."""
    for offset in range(max(days, 0)):
        yield start + timedelta(days=offset)


def add_minutes(value: time, minutes: int) -> time:
    """
    Add minutes to a wall-clock time, clamping at the end of the day.

    Args:
        value: Start time
        minutes: Minutes to add

    Returns:
        Resulting time; ``time.max`` when the sum passes midnight
    """
    anchor = datetime.combine(date.min, value)
    shifted = anchor + timedelta(minutes=minutes)
    if shifted.date() != anchor.date():
        return time.max
    return shifted.time()


def minutes_between(start: time, end: time) -> int:
    """Whole minutes from ``start`` to ``end`` on the same day (negative if reversed)."""
    delta = datetime.combine(date.min, end) - datetime.combine(date.min, start)
    return int(delta.total_seconds() // 60)
