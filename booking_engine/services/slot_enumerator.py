"""Turn a working window into candidate slot start times."""

from datetime import date, datetime, time, timedelta
from typing import Iterator, List

from ..models.entities import WorkingWindow


def iter_slots(start: time, end: time, slot_duration_minutes: int) -> Iterator[time]:
    """
    Yield slot start times ``start, start + d, ...`` while the slot fits before ``end``.

    A slot ending exactly at ``end`` is included. Nothing is yielded when the
    duration is not positive or the window is empty.

    Args:
        start: Window start
        end: Window end
        slot_duration_minutes: Slot length in minutes

    Yields:
        Slot start times in ascending order
    """
    if slot_duration_minutes <= 0 or start >= end:
        return
    cursor = datetime.combine(date.min, start)
    limit = datetime.combine(date.min, end)
    step = timedelta(minutes=slot_duration_minutes)
    while cursor + step <= limit:
        yield cursor.time()
        cursor += step


def enumerate_slots(start: time, end: time, slot_duration_minutes: int) -> List[time]:
    """List form of :func:`iter_slots`."""
    return list(iter_slots(start, end, slot_duration_minutes))


def enumerate_window(window: WorkingWindow) -> List[time]:
    """Slot start times of a resolved working window."""
    return enumerate_slots(window.start_time, window.end_time, window.slot_duration_minutes)
