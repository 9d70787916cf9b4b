"""Availability engine: business hours + busy intervals → bookable slots.

Everything here is a pure function of its arguments.  No clock reads, no
I/O, so the same inputs always produce the same slots and retries are safe.

Example (09:00–12:00, one busy interval 10:00–10:30, 30-minute service)::

    09:00–09:30, 09:30–10:00, 10:30–11:00, 11:00–11:30, 11:30–12:00
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from appointment_agent.models import BusinessHours, BusyInterval, Slot


def parse_hhmm(value: str) -> time:
    """Parse an ``HH:MM`` (or ``HH:MM:SS``) string into a :class:`time`."""
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time of day: {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) == 3 else 0
    return time(hour, minute, second)


def day_bounds_utc(day: date, tz: tzinfo = UTC) -> tuple[datetime, datetime]:
    """Return the UTC ``[start, end)`` range covering local calendar ``day``."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(UTC), end.astimezone(UTC)


def free_slots(
    day: date,
    hours: BusinessHours,
    busy: Iterable[BusyInterval],
    duration_minutes: int,
    granularity_minutes: int = 30,
    tz: tzinfo = UTC,
) -> list[Slot]:
    """Compute the free slots for ``day``.

    Args:
        day: Calendar day in the business's local timezone.
        hours: Weekly business hours; the weekday of ``day`` is used.
        busy: Occupied half-open intervals (any timezone, usually UTC).
        duration_minutes: Length of the requested service.
        granularity_minutes: Step between candidate start times.
        tz: The business's local timezone.

    Returns:
        Slots in strictly increasing start order, expressed in ``tz``.
    """
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")
    if granularity_minutes <= 0:
        raise ValueError("granularity_minutes must be positive")

    window = hours.for_weekday(day.weekday())
    if window.is_closed:
        return []

    # Stepped in UTC: every slot lasts exactly `duration`, DST days included.
    work_start = datetime.combine(day, parse_hhmm(window.open), tzinfo=tz).astimezone(UTC)
    work_end = datetime.combine(day, parse_hhmm(window.close), tzinfo=tz).astimezone(UTC)

    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=granularity_minutes)
    intervals = sorted(busy)

    slots: list[Slot] = []
    current = work_start
    while current + duration <= work_end:
        candidate_end = current + duration
        if not any(interval.overlaps(current, candidate_end) for interval in intervals):
            slots.append(Slot(start=current.astimezone(tz), end=candidate_end.astimezone(tz)))
        current += step

    return slots
