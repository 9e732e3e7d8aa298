"""
Turns an interviewer's availability windows for a date into the start
times that can still be offered to an applicant.

Everything here is pure: the clock, the windows and the bookings are all
passed in, so the same inputs always give the same candidates.
"""

import re
import uuid
from collections.abc import Iterable
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from slotbook.errors import InvalidWindowFormat
from slotbook.models import AvailabilityWindow, Booking, DayAvailability, SlotCandidate
from slotbook.observability import get_logger

logger = get_logger(__name__)

DEFAULT_DURATION_MINUTES = 30

_CLOCK_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_clock(value: str) -> time:
    """Parse an "HH:MM" wall-clock string."""
    match = _CLOCK_RE.match(value) if isinstance(value, str) else None
    if match is None:
        raise InvalidWindowFormat(f"invalid time {value!r}, expected HH:MM", value=value)
    return time(int(match[1]), int(match[2]))


def clock_minutes(value: str) -> int:
    t = parse_clock(value)
    return t.hour * 60 + t.minute


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    """Half-open interval intersection: touching endpoints do not conflict."""
    return a_start < b_end and b_start < a_end


def new_window(
    start_time: str,
    end_time: str,
    event_type_id: str | None = None,
    window_id: str | None = None,
) -> AvailabilityWindow:
    """Build a validated window, deriving its duration from the two times."""
    start = clock_minutes(start_time)
    end = clock_minutes(end_time)
    if start >= end:
        raise InvalidWindowFormat(
            "end time must be after start time",
            start_time=start_time,
            end_time=end_time,
        )
    return AvailabilityWindow(
        id=window_id or uuid.uuid4().hex[:12],
        start_time=start_time,
        end_time=end_time,
        duration=end - start,
        event_type_id=event_type_id,
    )


def window_bounds(
    day: date,
    window: AvailabilityWindow,
    tz: tzinfo = UTC,
    default_duration: int = DEFAULT_DURATION_MINUTES,
) -> tuple[datetime, datetime]:
    """Absolute [start, end) of a window on the given day, in UTC."""
    local_start = datetime.combine(day, parse_clock(window.start_time), tzinfo=tz)
    start = local_start.astimezone(UTC)
    return start, start + timedelta(minutes=window.duration or default_duration)


def resolve_slots(
    day: date,
    windows: Iterable[AvailabilityWindow],
    active_bookings: Iterable[Booking],
    now: datetime,
    *,
    event_type_id: str | None = None,
    tz: tzinfo = UTC,
    default_duration: int = DEFAULT_DURATION_MINUTES,
) -> list[SlotCandidate]:
    """
    Offerable candidates for one interviewer on one day.

    A window is offered when it matches the event type filter (if any),
    starts strictly after ``now`` and does not overlap any of
    ``active_bookings``. Each candidate keeps its own window's duration.
    Malformed windows are logged and skipped. The result is sorted by
    start time.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    bookings = list(active_bookings)

    candidates: list[SlotCandidate] = []
    for window in windows:
        if event_type_id is not None and window.event_type_id != event_type_id:
            continue

        try:
            start, end = window_bounds(day, window, tz, default_duration)
        except InvalidWindowFormat as e:
            logger.warning(
                "Skipping malformed availability window",
                window_id=window.id,
                date=day.isoformat(),
                error=e.message,
            )
            continue

        if start <= now:
            continue

        if any(overlaps(start, end, b.start_time, b.end_time) for b in bookings):
            continue

        candidates.append(
            SlotCandidate(
                start=start,
                duration=int((end - start).total_seconds() // 60),
                event_type_id=window.event_type_id,
                window_id=window.id,
            )
        )

    candidates.sort(key=lambda c: c.start)
    return candidates


def dates_with_windows(
    days: Iterable[DayAvailability], event_type_id: str | None = None
) -> list[date]:
    """Dates that have at least one window, optionally for one event type."""
    return sorted(
        d.date
        for d in days
        if any(
            event_type_id is None or w.event_type_id == event_type_id
            for w in d.slots
        )
    )
