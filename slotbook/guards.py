"""
Checks run before an availability window or a booking is written.

Both guards read a snapshot and decide in-process. The booking guard is
run again by DocumentStore.reserve_booking at write time, so the snapshot
check only decides which reason the caller sees first.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta

from slotbook.errors import DuplicateActiveBooking, InvalidWindowFormat, OverlapRejected
from slotbook.models import AvailabilityWindow, Booking
from slotbook.slots import clock_minutes, overlaps


def find_window_conflict(
    candidate: AvailabilityWindow, existing: Iterable[AvailabilityWindow]
) -> AvailabilityWindow | None:
    start = clock_minutes(candidate.start_time)
    end = clock_minutes(candidate.end_time)
    for window in existing:
        if window.id == candidate.id:
            continue
        try:
            other_start = clock_minutes(window.start_time)
            other_end = clock_minutes(window.end_time)
        except InvalidWindowFormat:
            continue
        if overlaps(start, end, other_start, other_end):
            return window
    return None


def check_window_overlap(
    candidate: AvailabilityWindow, existing: Iterable[AvailabilityWindow]
) -> None:
    conflict = find_window_conflict(candidate, existing)
    if conflict is not None:
        raise OverlapRejected(
            f"{candidate.start_time}-{candidate.end_time} overlaps an existing "
            f"slot ({conflict.start_time}-{conflict.end_time})",
            conflict=conflict,
        )


def blocking_bookings(
    bookings: Iterable[Booking], now: datetime, pending_ttl: timedelta
) -> list[Booking]:
    return [b for b in bookings if b.blocks(now, pending_ttl)]


def find_conflicting_booking(
    start: datetime, end: datetime, bookings: Iterable[Booking]
) -> Booking | None:
    return next(
        (b for b in bookings if overlaps(start, end, b.start_time, b.end_time)),
        None,
    )


def find_future_active_booking(
    applicant_email: str,
    interviewer_id: str,
    bookings: Iterable[Booking],
    now: datetime,
    pending_ttl: timedelta,
) -> Booking | None:
    """The applicant's blocking booking with this interviewer that has not started yet."""
    email = applicant_email.casefold()
    matches = [
        b
        for b in bookings
        if b.interviewer_id == interviewer_id
        and b.applicant_email.casefold() == email
        and b.blocks(now, pending_ttl)
        and b.start_time > now
    ]
    return min(matches, key=lambda b: b.start_time, default=None)


def check_booking(
    booking: Booking,
    day_bookings: Iterable[Booking],
    applicant_bookings: Iterable[Booking],
    now: datetime,
    pending_ttl: timedelta,
) -> None:
    """
    Reject ``booking`` if the applicant already holds a future active
    booking with the interviewer, or if its interval overlaps a blocking
    booking.
    """
    existing = find_future_active_booking(
        booking.applicant_email,
        booking.interviewer_id,
        (b for b in applicant_bookings if b.id != booking.id),
        now,
        pending_ttl,
    )
    if existing is not None:
        raise DuplicateActiveBooking(
            "You already have a booking with this interviewer",
            existing=existing,
        )

    conflict = find_conflicting_booking(
        booking.start_time,
        booking.end_time,
        (
            b
            for b in blocking_bookings(day_bookings, now, pending_ttl)
            if b.id != booking.id
        ),
    )
    if conflict is not None:
        raise OverlapRejected(
            "This time is no longer available", conflict=conflict
        )
