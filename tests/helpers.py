from datetime import UTC, date, datetime, timedelta

from slotbook.models import Booking, BookingStatus

ORG = "org-123"
DAY = date(2025, 7, 2)


def _p(msg: str) -> None:
    # pytest captures stdout unless you run with -s
    print(msg, flush=True)


def _banner(name: str) -> None:
    _p("\n" + "=" * 88)
    _p(f"test: {name}")
    _p("=" * 88)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)


def make_booking(
    booking_id: str,
    start: datetime,
    minutes: int = 30,
    *,
    email: str = "someone@example.com",
    status: BookingStatus = BookingStatus.CONFIRMED,
    interviewer_id: str = "ada-id",
    created_at: datetime | None = None,
) -> Booking:
    return Booking(
        id=booking_id,
        organization_id=ORG,
        interviewer_id=interviewer_id,
        interviewer_email="ada@example.com",
        interviewer_name="Ada Lovelace",
        applicant_name="Someone",
        applicant_email=email,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        duration=minutes,
        status=status,
        created_at=created_at or datetime(2025, 7, 1, tzinfo=UTC),
    )
