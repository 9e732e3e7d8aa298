"""
Domain documents kept in the document store.
"""

from datetime import UTC, date, datetime, timedelta
from enum import StrEnum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_EVENT_COLOR = "#6366f1"


def validate_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"unknown timezone {value!r}") from e
    return value


class BookingStatus(StrEnum):
    CONFIRMED = "CONFIRMED"
    PENDING = "PENDING"
    CANCELLED = "CANCELLED"


class Interviewer(BaseModel):
    id: str
    organization_id: str
    email: str
    name: str | None = None
    organization_name: str | None = None
    meeting_link: str | None = None
    timezone: str = "UTC"  # zone the HH:MM window times are written in

    @field_validator("timezone")
    @classmethod
    def known_zone(cls, value: str) -> str:
        return validate_timezone(value)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class EventType(BaseModel):
    id: str
    organization_id: str
    interviewer_id: str
    title: str
    slug: str
    description: str = ""
    color: str = DEFAULT_EVENT_COLOR
    meeting_link: str | None = None


class AvailabilityWindow(BaseModel):
    """
    One offerable block on one date. Times are kept as the "HH:MM" strings
    the interviewer entered; parsing happens when slots are resolved.
    """

    id: str
    start_time: str
    end_time: str
    duration: int | None = None  # minutes, derived when the window is created
    event_type_id: str | None = None


class DayAvailability(BaseModel):
    date: date
    slots: list[AvailabilityWindow] = Field(default_factory=list)


class Booking(BaseModel):
    id: str
    organization_id: str
    interviewer_id: str
    interviewer_email: str
    interviewer_name: str | None = None
    applicant_id: str | None = None
    applicant_name: str
    applicant_email: str
    applicant_phone: str | None = None
    start_time: datetime
    end_time: datetime
    duration: int
    event_type_id: str | None = None
    event_type_title: str = "Interview"
    event_type_color: str = DEFAULT_EVENT_COLOR
    notes: str | None = None
    meeting_link: str | None = None
    status: BookingStatus = BookingStatus.CONFIRMED
    created_at: datetime

    @field_validator("start_time", "end_time", "created_at")
    @classmethod
    def ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def duration_matches_interval(self) -> "Booking":
        if self.end_time - self.start_time != timedelta(minutes=self.duration):
            raise ValueError(
                "end_time - start_time must equal duration "
                f"({self.duration} minutes)"
            )
        return self

    @property
    def active(self) -> bool:
        return self.status != BookingStatus.CANCELLED

    def blocks(self, now: datetime, pending_ttl: timedelta) -> bool:
        """
        Whether this booking currently holds its interval.

        CONFIRMED blocks until cancelled. PENDING is a hold that lapses
        once pending_ttl has passed since it was created.
        """
        if self.status == BookingStatus.CONFIRMED:
            return True
        if self.status == BookingStatus.PENDING:
            return self.created_at + pending_ttl > now
        return False


class CalendarCredentials(BaseModel):
    access_token: str
    refresh_token: str | None = None
    connected: bool = True
    connected_at: datetime | None = None


class SlotCandidate(BaseModel):
    start: datetime
    duration: int
    event_type_id: str | None = None
    window_id: str | None = None

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration)
