from collections.abc import MutableMapping
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Generic, TypeVar

from slotbook import guards
from slotbook.errors import NotFound
from slotbook.models import (
    Booking,
    BookingStatus,
    CalendarCredentials,
    DayAvailability,
    EventType,
    Interviewer,
)

K = TypeVar("K")
V = TypeVar("V")

# (collection, organization, *ids)
Key = tuple[str | date, ...]
Document = Interviewer | EventType | DayAvailability | Booking | CalendarCredentials


class InMemoryKeyValueDatabase(Generic[K, V]):
    """
    Simple in-memory key/value database.
    """

    def __init__(self) -> None:
        self._store: MutableMapping[K, V] = {}

    def put(self, key: K, value: V) -> None:
        self._store[key] = value

    def get(self, key: K) -> V | None:
        return self._store.get(key)

    def delete(self, key: K) -> None:
        self._store.pop(key, None)

    def with_prefix(self, prefix: tuple) -> list[V]:
        """Values whose tuple key starts with every part of ``prefix``."""
        n = len(prefix)
        return [v for k, v in self._store.items() if k[:n] == prefix]


class DocumentStore:
    """
    Document collections for one deployment, partitioned by organization.

    Reads and writes are coroutines so a networked backend can be swapped
    in; such a backend reports I/O failures as DataUnavailable.
    """

    def __init__(
        self, db: InMemoryKeyValueDatabase[Key, Document] | None = None
    ) -> None:
        self.db = db if db is not None else InMemoryKeyValueDatabase()

    # interviewers

    async def get_interviewer(self, org: str, interviewer_id: str) -> Interviewer:
        interviewer = self.db.get(("interviewer", org, interviewer_id))
        if not isinstance(interviewer, Interviewer):
            raise NotFound("Interviewer not found", interviewer_id=interviewer_id)
        return interviewer

    async def put_interviewer(self, interviewer: Interviewer) -> None:
        self.db.put(
            ("interviewer", interviewer.organization_id, interviewer.id),
            interviewer,
        )

    # event types

    async def list_event_types(self, org: str, interviewer_id: str) -> list[EventType]:
        return sorted(
            (
                e
                for e in self.db.with_prefix(("event_type", org, interviewer_id))
                if isinstance(e, EventType)
            ),
            key=lambda e: e.title.lower(),
        )

    async def get_event_type(
        self, org: str, interviewer_id: str, event_type_id: str
    ) -> EventType:
        event_type = self.db.get(("event_type", org, interviewer_id, event_type_id))
        if not isinstance(event_type, EventType):
            raise NotFound("Event type not found", event_type_id=event_type_id)
        return event_type

    async def get_event_type_by_slug(
        self, org: str, interviewer_id: str, slug: str
    ) -> EventType:
        for event_type in await self.list_event_types(org, interviewer_id):
            if event_type.slug == slug:
                return event_type
        raise NotFound("Event type not found", slug=slug)

    async def put_event_type(self, event_type: EventType) -> None:
        self.db.put(
            (
                "event_type",
                event_type.organization_id,
                event_type.interviewer_id,
                event_type.id,
            ),
            event_type,
        )

    async def delete_event_type(
        self, org: str, interviewer_id: str, event_type_id: str
    ) -> None:
        await self.get_event_type(org, interviewer_id, event_type_id)
        self.db.delete(("event_type", org, interviewer_id, event_type_id))

    # availability

    async def get_day_availability(
        self, org: str, interviewer_id: str, day: date
    ) -> DayAvailability:
        found = self.db.get(("availability", org, interviewer_id, day))
        if isinstance(found, DayAvailability):
            return found
        return DayAvailability(date=day)

    async def list_availability(
        self, org: str, interviewer_id: str
    ) -> list[DayAvailability]:
        return sorted(
            (
                d
                for d in self.db.with_prefix(("availability", org, interviewer_id))
                if isinstance(d, DayAvailability)
            ),
            key=lambda d: d.date,
        )

    async def put_day_availability(
        self, org: str, interviewer_id: str, day: DayAvailability
    ) -> None:
        key = ("availability", org, interviewer_id, day.date)
        if not day.slots:
            self.db.delete(key)
            return
        self.db.put(key, day)

    async def delete_day_availability(
        self, org: str, interviewer_id: str, day: date
    ) -> None:
        self.db.delete(("availability", org, interviewer_id, day))

    # bookings

    def _bookings(self, org: str) -> list[Booking]:
        return [b for b in self.db.with_prefix(("booking", org)) if isinstance(b, Booking)]

    async def get_booking(self, org: str, booking_id: str) -> Booking:
        booking = self.db.get(("booking", org, booking_id))
        if not isinstance(booking, Booking):
            raise NotFound("Booking not found", booking_id=booking_id)
        return booking

    async def list_bookings_for_interviewer(
        self, org: str, interviewer_id: str
    ) -> list[Booking]:
        return sorted(
            (b for b in self._bookings(org) if b.interviewer_id == interviewer_id),
            key=lambda b: b.start_time,
        )

    async def list_bookings_for_day(
        self, org: str, interviewer_id: str, day: date, tz: tzinfo
    ) -> list[Booking]:
        """Non-cancelled bookings overlapping the day, start-of-day to end-of-day inclusive."""
        day_start = datetime.combine(day, time.min, tzinfo=tz)
        day_end = datetime.combine(day, time.max, tzinfo=tz)
        return [
            b
            for b in await self.list_bookings_for_interviewer(org, interviewer_id)
            if b.active and b.start_time <= day_end and b.end_time >= day_start
        ]

    async def find_applicant_bookings(
        self, org: str, interviewer_id: str, applicant_email: str
    ) -> list[Booking]:
        email = applicant_email.casefold()
        return [
            b
            for b in await self.list_bookings_for_interviewer(org, interviewer_id)
            if b.active and b.applicant_email.casefold() == email
        ]

    async def reserve_booking(
        self, booking: Booking, *, now: datetime, pending_ttl: timedelta
    ) -> Booking:
        """
        Insert ``booking`` only if it still passes the booking guard
        against the stored bookings.

        There is no await between the check and the put, so concurrent
        requests on the event loop cannot interleave here.
        """
        org = booking.organization_id
        current = [
            b
            for b in self._bookings(org)
            if b.interviewer_id == booking.interviewer_id and b.active
        ]
        guards.check_booking(booking, current, current, now, pending_ttl)
        self.db.put(("booking", org, booking.id), booking)
        return booking

    async def update_booking_status(
        self, org: str, booking_id: str, status: BookingStatus
    ) -> Booking:
        booking = await self.get_booking(org, booking_id)
        if booking.status == BookingStatus.CANCELLED:
            return booking
        updated = booking.model_copy(update={"status": status})
        self.db.put(("booking", org, booking_id), updated)
        return updated

    # calendar credentials

    async def get_calendar_credentials(
        self, org: str, interviewer_id: str
    ) -> CalendarCredentials | None:
        found = self.db.get(("calendar", org, interviewer_id))
        return found if isinstance(found, CalendarCredentials) else None

    async def put_calendar_credentials(
        self, org: str, interviewer_id: str, credentials: CalendarCredentials
    ) -> None:
        self.db.put(("calendar", org, interviewer_id), credentials)
