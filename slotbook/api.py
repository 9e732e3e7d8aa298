import asyncio
import re
import uuid
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from slotbook import guards
from slotbook.calendar_sync import GoogleCalendarClient, sync_booking
from slotbook.config import Settings, get_settings
from slotbook.database import DocumentStore
from slotbook.deps import OrgId, get_store, pending_ttl
from slotbook.errors import (
    DataUnavailable,
    DuplicateActiveBooking,
    InvalidWindowFormat,
    NotFound,
    OverlapRejected,
    SchedulingError,
)
from slotbook.models import (
    DEFAULT_EVENT_COLOR,
    AvailabilityWindow,
    Booking,
    BookingStatus,
    DayAvailability,
    EventType,
    Interviewer,
    SlotCandidate,
    validate_timezone,
)
from slotbook.oauth import router as oauth_router
from slotbook.observability import get_logger, setup_logging
from slotbook.slots import dates_with_windows, new_window, resolve_slots

logger = get_logger(__name__)

router = APIRouter()


def generate_slug(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")


class InterviewerRequest(BaseModel):
    email: str
    name: str | None = None
    organization_name: str | None = None
    meeting_link: str | None = None
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def known_zone(cls, value: str) -> str:
        return validate_timezone(value)


class EventTypeRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    color: str = DEFAULT_EVENT_COLOR
    meeting_link: str | None = None


class WindowRequest(BaseModel):
    start_time: str
    end_time: str
    event_type_id: str


class BookingRequest(BaseModel):
    start_time: datetime
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str | None = None
    notes: str | None = None
    hold: bool = False  # PENDING hold instead of an immediate confirmation

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("start_time")
    @classmethod
    def ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


def _slot_payload(candidate: SlotCandidate) -> dict:
    return {
        "start": candidate.start.isoformat(),
        "end": candidate.end.isoformat(),
        "duration": candidate.duration,
        "event_type_id": candidate.event_type_id,
    }


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


# interviewer profile


@router.put("/interviewers/{interviewer_id}")
async def upsert_interviewer(
    interviewer_id: str, body: InterviewerRequest, org: OrgId, request: Request
) -> Interviewer:
    interviewer = Interviewer(
        id=interviewer_id, organization_id=org, **body.model_dump()
    )
    await get_store(request).put_interviewer(interviewer)
    return interviewer


@router.get("/interviewers/{interviewer_id}")
async def get_interviewer(
    interviewer_id: str, org: OrgId, request: Request
) -> Interviewer:
    return await get_store(request).get_interviewer(org, interviewer_id)


# event types


@router.get("/interviewers/{interviewer_id}/event-types")
async def list_event_types(
    interviewer_id: str, org: OrgId, request: Request
) -> list[EventType]:
    store = get_store(request)
    await store.get_interviewer(org, interviewer_id)
    return await store.list_event_types(org, interviewer_id)


@router.post("/interviewers/{interviewer_id}/event-types", status_code=201)
async def create_event_type(
    interviewer_id: str, body: EventTypeRequest, org: OrgId, request: Request
) -> EventType:
    store = get_store(request)
    await store.get_interviewer(org, interviewer_id)
    event_type = EventType(
        id=uuid.uuid4().hex[:12],
        organization_id=org,
        interviewer_id=interviewer_id,
        slug=await _unique_slug(store, org, interviewer_id, body.title),
        **body.model_dump(),
    )
    await store.put_event_type(event_type)
    logger.info(
        "Event type created",
        interviewer_id=interviewer_id,
        event_type_id=event_type.id,
        slug=event_type.slug,
    )
    return event_type


@router.put("/interviewers/{interviewer_id}/event-types/{event_type_id}")
async def update_event_type(
    interviewer_id: str,
    event_type_id: str,
    body: EventTypeRequest,
    org: OrgId,
    request: Request,
) -> EventType:
    store = get_store(request)
    current = await store.get_event_type(org, interviewer_id, event_type_id)
    slug = current.slug
    if body.title != current.title:
        slug = await _unique_slug(
            store, org, interviewer_id, body.title, ignore_id=event_type_id
        )
    updated = current.model_copy(update={**body.model_dump(), "slug": slug})
    await store.put_event_type(updated)
    return updated


@router.delete("/interviewers/{interviewer_id}/event-types/{event_type_id}")
async def delete_event_type(
    interviewer_id: str, event_type_id: str, org: OrgId, request: Request
) -> dict[str, str]:
    await get_store(request).delete_event_type(org, interviewer_id, event_type_id)
    return {"status": "deleted", "event_type_id": event_type_id}


async def _unique_slug(
    store: DocumentStore,
    org: str,
    interviewer_id: str,
    title: str,
    ignore_id: str | None = None,
) -> str:
    base = generate_slug(title) or "event"
    taken = {
        e.slug
        for e in await store.list_event_types(org, interviewer_id)
        if e.id != ignore_id
    }
    slug, n = base, 2
    while slug in taken:
        slug, n = f"{base}-{n}", n + 1
    return slug


# availability


@router.get("/interviewers/{interviewer_id}/availability")
async def list_availability(
    interviewer_id: str, org: OrgId, request: Request
) -> list[DayAvailability]:
    return await get_store(request).list_availability(org, interviewer_id)


@router.get("/interviewers/{interviewer_id}/availability/{day}")
async def get_day_availability(
    interviewer_id: str, day: date, org: OrgId, request: Request
) -> DayAvailability:
    return await get_store(request).get_day_availability(org, interviewer_id, day)


@router.post("/interviewers/{interviewer_id}/availability/{day}/windows", status_code=201)
async def add_window(
    interviewer_id: str,
    day: date,
    body: WindowRequest,
    org: OrgId,
    request: Request,
) -> AvailabilityWindow:
    store = get_store(request)
    await store.get_interviewer(org, interviewer_id)
    await store.get_event_type(org, interviewer_id, body.event_type_id)

    window = new_window(body.start_time, body.end_time, body.event_type_id)
    existing = await store.get_day_availability(org, interviewer_id, day)
    try:
        guards.check_window_overlap(window, existing.slots)
    except OverlapRejected:
        logger.info(
            "Availability window rejected",
            interviewer_id=interviewer_id,
            date=day.isoformat(),
            start_time=window.start_time,
            end_time=window.end_time,
        )
        raise

    slots = sorted([*existing.slots, window], key=lambda w: w.start_time)
    await store.put_day_availability(
        org, interviewer_id, DayAvailability(date=day, slots=slots)
    )
    return window


@router.delete("/interviewers/{interviewer_id}/availability/{day}/windows/{window_id}")
async def delete_window(
    interviewer_id: str, day: date, window_id: str, org: OrgId, request: Request
) -> DayAvailability:
    store = get_store(request)
    existing = await store.get_day_availability(org, interviewer_id, day)
    remaining = [w for w in existing.slots if w.id != window_id]
    if len(remaining) == len(existing.slots):
        raise NotFound("Availability window not found", window_id=window_id)
    updated = DayAvailability(date=day, slots=remaining)
    await store.put_day_availability(org, interviewer_id, updated)
    return updated


@router.delete("/interviewers/{interviewer_id}/availability/{day}")
async def clear_day(
    interviewer_id: str, day: date, org: OrgId, request: Request
) -> dict[str, str]:
    await get_store(request).delete_day_availability(org, interviewer_id, day)
    return {"status": "cleared", "date": day.isoformat()}


# interviewer dashboard


@router.get("/interviewers/{interviewer_id}/bookings")
async def interviewer_bookings(
    interviewer_id: str, org: OrgId, request: Request
) -> dict[str, list[Booking]]:
    store = get_store(request)
    interviewer = await store.get_interviewer(org, interviewer_id)
    now = request.app.state.now_fn()
    today = now.astimezone(interviewer.tz).date()

    active = [
        b
        for b in await store.list_bookings_for_interviewer(org, interviewer_id)
        if b.active
    ]
    return {
        "upcoming": [b for b in active if b.start_time > now],
        "today": [
            b for b in active if b.start_time.astimezone(interviewer.tz).date() == today
        ],
        "past": [b for b in active if b.end_time < now],
    }


# public booking pages


@router.get("/book/{interviewer_id}")
async def booking_page(interviewer_id: str, org: OrgId, request: Request) -> dict:
    store = get_store(request)
    interviewer = await store.get_interviewer(org, interviewer_id)
    return {
        "interviewer": {
            "id": interviewer.id,
            "name": interviewer.name,
            "organization_name": interviewer.organization_name,
            "timezone": interviewer.timezone,
        },
        "event_types": await store.list_event_types(org, interviewer_id),
    }


@router.get("/book/{interviewer_id}/slots")
async def all_event_type_slots(
    interviewer_id: str, org: OrgId, request: Request, day: date = Query(alias="date")
) -> dict:
    candidates = await _offerable_slots(request, org, interviewer_id, day, None)
    return {"date": day.isoformat(), "slots": [_slot_payload(c) for c in candidates]}


@router.get("/book/{interviewer_id}/existing-booking")
async def existing_booking(
    interviewer_id: str, email: str, org: OrgId, request: Request
) -> dict:
    store = get_store(request)
    existing = guards.find_future_active_booking(
        email,
        interviewer_id,
        await store.find_applicant_bookings(org, interviewer_id, email),
        request.app.state.now_fn(),
        pending_ttl(request),
    )
    return {"has_booking": existing is not None, "booking": existing}


@router.get("/book/{interviewer_id}/{slug}/dates")
async def bookable_dates(
    interviewer_id: str, slug: str, org: OrgId, request: Request
) -> dict:
    store = get_store(request)
    interviewer = await store.get_interviewer(org, interviewer_id)
    event_type = await store.get_event_type_by_slug(org, interviewer_id, slug)
    today = request.app.state.now_fn().astimezone(interviewer.tz).date()
    days = dates_with_windows(
        await store.list_availability(org, interviewer_id), event_type.id
    )
    return {"dates": [d.isoformat() for d in days if d >= today]}


@router.get("/book/{interviewer_id}/{slug}/slots")
async def event_type_slots(
    interviewer_id: str,
    slug: str,
    org: OrgId,
    request: Request,
    day: date = Query(alias="date"),
) -> dict:
    event_type = await get_store(request).get_event_type_by_slug(org, interviewer_id, slug)
    candidates = await _offerable_slots(
        request, org, interviewer_id, day, event_type.id
    )
    return {
        "date": day.isoformat(),
        "event_type_id": event_type.id,
        "slots": [_slot_payload(c) for c in candidates],
    }


async def _offerable_slots(
    request: Request,
    org: str,
    interviewer_id: str,
    day: date,
    event_type_id: str | None,
) -> list[SlotCandidate]:
    store = get_store(request)
    settings: Settings = request.app.state.settings
    now = request.app.state.now_fn()
    interviewer = await store.get_interviewer(org, interviewer_id)

    availability = await store.get_day_availability(org, interviewer_id, day)
    day_bookings = await store.list_bookings_for_day(
        org, interviewer_id, day, interviewer.tz
    )
    return resolve_slots(
        day,
        availability.slots,
        guards.blocking_bookings(day_bookings, now, pending_ttl(request)),
        now,
        event_type_id=event_type_id,
        tz=interviewer.tz,
        default_duration=settings.default_duration_minutes,
    )


@router.post("/book/{interviewer_id}/{slug}/bookings", status_code=201)
async def create_booking(
    interviewer_id: str,
    slug: str,
    body: BookingRequest,
    org: OrgId,
    request: Request,
) -> Booking:
    store = get_store(request)
    now = request.app.state.now_fn()
    ttl = pending_ttl(request)

    interviewer = await store.get_interviewer(org, interviewer_id)
    event_type = await store.get_event_type_by_slug(org, interviewer_id, slug)

    # fresh reads at submission time; the page's earlier render is not trusted
    applicant_bookings = await store.find_applicant_bookings(
        org, interviewer_id, body.email
    )
    existing = guards.find_future_active_booking(
        body.email, interviewer_id, applicant_bookings, now, ttl
    )
    if existing is not None:
        raise DuplicateActiveBooking(
            "You already have a booking with this interviewer", existing=existing
        )

    day = body.start_time.astimezone(interviewer.tz).date()
    candidates = await _offerable_slots(request, org, interviewer_id, day, event_type.id)
    candidate = next((c for c in candidates if c.start == body.start_time), None)
    if candidate is None:
        logger.info(
            "Booking rejected, slot not offerable",
            interviewer_id=interviewer_id,
            start_time=body.start_time.isoformat(),
        )
        raise OverlapRejected("This time is no longer available")

    booking = Booking(
        id=uuid.uuid4().hex,
        organization_id=org,
        interviewer_id=interviewer_id,
        interviewer_name=interviewer.name,
        interviewer_email=interviewer.email,
        applicant_name=body.name,
        applicant_email=body.email,
        applicant_phone=body.phone,
        start_time=candidate.start,
        end_time=candidate.end,
        duration=candidate.duration,
        event_type_id=event_type.id,
        event_type_title=event_type.title,
        event_type_color=event_type.color,
        notes=body.notes,
        meeting_link=event_type.meeting_link or interviewer.meeting_link,
        status=BookingStatus.PENDING if body.hold else BookingStatus.CONFIRMED,
        created_at=now,
    )
    await store.reserve_booking(booking, now=now, pending_ttl=ttl)
    logger.info(
        "Booking created",
        booking_id=booking.id,
        interviewer_id=interviewer_id,
        status=booking.status.value,
        start_time=booking.start_time.isoformat(),
    )

    if booking.status == BookingStatus.CONFIRMED:
        schedule_calendar_sync(request.app, booking)
    return booking


@router.get("/bookings/{booking_id}")
async def get_booking(booking_id: str, org: OrgId, request: Request) -> Booking:
    return await get_store(request).get_booking(org, booking_id)


@router.post("/bookings/{booking_id}/cancel")
async def cancel_booking(booking_id: str, org: OrgId, request: Request) -> Booking:
    booking = await get_store(request).update_booking_status(
        org, booking_id, BookingStatus.CANCELLED
    )
    logger.info("Booking cancelled", booking_id=booking_id)
    return booking


def schedule_calendar_sync(app: FastAPI, booking: Booking) -> asyncio.Task:
    """Run the calendar sync after the response; its outcome never affects the booking."""
    task = asyncio.create_task(_sync_in_background(app, booking))
    app.state.sync_tasks.add(task)
    task.add_done_callback(app.state.sync_tasks.discard)
    return task


async def _sync_in_background(app: FastAPI, booking: Booking) -> None:
    store: DocumentStore = app.state.store
    try:
        credentials = await store.get_calendar_credentials(
            booking.organization_id, booking.interviewer_id
        )
        if credentials is None or not credentials.connected:
            return
        result = await sync_booking(app.state.calendar_client, credentials, booking)
        if result.success:
            await store.put_calendar_credentials(
                booking.organization_id, booking.interviewer_id, result.credentials
            )
    except Exception:
        logger.exception("Background calendar sync crashed", booking_id=booking.id)


# error mapping


def _conflict_payload(conflict) -> dict | None:
    if isinstance(conflict, Booking):
        return {
            "start_time": conflict.start_time.isoformat(),
            "end_time": conflict.end_time.isoformat(),
        }
    if isinstance(conflict, AvailabilityWindow):
        return conflict.model_dump()
    return None


async def _overlap_handler(request: Request, exc: OverlapRejected) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "detail": exc.message,
            "reason": exc.reason,
            "conflict": _conflict_payload(exc.conflict),
        },
    )


async def _duplicate_handler(
    request: Request, exc: DuplicateActiveBooking
) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "detail": exc.message,
            "reason": exc.reason,
            "existing_booking": (
                exc.existing.model_dump(mode="json") if exc.existing else None
            ),
        },
    )


def _status_handler(status_code: int):
    async def handler(request: Request, exc: SchedulingError) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "reason": exc.reason},
        )

    return handler


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    tasks = list(app.state.sync_tasks)
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await app.state.calendar_client.close()
    logger.info("Shutdown complete", cancelled_syncs=len(tasks))


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    app = FastAPI(title="slotbook", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = DocumentStore()
    app.state.now_fn = lambda: datetime.now(UTC)
    app.state.calendar_client = GoogleCalendarClient.from_settings(settings)
    app.state.sync_tasks = set()

    app.add_exception_handler(OverlapRejected, _overlap_handler)
    app.add_exception_handler(DuplicateActiveBooking, _duplicate_handler)
    app.add_exception_handler(InvalidWindowFormat, _status_handler(422))
    app.add_exception_handler(NotFound, _status_handler(404))
    app.add_exception_handler(DataUnavailable, _status_handler(503))

    app.include_router(router)
    app.include_router(oauth_router)
    return app
