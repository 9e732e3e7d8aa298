"""
Google Calendar connect flows.

Interviewers connect once and their future confirmed bookings are pushed
to their calendar. Applicants can add a single booking to their own
calendar without storing any tokens.
"""

from urllib.parse import parse_qs, urlencode

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from slotbook.calendar_sync import (
    CalendarSyncError,
    GoogleCalendarClient,
    sync_booking,
    sync_upcoming_bookings,
)
from slotbook.config import Settings
from slotbook.deps import OrgId, get_store
from slotbook.errors import NotFound
from slotbook.observability import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/google")


class SyncBookingRequest(BaseModel):
    booking_id: str
    interviewer_id: str


def encode_state(org: str, object_id: str) -> str:
    return urlencode({"org": org, "id": object_id})


def decode_state(state: str, default_org: str) -> tuple[str, str]:
    parts = parse_qs(state)
    org = parts.get("org", [default_org])[0]
    return org, parts.get("id", [""])[0]


def _redirect(request: Request, path: str, **params: str) -> RedirectResponse:
    base = request.app.state.settings.app_base_url.rstrip("/")
    query = f"?{urlencode(params)}" if params else ""
    return RedirectResponse(f"{base}{path}{query}", status_code=302)


def _error(request: Request, message: str) -> RedirectResponse:
    return _redirect(request, "/error", message=message)


def _client(request: Request) -> GoogleCalendarClient:
    return request.app.state.calendar_client


@router.get("/interviewer-auth")
async def interviewer_auth(
    request: Request, org: OrgId, interviewer_id: str | None = None
) -> RedirectResponse:
    if not interviewer_id:
        return _error(request, "Missing interviewer ID")

    settings: Settings = request.app.state.settings
    redirect_uri = settings.google_interviewer_redirect_uri
    if not redirect_uri or not settings.google_configured():
        logger.error("Interviewer OAuth redirect not configured")
        return _error(request, "OAuth not configured")

    url = _client(request).generate_auth_url(
        redirect_uri, encode_state(org, interviewer_id)
    )
    return RedirectResponse(url, status_code=302)


@router.get("/interviewer-callback")
async def interviewer_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
) -> RedirectResponse:
    if error:
        logger.warning("Interviewer denied Google authorization", error=error)
        return _error(request, "Google authorization denied")
    if not code or not state:
        return _error(request, "Missing authorization code or interviewer ID")

    settings: Settings = request.app.state.settings
    redirect_uri = settings.google_interviewer_redirect_uri
    if not redirect_uri:
        return _error(request, "OAuth not configured")

    org, interviewer_id = decode_state(state, settings.default_organization_id)
    store = get_store(request)
    try:
        await store.get_interviewer(org, interviewer_id)
    except NotFound:
        logger.warning("OAuth callback for unknown interviewer", interviewer_id=interviewer_id)
        return _error(request, "Interviewer not found")

    client = _client(request)
    try:
        credentials = await client.exchange_code_for_tokens(code, redirect_uri)
    except CalendarSyncError as e:
        logger.error("Token exchange failed", interviewer_id=interviewer_id, error=str(e))
        return _error(request, "Failed to exchange authorization code")

    now = request.app.state.now_fn()
    credentials.connected_at = now
    await store.put_calendar_credentials(org, interviewer_id, credentials)
    logger.info("Interviewer connected Google Calendar", interviewer_id=interviewer_id)

    bookings = await store.list_bookings_for_interviewer(org, interviewer_id)
    results = await sync_upcoming_bookings(client, credentials, bookings, now)
    refreshed = next((r.credentials for r in reversed(results) if r.success), None)
    if refreshed is not None:
        await store.put_calendar_credentials(org, interviewer_id, refreshed)

    return _redirect(request, "/dashboard", synced="true")


@router.get("/auth")
async def applicant_auth(
    request: Request, org: OrgId, booking_id: str | None = None
) -> RedirectResponse:
    if not booking_id:
        return _error(request, "Missing booking ID")

    settings: Settings = request.app.state.settings
    if not settings.google_redirect_uri or not settings.google_configured():
        logger.error("Applicant OAuth redirect not configured")
        return _error(request, "OAuth not configured")

    url = _client(request).generate_auth_url(
        settings.google_redirect_uri, encode_state(org, booking_id)
    )
    return RedirectResponse(url, status_code=302)


@router.get("/callback")
async def applicant_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
) -> RedirectResponse:
    if error:
        logger.warning("Applicant denied Google authorization", error=error)
        return _error(request, "Google authorization denied")
    if not code or not state:
        return _error(request, "Missing authorization code or booking ID")

    settings: Settings = request.app.state.settings
    if not settings.google_redirect_uri:
        return _error(request, "OAuth not configured")

    org, booking_id = decode_state(state, settings.default_organization_id)
    client = _client(request)
    try:
        credentials = await client.exchange_code_for_tokens(
            code, settings.google_redirect_uri
        )
    except CalendarSyncError as e:
        logger.error("Token exchange failed", booking_id=booking_id, error=str(e))
        return _error(request, "Failed to exchange authorization code")

    try:
        booking = await get_store(request).get_booking(org, booking_id)
    except NotFound:
        return _error(request, "Booking not found")

    result = await sync_booking(client, credentials, booking)
    if not result.success:
        return _error(request, "Failed to create calendar event")
    return _redirect(request, "/booking/success", booking_id=booking_id, synced="true")


@router.post("/sync-booking")
async def sync_booking_endpoint(
    body: SyncBookingRequest, org: OrgId, request: Request
) -> JSONResponse:
    store = get_store(request)
    credentials = await store.get_calendar_credentials(org, body.interviewer_id)
    if credentials is None or not credentials.connected:
        return JSONResponse(
            {
                "success": False,
                "error": "Interviewer has not connected Google Calendar",
                "not_connected": True,
            }
        )

    booking = await store.get_booking(org, body.booking_id)
    result = await sync_booking(_client(request), credentials, booking)
    if not result.success:
        return JSONResponse(
            {"success": False, "error": "Failed to create calendar event"},
            status_code=500,
        )

    await store.put_calendar_credentials(org, body.interviewer_id, result.credentials)
    return JSONResponse(
        {"success": True, "message": "Booking synced to Google Calendar"}
    )
