"""
Google Calendar sync for confirmed bookings.
Handles the OAuth consent URL, code exchange, token refresh and event
creation on the primary calendar.
"""

from dataclasses import dataclass
from datetime import datetime
from urllib.parse import urlencode

import httpx

from slotbook.config import Settings
from slotbook.models import Booking, BookingStatus, CalendarCredentials
from slotbook.observability import get_logger

logger = get_logger(__name__)

GOOGLE_OAUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
CALENDAR_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"

CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar.events"]

REQUEST_TIMEOUT = 30  # seconds


class CalendarSyncError(Exception):
    """Google OAuth or Calendar API failure."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}


@dataclass
class SyncResult:
    success: bool
    event_id: str | None = None
    error: str | None = None
    not_connected: bool = False
    # copy used for the call, carrying any refreshed access token
    credentials: CalendarCredentials | None = None


class GoogleCalendarClient:
    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(REQUEST_TIMEOUT), transport=transport
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "GoogleCalendarClient":
        return cls(settings.google_client_id, settings.google_client_secret)

    async def close(self) -> None:
        await self._client.aclose()

    def _require_credentials(self) -> None:
        if not self.client_id or not self.client_secret:
            raise CalendarSyncError("Google OAuth credentials not configured")

    def generate_auth_url(self, redirect_uri: str, state: str) -> str:
        """Consent URL asking for offline access so a refresh token is issued."""
        self._require_credentials()
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(CALENDAR_SCOPES),
            "response_type": "code",
            "state": state,
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{GOOGLE_OAUTH_BASE_URL}?{urlencode(params)}"

    async def exchange_code_for_tokens(
        self, code: str, redirect_uri: str
    ) -> CalendarCredentials:
        self._require_credentials()
        data = await self._token_request(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri,
            },
            operation="code_exchange",
        )
        return CalendarCredentials(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
        )

    async def refresh_access_token(self, refresh_token: str) -> str:
        self._require_credentials()
        data = await self._token_request(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
            operation="token_refresh",
        )
        return data["access_token"]

    async def _token_request(self, form: dict, *, operation: str) -> dict:
        try:
            response = await self._client.post(GOOGLE_TOKEN_URL, data=form)
        except httpx.RequestError as e:
            logger.error("Network error during token request", operation=operation, error=str(e))
            raise CalendarSyncError(f"Network error during {operation}: {e}") from e

        data = _json_or_empty(response)
        if not response.is_success or not data.get("access_token"):
            logger.error(
                "Token request failed",
                operation=operation,
                status_code=response.status_code,
                error=data.get("error"),
            )
            raise CalendarSyncError(
                f"Failed to get access token ({operation})",
                status_code=response.status_code,
                response_data=data,
            )
        return data

    async def create_event(self, credentials: CalendarCredentials, booking: Booking) -> dict:
        """
        Insert the booking into the primary calendar and notify attendees.

        A 401 with a refresh token available triggers one refresh and retry;
        the refreshed access token is written back onto ``credentials``.
        """
        response = await self._insert_event(credentials.access_token, booking)
        if response.status_code == 401 and credentials.refresh_token:
            logger.info("Calendar access token rejected, refreshing", booking_id=booking.id)
            credentials.access_token = await self.refresh_access_token(
                credentials.refresh_token
            )
            response = await self._insert_event(credentials.access_token, booking)

        data = _json_or_empty(response)
        if not response.is_success:
            message = data.get("error", {}).get("message", "Unknown Calendar API error")
            raise CalendarSyncError(
                f"Calendar event creation failed: {message}",
                status_code=response.status_code,
                response_data=data,
            )
        return data

    async def _insert_event(self, access_token: str, booking: Booking) -> httpx.Response:
        try:
            return await self._client.post(
                CALENDAR_EVENTS_URL,
                params={"sendUpdates": "all"},
                json=build_event(booking),
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.RequestError as e:
            raise CalendarSyncError(f"Network error creating calendar event: {e}") from e


def _json_or_empty(response: httpx.Response) -> dict:
    try:
        return response.json() if response.text else {}
    except ValueError:
        return {}


def build_event(booking: Booking) -> dict:
    description = ""
    if booking.meeting_link:
        description += f"Meeting Link: {booking.meeting_link}\n\n"
    if booking.notes:
        description += f"Notes: {booking.notes}"

    event = {
        "summary": booking.event_type_title,
        "start": {"dateTime": booking.start_time.isoformat(), "timeZone": "UTC"},
        "end": {"dateTime": booking.end_time.isoformat(), "timeZone": "UTC"},
        "attendees": [
            {"email": booking.applicant_email, "displayName": booking.applicant_name},
            {
                "email": booking.interviewer_email,
                "displayName": booking.interviewer_name or "Interviewer",
            },
        ],
        "reminders": {
            "useDefault": False,
            "overrides": [
                {"method": "email", "minutes": 60},
                {"method": "popup", "minutes": 15},
            ],
        },
    }
    if description:
        event["description"] = description
    if booking.meeting_link:
        event["location"] = booking.meeting_link
    return event


async def sync_booking(
    client: GoogleCalendarClient,
    credentials: CalendarCredentials | None,
    booking: Booking,
) -> SyncResult:
    """
    Push one booking to a connected calendar. Failures are logged and
    reported in the result; the booking itself is never touched.

    ``credentials`` is not modified. On success the result carries the
    copy that was used, so a refreshed token can be persisted.
    """
    if credentials is None or not credentials.connected:
        return SyncResult(
            success=False,
            error="Interviewer has not connected Google Calendar",
            not_connected=True,
        )
    working = credentials.model_copy()
    try:
        event = await client.create_event(working, booking)
    except CalendarSyncError as e:
        logger.error(
            "Calendar sync failed",
            booking_id=booking.id,
            interviewer_id=booking.interviewer_id,
            error=str(e),
            status_code=e.status_code,
        )
        return SyncResult(success=False, error=str(e))

    logger.info("Booking synced to Google Calendar", booking_id=booking.id)
    return SyncResult(success=True, event_id=event.get("id"), credentials=working)


async def sync_upcoming_bookings(
    client: GoogleCalendarClient,
    credentials: CalendarCredentials,
    bookings: list[Booking],
    now: datetime,
) -> list[SyncResult]:
    """
    Sync every future CONFIRMED booking, one after another. A token
    refreshed for one booking is reused for the next.
    """
    results = []
    current = credentials
    for booking in bookings:
        if booking.status != BookingStatus.CONFIRMED or booking.start_time < now:
            continue
        result = await sync_booking(client, current, booking)
        if result.success:
            current = result.credentials
        results.append(result)
    logger.info(
        "Synced existing bookings",
        synced=sum(r.success for r in results),
        attempted=len(results),
    )
    return results
