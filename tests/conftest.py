import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from helpers import DAY, ORG
from slotbook.api import create_app
from slotbook.config import Settings
from slotbook.database import DocumentStore
from slotbook.models import AvailabilityWindow, DayAvailability, EventType, Interviewer


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        default_organization_id=ORG,
        google_client_id="client-id",
        google_client_secret="client-secret",
        google_redirect_uri="http://test/google/callback",
        google_interviewer_redirect_uri="http://test/google/interviewer-callback",
        app_base_url="http://frontend.test",
    )


@pytest_asyncio.fixture
async def client(settings: Settings):
    app = create_app(settings)
    # ASGITransport does not send lifespan events; run shutdown on exit
    async with app.router.lifespan_context(app):
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as async_client:
            yield async_client


@pytest_asyncio.fixture
async def setup_test_data(client: AsyncClient) -> DocumentStore:
    app = client._transport.app
    store: DocumentStore = app.state.store

    await store.put_interviewer(
        Interviewer(
            id="ada-id",
            organization_id=ORG,
            name="Ada Lovelace",
            email="ada@example.com",
            organization_name="Analytical Engines",
            meeting_link="https://meet.example.com/ada",
        )
    )
    await store.put_event_type(
        EventType(
            id="tech",
            organization_id=ORG,
            interviewer_id="ada-id",
            title="Technical Screen",
            slug="technical-screen",
            meeting_link="https://meet.example.com/tech",
        )
    )
    await store.put_event_type(
        EventType(
            id="culture",
            organization_id=ORG,
            interviewer_id="ada-id",
            title="Culture Fit",
            slug="culture-fit",
        )
    )
    await store.put_day_availability(
        ORG,
        "ada-id",
        DayAvailability(
            date=DAY,
            slots=[
                AvailabilityWindow(
                    id="w-0900", start_time="09:00", end_time="09:30",
                    duration=30, event_type_id="tech",
                ),
                AvailabilityWindow(
                    id="w-1000", start_time="10:00", end_time="11:00",
                    duration=60, event_type_id="tech",
                ),
                AvailabilityWindow(
                    id="w-1400", start_time="14:00", end_time="14:45",
                    duration=45, event_type_id="culture",
                ),
            ],
        ),
    )
    return store
