import pytest
from httpx import AsyncClient

from helpers import DAY, ORG, _banner, _p
from slotbook.api import generate_slug
from slotbook.database import DocumentStore


@pytest.mark.asyncio
async def test_upsert_and_fetch_interviewer(client: AsyncClient) -> None:
    resp = await client.put(
        "/interviewers/bob-id",
        json={"email": "bob@example.com", "name": "Bob", "timezone": "Europe/Berlin"},
    )
    assert resp.status_code == 200
    assert resp.json()["organization_id"] == ORG

    resp = await client.get("/interviewers/bob-id")
    assert resp.json()["timezone"] == "Europe/Berlin"


@pytest.mark.asyncio
async def test_unknown_timezone_is_rejected(client: AsyncClient) -> None:
    resp = await client.put(
        "/interviewers/bob-id",
        json={"email": "bob@example.com", "timezone": "Mars/Olympus_Mons"},
    )
    assert resp.status_code == 422


def test_generate_slug() -> None:
    assert generate_slug("Technical Screen") == "technical-screen"
    assert generate_slug("  C++ / Systems  Round! ") == "c-systems-round"


@pytest.mark.asyncio
async def test_event_type_lifecycle(client: AsyncClient, setup_test_data) -> None:
    _banner("event types: create with derived slug, rename, delete")
    resp = await client.post(
        "/interviewers/ada-id/event-types",
        json={"title": "System Design", "color": "#10b981"},
    )
    _p(f"create -> {resp.status_code} {resp.json()}")
    assert resp.status_code == 201
    created = resp.json()
    assert created["slug"] == "system-design"
    assert created["color"] == "#10b981"

    # same title again gets a distinct slug
    dup = await client.post(
        "/interviewers/ada-id/event-types", json={"title": "System Design"}
    )
    assert dup.json()["slug"] == "system-design-2"
    assert dup.json()["color"] == "#6366f1"

    renamed = await client.put(
        f"/interviewers/ada-id/event-types/{created['id']}",
        json={"title": "Architecture Deep Dive"},
    )
    assert renamed.json()["slug"] == "architecture-deep-dive"

    listed = await client.get("/interviewers/ada-id/event-types")
    assert {e["slug"] for e in listed.json()} >= {
        "architecture-deep-dive",
        "system-design-2",
        "technical-screen",
    }

    deleted = await client.delete(f"/interviewers/ada-id/event-types/{created['id']}")
    assert deleted.status_code == 200
    missing = await client.delete(f"/interviewers/ada-id/event-types/{created['id']}")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_add_window_derives_duration_and_sorts(
    client: AsyncClient, setup_test_data
) -> None:
    resp = await client.post(
        "/interviewers/ada-id/availability/2025-07-02/windows",
        json={"start_time": "08:00", "end_time": "08:45", "event_type_id": "tech"},
    )
    assert resp.status_code == 201
    assert resp.json()["duration"] == 45

    day = await client.get("/interviewers/ada-id/availability/2025-07-02")
    starts = [w["start_time"] for w in day.json()["slots"]]
    assert starts == ["08:00", "09:00", "10:00", "14:00"]


@pytest.mark.asyncio
async def test_overlapping_window_is_rejected(
    client: AsyncClient, setup_test_data
) -> None:
    _banner("a window overlapping an existing one is not persisted")
    store: DocumentStore = setup_test_data

    resp = await client.post(
        "/interviewers/ada-id/availability/2025-07-02/windows",
        json={"start_time": "09:15", "end_time": "09:45", "event_type_id": "culture"},
    )
    _p(f"add overlapping window -> {resp.status_code} {resp.json()}")
    assert resp.status_code == 409
    assert resp.json()["reason"] == "overlap"
    assert resp.json()["conflict"]["id"] == "w-0900"

    day = await store.get_day_availability(ORG, "ada-id", DAY)
    assert len(day.slots) == 3


@pytest.mark.asyncio
async def test_back_to_back_window_is_accepted(
    client: AsyncClient, setup_test_data
) -> None:
    resp = await client.post(
        "/interviewers/ada-id/availability/2025-07-02/windows",
        json={"start_time": "09:30", "end_time": "10:00", "event_type_id": "culture"},
    )
    assert resp.status_code == 201


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "start,end", [("10:00", "09:00"), ("9:00", "10:00"), ("noon", "13:00")]
)
async def test_invalid_window_times_are_422(
    client: AsyncClient, setup_test_data, start: str, end: str
) -> None:
    resp = await client.post(
        "/interviewers/ada-id/availability/2025-07-03/windows",
        json={"start_time": start, "end_time": end, "event_type_id": "tech"},
    )
    assert resp.status_code == 422
    assert resp.json()["reason"] == "invalid_window_format"


@pytest.mark.asyncio
async def test_window_requires_known_event_type(
    client: AsyncClient, setup_test_data
) -> None:
    resp = await client.post(
        "/interviewers/ada-id/availability/2025-07-03/windows",
        json={"start_time": "09:00", "end_time": "10:00", "event_type_id": "nope"},
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_window_and_clear_day(
    client: AsyncClient, setup_test_data
) -> None:
    resp = await client.delete(
        "/interviewers/ada-id/availability/2025-07-02/windows/w-0900"
    )
    assert resp.status_code == 200
    assert [w["id"] for w in resp.json()["slots"]] == ["w-1000", "w-1400"]

    missing = await client.delete(
        "/interviewers/ada-id/availability/2025-07-02/windows/w-0900"
    )
    assert missing.status_code == 404

    cleared = await client.delete("/interviewers/ada-id/availability/2025-07-02")
    assert cleared.json() == {"status": "cleared", "date": "2025-07-02"}
    listed = await client.get("/interviewers/ada-id/availability")
    assert listed.json() == []


@pytest.mark.asyncio
async def test_removing_last_window_removes_the_day(
    client: AsyncClient, setup_test_data
) -> None:
    await client.post(
        "/interviewers/ada-id/availability/2025-07-05/windows",
        json={"start_time": "09:00", "end_time": "10:00", "event_type_id": "tech"},
    )
    day = await client.get("/interviewers/ada-id/availability/2025-07-05")
    window_id = day.json()["slots"][0]["id"]

    await client.delete(
        f"/interviewers/ada-id/availability/2025-07-05/windows/{window_id}"
    )
    listed = await client.get("/interviewers/ada-id/availability")
    assert [d["date"] for d in listed.json()] == ["2025-07-02"]
