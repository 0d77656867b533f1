"""
Event, registration, check-in and virtual meeting API tests
"""
from datetime import timedelta

import pytest
from httpx import AsyncClient

from alumni.models.base import utcnow
from tests.conftest import API, DataFactory, auth


async def register(client: AsyncClient, event: dict, account: dict, **data):
    return await client.post(f"{API}/events/{event['id']}/register", json=data, headers=auth(account))


@pytest.mark.asyncio
async def test_event_listing_filters(client: AsyncClient, factory: DataFactory, alumnus: dict):
    gala = await factory.create_event(alumnus, title="Annual gala", type="social")
    await factory.create_event(alumnus, title="Career fair", type="career_fair")
    start = utcnow() - timedelta(days=10)
    past = await factory.create_event(
        alumnus, title="Old meetup",
        start_date=start.isoformat(), end_date=(start + timedelta(hours=1)).isoformat(),
    )

    response = await client.get(f"{API}/events", headers=auth(alumnus))
    ids = [e["id"] for e in response.json()["data"]["items"]]
    assert gala["id"] in ids
    assert past["id"] not in ids

    response = await client.get(f"{API}/events", params={"include_past": True}, headers=auth(alumnus))
    assert response.json()["data"]["total"] == 3

    response = await client.get(f"{API}/events", params={"type": "social"}, headers=auth(alumnus))
    assert [e["id"] for e in response.json()["data"]["items"]] == [gala["id"]]

    response = await client.get(f"{API}/events", params={"search": "gala"}, headers=auth(alumnus))
    assert response.json()["data"]["total"] == 1

    response = await client.get(f"{API}/events", params={"date_range": "someday"}, headers=auth(alumnus))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_end_before_start_rejected(client: AsyncClient, alumnus: dict):
    start = utcnow() + timedelta(days=3)
    response = await client.post(f"{API}/events", json={
        "title": "Backwards",
        "start_date": start.isoformat(),
        "end_date": (start - timedelta(hours=1)).isoformat(),
    }, headers=auth(alumnus))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_capacity_and_waitlist(client: AsyncClient, factory: DataFactory, alumnus: dict):
    first = await factory.register()
    second = await factory.register()
    event = await factory.create_event(alumnus, max_capacity=1)

    response = await register(client, event, first)
    assert response.status_code == 201
    assert response.json()["data"]["status"] == "registered"

    response = await register(client, event, first)
    assert response.status_code == 409

    response = await register(client, event, second)
    assert response.json()["data"]["status"] == "waitlisted"

    # cancelling frees the seat for the oldest waitlisted registration
    response = await client.post(f"{API}/events/{event['id']}/cancel", headers=auth(first))
    assert response.json()["data"]["status"] == "cancelled"

    response = await client.get(f"{API}/events/{event['id']}/attendees", headers=auth(alumnus))
    statuses = {a["attendee"]["id"]: a["status"] for a in response.json()["data"]}
    assert statuses[second["user"]["id"]] == "registered"

    response = await client.get(f"{API}/events/{event['id']}", headers=auth(first))
    assert response.json()["data"]["current_attendees"] == 1

    # a cancelled registration can register again, onto the waitlist now
    response = await register(client, event, first)
    assert response.json()["data"]["status"] == "waitlisted"


@pytest.mark.asyncio
async def test_guests_and_approval(client: AsyncClient, factory: DataFactory, alumnus: dict):
    other = await factory.register()
    event = await factory.create_event(alumnus, requires_approval=True, allow_guests=True, max_guests_per_attendee=1)

    response = await register(client, event, other, guests_count=2)
    assert response.status_code == 422

    response = await register(client, event, other, guests_count=1)
    registration = response.json()["data"]
    assert registration["status"] == "pending"

    response = await client.post(
        f"{API}/events/{event['id']}/registrations/{registration['id']}/approve", headers=auth(other)
    )
    assert response.status_code == 403
    response = await client.post(
        f"{API}/events/{event['id']}/registrations/{registration['id']}/approve", headers=auth(alumnus)
    )
    assert response.json()["data"]["status"] == "registered"

    response = await client.get(f"{API}/events/{event['id']}/analytics", headers=auth(alumnus))
    analytics = response.json()["data"]
    assert analytics["total_registrations"] == 1
    assert analytics["total_guests"] == 1
    assert analytics["by_status"]["registered"] == 1


@pytest.mark.asyncio
async def test_check_in(client: AsyncClient, factory: DataFactory, alumnus: dict):
    attendee = await factory.register()
    stranger = await factory.register()
    event = await factory.create_event(alumnus)
    await register(client, event, attendee)
    url = f"{API}/events/{event['id']}/check-in"

    response = await client.post(url, json={}, headers=auth(stranger))
    assert response.status_code == 422

    # only the organizer checks in someone else
    response = await client.post(url, json={"user_id": attendee["user"]["id"]}, headers=auth(stranger))
    assert response.status_code == 403

    response = await client.post(url, json={"user_id": attendee["user"]["id"], "method": "qr"}, headers=auth(alumnus))
    assert response.status_code == 201
    assert response.json()["data"]["method"] == "qr"

    response = await client.post(url, json={}, headers=auth(attendee))
    assert response.status_code == 409

    response = await client.post(f"{API}/events/{event['id']}/cancel", headers=auth(attendee))
    assert response.status_code == 422

    response = await client.get(f"{API}/events/{event['id']}/analytics", headers=auth(alumnus))
    assert response.json()["data"]["check_in_rate"] == 100.0


@pytest.mark.asyncio
async def test_virtual_meeting(client: AsyncClient, factory: DataFactory, alumnus: dict):
    attendee = await factory.register()
    stranger = await factory.register()
    event = await factory.create_event(alumnus, title="Remote Panel", format="virtual")
    assert event["meeting_platform"] == "jitsi"
    assert event["meeting_url"].startswith("https://meet.jit.si/alumni-remote-panel-")

    await register(client, event, attendee)
    response = await client.get(f"{API}/events/{event['id']}/meeting", headers=auth(attendee))
    assert response.status_code == 200
    credentials = response.json()["data"]
    assert credentials["room_id"] == event["jitsi_room_id"]
    assert credentials["display_name"] == attendee["user"]["name"]

    response = await client.get(f"{API}/events/{event['id']}/meeting", headers=auth(stranger))
    assert response.status_code == 403

    start = utcnow() + timedelta(days=2)
    response = await client.post(f"{API}/events", json={
        "title": "Zoom call",
        "format": "virtual",
        "meeting_platform": "zoom",
        "meeting_url": "not a url",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(hours=1)).isoformat(),
    }, headers=auth(alumnus))
    assert response.status_code == 422

    zoom = await factory.create_event(alumnus, format="hybrid", meeting_platform="zoom",
                                      meeting_url="https://zoom.us/j/123456")
    assert zoom["meeting_url"] == "https://zoom.us/j/123456"


@pytest.mark.asyncio
async def test_upcoming_and_recommended(client: AsyncClient, factory: DataFactory, alumnus: dict):
    organizer = await factory.register()
    nearby = await factory.create_event(organizer, venue_address="1 Main St, Boston")
    await factory.create_event(organizer, venue_address="Paris")

    response = await client.get(f"{API}/events/recommended", headers=auth(alumnus))
    ids = [e["id"] for e in response.json()["data"]]
    assert ids == [nearby["id"]]

    await register(client, nearby, alumnus)
    response = await client.get(f"{API}/events/upcoming", headers=auth(alumnus))
    assert [e["id"] for e in response.json()["data"]] == [nearby["id"]]

    response = await client.get(f"{API}/events/recommended", headers=auth(alumnus))
    assert response.json()["data"] == []
