"""
Circle and group API tests
"""
import pytest
from httpx import AsyncClient
from tests.conftest import API, DataFactory, auth


@pytest.mark.asyncio
async def test_custom_circle_flow(client: AsyncClient, factory: DataFactory, alumnus: dict):
    other = await factory.register()
    circle = await factory.create_circle(alumnus, name="Rowing team")
    assert circle["type"] == "custom"
    assert circle["member_count"] == 1
    assert circle["is_member"] is True

    response = await client.post(f"{API}/circles/{circle['id']}/join", headers=auth(other))
    assert response.status_code == 200
    response = await client.post(f"{API}/circles/{circle['id']}/join", headers=auth(other))
    assert response.status_code == 409

    response = await client.get(f"{API}/circles/{circle['id']}/members", headers=auth(alumnus))
    assert response.json()["data"]["total"] == 2

    response = await client.post(f"{API}/circles/{circle['id']}/leave", headers=auth(other))
    assert response.status_code == 200
    response = await client.post(f"{API}/circles/{circle['id']}/leave", headers=auth(other))
    assert response.status_code == 404

    response = await client.get(f"{API}/circles/{circle['id']}", headers=auth(alumnus))
    assert response.json()["data"]["member_count"] == 1


@pytest.mark.asyncio
async def test_auto_circles_cannot_be_joined_or_left(client: AsyncClient, factory: DataFactory, alumnus: dict):
    elsewhere = await factory.register(graduation_year=2001, location="Austin")
    response = await client.get(f"{API}/circles", params={"type": "school_year"}, headers=auth(alumnus))
    year_circles = {c["name"]: c for c in response.json()["data"]["items"]}
    assert set(year_circles) == {"Class of 2018", "Class of 2001"}

    response = await client.post(f"{API}/circles/{year_circles['Class of 2018']['id']}/join", headers=auth(elsewhere))
    assert response.status_code == 422
    response = await client.post(f"{API}/circles/{year_circles['Class of 2018']['id']}/leave", headers=auth(alumnus))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_public_group_flow(client: AsyncClient, factory: DataFactory, alumnus: dict):
    other = await factory.register()
    group = await factory.create_group(alumnus)
    assert group["membership_role"] == "admin"

    response = await client.post(f"{API}/groups/{group['id']}/join", headers=auth(other))
    assert response.status_code == 200
    assert response.json()["data"]["membership_status"] == "active"

    response = await client.post(f"{API}/groups/{group['id']}/join", headers=auth(other))
    assert response.status_code == 409

    # members cannot edit, the group admin can
    response = await client.patch(f"{API}/groups/{group['id']}", json={"description": "New"}, headers=auth(other))
    assert response.status_code == 403
    response = await client.patch(f"{API}/groups/{group['id']}", json={"description": "New"}, headers=auth(alumnus))
    assert response.json()["data"]["description"] == "New"

    response = await client.get(f"{API}/groups/{group['id']}/members", headers=auth(other))
    assert response.json()["data"]["total"] == 2

    # the only admin stays
    response = await client.post(f"{API}/groups/{group['id']}/leave", headers=auth(alumnus))
    assert response.status_code == 422
    response = await client.post(f"{API}/groups/{group['id']}/leave", headers=auth(other))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_private_group_requires_approval(client: AsyncClient, factory: DataFactory, alumnus: dict):
    other = await factory.register()
    group = await factory.create_group(alumnus, privacy="private")

    response = await client.post(f"{API}/groups/{group['id']}/join", headers=auth(other))
    assert response.json()["data"]["membership_status"] == "pending"

    response = await client.get(
        f"{API}/groups/{group['id']}/members", params={"status": "pending"}, headers=auth(other)
    )
    assert response.status_code == 403

    response = await client.get(
        f"{API}/groups/{group['id']}/members", params={"status": "pending"}, headers=auth(alumnus)
    )
    assert [m["id"] for m in response.json()["data"]["items"]] == [other["user"]["id"]]

    response = await client.post(
        f"{API}/groups/{group['id']}/members/{other['user']['id']}/approve", headers=auth(alumnus)
    )
    assert response.status_code == 200

    response = await client.get(f"{API}/groups/{group['id']}", headers=auth(other))
    assert response.json()["data"]["membership_status"] == "active"
    assert response.json()["data"]["member_count"] == 2


@pytest.mark.asyncio
async def test_secret_group_is_invitation_only(client: AsyncClient, factory: DataFactory, alumnus: dict):
    outsider = await factory.register()
    invitee = await factory.register()
    group = await factory.create_group(alumnus, privacy="secret")

    response = await client.get(f"{API}/groups/{group['id']}", headers=auth(outsider))
    assert response.status_code == 404
    response = await client.get(f"{API}/groups", headers=auth(outsider))
    assert group["id"] not in [g["id"] for g in response.json()["data"]["items"]]
    response = await client.post(f"{API}/groups/{group['id']}/join", headers=auth(outsider))
    assert response.status_code == 403

    response = await client.post(
        f"{API}/groups/{group['id']}/invite", json={"user_id": invitee["user"]["id"]}, headers=auth(alumnus)
    )
    assert response.status_code == 200

    response = await client.post(f"{API}/groups/{group['id']}/join", headers=auth(invitee))
    assert response.status_code == 200
    assert response.json()["data"]["membership_status"] == "active"
