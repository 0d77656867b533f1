"""
Profile, role and alumni directory API tests
"""
import pytest
from httpx import AsyncClient
from tests.conftest import API, DataFactory, auth


@pytest.mark.asyncio
async def test_profile_update_moves_auto_circles(client: AsyncClient, alumnus: dict):
    response = await client.get(f"{API}/circles", params={"mine": True}, headers=auth(alumnus))
    names = {c["name"] for c in response.json()["data"]["items"]}
    assert names == {"Class of 2018", "Boston"}

    response = await client.patch(
        f"{API}/users/me",
        json={"graduation_year": 2020, "location": "Denver", "headline": "Data engineer"},
        headers=auth(alumnus),
    )
    assert response.status_code == 200
    assert response.json()["data"]["headline"] == "Data engineer"

    response = await client.get(f"{API}/circles", params={"mine": True}, headers=auth(alumnus))
    names = {c["name"] for c in response.json()["data"]["items"]}
    assert names == {"Class of 2020", "Denver"}


@pytest.mark.asyncio
async def test_profile_update_rejects_unknown_course(client: AsyncClient, alumnus: dict):
    response = await client.patch(f"{API}/users/me", json={"course_id": "nope"}, headers=auth(alumnus))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_role_change_is_admin_only(client: AsyncClient, factory: DataFactory, admin: dict, alumnus: dict):
    response = await client.patch(
        f"{API}/users/{admin['user']['id']}/role", json={"role": "alumni"}, headers=auth(alumnus)
    )
    assert response.status_code == 403

    account = await factory.set_role(admin, alumnus, "employer")
    assert account["user"]["role"] == "employer"


@pytest.mark.asyncio
async def test_directory_search_and_filters(client: AsyncClient, factory: DataFactory, admin: dict):
    await factory.register(name="Grace Hopper", graduation_year=2010, location="Arlington",
                           industry="Defense", current_company="Navy", skills=["cobol"])
    await factory.register(name="Linus Example", graduation_year=2015, industry="Technology", skills=["c"])

    response = await client.get(f"{API}/alumni", params={"search": "grace"}, headers=auth(admin))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total"] == 1
    assert data["items"][0]["name"] == "Grace Hopper"

    response = await client.get(
        f"{API}/alumni", params={"graduation_year_from": 2012, "industries": ["Technology"]}, headers=auth(admin)
    )
    names = {u["name"] for u in response.json()["data"]["items"]}
    assert "Linus Example" in names
    assert "Grace Hopper" not in names

    response = await client.get(f"{API}/alumni", params={"skills": ["COBOL"]}, headers=auth(admin))
    assert response.json()["data"]["total"] == 1

    response = await client.get(f"{API}/alumni/filters", headers=auth(admin))
    filters = response.json()["data"]
    assert filters["graduation_years"]["min"] == 2010
    assert any(s["value"] == "cobol" for s in filters["skills"])


@pytest.mark.asyncio
async def test_profile_privacy(client: AsyncClient, factory: DataFactory, admin: dict, alumnus: dict):
    viewer = await factory.register()
    alumnus_id = alumnus["user"]["id"]

    response = await client.get(f"{API}/alumni/{alumnus_id}", headers=auth(viewer))
    assert response.status_code == 200
    profile = response.json()["data"]
    assert profile["email"] is None
    assert profile["connection_status"] == "none"
    assert {c["name"] for c in profile["shared_circles"]} == {"Class of 2018", "Boston"}

    await client.patch(f"{API}/users/me", json={"profile_visibility": "connections"}, headers=auth(alumnus))
    response = await client.get(f"{API}/alumni/{alumnus_id}", headers=auth(viewer))
    assert response.status_code == 403

    # admins see every profile
    response = await client.get(f"{API}/alumni/{alumnus_id}", headers=auth(admin))
    assert response.status_code == 200

    response = await client.get(f"{API}/alumni/{alumnus_id}", headers=auth(alumnus))
    assert response.json()["data"]["connection_status"] == "self"
    assert response.json()["data"]["email"] == alumnus["user"]["email"]


@pytest.mark.asyncio
async def test_profile_of_other_tenant_is_hidden(client: AsyncClient, factory: DataFactory, alumnus: dict):
    other_tenant = await factory.create_tenant()
    client.headers["X-Tenant-ID"] = other_tenant["slug"]
    stranger = await factory.register()

    response = await client.get(f"{API}/alumni/{alumnus['user']['id']}", headers=auth(stranger))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_course_catalogue(client: AsyncClient, factory: DataFactory, admin: dict, alumnus: dict):
    response = await client.post(f"{API}/courses", json={"name": "History", "code": "HIS"}, headers=auth(alumnus))
    assert response.status_code == 403

    course = await factory.create_course(admin, code="CS101", skills_gained=["python"])
    response = await client.post(f"{API}/courses", json={"name": "Again", "code": "CS101"}, headers=auth(admin))
    assert response.status_code == 409

    response = await client.patch(
        f"{API}/courses/{course['id']}", json={"level": "master"}, headers=auth(admin)
    )
    assert response.json()["data"]["level"] == "master"

    response = await client.get(f"{API}/courses", headers=auth(alumnus))
    assert [c["code"] for c in response.json()["data"]["items"]] == ["CS101"]

    response = await client.patch(f"{API}/users/me", json={"course_id": course["id"]}, headers=auth(alumnus))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_tenant_update_is_admin_only(client: AsyncClient, tenant: dict, admin: dict, alumnus: dict):
    response = await client.patch(f"{API}/tenants/current", json={"name": "Renamed"}, headers=auth(alumnus))
    assert response.status_code == 403

    response = await client.patch(
        f"{API}/tenants/current", json={"name": "Renamed", "domain": "alumni.example.edu"}, headers=auth(admin)
    )
    assert response.json()["data"]["name"] == "Renamed"
    assert response.json()["data"]["slug"] == tenant["slug"]
