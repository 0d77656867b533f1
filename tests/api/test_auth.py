"""
Tenants, registration, login and session API tests
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from alumni.models.security import SecurityEvent
from tests.conftest import API, PASSWORD, DataFactory, auth


@pytest.mark.asyncio
async def test_tenant_resolution(client: AsyncClient, factory: DataFactory):
    tenant = await factory.create_tenant(name="Northfield College", slug="northfield")

    response = await client.get(f"{API}/tenants/current", headers={"X-Tenant-ID": "northfield"})
    assert response.status_code == 200
    assert response.json()["data"]["id"] == tenant["id"]

    # id works as well as slug, and so does the query parameter
    response = await client.get(f"{API}/tenants/current", params={"tenant_id": tenant["id"]})
    assert response.status_code == 200

    response = await client.get(f"{API}/tenants/current", headers={"Host": "northfield.alumni.test"})
    assert response.status_code == 200
    assert response.json()["data"]["slug"] == "northfield"

    response = await client.get(f"{API}/tenants/current")
    assert response.status_code == 400

    response = await client.get(f"{API}/tenants/current", headers={"X-Tenant-ID": "missing"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_duplicate_tenant_slug(client: AsyncClient, factory: DataFactory):
    await factory.create_tenant(slug="taken")
    response = await client.post(f"{API}/tenants", json={"name": "Other", "slug": "taken"})
    assert response.status_code == 409

    response = await client.post(f"{API}/tenants", json={"name": "Bad", "slug": "Not A Slug"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_first_user_becomes_admin(client: AsyncClient, factory: DataFactory, tenant: dict):
    first = await factory.register()
    second = await factory.register()

    assert first["user"]["role"] == "institution_admin"
    assert second["user"]["role"] == "alumni"
    assert first["token"]

    response = await client.get(f"{API}/auth/me", headers=auth(second))
    assert response.status_code == 200
    assert response.json()["data"]["email"] == second["user"]["email"]


@pytest.mark.asyncio
async def test_register_duplicate_email(client: AsyncClient, factory: DataFactory, tenant: dict):
    await factory.register(email="same@example.com")
    response = await client.post(f"{API}/auth/register", json={
        "email": "SAME@example.com",
        "password": PASSWORD,
        "name": "Copy",
    })
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_same_email_in_two_tenants(client: AsyncClient, factory: DataFactory):
    first = await factory.create_tenant()
    second = await factory.create_tenant()
    for t in (first, second):
        response = await client.post(
            f"{API}/auth/register",
            json={"email": "shared@example.com", "password": PASSWORD, "name": "Shared"},
            headers={"X-Tenant-ID": t["slug"]},
        )
        assert response.status_code == 201


@pytest.mark.asyncio
async def test_login_and_logout(client: AsyncClient, alumnus: dict):
    email = alumnus["user"]["email"]
    response = await client.post(f"{API}/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200
    account = response.json()["data"]

    response = await client.post(f"{API}/auth/logout", headers=auth(account))
    assert response.status_code == 200

    response = await client.get(f"{API}/auth/me", headers=auth(account))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_login_blocked_after_failures(client: AsyncClient, alumnus: dict):
    email = alumnus["user"]["email"]
    for _ in range(5):
        response = await client.post(f"{API}/auth/login", json={"email": email, "password": "wrong-password"})
        assert response.status_code == 401

    # even the right password is refused while blocked
    response = await client.post(f"{API}/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 429
    assert response.json()["data"]["retry_after"] > 0


@pytest.mark.asyncio
async def test_token_rejected_in_other_tenant(client: AsyncClient, factory: DataFactory, alumnus: dict):
    other = await factory.create_tenant()
    response = await client.get(f"{API}/auth/me", headers={**auth(alumnus), "X-Tenant-ID": other["slug"]})
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_session_pinned_to_login_ip(client: AsyncClient, alumnus: dict, db_session):
    response = await client.get(f"{API}/auth/me", headers={**auth(alumnus), "X-Forwarded-For": "203.0.113.9"})
    assert response.status_code == 401

    # the session stays invalid afterwards
    response = await client.get(f"{API}/auth/me", headers=auth(alumnus))
    assert response.status_code == 401

    result = await db_session.execute(
        select(SecurityEvent).where(SecurityEvent.event_type == "session_hijack_attempt")
    )
    event = result.scalar_one()
    assert event.details["current_ip"] == "203.0.113.9"


@pytest.mark.asyncio
async def test_invalid_token(client: AsyncClient, tenant: dict):
    response = await client.get(f"{API}/auth/me", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401

    response = await client.get(f"{API}/auth/me")
    assert response.status_code == 401
