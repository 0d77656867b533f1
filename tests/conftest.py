"""
Test configuration

Fixtures: in-memory database, test client, tenant and accounts, data factory
"""
from datetime import timedelta
from typing import AsyncGenerator, Optional
from dataclasses import dataclass, field

import pytest
import pytest_asyncio
from fastapi import Depends
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import alumni.models  # noqa: F401
from alumni.core.cache import cache
from alumni.core.config import settings
from alumni.core.database import get_db
from alumni.core.queue import SyncQueue, get_queue
from alumni.main import create_app
from alumni.models.base import utcnow

API = "/api/v1"
PASSWORD = "correct-horse-battery"


def auth(account: dict) -> dict:
    """Authorization header for an account returned by the factory"""
    return {"Authorization": f"Bearer {account['token']}"}


# ========== Data factory ==========

@dataclass
class DataFactory:
    """
    Creates test data through the API

    Accounts are the register payload ({token, expires_at, user}); pass one
    as the owner of whatever is being created.
    """
    client: AsyncClient
    _counter: int = field(default=0, repr=False)

    def _next_id(self) -> str:
        self._counter += 1
        return str(self._counter)

    async def create_tenant(self, **overrides) -> dict:
        suffix = self._next_id()
        data = {"name": f"University {suffix}", "slug": f"uni-{suffix}", **overrides}
        resp = await self.client.post(f"{API}/tenants", json=data)
        assert resp.status_code == 201, f"tenant creation failed: {resp.text}"
        return resp.json()["data"]

    async def register(self, **overrides) -> dict:
        suffix = self._next_id()
        data = {
            "email": f"graduate{suffix}@example.com",
            "password": PASSWORD,
            "name": f"Graduate {suffix}",
            "graduation_year": 2018,
            "location": "Boston",
            "industry": "Technology",
            "skills": ["python", "sql"],
            "interests": ["mentoring"],
            **overrides
        }
        resp = await self.client.post(f"{API}/auth/register", json=data)
        assert resp.status_code == 201, f"registration failed: {resp.text}"
        return resp.json()["data"]

    async def set_role(self, admin: dict, account: dict, role: str) -> dict:
        resp = await self.client.patch(
            f"{API}/users/{account['user']['id']}/role", json={"role": role}, headers=auth(admin)
        )
        assert resp.status_code == 200, f"role change failed: {resp.text}"
        account["user"] = resp.json()["data"]
        return account

    async def create_course(self, admin: dict, **overrides) -> dict:
        suffix = self._next_id()
        data = {"name": f"Computer Science {suffix}", "code": f"CS{suffix}", **overrides}
        resp = await self.client.post(f"{API}/courses", json=data, headers=auth(admin))
        assert resp.status_code == 201, f"course creation failed: {resp.text}"
        return resp.json()["data"]

    async def create_post(self, account: dict, **overrides) -> dict:
        suffix = self._next_id()
        data = {"content": f"Hello classmates, post number {suffix}", **overrides}
        resp = await self.client.post(f"{API}/posts", json=data, headers=auth(account))
        assert resp.status_code == 201, f"post creation failed: {resp.text}"
        return resp.json()["data"]

    async def create_circle(self, account: dict, **overrides) -> dict:
        suffix = self._next_id()
        data = {"name": f"Book club {suffix}", "description": "Monthly reads", **overrides}
        resp = await self.client.post(f"{API}/circles", json=data, headers=auth(account))
        assert resp.status_code == 201, f"circle creation failed: {resp.text}"
        return resp.json()["data"]

    async def create_group(self, account: dict, **overrides) -> dict:
        suffix = self._next_id()
        data = {"name": f"Alumni in data {suffix}", "category": "professional", **overrides}
        resp = await self.client.post(f"{API}/groups", json=data, headers=auth(account))
        assert resp.status_code == 201, f"group creation failed: {resp.text}"
        return resp.json()["data"]

    async def create_job(self, account: dict, **overrides) -> dict:
        suffix = self._next_id()
        data = {
            "title": f"Backend Engineer {suffix}",
            "company_name": "Acme",
            "description": "Build APIs",
            "location": "Boston",
            "required_skills": ["python", "sql"],
            "min_experience": 0,
            **overrides
        }
        resp = await self.client.post(f"{API}/jobs", json=data, headers=auth(account))
        assert resp.status_code == 201, f"job creation failed: {resp.text}"
        return resp.json()["data"]

    async def create_event(self, account: dict, **overrides) -> dict:
        suffix = self._next_id()
        start = utcnow() + timedelta(days=7)
        data = {
            "title": f"Networking night {suffix}",
            "description": "Meet fellow graduates",
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(hours=3)).isoformat(),
            "venue_name": "Main hall",
            **overrides
        }
        resp = await self.client.post(f"{API}/events", json=data, headers=auth(account))
        assert resp.status_code == 201, f"event creation failed: {resp.text}"
        return resp.json()["data"]

    async def create_campaign(self, admin: dict, **overrides) -> dict:
        suffix = self._next_id()
        data = {"title": f"Scholarship fund {suffix}", "goal_amount": 1000, **overrides}
        resp = await self.client.post(f"{API}/campaigns", json=data, headers=auth(admin))
        assert resp.status_code == 201, f"campaign creation failed: {resp.text}"
        return resp.json()["data"]

    async def create_forum(self, admin: dict, group_id: Optional[str] = None, **overrides) -> dict:
        suffix = self._next_id()
        data = {"name": f"Careers forum {suffix}", "category": "careers", "group_id": group_id, **overrides}
        resp = await self.client.post(f"{API}/forums", json=data, headers=auth(admin))
        assert resp.status_code == 201, f"forum creation failed: {resp.text}"
        return resp.json()["data"]


# ========== Database and client ==========

@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)
    monkeypatch.setattr(settings, "federation_enabled", False)
    monkeypatch.setattr(settings, "payment_gateway", "sandbox")
    cache.flush()
    yield
    cache.flush()


@pytest_asyncio.fixture(scope="function")
async def session_factory():
    """
    One in-memory database per test; StaticPool keeps every session on the
    same connection so they all see the same tables
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for tests that call services directly"""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """
    Test HTTP client

    get_db opens a session per request on the test database, queued jobs
    run inline so their effects are visible to the next request
    """
    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    def override_get_queue(db: AsyncSession = Depends(get_db)):
        return SyncQueue(db)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_queue] = override_get_queue

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def factory(client: AsyncClient) -> DataFactory:
    return DataFactory(client=client)


@pytest_asyncio.fixture
async def tenant(client: AsyncClient, factory: DataFactory) -> dict:
    """Creates a tenant and sends its slug on every request of the client"""
    tenant = await factory.create_tenant()
    client.headers["X-Tenant-ID"] = tenant["slug"]
    return tenant


@pytest_asyncio.fixture
async def admin(tenant: dict, factory: DataFactory) -> dict:
    """First registered account of the tenant, an institution admin"""
    return await factory.register(name="Ada Admin", email="admin@example.com")


@pytest_asyncio.fixture
async def alumnus(admin: dict, factory: DataFactory) -> dict:
    return await factory.register()
