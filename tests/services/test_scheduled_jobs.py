"""
Periodic jobs run against the test database
"""
from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from alumni.models.analytics import AnalyticsSnapshot
from alumni.models.base import utcnow
from alumni.models.security import SecurityEvent, SessionSecurity
from alumni.services import tasks


@pytest.mark.asyncio
async def test_jobs_on_empty_database(db_session):
    assert await tasks.publish_scheduled_posts(db_session) == 0
    assert await tasks.process_recurring_donations(db_session) == 0
    assert await tasks.send_scheduled_campaigns(db_session) == 0
    assert await tasks.retry_due_deliveries(db_session) == 0
    assert await tasks.cleanup(db_session) == {"matches": 0, "sessions": 0}
    assert await tasks.snapshot_analytics(db_session) == 0


@pytest.mark.asyncio
async def test_cleanup_removes_expired_sessions(client, tenant, admin, db_session):
    await db_session.execute(update(SessionSecurity).values(expires_at=utcnow() - timedelta(minutes=1)))

    result = await tasks.cleanup(db_session)
    assert result["sessions"] == 1

    events = await db_session.execute(
        select(SecurityEvent).where(SecurityEvent.event_type == "session_cleanup")
    )
    assert events.scalar_one().details == {"deleted_count": 1}


@pytest.mark.asyncio
async def test_snapshot_every_active_tenant(client, factory, tenant, admin, db_session):
    await factory.create_tenant()
    assert await tasks.snapshot_analytics(db_session) == 2
    # a second run replaces the day's snapshots
    assert await tasks.snapshot_analytics(db_session) == 2

    result = await db_session.execute(select(func.count()).select_from(AnalyticsSnapshot))
    assert result.scalar() == 2


def test_every_scheduled_job_takes_a_session():
    names = {job.__name__ for job in tasks.SCHEDULED_JOBS}
    assert names == {
        "publish_scheduled_posts",
        "process_recurring_donations",
        "send_scheduled_campaigns",
        "retry_due_deliveries",
        "cleanup",
        "snapshot_analytics",
    }
