"""
Analytics API tests
"""
import json
from datetime import timedelta

import pytest
import pytest_asyncio

from alumni.models.base import utcnow
from tests.conftest import API, auth


@pytest_asyncio.fixture
async def activity(factory, admin, alumnus):
    first = await factory.create_post(alumnus)
    await factory.create_post(admin)
    await factory.client.post(f"{API}/posts/{first['id']}/engage", json={"type": "like"}, headers=auth(admin))
    await factory.create_group(alumnus)


@pytest.mark.asyncio
async def test_analytics_is_admin_only(client, tenant, admin, alumnus):
    for path in ("engagement", "activity", "health", "usage", "metrics", "snapshots"):
        resp = await client.get(f"{API}/analytics/{path}", headers=auth(alumnus))
        assert resp.status_code == 403, path


@pytest.mark.asyncio
async def test_engagement_metrics(client, tenant, admin, activity):
    resp = await client.get(f"{API}/analytics/engagement", headers=auth(admin))
    metrics = resp.json()["data"]
    assert metrics["total_users"] == 2
    assert metrics["new_users"] == 2
    assert metrics["posts_created"] == 2
    assert metrics["engagement_rate"] == 50.0
    assert metrics["connections_made"] == 0

    start = (utcnow() + timedelta(days=1)).isoformat()
    resp = await client.get(f"{API}/analytics/engagement", params={"start_date": start}, headers=auth(admin))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_activity_health_and_usage(client, tenant, admin, activity):
    resp = await client.get(f"{API}/analytics/activity", headers=auth(admin))
    activity_report = resp.json()["data"]
    assert sum(day["count"] for day in activity_report["post_activity"]) == 2
    assert activity_report["geographic_distribution"] == [{"location": "Boston", "count": 2}]

    resp = await client.get(f"{API}/analytics/health", headers=auth(admin))
    health = resp.json()["data"]
    assert health["network_density"] == 0
    assert health["group_participation"][0]["members_count"] == 1

    resp = await client.get(f"{API}/analytics/usage", headers=auth(admin))
    usage = resp.json()["data"]["feature_usage"]
    assert usage["posts"] == 2
    assert usage["post_engagements"] == 1
    assert usage["donations"] == 0


@pytest.mark.asyncio
async def test_custom_report_and_export(client, tenant, admin, activity):
    resp = await client.get(f"{API}/analytics/metrics", headers=auth(admin))
    assert "feature_usage" in resp.json()["data"]

    resp = await client.post(
        f"{API}/analytics/reports", json={"metrics": ["total_users", "posts_created"]}, headers=auth(admin)
    )
    assert resp.json()["data"]["report_data"] == {"total_users": 2, "posts_created": 2}

    resp = await client.post(f"{API}/analytics/reports", json={"metrics": ["page_rank"]}, headers=auth(admin))
    assert resp.status_code == 422

    resp = await client.post(
        f"{API}/analytics/export", json={"metrics": ["total_users", "posts_created"]}, headers=auth(admin)
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "attachment" in resp.headers["content-disposition"]
    assert resp.text.splitlines() == ["metric,value", "total_users,2", "posts_created,2"]

    resp = await client.post(
        f"{API}/analytics/export", json={"metrics": ["daily_posts"], "format": "json"}, headers=auth(admin)
    )
    assert sum(day["count"] for day in json.loads(resp.text)["daily_posts"]) == 2

    resp = await client.post(
        f"{API}/analytics/export", json={"metrics": ["total_users"], "format": "xlsx"}, headers=auth(admin)
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_snapshots(client, tenant, admin, activity):
    resp = await client.post(f"{API}/analytics/snapshots", headers=auth(admin))
    assert resp.status_code == 201
    assert resp.json()["data"]["metrics"]["posts_created"] == 2

    # taking it again replaces today's snapshot
    await client.post(f"{API}/analytics/snapshots", headers=auth(admin))
    resp = await client.get(f"{API}/analytics/snapshots", headers=auth(admin))
    assert len(resp.json()["data"]) == 1
