"""
Security API tests: blocked requests, event log, score, two-factor
"""
import pytest
from sqlalchemy import func, select

from alumni.core.security import totp_code
from alumni.models.post import Post
from alumni.models.security import SecurityEvent
from alumni.services.security import security_service
from tests.conftest import API, PASSWORD, auth


async def login(client, email, **extra):
    return await client.post(f"{API}/auth/login", json={"email": email, "password": PASSWORD, **extra})


@pytest.mark.asyncio
async def test_injection_in_query_is_blocked_and_logged(client, tenant, admin, alumnus):
    resp = await client.get(f"{API}/alumni", params={"search": "x' or 1=1"}, headers=auth(alumnus))
    assert resp.status_code == 400
    assert resp.json()["success"] is False

    resp = await client.get(
        f"{API}/security/events", params={"event_type": "malicious_request"}, headers=auth(admin)
    )
    events = resp.json()["data"]["items"]
    assert len(events) == 1
    assert events[0]["severity"] == "critical"
    assert events[0]["details"]["input_value"] == "x' or 1=1"


@pytest.mark.asyncio
async def test_script_in_body_is_blocked(client, tenant, admin, alumnus, db_session):
    resp = await client.post(
        f"{API}/posts", json={"content": "<script>alert(1)</script>"}, headers=auth(alumnus)
    )
    assert resp.status_code == 400

    result = await db_session.execute(select(func.count()).select_from(Post))
    assert result.scalar() == 0


@pytest.mark.asyncio
async def test_ordinary_text_passes(client, tenant, alumnus):
    resp = await client.post(
        f"{API}/posts",
        json={"content": "Please select a date for the reunion and update your profile"},
        headers=auth(alumnus),
    )
    assert resp.status_code == 201


@pytest.mark.asyncio
async def test_security_endpoints_are_admin_only(client, tenant, admin, alumnus):
    for path in ("dashboard", "events", "score", "suspicious"):
        resp = await client.get(f"{API}/security/{path}", headers=auth(alumnus))
        assert resp.status_code == 403, path


@pytest.mark.asyncio
async def test_dashboard_and_score(client, tenant, admin, alumnus):
    resp = await client.get(f"{API}/security/score", headers=auth(admin))
    assert resp.json()["data"]["score"] == 100.0

    await client.get(f"{API}/alumni", params={"search": "1 union select 2"}, headers=auth(alumnus))

    resp = await client.get(f"{API}/security/dashboard", headers=auth(admin))
    dashboard = resp.json()["data"]
    assert dashboard["events_summary"]["critical_events"] == 1
    assert dashboard["events_summary"]["recent_by_type"]["login"] == 2
    assert dashboard["active_sessions"]["unique_users"] == 2
    # one critical event, unresolved
    assert dashboard["security_score"] == 87.0

    resp = await client.get(
        f"{API}/security/events", params={"severity": "critical"}, headers=auth(admin)
    )
    event = resp.json()["data"]["items"][0]
    resp = await client.post(f"{API}/security/events/{event['id']}/resolve", headers=auth(admin))
    assert resp.json()["data"]["resolved"] is True

    resp = await client.get(f"{API}/security/score", headers=auth(admin))
    assert resp.json()["data"]["score"] == 90.0

    resp = await client.get(f"{API}/security/events", params={"resolved": "false", "severity": "critical"},
                            headers=auth(admin))
    assert resp.json()["data"]["total"] == 0


@pytest.mark.asyncio
async def test_failed_logins_are_reported(client, tenant, admin, alumnus):
    email = alumnus["user"]["email"]
    for _ in range(2):
        resp = await client.post(f"{API}/auth/login", json={"email": email, "password": "wrong-password"})
        assert resp.status_code == 401

    resp = await client.get(f"{API}/security/dashboard", headers=auth(admin))
    dashboard = resp.json()["data"]
    assert dashboard["failed_logins"]["recent_attempts"] == 2
    assert dashboard["events_summary"]["recent_by_type"]["failed_login"] == 2
    assert dashboard["security_score"] == 99.0

    resp = await client.get(f"{API}/security/suspicious", headers=auth(admin))
    assert resp.json()["data"]["suspicious"] is False


@pytest.mark.asyncio
async def test_one_address_failing_many_accounts_is_suspicious(client, tenant, admin, db_session):
    for n in range(5):
        resp = await client.post(
            f"{API}/auth/login",
            json={"email": f"target{n}@example.com", "password": "wrong-password"},
            headers={"X-Forwarded-For": "203.0.113.50"},
        )
        assert resp.status_code == 401

    resp = await client.get(f"{API}/security/suspicious", headers=auth(admin))
    report = resp.json()["data"]
    assert report["suspicious"] is True
    assert report["findings"] == [
        {"type": "credential_stuffing", "ip_address": "203.0.113.50", "distinct_emails": 5}
    ]

    result = await db_session.execute(
        select(SecurityEvent).where(SecurityEvent.event_type == "suspicious_activity")
    )
    event = result.scalar_one()
    assert event.severity == "high"
    assert event.details == {"ip_address": "203.0.113.50", "distinct_emails": 5}


@pytest.mark.asyncio
async def test_burst_of_security_events_is_suspicious(client, tenant, admin, db_session):
    for _ in range(21):
        await security_service.log_security_event(
            db_session, "failed_login", "medium", "Failed login attempt", tenant_id=tenant["id"]
        )

    report = await security_service.detect_suspicious_activity(db_session, tenant["id"])
    kinds = {finding["type"] for finding in report["findings"]}
    assert kinds == {"event_burst"}
    burst = report["findings"][0]
    # the admin's registration login counts too
    assert burst["event_count"] == 22


@pytest.mark.asyncio
async def test_two_factor_login(client, tenant, admin, alumnus):
    email = alumnus["user"]["email"]
    resp = await client.post(f"{API}/security/two-factor", headers=auth(alumnus))
    setup = resp.json()["data"]
    assert len(setup["recovery_codes"]) == 8
    assert setup["otpauth_url"].startswith("otpauth://totp/")

    resp = await client.post(f"{API}/security/two-factor", headers=auth(alumnus))
    assert resp.status_code == 422

    resp = await login(client, email)
    assert resp.status_code == 401

    resp = await login(client, email, two_factor_code=totp_code(setup["secret"]))
    assert resp.status_code == 200

    recovery = setup["recovery_codes"][0]
    resp = await login(client, email, two_factor_code=recovery)
    assert resp.status_code == 200
    # recovery codes work once
    resp = await login(client, email, two_factor_code=recovery)
    assert resp.status_code == 401

    resp = await client.post(f"{API}/security/two-factor/disable", json={"password": "nope"}, headers=auth(alumnus))
    assert resp.status_code == 401
    resp = await client.post(f"{API}/security/two-factor/disable", json={"password": PASSWORD}, headers=auth(alumnus))
    assert resp.status_code == 200

    resp = await login(client, email)
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_two_factor_adoption_raises_the_score(client, tenant, admin, alumnus):
    await client.post(f"{API}/security/two-factor", headers=auth(admin))

    resp = await client.get(f"{API}/security/score", headers=auth(admin))
    # half the users use two-factor
    assert resp.json()["data"]["score"] == 100.0
