"""
Webhook API tests

Outbound HTTP goes through an httpx.MockTransport installed on the
shared webhook service.
"""
from datetime import timedelta

import httpx
import pytest
from sqlalchemy import update

from alumni.core.config import settings
from alumni.models.base import utcnow
from alumni.models.webhook import WebhookDelivery
from alumni.services import tasks
from alumni.services.webhooks import sign_payload, webhook_service
from tests.conftest import API, auth

HOOK_URL = "https://hooks.example.com/alumni"


class Receiver:
    """Records requests and answers with the queued status codes (200 once they run out)"""

    def __init__(self, *statuses):
        self.statuses = list(statuses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if self.statuses else 200
        return httpx.Response(status, text="ok" if status < 400 else "boom")


@pytest.fixture
def receiver(monkeypatch):
    receiver = Receiver()
    monkeypatch.setattr(webhook_service, "transport", httpx.MockTransport(receiver))
    return receiver


async def create_webhook(client, admin, **overrides):
    data = {"name": "CRM", "url": HOOK_URL, "events": ["campaign.created"], **overrides}
    resp = await client.post(f"{API}/webhooks", json=data, headers=auth(admin))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


@pytest.mark.asyncio
async def test_secret_is_only_shown_on_creation(client, tenant, admin, alumnus):
    resp = await client.post(f"{API}/webhooks", json={"url": HOOK_URL, "events": ["post.created"]},
                             headers=auth(alumnus))
    assert resp.status_code == 403

    webhook = await create_webhook(client, admin)
    assert len(webhook["secret"]) == 32

    resp = await client.get(f"{API}/webhooks/{webhook['id']}", headers=auth(admin))
    assert "secret" not in resp.json()["data"]


@pytest.mark.asyncio
async def test_webhook_validation(client, tenant, admin):
    resp = await client.post(f"{API}/webhooks", json={"url": HOOK_URL, "events": ["made.up"]}, headers=auth(admin))
    assert resp.status_code == 422
    resp = await client.post(f"{API}/webhooks", json={"url": "ftp://example.com", "events": ["post.created"]},
                             headers=auth(admin))
    assert resp.status_code == 422

    webhook = await create_webhook(client, admin)
    resp = await client.patch(f"{API}/webhooks/{webhook['id']}", json={"events": []}, headers=auth(admin))
    assert resp.status_code == 422

    resp = await client.get(f"{API}/webhooks/events", headers=auth(admin))
    assert {"event": "donation.completed", "name": "Donation completed"} in resp.json()["data"]


@pytest.mark.asyncio
async def test_subscribed_events_are_delivered_signed(client, factory, tenant, admin, receiver):
    webhook = await create_webhook(client, admin, secret="shared-secret", headers={"X-Api-Key": "k1"})

    campaign = await factory.create_campaign(admin)
    await factory.create_post(admin)

    assert len(receiver.requests) == 1
    request = receiver.requests[0]
    assert request.headers["X-Event-Type"] == "campaign.created"
    assert request.headers["X-Api-Key"] == "k1"
    assert request.headers["X-Webhook-Signature"] == sign_payload(request.content, "shared-secret")

    resp = await client.get(f"{API}/webhooks/{webhook['id']}/deliveries", headers=auth(admin))
    deliveries = resp.json()["data"]["items"]
    assert len(deliveries) == 1
    assert deliveries[0]["status"] == "delivered"
    assert deliveries[0]["payload"]["data"]["campaign_id"] == campaign["id"]


@pytest.mark.asyncio
async def test_registered_headers_cannot_replace_platform_headers(client, factory, tenant, admin, receiver):
    await create_webhook(client, admin, secret="shared-secret", headers={
        "x-webhook-signature": "sha256=forged",
        "User-Agent": "spoofed",
        "X-Api-Key": "k1",
    })
    await factory.create_campaign(admin)

    request = receiver.requests[0]
    assert request.headers.get_list("X-Webhook-Signature") == [sign_payload(request.content, "shared-secret")]
    assert request.headers["User-Agent"] == settings.webhook_user_agent
    assert request.headers["X-Api-Key"] == "k1"


@pytest.mark.asyncio
async def test_paused_webhook_receives_nothing(client, factory, tenant, admin, receiver):
    webhook = await create_webhook(client, admin)
    resp = await client.post(f"{API}/webhooks/{webhook['id']}/pause", headers=auth(admin))
    assert resp.json()["data"]["status"] == "paused"

    await factory.create_campaign(admin)
    assert receiver.requests == []

    # a test delivery goes out regardless
    resp = await client.post(f"{API}/webhooks/{webhook['id']}/test", headers=auth(admin))
    assert resp.json()["data"]["status"] == "delivered"
    assert resp.json()["data"]["event_type"] == "webhook.test"

    await client.post(f"{API}/webhooks/{webhook['id']}/resume", headers=auth(admin))
    await factory.create_campaign(admin)
    assert len(receiver.requests) == 2


@pytest.mark.asyncio
async def test_failed_delivery_is_retried(client, factory, tenant, admin, receiver, db_session):
    receiver.statuses = [500]
    webhook = await create_webhook(client, admin)
    await factory.create_campaign(admin)

    resp = await client.get(f"{API}/webhooks/{webhook['id']}/deliveries", headers=auth(admin))
    failed = resp.json()["data"]["items"][0]
    assert failed["status"] == "failed"
    assert failed["response_code"] == 500
    assert failed["next_retry_at"] is not None

    resp = await client.get(f"{API}/webhooks/{webhook['id']}", headers=auth(admin))
    assert resp.json()["data"]["failure_count"] == 1

    # not due yet
    assert await tasks.retry_due_deliveries(db_session) == 0

    await db_session.execute(
        update(WebhookDelivery)
        .where(WebhookDelivery.id == failed["id"])
        .values(next_retry_at=utcnow() - timedelta(seconds=1))
    )
    assert await tasks.retry_due_deliveries(db_session) == 1
    await db_session.commit()

    assert receiver.requests[-1].headers["X-Retry-Count"] == "1"
    resp = await client.get(f"{API}/webhooks/{webhook['id']}/deliveries", headers=auth(admin))
    attempts = {d["attempt"]: d["status"] for d in resp.json()["data"]["items"]}
    assert attempts == {1: "failed", 2: "delivered"}

    resp = await client.get(f"{API}/webhooks/{webhook['id']}", headers=auth(admin))
    assert resp.json()["data"]["failure_count"] == 0

    resp = await client.get(f"{API}/webhooks/{webhook['id']}/statistics", params={"period": "7d"},
                            headers=auth(admin))
    stats = resp.json()["data"]
    assert stats["total_deliveries"] == 2
    assert stats["success_rate"] == 50.0
    assert stats["response_codes"] == {"500": 1, "200": 1}

    resp = await client.get(f"{API}/webhooks/{webhook['id']}/statistics", params={"period": "2w"},
                            headers=auth(admin))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_failed_test_delivery_is_not_retried(client, tenant, admin, receiver):
    receiver.statuses = [503]
    webhook = await create_webhook(client, admin)

    resp = await client.post(f"{API}/webhooks/{webhook['id']}/test", headers=auth(admin))
    delivery = resp.json()["data"]
    assert delivery["status"] == "failed"
    assert delivery["next_retry_at"] is None

    resp = await client.post(f"{API}/webhooks/deliveries/{delivery['id']}/retry", headers=auth(admin))
    assert resp.json()["data"]["status"] == "delivered"
    assert resp.json()["data"]["attempt"] == 2

    resp = await client.post(f"{API}/webhooks/deliveries/{resp.json()['data']['id']}/retry", headers=auth(admin))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_network_errors_are_recorded(client, factory, tenant, admin, monkeypatch):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    monkeypatch.setattr(webhook_service, "transport", httpx.MockTransport(refuse))
    webhook = await create_webhook(client, admin)
    await factory.create_campaign(admin)

    resp = await client.get(f"{API}/webhooks/{webhook['id']}/deliveries", params={"status": "failed"},
                            headers=auth(admin))
    delivery = resp.json()["data"]["items"][0]
    assert delivery["error_message"] == "connection refused"
    assert delivery["response_code"] is None


@pytest.mark.asyncio
async def test_validate_url(client, tenant, admin, receiver):
    resp = await client.post(f"{API}/webhooks/validate-url", json={"url": "not a url"}, headers=auth(admin))
    assert resp.json()["data"]["valid"] is False

    resp = await client.post(f"{API}/webhooks/validate-url", json={"url": HOOK_URL}, headers=auth(admin))
    assert resp.json()["data"] == {"valid": True, "reachable": True, "status_code": 200}
    assert receiver.requests[0].method == "HEAD"


@pytest.mark.asyncio
async def test_delete_webhook(client, factory, tenant, admin, receiver):
    webhook = await create_webhook(client, admin)
    await factory.create_campaign(admin)

    resp = await client.delete(f"{API}/webhooks/{webhook['id']}", headers=auth(admin))
    assert resp.status_code == 200
    resp = await client.get(f"{API}/webhooks/{webhook['id']}", headers=auth(admin))
    assert resp.status_code == 404
