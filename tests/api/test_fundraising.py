"""
Campaign and donation API tests

Payments go through the sandbox gateway: tok_fail is declined,
tok_pending stays pending, any other token completes.
"""
import httpx
import pytest
from sqlalchemy import select, update

from alumni.models.base import utcnow
from alumni.models.fundraising import CampaignDonation, RecurringDonation
from alumni.services import tasks
from alumni.services.donations import donation_service
from alumni.services.payment_gateway import SandboxGateway, StripeGateway
from tests.conftest import API, auth


async def donate(client, campaign, account=None, **overrides):
    data = {"amount": 100, "payment_token": "tok_visa", **overrides}
    headers = auth(account) if account else {}
    return await client.post(f"{API}/campaigns/{campaign['id']}/donations", json=data, headers=headers)


@pytest.mark.asyncio
async def test_campaign_management_is_admin_only(client, factory, admin, alumnus):
    resp = await client.post(
        f"{API}/campaigns", json={"title": "Library", "goal_amount": 500}, headers=auth(alumnus)
    )
    assert resp.status_code == 403

    campaign = await factory.create_campaign(admin)
    assert campaign["raised_amount"] == 0
    assert campaign["status"] == "active"

    resp = await client.patch(
        f"{API}/campaigns/{campaign['id']}", json={"goal_amount": 2000}, headers=auth(admin)
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["goal_amount"] == 2000

    resp = await client.get(f"{API}/campaigns")
    assert resp.json()["data"]["total"] == 1


@pytest.mark.asyncio
async def test_donations_update_campaign_totals(client, factory, admin, alumnus):
    campaign = await factory.create_campaign(admin)

    resp = await donate(client, campaign, alumnus, amount=250, message="Go team")
    assert resp.status_code == 201
    donation = resp.json()["data"]
    assert donation["status"] == "completed"
    assert donation["payment_id"].startswith("sb_")
    assert donation["donor_id"] == alumnus["user"]["id"]

    await donate(client, campaign, alumnus, amount=50)
    resp = await donate(client, campaign, amount=100, donor_name="Guest", donor_email="guest@example.com")
    assert resp.status_code == 201
    assert resp.json()["data"]["donor_id"] is None

    resp = await client.get(f"{API}/campaigns/{campaign['id']}/progress")
    progress = resp.json()["data"]
    assert progress["raised_amount"] == 400
    assert progress["donor_count"] == 2
    assert progress["progress_percentage"] == 40.0
    assert progress["remaining_amount"] == 600
    assert len(progress["recent_donations"]) == 3

    resp = await client.get(f"{API}/campaigns/{campaign['id']}/donations", headers=auth(alumnus))
    assert resp.status_code == 403
    resp = await client.get(f"{API}/campaigns/{campaign['id']}/donations", headers=auth(admin))
    assert resp.json()["data"]["total"] == 3

    resp = await client.get(f"{API}/donations/mine", headers=auth(alumnus))
    assert resp.json()["data"]["total"] == 2


@pytest.mark.asyncio
async def test_anonymous_donations_hide_the_donor(client, factory, admin, alumnus):
    campaign = await factory.create_campaign(admin)
    await donate(client, campaign, alumnus, is_anonymous=True)

    resp = await client.get(f"{API}/campaigns/{campaign['id']}/progress")
    assert resp.json()["data"]["recent_donations"][0]["donor_name"] == "Anonymous"


@pytest.mark.asyncio
async def test_declined_payment_is_recorded(client, factory, admin, alumnus):
    campaign = await factory.create_campaign(admin)

    resp = await donate(client, campaign, alumnus, payment_token="tok_fail_card")
    assert resp.status_code == 402
    body = resp.json()
    assert body["success"] is False
    assert body["data"]["error_code"] == "card_declined"

    resp = await client.get(f"{API}/donations/mine", headers=auth(alumnus))
    items = resp.json()["data"]["items"]
    assert [d["status"] for d in items] == ["failed"]
    assert items[0]["id"] == body["data"]["donation_id"]

    resp = await client.get(f"{API}/campaigns/{campaign['id']}")
    assert resp.json()["data"]["raised_amount"] == 0


@pytest.mark.asyncio
async def test_pending_payment_does_not_count(client, factory, admin, alumnus):
    campaign = await factory.create_campaign(admin)
    resp = await donate(client, campaign, alumnus, payment_token="tok_pending")
    assert resp.status_code == 201
    assert resp.json()["data"]["status"] == "pending"

    resp = await client.get(f"{API}/campaigns/{campaign['id']}")
    assert resp.json()["data"]["raised_amount"] == 0


@pytest.mark.asyncio
async def test_closed_campaign_refuses_donations(client, factory, admin, alumnus):
    campaign = await factory.create_campaign(admin)
    await client.patch(f"{API}/campaigns/{campaign['id']}", json={"status": "completed"}, headers=auth(admin))

    resp = await donate(client, campaign, alumnus)
    assert resp.status_code == 422
    assert "campaign" in resp.json()["data"]["errors"]


@pytest.mark.asyncio
async def test_partial_then_full_refund(client, factory, admin, alumnus):
    campaign = await factory.create_campaign(admin)
    donation = (await donate(client, campaign, alumnus, amount=100)).json()["data"]
    url = f"{API}/donations/{donation['id']}/refund"

    resp = await client.post(url, json={"amount": 30}, headers=auth(alumnus))
    assert resp.status_code == 403

    resp = await client.post(url, json={"amount": 30, "reason": "Duplicate"}, headers=auth(admin))
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "partially_refunded"
    assert resp.json()["data"]["refunded_amount"] == 30

    resp = await client.post(url, json={"amount": 80}, headers=auth(admin))
    assert resp.status_code == 422

    resp = await client.post(url, json={}, headers=auth(admin))
    assert resp.json()["data"]["status"] == "refunded"
    assert resp.json()["data"]["refunded_amount"] == 100

    resp = await client.post(url, json={}, headers=auth(admin))
    assert resp.status_code == 422

    resp = await client.get(f"{API}/campaigns/{campaign['id']}")
    assert resp.json()["data"]["raised_amount"] == 0


@pytest.mark.asyncio
async def test_recurring_donation_schedule(client, factory, admin, alumnus, db_session):
    campaign = await factory.create_campaign(admin)
    resp = await donate(client, campaign, alumnus, amount=20, is_recurring=True, recurring_frequency="monthly")
    assert resp.status_code == 201

    resp = await client.get(f"{API}/donations/recurring", headers=auth(alumnus))
    plans = resp.json()["data"]
    assert len(plans) == 1
    plan = plans[0]
    assert plan["payments_count"] == 1
    assert plan["next_payment_date"] > utcnow().date().isoformat()

    # nothing is due yet
    assert await tasks.process_recurring_donations(db_session) == 0

    await db_session.execute(
        update(RecurringDonation)
        .where(RecurringDonation.id == plan["id"])
        .values(next_payment_date=utcnow().date())
    )
    assert await tasks.process_recurring_donations(db_session) == 1
    await db_session.commit()

    resp = await client.get(f"{API}/donations/recurring", headers=auth(alumnus))
    plan = resp.json()["data"][0]
    assert plan["payments_count"] == 2
    assert plan["total_amount"] == 40

    resp = await client.get(f"{API}/campaigns/{campaign['id']}")
    assert resp.json()["data"]["raised_amount"] == 40

    resp = await client.post(
        f"{API}/donations/recurring/{plan['id']}/cancel", json={"reason": "Budget"}, headers=auth(alumnus)
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "cancelled"

    resp = await client.post(f"{API}/donations/recurring/{plan['id']}/cancel", json={}, headers=auth(alumnus))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_recurring_donation_stops_after_repeated_failures(client, factory, admin, alumnus, db_session):
    campaign = await factory.create_campaign(admin)
    await donate(client, campaign, alumnus, amount=20, is_recurring=True, recurring_frequency="monthly")
    plan = (await client.get(f"{API}/donations/recurring", headers=auth(alumnus))).json()["data"][0]

    await db_session.execute(
        update(RecurringDonation)
        .where(RecurringDonation.id == plan["id"])
        .values(next_payment_date=utcnow().date(), payment_data={"payment_token": "tok_fail"})
    )
    for _ in range(3):
        assert await tasks.process_recurring_donations(db_session) == 0
    await db_session.commit()

    plan = (await client.get(f"{API}/donations/recurring", headers=auth(alumnus))).json()["data"][0]
    assert plan["status"] == "failed"
    assert plan["failed_attempts"] == 3

    failed = await db_session.execute(
        select(CampaignDonation).where(
            CampaignDonation.recurring_donation_id == plan["id"],
            CampaignDonation.status == "failed",
        )
    )
    assert len(failed.scalars().all()) == 3


@pytest.mark.asyncio
async def test_other_donors_cannot_cancel_a_plan(client, factory, admin, alumnus):
    campaign = await factory.create_campaign(admin)
    await donate(client, campaign, alumnus, amount=20, is_recurring=True)
    plan = (await client.get(f"{API}/donations/recurring", headers=auth(alumnus))).json()["data"][0]

    stranger = await factory.register()
    resp = await client.post(f"{API}/donations/recurring/{plan['id']}/cancel", json={}, headers=auth(stranger))
    assert resp.status_code == 404

    resp = await client.post(f"{API}/donations/recurring/{plan['id']}/cancel", json={}, headers=auth(admin))
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_tax_receipt_for_the_year(client, factory, admin, alumnus):
    year = utcnow().year
    resp = await client.post(f"{API}/donations/tax-receipts/{year}", headers=auth(alumnus))
    assert resp.status_code == 404

    first = await factory.create_campaign(admin)
    second = await factory.create_campaign(admin)
    await donate(client, first, alumnus, amount=100)
    await donate(client, second, alumnus, amount=25.5)
    await donate(client, second, alumnus, amount=999, payment_token="tok_fail")

    resp = await client.post(f"{API}/donations/tax-receipts/{year}", headers=auth(alumnus))
    assert resp.status_code == 201
    receipt = resp.json()["data"]
    assert receipt["receipt_number"] == "000001"
    assert receipt["total_amount"] == 125.5
    assert len(receipt["donations"]) == 2

    resp = await client.post(f"{API}/donations/tax-receipts/{year}", headers=auth(alumnus))
    assert resp.json()["data"]["receipt_number"] == "000002"

    resp = await client.get(f"{API}/donations/tax-receipts", headers=auth(alumnus))
    assert len(resp.json()["data"]) == 2


@pytest.mark.asyncio
async def test_unreachable_gateway_fails_the_donation(client, factory, admin, alumnus, monkeypatch):
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    monkeypatch.setattr(donation_service, "_gateway", StripeGateway(transport=httpx.MockTransport(refuse)))
    campaign = await factory.create_campaign(admin)

    resp = await donate(client, campaign, alumnus, payment_token="pm_card_visa")
    assert resp.status_code == 402
    assert resp.json()["data"]["error_code"] == "gateway_unavailable"

    resp = await client.get(f"{API}/donations/mine", headers=auth(alumnus))
    assert [d["status"] for d in resp.json()["data"]["items"]] == ["failed"]


@pytest.mark.asyncio
async def test_gateway_error_does_not_stop_the_recurring_batch(client, factory, admin, alumnus, db_session,
                                                               monkeypatch):
    campaign = await factory.create_campaign(admin)
    await donate(client, campaign, alumnus, amount=20, is_recurring=True, recurring_frequency="monthly")
    await db_session.execute(update(RecurringDonation).values(next_payment_date=utcnow().date()))

    async def broken(recurring):
        raise RuntimeError("gateway exploded")

    gateway = SandboxGateway()
    monkeypatch.setattr(gateway, "process_recurring_payment", broken)
    monkeypatch.setattr(donation_service, "_gateway", gateway)

    assert await tasks.process_recurring_donations(db_session) == 0
    plan = (await db_session.execute(select(RecurringDonation))).scalar_one()
    assert plan.failed_attempts == 1
    assert plan.status == "active"
