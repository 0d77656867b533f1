"""
Payment gateway adapters

Stripe calls go through an httpx.MockTransport.
"""
from types import SimpleNamespace
from urllib.parse import parse_qs

import httpx
import pytest

from alumni.services.payment_gateway import SandboxGateway, StripeGateway, get_payment_gateway


def donation(**overrides):
    values = {"id": "don-1", "amount": 25.5, "currency": "USD", "payment_id": "pi_123"}
    values.update(overrides)
    return SimpleNamespace(**values)


def stripe_with(status_code, body, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=body)
    return get_payment_gateway("stripe", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_sandbox_tokens():
    gateway = SandboxGateway()
    result = await gateway.process_payment(donation(), "tok_visa")
    assert result["success"] is True
    assert result["status"] == "completed"
    assert result["payment_id"].startswith("sb_")
    assert result["payment_data"]["amount_cents"] == 2550

    result = await gateway.process_payment(donation(), "tok_pending")
    assert result["status"] == "pending"

    result = await gateway.process_payment(donation(), "tok_fail_insufficient")
    assert result["success"] is False
    assert result["error_code"] == "card_declined"


@pytest.mark.asyncio
async def test_sandbox_recurring_uses_stored_token():
    recurring = SimpleNamespace(amount=10.0, payment_data={"payment_token": "tok_fail"})
    result = await SandboxGateway().process_recurring_payment(recurring)
    assert result["success"] is False


@pytest.mark.asyncio
async def test_stripe_payment_intent():
    seen = []
    gateway = stripe_with(200, {"id": "pi_1", "status": "succeeded", "payment_method": "pm_1", "customer": "cus_1"},
                          seen)
    result = await gateway.process_payment(donation(), "pm_card_visa")
    assert result == {
        "success": True,
        "status": "completed",
        "payment_id": "pi_1",
        "payment_data": {"gateway": "stripe", "payment_method": "pm_1", "customer": "cus_1"},
    }

    request = seen[0]
    assert request.url.path == "/v1/payment_intents"
    assert request.headers["Authorization"].startswith("Bearer ")
    form = parse_qs(request.content.decode())
    assert form["amount"] == ["2550"]
    assert form["currency"] == ["usd"]
    assert form["metadata[donation_id]"] == ["don-1"]


@pytest.mark.asyncio
async def test_stripe_intent_states():
    gateway = stripe_with(200, {"id": "pi_2", "status": "requires_action"})
    result = await gateway.process_payment(donation(), "pm_card_visa")
    assert result["success"] is True
    assert result["status"] == "pending"

    gateway = stripe_with(200, {"id": "pi_3", "status": "requires_payment_method"})
    result = await gateway.process_payment(donation(), "pm_card_visa")
    assert result["success"] is False
    assert result["error_code"] == "requires_payment_method"


@pytest.mark.asyncio
async def test_stripe_decline():
    gateway = stripe_with(402, {"error": {"message": "Your card was declined.", "code": "card_declined"}})
    result = await gateway.process_payment(donation(), "pm_card_chargeDeclined")
    assert result["success"] is False
    assert result["error"] == "Your card was declined."
    assert result["error_code"] == "card_declined"


@pytest.mark.asyncio
async def test_stripe_refund():
    seen = []
    gateway = stripe_with(200, {"id": "re_1", "status": "succeeded"}, seen)
    result = await gateway.refund_payment(donation(), 10.0)
    assert result["success"] is True
    assert result["refund_id"] == "re_1"
    assert parse_qs(seen[0].content.decode()) == {"payment_intent": ["pi_123"], "amount": ["1000"]}


def test_gateway_selection():
    assert isinstance(get_payment_gateway("sandbox"), SandboxGateway)
    assert isinstance(get_payment_gateway("stripe"), StripeGateway)
    with pytest.raises(ValueError):
        get_payment_gateway("paypal")


@pytest.mark.asyncio
async def test_stripe_unreachable():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    gateway = get_payment_gateway("stripe", transport=httpx.MockTransport(refuse))
    result = await gateway.process_payment(donation(), "pm_card_visa")
    assert result["success"] is False
    assert result["error_code"] == "gateway_unavailable"

    result = await gateway.refund_payment(donation(), 5.0)
    assert result["success"] is False
    assert result["error_code"] == "gateway_unavailable"
