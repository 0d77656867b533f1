"""
Payment gateway adapters

Both adapters return plain result dicts:
    {"success", "status", "payment_id", "payment_data", "error", "error_code"}
status is "completed" or "pending" on success.

sandbox is deterministic for development and tests: tokens starting with
tok_fail are declined and tok_pending stays pending. stripe talks to the
PaymentIntents and Refunds endpoints over httpx.
"""
import uuid
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from alumni.core.config import settings


def _cents(amount: float) -> int:
    return int(round(amount * 100))


class SandboxGateway:
    name = "sandbox"

    def _charge(self, token: str, amount: float) -> Dict[str, Any]:
        token = token or ""
        if token.startswith("tok_fail"):
            return {
                "success": False,
                "status": "failed",
                "error": "Your card was declined",
                "error_code": "card_declined",
            }
        status = "pending" if token.startswith("tok_pending") else "completed"
        return {
            "success": True,
            "status": status,
            "payment_id": f"sb_{uuid.uuid4().hex[:24]}",
            "payment_data": {"gateway": self.name, "amount_cents": _cents(amount)},
        }

    async def process_payment(self, donation, token: str) -> Dict[str, Any]:
        return self._charge(token, donation.amount)

    async def process_recurring_payment(self, recurring) -> Dict[str, Any]:
        return self._charge(recurring.payment_data.get("payment_token", ""), recurring.amount)

    async def refund_payment(self, donation, amount: float) -> Dict[str, Any]:
        return {
            "success": True,
            "status": "completed",
            "refund_id": f"sbre_{uuid.uuid4().hex[:24]}",
            "amount": amount,
        }

    async def cancel_recurring_payment(self, recurring) -> bool:
        return True


class StripeGateway:
    name = "stripe"

    def __init__(self, api_key: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key or settings.stripe_secret_key
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=settings.stripe_api_base,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=30.0,
            transport=self.transport,
        )

    @staticmethod
    def _error(exc: httpx.HTTPStatusError) -> Dict[str, Any]:
        try:
            error = exc.response.json().get("error", {})
        except ValueError:
            error = {}
        return {
            "success": False,
            "status": "failed",
            "error": error.get("message") or f"Payment gateway returned {exc.response.status_code}",
            "error_code": error.get("code") or error.get("decline_code"),
        }

    @staticmethod
    def _unreachable(exc: httpx.HTTPError) -> Dict[str, Any]:
        return {
            "success": False,
            "status": "failed",
            "error": f"Payment gateway unavailable ({type(exc).__name__})",
            "error_code": "gateway_unavailable",
        }

    async def _create_intent(self, form: Dict[str, Any]) -> Dict[str, Any]:
        async with self._client() as client:
            try:
                response = await client.post("/payment_intents", data=form)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "Stripe payment failed: status={}, response={}",
                    exc.response.status_code,
                    exc.response.text[:500],
                )
                return self._error(exc)
            except httpx.HTTPError as exc:
                logger.error("Stripe payment request failed: {}", exc)
                return self._unreachable(exc)

        intent = response.json()
        if intent.get("status") == "succeeded":
            status = "completed"
        elif intent.get("status") in ("processing", "requires_action", "requires_capture"):
            status = "pending"
        else:
            return {
                "success": False,
                "status": "failed",
                "error": f"Payment intent {intent.get('status')}",
                "error_code": intent.get("status"),
            }
        return {
            "success": True,
            "status": status,
            "payment_id": intent["id"],
            "payment_data": {
                "gateway": self.name,
                "payment_method": intent.get("payment_method"),
                "customer": intent.get("customer"),
            },
        }

    async def process_payment(self, donation, token: str) -> Dict[str, Any]:
        return await self._create_intent({
            "amount": _cents(donation.amount),
            "currency": donation.currency.lower(),
            "payment_method": token,
            "confirm": "true",
            "description": f"Donation {donation.id}",
            "metadata[donation_id]": donation.id,
        })

    async def process_recurring_payment(self, recurring) -> Dict[str, Any]:
        form = {
            "amount": _cents(recurring.amount),
            "currency": recurring.currency.lower(),
            "payment_method": recurring.payment_data.get("payment_method")
            or recurring.payment_data.get("payment_token"),
            "confirm": "true",
            "off_session": "true",
            "metadata[recurring_donation_id]": recurring.id,
        }
        if recurring.payment_data.get("customer"):
            form["customer"] = recurring.payment_data["customer"]
        return await self._create_intent(form)

    async def refund_payment(self, donation, amount: float) -> Dict[str, Any]:
        async with self._client() as client:
            try:
                response = await client.post(
                    "/refunds",
                    data={"payment_intent": donation.payment_id, "amount": _cents(amount)},
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.error("Stripe refund failed for donation {}: {}", donation.id, exc.response.text[:500])
                return self._error(exc)
            except httpx.HTTPError as exc:
                logger.error("Stripe refund request failed for donation {}: {}", donation.id, exc)
                return self._unreachable(exc)

        refund = response.json()
        return {
            "success": refund.get("status") in ("succeeded", "pending"),
            "status": "completed" if refund.get("status") == "succeeded" else "pending",
            "refund_id": refund.get("id"),
            "amount": amount,
        }

    async def cancel_recurring_payment(self, recurring) -> bool:
        # recurring charges are driven from our side; nothing to cancel at Stripe
        return True


def get_payment_gateway(name: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
    name = name or settings.payment_gateway
    if name == "stripe":
        return StripeGateway(transport=transport)
    if name != "sandbox":
        raise ValueError(f"Unknown payment gateway: {name}")
    return SandboxGateway()
