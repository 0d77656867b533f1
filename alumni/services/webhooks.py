"""
Outbound webhooks

Every attempt is recorded as a WebhookDelivery. Bodies are signed with
HMAC-SHA256 over the exact bytes sent (X-Webhook-Signature: sha256=<hex>).
A failed attempt schedules the next one 60 s, 5 min and 30 min later, up to
the webhook's retry_attempts; the scheduled job picks them up through
retry_due().
"""
import hashlib
import hmac
import json
import secrets
import time
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx
from loguru import logger
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.config import settings
from alumni.core.exceptions import UnprocessableException
from alumni.crud import webhook_crud
from alumni.models.base import utcnow
from alumni.models.user import User
from alumni.models.webhook import (
    AVAILABLE_EVENTS,
    DeliveryStatus,
    Webhook,
    WebhookCreate,
    WebhookDelivery,
    WebhookStatus,
    WebhookUpdate,
)

RETRY_DELAYS = (60, 300, 1800)
TEST_EVENT = "webhook.test"
MAX_RESPONSE_BODY = 2000

PERIODS = {
    "1d": timedelta(days=1),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
}


def generate_secret() -> str:
    return secrets.token_hex(16)


def encode_payload(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":"), default=str).encode("utf-8")


def sign_payload(body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def retry_delay(attempt: int) -> int:
    """Seconds to wait after the given (1-based) failed attempt"""
    return RETRY_DELAYS[min(attempt, len(RETRY_DELAYS)) - 1]


def is_valid_url(url: str) -> bool:
    parsed = urlparse(url or "")
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


class WebhookService:

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.transport)

    # ==================== Management ====================

    async def create(self, db: AsyncSession, user: User, data: WebhookCreate) -> Webhook:
        if not is_valid_url(data.url):
            raise UnprocessableException(errors={"url": ["The url must be a valid http(s) URL"]})
        values = data.model_dump()
        values.update(
            tenant_id=user.tenant_id,
            user_id=user.id,
            secret=data.secret or generate_secret(),
            status=WebhookStatus.ACTIVE.value,
        )
        webhook = await webhook_crud.create(db, obj_in=values)
        logger.info("Webhook {} created for {} ({})", webhook.id, webhook.url, ", ".join(webhook.events))
        return webhook

    async def update(self, db: AsyncSession, webhook: Webhook, data: WebhookUpdate) -> Webhook:
        if data.url is not None and not is_valid_url(data.url):
            raise UnprocessableException(errors={"url": ["The url must be a valid http(s) URL"]})
        if data.events is not None and not data.events:
            raise UnprocessableException(errors={"events": ["At least one event is required"]})
        return await webhook_crud.update(db, db_obj=webhook, obj_in=data)

    async def delete(self, db: AsyncSession, webhook: Webhook) -> None:
        result = await db.execute(select(WebhookDelivery).where(WebhookDelivery.webhook_id == webhook.id))
        for delivery in result.scalars().all():
            await db.delete(delivery)
        await webhook_crud.delete(db, id=webhook.id)
        logger.info("Webhook {} deleted", webhook.id)

    async def set_status(self, db: AsyncSession, webhook: Webhook, status: WebhookStatus) -> Webhook:
        webhook.status = status.value
        if status == WebhookStatus.ACTIVE:
            webhook.failure_count = 0
        await db.flush()
        await db.refresh(webhook)
        logger.info("Webhook {} {}", webhook.id, "resumed" if status == WebhookStatus.ACTIVE else status.value)
        return webhook

    async def pause(self, db: AsyncSession, webhook: Webhook) -> Webhook:
        return await self.set_status(db, webhook, WebhookStatus.PAUSED)

    async def resume(self, db: AsyncSession, webhook: Webhook) -> Webhook:
        return await self.set_status(db, webhook, WebhookStatus.ACTIVE)

    @staticmethod
    def available_events() -> List[Dict[str, str]]:
        return [{"event": key, "name": name} for key, name in AVAILABLE_EVENTS.items()]

    # ==================== Delivery ====================

    async def dispatch(self, db: AsyncSession, tenant_id: str, event: str, payload: Dict[str, Any]) -> List[WebhookDelivery]:
        """Deliver an event to every active webhook of the tenant subscribed to it"""
        deliveries = []
        for webhook in await webhook_crud.active_for_event(db, tenant_id, event):
            envelope = {
                "id": f"evt_{uuid.uuid4().hex[:16]}",
                "event": event,
                "timestamp": utcnow().isoformat() + "Z",
                "data": payload,
            }
            deliveries.append(await self.deliver(db, webhook, event, envelope))
        return deliveries

    async def test(self, db: AsyncSession, webhook: Webhook) -> WebhookDelivery:
        payload = {
            "id": f"test_{secrets.token_hex(5)}",
            "event": TEST_EVENT,
            "timestamp": utcnow().isoformat() + "Z",
            "data": {
                "message": "This is a test webhook delivery",
                "webhook_id": webhook.id,
                "test": True,
            },
        }
        return await self.deliver(db, webhook, TEST_EVENT, payload, force=True)

    async def deliver(
        self,
        db: AsyncSession,
        webhook: Webhook,
        event: str,
        payload: Dict[str, Any],
        *,
        attempt: int = 1,
        force: bool = False,
    ) -> WebhookDelivery:
        delivery = WebhookDelivery(webhook_id=webhook.id, event_type=event, payload=payload, attempt=attempt)
        db.add(delivery)

        if not force and (webhook.status != WebhookStatus.ACTIVE.value or not webhook.subscribes_to(event)):
            delivery.status = DeliveryStatus.SKIPPED.value
            delivery.error_message = "Webhook not active or event not subscribed"
            await db.flush()
            return delivery

        await db.flush()
        body = encode_payload(payload)
        # platform headers replace any registered header of the same name
        headers = httpx.Headers(webhook.headers or {})
        headers.update({
            "Content-Type": "application/json",
            "User-Agent": settings.webhook_user_agent,
            "X-Webhook-ID": webhook.id,
            "X-Event-Type": event,
            "X-Delivery-ID": delivery.id,
            "X-Timestamp": str(int(time.time())),
            "X-Webhook-Signature": sign_payload(body, webhook.secret),
        })
        if attempt > 1:
            headers["X-Retry-Count"] = str(attempt - 1)

        started = time.perf_counter()
        try:
            async with self._client(webhook.timeout) as client:
                response = await client.post(webhook.url, content=body, headers=headers)
            delivery.response_code = response.status_code
            delivery.response_body = response.text[:MAX_RESPONSE_BODY]
            delivery.status = (
                DeliveryStatus.DELIVERED.value if response.is_success else DeliveryStatus.FAILED.value
            )
            if not response.is_success:
                logger.warning(
                    "Webhook {} delivery {} failed: status={}, response={}",
                    webhook.id, delivery.id, response.status_code, response.text[:500],
                )
        except httpx.HTTPError as exc:
            delivery.status = DeliveryStatus.FAILED.value
            delivery.error_message = str(exc) or exc.__class__.__name__
            logger.error("Webhook {} delivery {} raised: {}", webhook.id, delivery.id, delivery.error_message)

        delivery.response_time_ms = int((time.perf_counter() - started) * 1000)
        delivery.delivered_at = utcnow()
        webhook.last_delivery_at = delivery.delivered_at

        if delivery.status == DeliveryStatus.DELIVERED.value:
            webhook.failure_count = 0
            logger.info("Webhook {} delivered {} ({})", webhook.id, event, delivery.response_code)
        else:
            webhook.failure_count += 1
            if attempt <= webhook.retry_attempts and event != TEST_EVENT:
                delay = retry_delay(attempt)
                delivery.next_retry_at = utcnow() + timedelta(seconds=delay)
                logger.info("Webhook delivery {} retry {} in {}s", delivery.id, attempt, delay)

        await db.flush()
        return delivery

    async def retry(self, db: AsyncSession, delivery: WebhookDelivery) -> WebhookDelivery:
        webhook = await webhook_crud.get(db, delivery.webhook_id)
        if delivery.status == DeliveryStatus.DELIVERED.value:
            raise UnprocessableException(errors={"delivery": ["Delivery already succeeded"]})
        delivery.next_retry_at = None
        return await self.deliver(
            db, webhook, delivery.event_type, delivery.payload, attempt=delivery.attempt + 1, force=True
        )

    async def retry_due(self, db: AsyncSession) -> int:
        result = await db.execute(
            select(WebhookDelivery).where(
                WebhookDelivery.status == DeliveryStatus.FAILED.value,
                WebhookDelivery.next_retry_at.is_not(None),
                WebhookDelivery.next_retry_at <= utcnow(),
            )
        )
        retried = 0
        for delivery in result.scalars().all():
            webhook = await webhook_crud.get(db, delivery.webhook_id)
            delivery.next_retry_at = None
            if webhook is None or webhook.status != WebhookStatus.ACTIVE.value:
                continue
            await self.deliver(db, webhook, delivery.event_type, delivery.payload, attempt=delivery.attempt + 1)
            retried += 1
        if retried:
            logger.info("Retried {} webhook deliveries", retried)
        return retried

    # ==================== Inspection ====================

    async def deliveries(
        self, db: AsyncSession, webhook: Webhook, status: Optional[str] = None, skip: int = 0, limit: int = 20
    ):
        filters = [WebhookDelivery.webhook_id == webhook.id]
        if status:
            filters.append(WebhookDelivery.status == status)
        query = select(WebhookDelivery)
        count = select(func.count()).select_from(WebhookDelivery)
        for condition in filters:
            query = query.where(condition)
            count = count.where(condition)
        result = await db.execute(query.order_by(WebhookDelivery.created_at.desc()).offset(skip).limit(limit))
        total = await db.execute(count)
        return list(result.scalars().all()), total.scalar_one()

    async def validate_url(self, url: str) -> Dict[str, Any]:
        if not is_valid_url(url):
            return {"valid": False, "error": "Invalid URL format"}
        try:
            async with self._client(10.0) as client:
                response = await client.head(url)
            return {"valid": True, "reachable": response.status_code < 500, "status_code": response.status_code}
        except httpx.HTTPError as exc:
            return {"valid": True, "reachable": False, "error": str(exc) or exc.__class__.__name__}

    async def statistics(self, db: AsyncSession, webhook: Webhook, period: str = "30d") -> Dict[str, Any]:
        if period not in PERIODS:
            raise UnprocessableException(errors={"period": [f"Period must be one of {', '.join(PERIODS)}"]})
        result = await db.execute(
            select(WebhookDelivery).where(
                WebhookDelivery.webhook_id == webhook.id,
                WebhookDelivery.created_at >= utcnow() - PERIODS[period],
            )
        )
        deliveries = list(result.scalars().all())

        by_status: Dict[str, int] = {}
        codes: Dict[int, int] = {}
        events: Dict[str, int] = {}
        times = []
        for d in deliveries:
            by_status[d.status] = by_status.get(d.status, 0) + 1
            events[d.event_type] = events.get(d.event_type, 0) + 1
            if d.response_code is not None:
                codes[d.response_code] = codes.get(d.response_code, 0) + 1
            if d.status == DeliveryStatus.DELIVERED.value and d.response_time_ms is not None:
                times.append(d.response_time_ms)

        total = len(deliveries)
        delivered = by_status.get(DeliveryStatus.DELIVERED.value, 0)
        top_codes = sorted(codes.items(), key=lambda item: item[1], reverse=True)[:5]
        return {
            "period": period,
            "total_deliveries": total,
            "successful_deliveries": delivered,
            "failed_deliveries": by_status.get(DeliveryStatus.FAILED.value, 0),
            "pending_deliveries": by_status.get(DeliveryStatus.PENDING.value, 0),
            "skipped_deliveries": by_status.get(DeliveryStatus.SKIPPED.value, 0),
            "success_rate": round(delivered / total * 100, 2) if total else 0,
            "average_response_time": round(sum(times) / len(times), 2) if times else None,
            "response_codes": {str(code): count for code, count in top_codes},
            "event_types": dict(sorted(events.items(), key=lambda item: item[1], reverse=True)),
            "last_delivery": max((d.created_at for d in deliveries), default=None),
        }


webhook_service = WebhookService()
