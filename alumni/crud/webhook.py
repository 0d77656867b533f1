"""
Webhook and delivery CRUD
"""
from typing import List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.models.webhook import Webhook, WebhookDelivery, WebhookStatus
from .base import CRUDBase


class CRUDWebhook(CRUDBase[Webhook]):

    async def active_for_event(self, db: AsyncSession, tenant_id: str, event: str) -> List[Webhook]:
        result = await db.execute(
            select(Webhook).where(
                Webhook.tenant_id == tenant_id,
                Webhook.status == WebhookStatus.ACTIVE.value,
            )
        )
        # events is a JSON list, filtered here rather than in SQL
        return [w for w in result.scalars().all() if w.subscribes_to(event)]


class CRUDDelivery(CRUDBase[WebhookDelivery]):
    pass


webhook_crud = CRUDWebhook(Webhook)
delivery_crud = CRUDDelivery(WebhookDelivery)
