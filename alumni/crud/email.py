"""
Email campaign CRUD
"""
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.models.email import EmailCampaign, EmailRecipient
from .base import CRUDBase


class CRUDEmailCampaign(CRUDBase[EmailCampaign]):

    async def get_recipient(self, db: AsyncSession, campaign_id: str, user_id: str) -> Optional[EmailRecipient]:
        result = await db.execute(
            select(EmailRecipient).where(
                EmailRecipient.campaign_id == campaign_id, EmailRecipient.user_id == user_id
            )
        )
        return result.scalar_one_or_none()


email_campaign_crud = CRUDEmailCampaign(EmailCampaign)
