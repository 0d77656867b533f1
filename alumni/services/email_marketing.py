"""
Email marketing campaigns

Recipients are resolved from the campaign's audience filters when it is
sent; each gets an EmailRecipient row and a personalized copy of the
content. Delivery goes through a mailer chosen by settings.email_provider.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.config import settings
from alumni.core.exceptions import UnprocessableException
from alumni.crud import circle_crud, email_campaign_crud
from alumni.models.base import utcnow, to_naive_utc
from alumni.models.email import (
    AbVariantCreate,
    CampaignState,
    EmailCampaign,
    EmailCampaignCreate,
    EmailCampaignUpdate,
    EmailRecipient,
    RecipientStatus,
)
from alumni.models.user import User
from alumni.services import tasks

ENGAGEMENT_ACTIONS = ("open", "click", "unsubscribe")
SENDABLE = (CampaignState.DRAFT.value, CampaignState.SCHEDULED.value)


class LogMailer:
    """Writes outgoing mail to the log instead of a mail server"""

    name = "log"

    def __init__(self, sender: Optional[str] = None):
        self.sender = sender or settings.mail_from

    async def send(self, to: str, subject: str, body: str) -> bool:
        logger.info("Mail from {} to {}: {} ({} chars)", self.sender, to, subject, len(body))
        return True


MAILERS = {"log": LogMailer}


def get_mailer(provider: Optional[str] = None):
    provider = provider or settings.email_provider
    if provider not in MAILERS:
        raise ValueError(f"Unknown email provider: {provider}")
    return MAILERS[provider]()


mailer = get_mailer()


def personalize(content: str, user: User) -> str:
    replacements = {
        "{{first_name}}": user.first_name or "Alumni",
        "{{last_name}}": user.last_name,
        "{{name}}": user.name,
        "{{full_name}}": user.name,
        "{{email}}": user.email,
    }
    for placeholder, value in replacements.items():
        content = content.replace(placeholder, value or "")
    return content


def campaign_metrics(campaign: EmailCampaign) -> Dict[str, Any]:
    recipients = campaign.recipients_count

    def rate(count: int, base: int) -> float:
        return round(count / base * 100, 2) if base else 0

    return {
        "recipients": recipients,
        "opened": campaign.opened_count,
        "clicked": campaign.clicked_count,
        "unsubscribed": campaign.unsubscribed_count,
        "open_rate": rate(campaign.opened_count, recipients),
        # clicks are counted against opens
        "click_rate": rate(campaign.clicked_count, campaign.opened_count),
        "unsubscribe_rate": rate(campaign.unsubscribed_count, recipients),
    }


class EmailMarketingService:

    async def create(self, db: AsyncSession, user: User, data: EmailCampaignCreate) -> EmailCampaign:
        provider = data.provider or settings.email_provider
        if provider not in MAILERS:
            raise UnprocessableException(errors={"provider": [f"Unknown email provider {provider}"]})
        values = data.model_dump()
        values.update(tenant_id=user.tenant_id, created_by=user.id, provider=provider)
        campaign = await email_campaign_crud.create(db, obj_in=values)
        logger.info("Email campaign {} created by {}", campaign.id, user.id)
        return campaign

    async def update(self, db: AsyncSession, campaign: EmailCampaign, data: EmailCampaignUpdate) -> EmailCampaign:
        self._ensure_editable(campaign)
        return await email_campaign_crud.update(db, db_obj=campaign, obj_in=data)

    @staticmethod
    def _ensure_editable(campaign: EmailCampaign) -> None:
        if campaign.status not in SENDABLE:
            raise UnprocessableException(
                errors={"status": [f"Campaign cannot be changed in status {campaign.status}"]}
            )

    async def delete(self, db: AsyncSession, campaign: EmailCampaign) -> None:
        self._ensure_editable(campaign)
        await email_campaign_crud.delete(db, id=campaign.id)
        logger.info("Email campaign {} deleted", campaign.id)

    async def schedule(self, db: AsyncSession, campaign: EmailCampaign, scheduled_at: datetime) -> EmailCampaign:
        self._ensure_editable(campaign)
        scheduled_at = to_naive_utc(scheduled_at)
        if scheduled_at <= utcnow():
            raise UnprocessableException(errors={"scheduled_at": ["The scheduled time must be in the future"]})
        campaign.scheduled_at = scheduled_at
        campaign.status = CampaignState.SCHEDULED.value
        await db.flush()
        await db.refresh(campaign)
        logger.info("Email campaign {} scheduled for {}", campaign.id, scheduled_at)
        return campaign

    async def cancel(self, db: AsyncSession, campaign: EmailCampaign) -> EmailCampaign:
        self._ensure_editable(campaign)
        campaign.status = CampaignState.CANCELLED.value
        await db.flush()
        await db.refresh(campaign)
        return campaign

    async def queue_send(self, db: AsyncSession, campaign: EmailCampaign, queue) -> EmailCampaign:
        self._ensure_editable(campaign)
        await queue.dispatch(tasks.send_email_campaign, campaign.id)
        await db.refresh(campaign)
        return campaign

    # ==================== Sending ====================

    async def recipients(self, db: AsyncSession, campaign: EmailCampaign) -> List[User]:
        filters = campaign.audience_filters or {}
        query = select(User).where(User.tenant_id == campaign.tenant_id, User.is_active.is_(True))
        if filters.get("graduation_years"):
            query = query.where(User.graduation_year.in_(filters["graduation_years"]))
        if filters.get("locations"):
            query = query.where(User.location.in_(filters["locations"]))
        if filters.get("industries"):
            query = query.where(User.industry.in_(filters["industries"]))
        if filters.get("circle_ids"):
            member_ids = await circle_crud.member_ids(db, filters["circle_ids"])
            query = query.where(User.id.in_(member_ids))
        result = await db.execute(query.order_by(User.created_at))
        return list(result.scalars().all())

    async def send(self, db: AsyncSession, campaign: EmailCampaign) -> Dict[str, int]:
        if campaign.status not in SENDABLE:
            raise UnprocessableException(
                errors={"status": [f"Campaign cannot be sent in status {campaign.status}"]}
            )
        campaign.status = CampaignState.SENDING.value
        await db.flush()

        provider = get_mailer(campaign.provider)
        users = await self.recipients(db, campaign)
        sent = failed = 0
        for user in users:
            recipient = await email_campaign_crud.get_recipient(db, campaign.id, user.id)
            if recipient is None:
                recipient = EmailRecipient(campaign_id=campaign.id, user_id=user.id, email=user.email)
                db.add(recipient)
            try:
                await provider.send(
                    user.email, personalize(campaign.subject, user), personalize(campaign.content, user)
                )
            except Exception as exc:
                logger.warning("Campaign {} mail to {} failed: {}", campaign.id, user.email, exc)
                recipient.status = RecipientStatus.FAILED.value
                failed += 1
                continue
            recipient.status = RecipientStatus.SENT.value
            recipient.sent_at = utcnow()
            sent += 1

        campaign.recipients_count = sent
        campaign.status = CampaignState.SENT.value
        campaign.sent_at = utcnow()
        await db.flush()
        logger.info("Email campaign {} sent to {} recipients ({} failed)", campaign.id, sent, failed)
        return {"sent": sent, "failed": failed}

    async def send_due(self, db: AsyncSession) -> int:
        result = await db.execute(
            select(EmailCampaign).where(
                EmailCampaign.status == CampaignState.SCHEDULED.value,
                EmailCampaign.scheduled_at <= utcnow(),
            )
        )
        campaigns = list(result.scalars().all())
        for campaign in campaigns:
            await self.send(db, campaign)
        return len(campaigns)

    # ==================== A/B variants ====================

    async def create_ab_variant(self, db: AsyncSession, parent: EmailCampaign, data: AbVariantCreate) -> EmailCampaign:
        self._ensure_editable(parent)
        if data.variant == (parent.ab_variant or "A"):
            raise UnprocessableException(errors={"variant": ["Variant must differ from the parent campaign"]})
        variant = await email_campaign_crud.create(db, obj_in={
            "tenant_id": parent.tenant_id,
            "name": f"{parent.name} (Variant {data.variant})",
            "subject": data.subject or parent.subject,
            "content": data.content or parent.content,
            "from_name": parent.from_name,
            "provider": parent.provider,
            "audience_filters": dict(parent.audience_filters or {}),
            "personalization_rules": dict(parent.personalization_rules or {}),
            "parent_campaign_id": parent.id,
            "ab_variant": data.variant,
            "created_by": parent.created_by,
        })
        parent.ab_variant = parent.ab_variant or "A"
        await db.flush()
        return variant

    # ==================== Engagement ====================

    async def track_engagement(self, db: AsyncSession, campaign: EmailCampaign, user_id: str, action: str) -> Dict[str, Any]:
        if action not in ENGAGEMENT_ACTIONS:
            raise UnprocessableException(errors={"action": [f"Unknown action {action}"]})
        recipient = await email_campaign_crud.get_recipient(db, campaign.id, user_id)
        if recipient is None:
            raise UnprocessableException(errors={"user_id": ["User is not a recipient of this campaign"]})

        now = utcnow()
        if action == "open" and recipient.opened_at is None:
            recipient.opened_at = now
            campaign.opened_count += 1
        elif action == "click" and recipient.clicked_at is None:
            if recipient.opened_at is None:
                # a click implies the mail was opened
                recipient.opened_at = now
                campaign.opened_count += 1
            recipient.clicked_at = now
            campaign.clicked_count += 1
        elif action == "unsubscribe" and recipient.unsubscribed_at is None:
            recipient.unsubscribed_at = now
            campaign.unsubscribed_count += 1
        await db.flush()
        return campaign_metrics(campaign)

    def metrics(self, campaign: EmailCampaign) -> Dict[str, Any]:
        return campaign_metrics(campaign)


email_marketing_service = EmailMarketingService()
