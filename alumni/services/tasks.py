"""
Queued and scheduled jobs

Every job takes the session first: job(session, *args). Services are
imported inside the jobs because the services themselves import this
module to dispatch work.
"""
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.queue import SyncQueue


# ==================== Event driven ====================

async def deliver_webhook_event(session: AsyncSession, tenant_id: str, event: str, payload: Dict[str, Any]) -> int:
    from alumni.services.webhooks import webhook_service

    deliveries = await webhook_service.dispatch(session, tenant_id, event, payload)
    return len(deliveries)


async def federate_post(session: AsyncSession, post_id: str) -> Optional[dict]:
    from alumni.crud import post_crud
    from alumni.services.federation import federation_bridge

    post = await post_crud.get(session, post_id)
    if post is None:
        logger.warning("Post {} vanished before federation", post_id)
        return None
    return await federation_bridge.federate_post(session, post)


async def send_donation_acknowledgment(session: AsyncSession, acknowledgment_id: str) -> bool:
    from alumni.services.donations import donation_service

    return await donation_service.send_acknowledgment(session, acknowledgment_id)


async def send_email_campaign(session: AsyncSession, campaign_id: str) -> Optional[dict]:
    from alumni.crud import email_campaign_crud
    from alumni.services.email_marketing import email_marketing_service

    campaign = await email_campaign_crud.get(session, campaign_id)
    if campaign is None:
        return None
    return await email_marketing_service.send(session, campaign)


async def generate_job_matches(session: AsyncSession, job_id: str) -> int:
    from alumni.crud import job_crud
    from alumni.services.matching import matching_service

    job = await job_crud.get(session, job_id)
    if job is None:
        return 0
    matches = await matching_service.generate_job_matches(session, job)
    logger.info("Generated {} matches for job {}", len(matches), job_id)
    return len(matches)


async def generate_recommendations(session: AsyncSession, tenant_id: str) -> int:
    from alumni.crud import user_crud
    from alumni.services.recommendations import recommendation_service

    users = await user_crud.active_in_tenant(session, tenant_id)
    for user in users:
        recommendation_service.clear_cache(user.id)
        await recommendation_service.get_recommendations(session, user)
    logger.info("Refreshed recommendations for {} users of tenant {}", len(users), tenant_id)
    return len(users)


# ==================== Scheduled ====================

async def publish_scheduled_posts(session: AsyncSession) -> int:
    from alumni.services.posts import post_service

    return await post_service.publish_due(session, SyncQueue(session))


async def process_recurring_donations(session: AsyncSession) -> int:
    from alumni.services.donations import donation_service

    return await donation_service.process_due_recurring(session, SyncQueue(session))


async def send_scheduled_campaigns(session: AsyncSession) -> int:
    from alumni.services.email_marketing import email_marketing_service

    return await email_marketing_service.send_due(session)


async def retry_due_deliveries(session: AsyncSession) -> int:
    from alumni.services.webhooks import webhook_service

    return await webhook_service.retry_due(session)


async def cleanup(session: AsyncSession) -> Dict[str, int]:
    from alumni.services.matching import matching_service
    from alumni.services.security import security_service

    result = {
        "matches": await matching_service.cleanup_old_matches(session),
        "sessions": await security_service.cleanup_expired_sessions(session),
    }
    logger.info("Cleanup removed {} old matches and {} expired sessions", result["matches"], result["sessions"])
    return result


async def snapshot_analytics(session: AsyncSession) -> int:
    from alumni.models.tenant import Tenant
    from alumni.services.analytics import analytics_service

    result = await session.execute(select(Tenant).where(Tenant.is_active.is_(True)))
    tenants = list(result.scalars().all())
    for tenant in tenants:
        await analytics_service.snapshot(session, tenant.id)
    return len(tenants)


SCHEDULED_JOBS = (
    publish_scheduled_posts,
    process_recurring_donations,
    send_scheduled_campaigns,
    retry_due_deliveries,
    cleanup,
    snapshot_analytics,
)
