"""
Email marketing API
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import require_admin
from alumni.core.database import get_db
from alumni.core.exceptions import NotFoundException
from alumni.core.queue import get_queue
from alumni.core.response import (
    success_response,
    paged_response,
    ResponseModel,
    PagedResponseModel,
    MessageResponse,
    DictResponse,
)
from alumni.crud import email_campaign_crud
from alumni.models.email import (
    CampaignState,
    EmailCampaign,
    EmailCampaignCreate,
    EmailCampaignUpdate,
    ScheduleRequest,
    AbVariantCreate,
    EngagementTrack,
    EmailCampaignResponse,
)
from alumni.models.user import User
from alumni.services.email_marketing import email_marketing_service

router = APIRouter()


async def get_campaign_or_404(db: AsyncSession, campaign_id: str, admin: User) -> EmailCampaign:
    campaign = await email_campaign_crud.get(db, campaign_id, tenant_id=admin.tenant_id)
    if campaign is None:
        raise NotFoundException(f"Email campaign not found: {campaign_id}")
    return campaign


def serialize(campaign: EmailCampaign) -> dict:
    return EmailCampaignResponse.model_validate(campaign).model_dump()


@router.get("", summary="List email campaigns", response_model=PagedResponseModel[EmailCampaignResponse])
async def get_campaigns(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[CampaignState] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    skip = (page - 1) * page_size
    filters = [EmailCampaign.status == status.value] if status else []
    campaigns = await email_campaign_crud.get_multi(
        db, tenant_id=admin.tenant_id, filters=filters, skip=skip, limit=page_size
    )
    total = await email_campaign_crud.count(db, tenant_id=admin.tenant_id, filters=filters)
    return paged_response([serialize(c) for c in campaigns], total, page, page_size)


@router.post("", summary="Create an email campaign", status_code=201,
             response_model=ResponseModel[EmailCampaignResponse])
async def create_campaign(
    data: EmailCampaignCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    campaign = await email_marketing_service.create(db, admin, data)
    return success_response(data=serialize(campaign), message="Email campaign created", code=201)


@router.get("/{campaign_id}", summary="Email campaign details", response_model=ResponseModel[EmailCampaignResponse])
async def get_campaign(
    campaign_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=serialize(await get_campaign_or_404(db, campaign_id, admin)))


@router.patch("/{campaign_id}", summary="Update a draft campaign", response_model=ResponseModel[EmailCampaignResponse])
async def update_campaign(
    campaign_id: str,
    data: EmailCampaignUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    campaign = await email_marketing_service.update(db, await get_campaign_or_404(db, campaign_id, admin), data)
    return success_response(data=serialize(campaign), message="Email campaign updated")


@router.delete("/{campaign_id}", summary="Delete an unsent campaign", response_model=MessageResponse)
async def delete_campaign(
    campaign_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await email_marketing_service.delete(db, await get_campaign_or_404(db, campaign_id, admin))
    return success_response(message="Email campaign deleted")


@router.post("/{campaign_id}/schedule", summary="Schedule a campaign",
             response_model=ResponseModel[EmailCampaignResponse])
async def schedule_campaign(
    campaign_id: str,
    data: ScheduleRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    campaign = await get_campaign_or_404(db, campaign_id, admin)
    campaign = await email_marketing_service.schedule(db, campaign, data.scheduled_at)
    return success_response(data=serialize(campaign), message="Email campaign scheduled")


@router.post("/{campaign_id}/cancel", summary="Cancel a campaign", response_model=ResponseModel[EmailCampaignResponse])
async def cancel_campaign(
    campaign_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    campaign = await email_marketing_service.cancel(db, await get_campaign_or_404(db, campaign_id, admin))
    return success_response(data=serialize(campaign), message="Email campaign cancelled")


@router.post("/{campaign_id}/send", summary="Send a campaign now", status_code=202,
             response_model=ResponseModel[EmailCampaignResponse])
async def send_campaign(
    campaign_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    """
    Sending happens on the job queue
    """
    campaign = await get_campaign_or_404(db, campaign_id, admin)
    campaign = await email_marketing_service.queue_send(db, campaign, queue)
    return success_response(data=serialize(campaign), message="Email campaign queued for sending", code=202)


@router.post("/{campaign_id}/ab-variant", summary="Create an A/B variant", status_code=201,
             response_model=ResponseModel[EmailCampaignResponse])
async def create_ab_variant(
    campaign_id: str,
    data: AbVariantCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    parent = await get_campaign_or_404(db, campaign_id, admin)
    variant = await email_marketing_service.create_ab_variant(db, parent, data)
    return success_response(data=serialize(variant), message="A/B variant created", code=201)


@router.post("/{campaign_id}/track", summary="Record an open, click or unsubscribe", response_model=DictResponse)
async def track_engagement(
    campaign_id: str,
    data: EngagementTrack,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    campaign = await get_campaign_or_404(db, campaign_id, admin)
    metrics = await email_marketing_service.track_engagement(db, campaign, data.user_id, data.action)
    return success_response(data=metrics)


@router.get("/{campaign_id}/metrics", summary="Campaign metrics", response_model=DictResponse)
async def get_metrics(
    campaign_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    campaign = await get_campaign_or_404(db, campaign_id, admin)
    return success_response(data=email_marketing_service.metrics(campaign))
