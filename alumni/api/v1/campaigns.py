"""
Fundraising campaign API
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_optional_user, require_admin
from alumni.core.database import get_db
from alumni.core.exceptions import NotFoundException
from alumni.core.queue import get_queue
from alumni.core.response import (
    success_response,
    paged_response,
    ResponseModel,
    PagedResponseModel,
    DictResponse,
)
from alumni.core.tenancy import get_current_tenant
from alumni.crud import campaign_crud, donation_crud
from alumni.models.fundraising import (
    CampaignDonation,
    CampaignStatus,
    FundraisingCampaign,
    CampaignCreate,
    CampaignUpdate,
    CampaignResponse,
    DonationCreate,
    DonationResponse,
)
from alumni.models.tenant import Tenant
from alumni.models.user import User
from alumni.services import tasks
from alumni.services.donations import donation_service

router = APIRouter()


async def get_campaign_or_404(db: AsyncSession, campaign_id: str, tenant_id: str) -> FundraisingCampaign:
    campaign = await campaign_crud.get(db, campaign_id, tenant_id=tenant_id)
    if campaign is None:
        raise NotFoundException(f"Campaign not found: {campaign_id}")
    return campaign


def serialize(campaign: FundraisingCampaign) -> dict:
    return CampaignResponse.model_validate(campaign).model_dump()


@router.get("", summary="List campaigns", response_model=PagedResponseModel[CampaignResponse])
async def get_campaigns(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[CampaignStatus] = Query(CampaignStatus.ACTIVE),
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    skip = (page - 1) * page_size
    filters = [FundraisingCampaign.status == status.value] if status else []
    campaigns = await campaign_crud.get_multi(db, tenant_id=tenant.id, filters=filters, skip=skip, limit=page_size)
    total = await campaign_crud.count(db, tenant_id=tenant.id, filters=filters)
    return paged_response([serialize(c) for c in campaigns], total, page, page_size)


@router.post("", summary="Create a campaign", status_code=201, response_model=ResponseModel[CampaignResponse])
async def create_campaign(
    data: CampaignCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    campaign = await campaign_crud.create(db, obj_in={
        **data.model_dump(),
        "tenant_id": admin.tenant_id,
        "created_by": admin.id,
    })
    await queue.dispatch(
        tasks.deliver_webhook_event,
        admin.tenant_id,
        "campaign.created",
        {"campaign_id": campaign.id, "title": campaign.title, "goal_amount": campaign.goal_amount},
    )
    return success_response(data=serialize(campaign), message="Campaign created", code=201)


@router.get("/{campaign_id}", summary="Campaign details", response_model=ResponseModel[CampaignResponse])
async def get_campaign(
    campaign_id: str,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    campaign = await get_campaign_or_404(db, campaign_id, tenant.id)
    return success_response(data=serialize(campaign))


@router.patch("/{campaign_id}", summary="Update a campaign", response_model=ResponseModel[CampaignResponse])
async def update_campaign(
    campaign_id: str,
    data: CampaignUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    campaign = await get_campaign_or_404(db, campaign_id, admin.tenant_id)
    campaign = await campaign_crud.update(db, db_obj=campaign, obj_in=data)
    return success_response(data=serialize(campaign), message="Campaign updated")


@router.get("/{campaign_id}/progress", summary="Campaign progress", response_model=DictResponse)
async def get_progress(
    campaign_id: str,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    campaign = await get_campaign_or_404(db, campaign_id, tenant.id)
    return success_response(data=await donation_service.campaign_progress(db, campaign))


@router.post("/{campaign_id}/donations", summary="Donate to a campaign", status_code=201,
             response_model=ResponseModel[DonationResponse])
async def donate(
    campaign_id: str,
    data: DonationCreate,
    tenant: Tenant = Depends(get_current_tenant),
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    """
    Signed-in and guest donations; a declined payment answers 402
    """
    campaign = await get_campaign_or_404(db, campaign_id, tenant.id)
    below_goal = campaign.raised_amount < campaign.goal_amount

    donation = await donation_service.process_donation(db, campaign, user, data, queue)

    if below_goal and campaign.raised_amount >= campaign.goal_amount:
        await queue.dispatch(
            tasks.deliver_webhook_event,
            tenant.id,
            "campaign.goal_reached",
            {"campaign_id": campaign.id, "raised_amount": campaign.raised_amount},
        )
    return success_response(
        data=DonationResponse.model_validate(donation).model_dump(),
        message="Thank you for your donation",
        code=201,
    )


@router.get("/{campaign_id}/donations", summary="Campaign donations",
            response_model=PagedResponseModel[DonationResponse])
async def get_donations(
    campaign_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    campaign = await get_campaign_or_404(db, campaign_id, admin.tenant_id)
    skip = (page - 1) * page_size
    filters = [CampaignDonation.campaign_id == campaign.id]
    donations = await donation_crud.get_multi(db, filters=filters, skip=skip, limit=page_size)
    total = await donation_crud.count(db, filters=filters)
    items = [DonationResponse.model_validate(d).model_dump() for d in donations]
    return paged_response(items, total, page, page_size)
