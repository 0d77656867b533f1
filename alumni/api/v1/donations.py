"""
Donation API: my donations, refunds, recurring donations and tax receipts
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_current_user, require_admin
from alumni.core.database import get_db
from alumni.core.exceptions import NotFoundException
from alumni.core.queue import get_queue
from alumni.core.response import success_response, paged_response, ResponseModel, PagedResponseModel, ListResponse
from alumni.crud import donation_crud, recurring_crud, tax_receipt_crud
from alumni.models.fundraising import (
    CampaignDonation,
    RecurringDonation,
    TaxReceipt,
    RefundRequest,
    RecurringCancelRequest,
    DonationResponse,
    RecurringDonationResponse,
    TaxReceiptResponse,
)
from alumni.models.user import User
from alumni.services import tasks
from alumni.services.donations import donation_service

router = APIRouter()


@router.get("/mine", summary="My donations", response_model=PagedResponseModel[DonationResponse])
async def get_my_donations(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    skip = (page - 1) * page_size
    filters = [CampaignDonation.donor_id == user.id]
    donations = await donation_crud.get_multi(db, tenant_id=user.tenant_id, filters=filters, skip=skip, limit=page_size)
    total = await donation_crud.count(db, tenant_id=user.tenant_id, filters=filters)
    items = [DonationResponse.model_validate(d).model_dump() for d in donations]
    return paged_response(items, total, page, page_size)


@router.post("/{donation_id}/refund", summary="Refund a donation", response_model=ResponseModel[DonationResponse])
async def refund_donation(
    donation_id: str,
    data: RefundRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    """
    Full refund when no amount is given; partial refunds accumulate
    """
    donation = await donation_crud.get(db, donation_id, tenant_id=admin.tenant_id)
    if donation is None:
        raise NotFoundException(f"Donation not found: {donation_id}")
    donation = await donation_service.refund(db, donation, data.amount, data.reason)
    await queue.dispatch(
        tasks.deliver_webhook_event,
        admin.tenant_id,
        "donation.refunded",
        {"donation_id": donation.id, "refunded_amount": donation.refunded_amount, "status": donation.status},
    )
    return success_response(data=DonationResponse.model_validate(donation).model_dump(), message="Donation refunded")


# ==================== Recurring ====================

@router.get("/recurring", summary="My recurring donations", response_model=ListResponse)
async def get_recurring(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    plans = await recurring_crud.get_multi(
        db, tenant_id=user.tenant_id, filters=[RecurringDonation.donor_id == user.id]
    )
    return success_response(data=[RecurringDonationResponse.model_validate(p).model_dump() for p in plans])


@router.post("/recurring/{recurring_id}/cancel", summary="Cancel a recurring donation",
             response_model=ResponseModel[RecurringDonationResponse])
async def cancel_recurring(
    recurring_id: str,
    data: RecurringCancelRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    recurring = await recurring_crud.get(db, recurring_id, tenant_id=user.tenant_id)
    if recurring is None or (recurring.donor_id != user.id and not user.is_admin):
        raise NotFoundException(f"Recurring donation not found: {recurring_id}")
    recurring = await donation_service.cancel_recurring(db, recurring, data.reason)
    return success_response(
        data=RecurringDonationResponse.model_validate(recurring).model_dump(),
        message="Recurring donation cancelled",
    )


# ==================== Tax receipts ====================

@router.get("/tax-receipts", summary="My tax receipts", response_model=ListResponse)
async def get_tax_receipts(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    receipts = await tax_receipt_crud.get_multi(
        db, tenant_id=user.tenant_id, filters=[TaxReceipt.donor_id == user.id]
    )
    return success_response(data=[TaxReceiptResponse.model_validate(r).model_dump() for r in receipts])


@router.post("/tax-receipts/{year}", summary="Generate a tax receipt", status_code=201,
             response_model=ResponseModel[TaxReceiptResponse])
async def create_tax_receipt(
    year: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    receipt = await donation_service.generate_tax_receipt(db, user, year)
    return success_response(
        data=TaxReceiptResponse.model_validate(receipt).model_dump(),
        message="Tax receipt generated",
        code=201,
    )
