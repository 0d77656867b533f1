"""
Fundraising CRUD
"""
from datetime import date, datetime
from typing import List
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.models.fundraising import (
    FundraisingCampaign, CampaignDonation, RecurringDonation, TaxReceipt,
    COUNTED_STATUSES, RecurringStatus,
)
from .base import CRUDBase


class CRUDCampaign(CRUDBase[FundraisingCampaign]):

    async def recalculate_totals(self, db: AsyncSession, campaign: FundraisingCampaign) -> FundraisingCampaign:
        """raised_amount is net of refunds; donor_count counts distinct donors"""
        result = await db.execute(
            select(
                func.coalesce(func.sum(CampaignDonation.amount - CampaignDonation.refunded_amount), 0),
                func.count(func.distinct(func.coalesce(CampaignDonation.donor_id, CampaignDonation.donor_email, CampaignDonation.id))),
            ).where(
                CampaignDonation.campaign_id == campaign.id,
                CampaignDonation.status.in_(COUNTED_STATUSES),
            )
        )
        raised, donors = result.one()
        campaign.raised_amount = round(float(raised or 0), 2)
        campaign.donor_count = donors or 0
        await db.flush()
        return campaign


class CRUDDonation(CRUDBase[CampaignDonation]):

    async def completed_for_year(self, db: AsyncSession, tenant_id: str, donor_id: str, year: int) -> List[CampaignDonation]:
        result = await db.execute(
            select(CampaignDonation)
            .where(
                CampaignDonation.tenant_id == tenant_id,
                CampaignDonation.donor_id == donor_id,
                CampaignDonation.status.in_(COUNTED_STATUSES),
                CampaignDonation.processed_at >= datetime(year, 1, 1),
                CampaignDonation.processed_at < datetime(year + 1, 1, 1),
            )
            .order_by(CampaignDonation.processed_at)
        )
        return list(result.scalars().all())


class CRUDRecurring(CRUDBase[RecurringDonation]):

    async def due(self, db: AsyncSession, on: date) -> List[RecurringDonation]:
        result = await db.execute(
            select(RecurringDonation).where(
                RecurringDonation.status == RecurringStatus.ACTIVE.value,
                RecurringDonation.next_payment_date <= on,
            )
        )
        return list(result.scalars().all())


class CRUDTaxReceipt(CRUDBase[TaxReceipt]):

    async def count_for_year(self, db: AsyncSession, tenant_id: str, year: int) -> int:
        return await self.count(db, tenant_id=tenant_id, filters=[TaxReceipt.tax_year == year])


campaign_crud = CRUDCampaign(FundraisingCampaign)
donation_crud = CRUDDonation(CampaignDonation)
recurring_crud = CRUDRecurring(RecurringDonation)
tax_receipt_crud = CRUDTaxReceipt(TaxReceipt)
