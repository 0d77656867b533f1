"""
Donation processing

Charges go through the configured payment gateway. A completed recurring
donation starts a RecurringDonation schedule; completed donations get a
thank-you acknowledgment unless the donor gave anonymously without asking
for one. Campaign totals are recalculated after every change.
"""
import calendar
from datetime import date, timedelta
from typing import Any, Awaitable, Dict, List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.exceptions import (
    NotFoundException,
    PaymentRequiredException,
    UnprocessableException,
)
from alumni.crud import campaign_crud, donation_crud, recurring_crud, tax_receipt_crud
from alumni.models.base import utcnow
from alumni.models.fundraising import (
    CampaignDonation,
    CampaignStatus,
    DonationAcknowledgment,
    DonationCreate,
    DonationStatus,
    FundraisingCampaign,
    PaymentTransaction,
    RecurringDonation,
    RecurringFrequency,
    RecurringStatus,
    TaxReceipt,
)
from alumni.models.user import User
from alumni.services import tasks
from alumni.services.payment_gateway import get_payment_gateway

MAX_RECURRING_FAILURES = 3
ACKNOWLEDGMENT_DELAY = timedelta(minutes=5)

FREQUENCY_MONTHS = {
    RecurringFrequency.MONTHLY.value: 1,
    RecurringFrequency.QUARTERLY.value: 3,
    RecurringFrequency.YEARLY.value: 12,
}


def add_months(day: date, months: int) -> date:
    """Clamp to the last day of the target month (Jan 31 + 1 month = Feb 28/29)"""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def next_payment_date(frequency: Optional[str], start: date) -> date:
    return add_months(start, FREQUENCY_MONTHS.get(frequency, 1))


class DonationProcessingService:

    def __init__(self, gateway=None):
        self._gateway = gateway

    @property
    def gateway(self):
        return self._gateway or get_payment_gateway()

    @gateway.setter
    def gateway(self, value):
        self._gateway = value

    @staticmethod
    async def _charge(call: Awaitable[Dict[str, Any]], donation: CampaignDonation) -> Dict[str, Any]:
        """Any gateway error becomes a failed result, so the donation can be marked failed"""
        try:
            return await call
        except Exception as exc:
            logger.exception("Payment gateway error for donation {}: {}", donation.id, exc)
            return {"success": False, "status": "failed", "error": "Payment processing failed",
                    "error_code": "gateway_error"}

    async def _record_transaction(
        self, db: AsyncSession, donation: CampaignDonation, result: Dict[str, Any], kind: str = "payment"
    ) -> PaymentTransaction:
        transaction = PaymentTransaction(
            donation_id=donation.id,
            transaction_type=kind,
            gateway=self.gateway.name,
            gateway_transaction_id=result.get("refund_id") if kind == "refund" else result.get("payment_id"),
            amount=result.get("amount", donation.amount) if kind == "refund" else donation.amount,
            currency=donation.currency,
            status=result["status"],
            gateway_response=result,
            processed_at=utcnow() if result["status"] == "completed" else None,
        )
        db.add(transaction)
        await db.flush()
        return transaction

    async def _update_campaign(self, db: AsyncSession, campaign_id: str) -> None:
        campaign = await campaign_crud.get(db, campaign_id)
        if campaign is not None:
            await campaign_crud.recalculate_totals(db, campaign)

    # ==================== Donations ====================

    async def process_donation(
        self,
        db: AsyncSession,
        campaign: FundraisingCampaign,
        donor: Optional[User],
        data: DonationCreate,
        queue,
    ) -> CampaignDonation:
        if campaign.status != CampaignStatus.ACTIVE.value:
            raise UnprocessableException(errors={"campaign": ["This campaign is not accepting donations"]})
        if campaign.end_date and campaign.end_date < utcnow():
            raise UnprocessableException(errors={"campaign": ["This campaign has ended"]})

        donation = CampaignDonation(
            tenant_id=campaign.tenant_id,
            campaign_id=campaign.id,
            donor_id=donor.id if donor else None,
            donor_name=data.donor_name or (donor.name if donor else None),
            donor_email=data.donor_email or (donor.email if donor else None),
            amount=round(data.amount, 2),
            currency=(data.currency or campaign.currency).upper(),
            is_anonymous=data.is_anonymous,
            is_recurring=data.is_recurring,
            recurring_frequency=data.recurring_frequency if data.is_recurring else None,
            message=data.message,
            payment_method=data.payment_method,
            payment_data={"send_acknowledgment": data.send_acknowledgment},
        )
        db.add(donation)
        await db.flush()

        result = await self._charge(self.gateway.process_payment(donation, data.payment_token), donation)
        if not result["success"]:
            donation.status = DonationStatus.FAILED.value
            donation.payment_data = {"error": result.get("error"), "error_code": result.get("error_code")}
            # the failed attempt is kept even though the request errors out
            await db.commit()
            logger.error("Donation {} failed: {}", donation.id, result.get("error"))
            raise PaymentRequiredException(
                result.get("error") or "Payment processing failed",
                data={"donation_id": donation.id, "error_code": result.get("error_code")},
            )

        await self._record_transaction(db, donation, result)
        completed = result["status"] == "completed"
        donation.status = DonationStatus.COMPLETED.value if completed else DonationStatus.PENDING.value
        donation.payment_id = result["payment_id"]
        payment_data = dict(donation.payment_data or {})
        payment_data.update(result.get("payment_data") or {})
        if donation.is_recurring:
            payment_data["payment_token"] = data.payment_token
        donation.payment_data = payment_data
        donation.processed_at = utcnow() if completed else None
        await db.flush()

        if completed:
            if donation.is_recurring:
                await self._setup_recurring(db, donation)
            await self._schedule_acknowledgment(db, donation, campaign, queue)
            await campaign_crud.recalculate_totals(db, campaign)
            await queue.dispatch(
                tasks.deliver_webhook_event,
                campaign.tenant_id,
                "donation.completed",
                {"donation_id": donation.id, "campaign_id": campaign.id, "amount": donation.amount},
            )

        logger.info("Donation {} to campaign {}: {}", donation.id, campaign.id, donation.status)
        await db.refresh(donation)
        return donation

    async def _setup_recurring(self, db: AsyncSession, donation: CampaignDonation) -> RecurringDonation:
        today = utcnow().date()
        recurring = RecurringDonation(
            tenant_id=donation.tenant_id,
            original_donation_id=donation.id,
            campaign_id=donation.campaign_id,
            donor_id=donation.donor_id,
            donor_name=donation.donor_name,
            donor_email=donation.donor_email,
            amount=donation.amount,
            currency=donation.currency,
            frequency=donation.recurring_frequency or RecurringFrequency.MONTHLY.value,
            payment_method=donation.payment_method,
            payment_data=dict(donation.payment_data or {}),
            next_payment_date=next_payment_date(donation.recurring_frequency, today),
            started_at=today,
            payments_count=1,
            total_amount=donation.amount,
            last_payment_at=utcnow(),
        )
        db.add(recurring)
        await db.flush()
        donation.recurring_donation_id = recurring.id
        await db.flush()
        return recurring

    async def _schedule_acknowledgment(
        self, db: AsyncSession, donation: CampaignDonation, campaign: FundraisingCampaign, queue
    ) -> Optional[DonationAcknowledgment]:
        if donation.is_anonymous and not (donation.payment_data or {}).get("send_acknowledgment"):
            return None
        if not donation.donor_email:
            return None

        name = donation.donor_name or "Friend"
        acknowledgment = DonationAcknowledgment(
            donation_id=donation.id,
            recipient_info={"name": name, "email": donation.donor_email},
            personalization_data={
                "donation_amount": donation.amount,
                "currency": donation.currency,
                "campaign_title": campaign.title,
                "donor_name": name,
                "is_recurring": donation.is_recurring,
            },
            scheduled_at=utcnow() + ACKNOWLEDGMENT_DELAY,
        )
        db.add(acknowledgment)
        await db.flush()
        await queue.dispatch(tasks.send_donation_acknowledgment, acknowledgment.id)
        return acknowledgment

    async def send_acknowledgment(self, db: AsyncSession, acknowledgment_id: str) -> bool:
        from alumni.services.email_marketing import mailer

        acknowledgment = await db.get(DonationAcknowledgment, acknowledgment_id)
        if acknowledgment is None or acknowledgment.status == "sent":
            return False
        data = acknowledgment.personalization_data
        await mailer.send(
            acknowledgment.recipient_info["email"],
            f"Thank you for supporting {data['campaign_title']}",
            f"Dear {data['donor_name']},\n\nThank you for your gift of "
            f"{data['donation_amount']:.2f} {data.get('currency', 'USD')} to {data['campaign_title']}.",
        )
        acknowledgment.status = "sent"
        acknowledgment.sent_at = utcnow()
        await db.flush()
        return True

    # ==================== Refunds ====================

    async def refund(
        self, db: AsyncSession, donation: CampaignDonation, amount: Optional[float] = None, reason: Optional[str] = None
    ) -> CampaignDonation:
        if donation.status not in (DonationStatus.COMPLETED.value, DonationStatus.PARTIALLY_REFUNDED.value):
            raise UnprocessableException(errors={"donation": ["Only completed donations can be refunded"]})
        refundable = round(donation.amount - donation.refunded_amount, 2)
        amount = round(amount if amount is not None else refundable, 2)
        if amount > refundable:
            raise UnprocessableException(errors={"amount": [f"At most {refundable:.2f} can be refunded"]})

        result = await self.gateway.refund_payment(donation, amount)
        if not result["success"]:
            raise PaymentRequiredException(result.get("error") or "Refund failed")

        await self._record_transaction(db, donation, result, kind="refund")
        donation.refunded_amount = round(donation.refunded_amount + amount, 2)
        donation.status = (
            DonationStatus.REFUNDED.value
            if donation.refunded_amount >= donation.amount
            else DonationStatus.PARTIALLY_REFUNDED.value
        )
        payment_data = dict(donation.payment_data or {})
        payment_data.update(refund_reason=reason, refunded_at=utcnow().isoformat())
        donation.payment_data = payment_data
        await db.flush()
        await self._update_campaign(db, donation.campaign_id)
        logger.info("Refunded {:.2f} of donation {}", amount, donation.id)
        await db.refresh(donation)
        return donation

    # ==================== Recurring ====================

    async def process_recurring_payment(self, db: AsyncSession, recurring: RecurringDonation, queue) -> Optional[CampaignDonation]:
        donation = CampaignDonation(
            tenant_id=recurring.tenant_id,
            campaign_id=recurring.campaign_id,
            donor_id=recurring.donor_id,
            recurring_donation_id=recurring.id,
            donor_name=recurring.donor_name,
            donor_email=recurring.donor_email,
            amount=recurring.amount,
            currency=recurring.currency,
            payment_method=recurring.payment_method,
        )
        db.add(donation)
        await db.flush()

        result = await self._charge(self.gateway.process_recurring_payment(recurring), donation)
        if not result["success"]:
            donation.status = DonationStatus.FAILED.value
            donation.payment_data = {"error": result.get("error")}
            recurring.failed_attempts += 1
            if recurring.failed_attempts >= MAX_RECURRING_FAILURES:
                recurring.status = RecurringStatus.FAILED.value
            await db.flush()
            logger.warning(
                "Recurring payment {} failed ({} attempts)", recurring.id, recurring.failed_attempts
            )
            return None

        await self._record_transaction(db, donation, result)
        donation.status = DonationStatus.COMPLETED.value
        donation.payment_id = result["payment_id"]
        donation.processed_at = utcnow()

        recurring.payments_count += 1
        recurring.total_amount = round(recurring.total_amount + recurring.amount, 2)
        recurring.failed_attempts = 0
        recurring.last_payment_at = utcnow()
        recurring.next_payment_date = next_payment_date(recurring.frequency, recurring.next_payment_date)
        await db.flush()

        await self._update_campaign(db, recurring.campaign_id)
        campaign = await campaign_crud.get(db, recurring.campaign_id)
        await self._schedule_acknowledgment(db, donation, campaign, queue)
        return donation

    async def process_due_recurring(self, db: AsyncSession, queue, on: Optional[date] = None) -> int:
        processed = 0
        for recurring in await recurring_crud.due(db, on or utcnow().date()):
            if await self.process_recurring_payment(db, recurring, queue):
                processed += 1
        if processed:
            logger.info("Processed {} recurring donations", processed)
        return processed

    async def cancel_recurring(self, db: AsyncSession, recurring: RecurringDonation, reason: Optional[str] = None) -> RecurringDonation:
        if recurring.status == RecurringStatus.CANCELLED.value:
            raise UnprocessableException(errors={"recurring": ["Recurring donation is already cancelled"]})
        if not await self.gateway.cancel_recurring_payment(recurring):
            raise PaymentRequiredException("Could not cancel the recurring payment")
        recurring.status = RecurringStatus.CANCELLED.value
        recurring.cancelled_at = utcnow()
        recurring.cancellation_reason = reason
        await db.flush()
        await db.refresh(recurring)
        return recurring

    # ==================== Tax receipts ====================

    async def generate_tax_receipt(self, db: AsyncSession, donor: User, year: int) -> TaxReceipt:
        donations = await donation_crud.completed_for_year(db, donor.tenant_id, donor.id, year)
        if not donations:
            raise NotFoundException(f"No completed donations in {year}")

        campaigns = {}
        for donation in donations:
            if donation.campaign_id not in campaigns:
                campaigns[donation.campaign_id] = await campaign_crud.get(db, donation.campaign_id)

        sequence = await tax_receipt_crud.count_for_year(db, donor.tenant_id, year) + 1
        receipt = TaxReceipt(
            tenant_id=donor.tenant_id,
            receipt_number=f"{sequence:06d}",
            donor_id=donor.id,
            donor_name=donor.name,
            donor_email=donor.email,
            total_amount=round(sum(d.amount - d.refunded_amount for d in donations), 2),
            currency=donations[0].currency,
            tax_year=year,
            receipt_date=utcnow().date(),
            donations=[
                {
                    "donation_id": d.id,
                    "amount": round(d.amount - d.refunded_amount, 2),
                    "date": d.processed_at.date().isoformat(),
                    "campaign": campaigns[d.campaign_id].title if campaigns.get(d.campaign_id) else None,
                }
                for d in donations
            ],
        )
        db.add(receipt)
        await db.flush()
        await db.refresh(receipt)
        logger.info("Tax receipt {} for donor {} ({})", receipt.receipt_number, donor.id, year)
        return receipt

    # ==================== Campaign progress ====================

    async def campaign_progress(self, db: AsyncSession, campaign: FundraisingCampaign) -> Dict[str, Any]:
        recent: List[CampaignDonation] = await donation_crud.get_multi(
            db,
            filters=[
                CampaignDonation.campaign_id == campaign.id,
                CampaignDonation.status == DonationStatus.COMPLETED.value,
            ],
            limit=10,
        )
        days_left = None
        if campaign.end_date:
            days_left = max(0, (campaign.end_date - utcnow()).days)
        return {
            "campaign_id": campaign.id,
            "goal_amount": campaign.goal_amount,
            "raised_amount": campaign.raised_amount,
            "donor_count": campaign.donor_count,
            "progress_percentage": campaign.progress_percentage,
            "remaining_amount": round(max(0.0, campaign.goal_amount - campaign.raised_amount), 2),
            "days_left": days_left,
            "recent_donations": [
                {
                    "donor_name": d.donor_display_name,
                    "amount": d.amount,
                    "message": d.message,
                    "processed_at": d.processed_at.isoformat() if d.processed_at else None,
                }
                for d in recent
            ],
        }


donation_service = DonationProcessingService()
