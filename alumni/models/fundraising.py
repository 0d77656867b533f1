"""
Fundraising models: campaigns, donations, recurring donations, payment
transactions, acknowledgments and tax receipts
"""
from datetime import datetime, date
from enum import Enum
from typing import Optional, List
from pydantic import EmailStr, field_validator, model_validator
from sqlmodel import SQLModel, Field, Column, JSON, UniqueConstraint

from .base import SQLModelBase, TimestampMixin, IDMixin, TenantMixin, TimestampResponse, to_naive_utc


class CampaignStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class DonationStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class RecurringFrequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class RecurringStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    FAILED = "failed"


# Donations that count toward campaign totals
COUNTED_STATUSES = (DonationStatus.COMPLETED.value, DonationStatus.PARTIALLY_REFUNDED.value)


# ==================== Campaigns ====================

class CampaignBase(SQLModelBase):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    goal_amount: float = Field(..., gt=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class FundraisingCampaign(CampaignBase, TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "fundraising_campaigns"

    status: str = Field(CampaignStatus.ACTIVE.value, max_length=20, index=True)
    raised_amount: float = Field(0, ge=0)
    donor_count: int = Field(0, ge=0)
    created_by: str = Field(foreign_key="users.id")

    @property
    def progress_percentage(self) -> float:
        if not self.goal_amount:
            return 0.0
        return round(min(100.0, self.raised_amount / self.goal_amount * 100), 2)


class CampaignCreate(CampaignBase):
    status: CampaignStatus = CampaignStatus.ACTIVE

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, v):
        return to_naive_utc(v)


class CampaignUpdate(SQLModelBase):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    goal_amount: Optional[float] = Field(None, gt=0)
    status: Optional[CampaignStatus] = None
    end_date: Optional[datetime] = None


class CampaignResponse(TimestampResponse):
    title: str
    description: Optional[str]
    goal_amount: float
    raised_amount: float
    donor_count: int
    currency: str
    status: str
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    created_by: str
    progress_percentage: float


# ==================== Donations ====================

class CampaignDonation(TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "campaign_donations"

    campaign_id: str = Field(foreign_key="fundraising_campaigns.id", index=True)
    donor_id: Optional[str] = Field(None, foreign_key="users.id", index=True)
    recurring_donation_id: Optional[str] = Field(None, foreign_key="recurring_donations.id")
    donor_name: Optional[str] = Field(None, max_length=150)
    donor_email: Optional[str] = Field(None, max_length=255)
    amount: float = Field(..., gt=0)
    currency: str = Field("USD", max_length=3)
    is_anonymous: bool = False
    is_recurring: bool = False
    recurring_frequency: Optional[str] = Field(None, max_length=20)
    message: Optional[str] = None
    status: str = Field(DonationStatus.PENDING.value, max_length=30, index=True)
    payment_method: str = Field("card", max_length=30)
    payment_id: Optional[str] = Field(None, max_length=100)
    payment_data: dict = Field(default_factory=dict, sa_column=Column(JSON))
    refunded_amount: float = Field(0, ge=0)
    processed_at: Optional[datetime] = Field(None, index=True)

    @property
    def donor_display_name(self) -> str:
        if self.is_anonymous:
            return "Anonymous"
        return self.donor_name or "Friend"


class DonationCreate(SQLModelBase):
    amount: float = Field(..., gt=0, le=1_000_000)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    is_anonymous: bool = False
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    message: Optional[str] = Field(None, max_length=1000)
    donor_name: Optional[str] = Field(None, max_length=150)
    donor_email: Optional[EmailStr] = None
    payment_method: str = Field("card", max_length=30)
    payment_token: str = Field(..., min_length=1, max_length=255)
    send_acknowledgment: bool = False

    @model_validator(mode="after")
    def check_recurring(self):
        if self.is_recurring and not self.recurring_frequency:
            self.recurring_frequency = RecurringFrequency.MONTHLY.value
        return self


class RefundRequest(SQLModelBase):
    amount: Optional[float] = Field(None, gt=0)
    reason: Optional[str] = Field(None, max_length=500)


class DonationResponse(TimestampResponse):
    campaign_id: str
    donor_id: Optional[str]
    donor_name: Optional[str]
    amount: float
    currency: str
    is_anonymous: bool
    is_recurring: bool
    recurring_frequency: Optional[str]
    message: Optional[str]
    status: str
    payment_method: str
    payment_id: Optional[str]
    refunded_amount: float
    processed_at: Optional[datetime]


# ==================== Recurring donations ====================

class RecurringDonation(TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "recurring_donations"

    original_donation_id: str = Field(index=True)
    campaign_id: str = Field(foreign_key="fundraising_campaigns.id", index=True)
    donor_id: Optional[str] = Field(None, foreign_key="users.id", index=True)
    donor_name: Optional[str] = Field(None, max_length=150)
    donor_email: Optional[str] = Field(None, max_length=255)
    amount: float
    currency: str = Field("USD", max_length=3)
    frequency: str = Field(RecurringFrequency.MONTHLY.value, max_length=20)
    payment_method: str = Field("card", max_length=30)
    payment_data: dict = Field(default_factory=dict, sa_column=Column(JSON))
    status: str = Field(RecurringStatus.ACTIVE.value, max_length=20, index=True)
    next_payment_date: date = Field(..., index=True)
    started_at: date
    payments_count: int = 0
    failed_attempts: int = 0
    total_amount: float = 0
    last_payment_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


class RecurringDonationResponse(TimestampResponse):
    original_donation_id: str
    campaign_id: str
    donor_id: Optional[str]
    amount: float
    currency: str
    frequency: str
    status: str
    next_payment_date: date
    payments_count: int
    failed_attempts: int
    total_amount: float


class RecurringCancelRequest(SQLModelBase):
    reason: Optional[str] = Field(None, max_length=500)


# ==================== Payments, acknowledgments, receipts ====================

class PaymentTransaction(TimestampMixin, IDMixin, SQLModel, table=True):
    __tablename__ = "payment_transactions"

    donation_id: str = Field(foreign_key="campaign_donations.id", index=True)
    transaction_type: str = Field("payment", max_length=20)
    gateway: str = Field(..., max_length=30)
    gateway_transaction_id: Optional[str] = Field(None, max_length=100)
    amount: float
    currency: str = Field("USD", max_length=3)
    status: str = Field(..., max_length=20)
    gateway_response: dict = Field(default_factory=dict, sa_column=Column(JSON))
    processed_at: Optional[datetime] = None


class DonationAcknowledgment(TimestampMixin, IDMixin, SQLModel, table=True):
    __tablename__ = "donation_acknowledgments"

    donation_id: str = Field(foreign_key="campaign_donations.id", index=True)
    type: str = Field("email", max_length=20)
    status: str = Field("pending", max_length=20)
    recipient_info: dict = Field(default_factory=dict, sa_column=Column(JSON))
    template_used: str = Field("donation_thank_you", max_length=100)
    personalization_data: dict = Field(default_factory=dict, sa_column=Column(JSON))
    scheduled_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None


class TaxReceipt(TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "tax_receipts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "tax_year", "receipt_number", name="uq_tax_receipt_number"),
    )

    receipt_number: str = Field(..., max_length=20)
    donor_id: str = Field(foreign_key="users.id", index=True)
    donor_name: str = Field(..., max_length=150)
    donor_email: str = Field(..., max_length=255)
    total_amount: float
    currency: str = Field("USD", max_length=3)
    tax_year: int = Field(..., index=True)
    receipt_date: date
    donations: List[dict] = Field(default_factory=list, sa_column=Column(JSON))


class TaxReceiptResponse(TimestampResponse):
    receipt_number: str
    donor_id: str
    donor_name: str
    donor_email: str
    total_amount: float
    currency: str
    tax_year: int
    receipt_date: date
    donations: List[dict]
