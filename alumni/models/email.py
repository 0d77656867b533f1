"""
Email marketing models
"""
from datetime import datetime
from enum import Enum
from typing import Literal, Optional
from sqlmodel import SQLModel, Field, Column, JSON, UniqueConstraint

from .base import SQLModelBase, TimestampMixin, IDMixin, TenantMixin, TimestampResponse, utcnow


class CampaignState(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENDING = "sending"
    SENT = "sent"
    CANCELLED = "cancelled"


class RecipientStatus(str, Enum):
    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"


class EmailCampaignBase(SQLModelBase):
    name: str = Field(..., min_length=1, max_length=200)
    subject: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    from_name: Optional[str] = Field(None, max_length=150)


class EmailCampaign(EmailCampaignBase, TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "email_campaigns"

    status: str = Field(CampaignState.DRAFT.value, max_length=20, index=True)
    provider: str = Field("log", max_length=30)
    # {"graduation_years": [...], "locations": [...], "industries": [...], "circle_ids": [...]}
    audience_filters: dict = Field(default_factory=dict, sa_column=Column(JSON))
    personalization_rules: dict = Field(default_factory=dict, sa_column=Column(JSON))
    parent_campaign_id: Optional[str] = Field(None, foreign_key="email_campaigns.id")
    ab_variant: Optional[str] = Field(None, max_length=20)
    created_by: str = Field(foreign_key="users.id")
    scheduled_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    recipients_count: int = 0
    opened_count: int = 0
    clicked_count: int = 0
    unsubscribed_count: int = 0


class EmailRecipient(SQLModel, table=True):
    __tablename__ = "email_recipients"
    __table_args__ = (
        UniqueConstraint("campaign_id", "user_id", name="uq_email_recipient"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    campaign_id: str = Field(foreign_key="email_campaigns.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    email: str = Field(..., max_length=255)
    status: str = Field(RecipientStatus.QUEUED.value, max_length=20)
    sent_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    clicked_at: Optional[datetime] = None
    unsubscribed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


# ==================== Request schemas ====================

class EmailCampaignCreate(EmailCampaignBase):
    audience_filters: dict = Field(default_factory=dict)
    personalization_rules: dict = Field(default_factory=dict)
    provider: Optional[str] = Field(None, max_length=30)


class EmailCampaignUpdate(SQLModelBase):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    subject: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=1)
    from_name: Optional[str] = Field(None, max_length=150)
    audience_filters: Optional[dict] = None


class ScheduleRequest(SQLModelBase):
    scheduled_at: datetime


class AbVariantCreate(SQLModelBase):
    subject: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=1)
    variant: str = Field("B", min_length=1, max_length=20)


class EngagementTrack(SQLModelBase):
    user_id: str
    action: Literal["open", "click", "unsubscribe"]


# ==================== Response schemas ====================

class EmailCampaignResponse(TimestampResponse):
    name: str
    subject: str
    content: str
    from_name: Optional[str]
    status: str
    provider: str
    audience_filters: dict
    parent_campaign_id: Optional[str]
    ab_variant: Optional[str]
    scheduled_at: Optional[datetime]
    sent_at: Optional[datetime]
    recipients_count: int
    opened_count: int
    clicked_count: int
    unsubscribed_count: int
