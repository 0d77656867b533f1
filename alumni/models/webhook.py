"""
Webhook and delivery models
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import field_validator
from sqlmodel import SQLModel, Field, Column, JSON

from .base import SQLModelBase, TimestampMixin, IDMixin, TenantMixin, TimestampResponse


class WebhookStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    DISABLED = "disabled"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"
    SKIPPED = "skipped"


AVAILABLE_EVENTS = {
    "user.created": "User registered",
    "user.updated": "User profile updated",
    "user.deleted": "User deleted",
    "post.created": "Post created",
    "post.updated": "Post updated",
    "post.deleted": "Post deleted",
    "post.liked": "Post liked",
    "post.commented": "Post commented on",
    "connection.requested": "Connection requested",
    "connection.accepted": "Connection accepted",
    "event.created": "Event created",
    "event.updated": "Event updated",
    "event.registered": "Event registration",
    "event.cancelled": "Event registration cancelled",
    "event.checked_in": "Event check-in",
    "job.posted": "Job posted",
    "job.applied": "Job application submitted",
    "donation.completed": "Donation completed",
    "donation.refunded": "Donation refunded",
    "campaign.created": "Fundraising campaign created",
    "campaign.goal_reached": "Fundraising goal reached",
    "group.joined": "Group joined",
    "forum.topic_created": "Forum topic created",
    "forum.reply_created": "Forum reply created",
}


class WebhookBase(SQLModelBase):
    name: Optional[str] = Field(None, max_length=150)
    url: str = Field(..., max_length=1000)
    description: Optional[str] = None
    timeout: int = Field(30, ge=1, le=120)
    retry_attempts: int = Field(3, ge=0, le=3)


class Webhook(WebhookBase, TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "webhooks"

    user_id: str = Field(foreign_key="users.id", index=True)
    events: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    headers: dict = Field(default_factory=dict, sa_column=Column(JSON))
    secret: str = Field(..., max_length=100)
    status: str = Field(WebhookStatus.ACTIVE.value, max_length=20, index=True)
    last_delivery_at: Optional[datetime] = None
    failure_count: int = 0

    def subscribes_to(self, event: str) -> bool:
        return event in (self.events or []) or "*" in (self.events or [])


class WebhookDelivery(TimestampMixin, IDMixin, SQLModel, table=True):
    __tablename__ = "webhook_deliveries"

    webhook_id: str = Field(foreign_key="webhooks.id", index=True)
    event_type: str = Field(..., max_length=50, index=True)
    payload: dict = Field(default_factory=dict, sa_column=Column(JSON))
    status: str = Field(DeliveryStatus.PENDING.value, max_length=20, index=True)
    attempt: int = 1
    response_code: Optional[int] = None
    response_body: Optional[str] = None
    response_time_ms: Optional[int] = None
    error_message: Optional[str] = None
    delivered_at: Optional[datetime] = None
    next_retry_at: Optional[datetime] = None


def _check_events(v: List[str]) -> List[str]:
    unknown = [e for e in v if e not in AVAILABLE_EVENTS and e != "*"]
    if unknown:
        raise ValueError(f"unknown events: {', '.join(unknown)}")
    return v


# ==================== Request schemas ====================

class WebhookCreate(WebhookBase):
    events: List[str] = Field(..., min_length=1)
    headers: dict = Field(default_factory=dict)
    secret: Optional[str] = Field(None, min_length=8, max_length=100)

    @field_validator("events")
    @classmethod
    def check_events(cls, v: List[str]) -> List[str]:
        return _check_events(v)


class WebhookUpdate(SQLModelBase):
    name: Optional[str] = Field(None, max_length=150)
    url: Optional[str] = Field(None, max_length=1000)
    description: Optional[str] = None
    events: Optional[List[str]] = None
    headers: Optional[dict] = None
    timeout: Optional[int] = Field(None, ge=1, le=120)
    retry_attempts: Optional[int] = Field(None, ge=0, le=3)

    @field_validator("events")
    @classmethod
    def check_events(cls, v):
        if v is None:
            return v
        return _check_events(v)


class UrlValidationRequest(SQLModelBase):
    url: str


# ==================== Response schemas ====================

class WebhookResponse(TimestampResponse):
    name: Optional[str]
    url: str
    description: Optional[str]
    events: List[str]
    headers: dict
    timeout: int
    retry_attempts: int
    status: str
    last_delivery_at: Optional[datetime]
    failure_count: int


class WebhookCreatedResponse(WebhookResponse):
    secret: str


class DeliveryResponse(TimestampResponse):
    webhook_id: str
    event_type: str
    payload: dict
    status: str
    attempt: int
    response_code: Optional[int]
    response_body: Optional[str]
    response_time_ms: Optional[int]
    error_message: Optional[str]
    delivered_at: Optional[datetime]
    next_retry_at: Optional[datetime]
