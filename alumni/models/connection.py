"""
Connection and recommendation dismissal models
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint

from .base import SQLModelBase, TimestampMixin, IDMixin, TenantMixin, TimestampResponse
from .user import UserBrief


class ConnectionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    BLOCKED = "blocked"


class Connection(TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "connections"
    __table_args__ = (
        UniqueConstraint("requester_id", "addressee_id", name="uq_connection_pair"),
    )

    requester_id: str = Field(foreign_key="users.id", index=True)
    addressee_id: str = Field(foreign_key="users.id", index=True)
    status: str = Field(ConnectionStatus.PENDING.value, max_length=20, index=True)
    message: Optional[str] = Field(None, max_length=500)
    connected_at: Optional[datetime] = None

    def other_party(self, user_id: str) -> str:
        return self.addressee_id if self.requester_id == user_id else self.requester_id


class DismissedRecommendation(TimestampMixin, IDMixin, SQLModel, table=True):
    __tablename__ = "dismissed_recommendations"

    user_id: str = Field(foreign_key="users.id", index=True)
    dismissed_user_id: str = Field(foreign_key="users.id", index=True)
    expires_at: datetime


class ConnectionRequest(SQLModelBase):
    user_id: str
    message: Optional[str] = Field(None, max_length=500)


class ConnectionResponse(TimestampResponse):
    requester_id: str
    addressee_id: str
    status: str
    message: Optional[str]
    connected_at: Optional[datetime]
    user: Optional[UserBrief] = None
