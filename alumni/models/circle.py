"""
Circle and group models

Circles are broad cohorts (class year, city, industry), mostly generated
automatically. Groups are user-created communities with their own privacy.
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field, Column, JSON, UniqueConstraint

from .base import SQLModelBase, TimestampMixin, IDMixin, TenantMixin, TimestampResponse, utcnow


class CircleType(str, Enum):
    SCHOOL_YEAR = "school_year"
    LOCATION = "location"
    INDUSTRY = "industry"
    CUSTOM = "custom"


class GroupPrivacy(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    SECRET = "secret"


class GroupRole(str, Enum):
    MEMBER = "member"
    MODERATOR = "moderator"
    ADMIN = "admin"


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    INVITED = "invited"


# ==================== Circles ====================

class CircleBase(SQLModelBase):
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = None


class Circle(CircleBase, TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "circles"

    type: str = Field(CircleType.CUSTOM.value, max_length=20, index=True)
    # e.g. {"graduation_year": 2019} or {"location": "Boston"}
    criteria: dict = Field(default_factory=dict, sa_column=Column(JSON))
    auto_generated: bool = Field(default=False)
    creator_id: Optional[str] = Field(None, foreign_key="users.id")
    member_count: int = Field(0, ge=0)


class CircleMembership(SQLModel, table=True):
    __tablename__ = "circle_memberships"
    __table_args__ = (
        UniqueConstraint("circle_id", "user_id", name="uq_circle_member"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    circle_id: str = Field(foreign_key="circles.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    joined_at: datetime = Field(default_factory=utcnow)


class CircleCreate(CircleBase):
    pass


class CircleResponse(TimestampResponse):
    name: str
    description: Optional[str]
    type: str
    criteria: dict
    auto_generated: bool
    member_count: int
    is_member: bool = False


# ==================== Groups ====================

class GroupBase(SQLModelBase):
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = None
    privacy: GroupPrivacy = GroupPrivacy.PUBLIC
    category: Optional[str] = Field(None, max_length=50)


class Group(GroupBase, TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "groups"

    privacy: str = Field(GroupPrivacy.PUBLIC.value, max_length=20)
    creator_id: str = Field(foreign_key="users.id")
    member_count: int = Field(0, ge=0)


class GroupMembership(SQLModel, table=True):
    __tablename__ = "group_memberships"
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_member"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    group_id: str = Field(foreign_key="groups.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    role: str = Field(GroupRole.MEMBER.value, max_length=20)
    status: str = Field(MembershipStatus.ACTIVE.value, max_length=20, index=True)
    joined_at: datetime = Field(default_factory=utcnow)


class GroupCreate(GroupBase):
    pass


class GroupUpdate(SQLModelBase):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    privacy: Optional[GroupPrivacy] = None
    category: Optional[str] = Field(None, max_length=50)


class GroupInvite(SQLModelBase):
    user_id: str


class GroupResponse(TimestampResponse):
    name: str
    description: Optional[str]
    privacy: str
    category: Optional[str]
    creator_id: str
    member_count: int
    membership_status: Optional[str] = None
    membership_role: Optional[str] = None
