"""
Post, post audience and engagement models
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import field_validator, model_validator
from sqlmodel import SQLModel, Field, Column, JSON

from .base import SQLModelBase, TimestampMixin, IDMixin, TenantMixin, TimestampResponse, to_naive_utc
from .user import UserBrief


class PostType(str, Enum):
    TEXT = "text"
    MEDIA = "media"
    CAREER_UPDATE = "career_update"
    ACHIEVEMENT = "achievement"
    EVENT = "event"
    JOB = "job"


class PostVisibility(str, Enum):
    PUBLIC = "public"
    CIRCLES = "circles"
    GROUPS = "groups"
    PRIVATE = "private"


class PostStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"


class EngagementType(str, Enum):
    LIKE = "like"
    COMMENT = "comment"
    SHARE = "share"
    BOOKMARK = "bookmark"
    REACTION = "reaction"


# like/share/bookmark are one-per-user; comments and reactions carry content
UNIQUE_ENGAGEMENTS = {EngagementType.LIKE.value, EngagementType.SHARE.value, EngagementType.BOOKMARK.value}


# ==================== Base fields ====================

class PostBase(SQLModelBase):
    content: str = Field(..., min_length=1, max_length=10000)
    post_type: PostType = PostType.TEXT
    visibility: PostVisibility = PostVisibility.PUBLIC


# ==================== Tables ====================

class Post(TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "posts"

    user_id: str = Field(foreign_key="users.id", index=True)
    content: str
    post_type: str = Field(PostType.TEXT.value, max_length=30)
    visibility: str = Field(PostVisibility.PUBLIC.value, max_length=20, index=True)
    status: str = Field(PostStatus.PUBLISHED.value, max_length=20, index=True)
    circle_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    group_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    media_urls: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    meta: dict = Field(default_factory=dict, sa_column=Column(JSON))
    scheduled_at: Optional[datetime] = Field(None, index=True)
    published_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = Field(None, index=True)

    @property
    def is_published(self) -> bool:
        return self.status == PostStatus.PUBLISHED.value and self.deleted_at is None

    def __repr__(self) -> str:
        return f"<Post(id={self.id}, visibility={self.visibility})>"


class PostAudience(SQLModel, table=True):
    """Circle/group targets of a post, for indexed timeline lookups"""
    __tablename__ = "post_audiences"

    id: Optional[int] = Field(default=None, primary_key=True)
    post_id: str = Field(foreign_key="posts.id", index=True)
    audience_type: str = Field(..., max_length=10)  # circle | group
    audience_id: str = Field(..., index=True)


class PostEngagement(TimestampMixin, IDMixin, SQLModel, table=True):
    __tablename__ = "post_engagements"

    post_id: str = Field(foreign_key="posts.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    type: str = Field(..., max_length=20, index=True)
    content: Optional[str] = None
    reaction: Optional[str] = Field(None, max_length=30)


# ==================== Request schemas ====================

class PostCreate(PostBase):
    circle_ids: List[str] = Field(default_factory=list)
    group_ids: List[str] = Field(default_factory=list)
    media_urls: List[str] = Field(default_factory=list)
    meta: dict = Field(default_factory=dict)
    status: PostStatus = PostStatus.PUBLISHED
    scheduled_at: Optional[datetime] = None

    @field_validator("scheduled_at")
    @classmethod
    def normalize_scheduled_at(cls, v):
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_audience(self):
        if self.visibility == PostVisibility.CIRCLES.value and not self.circle_ids:
            raise ValueError("circle_ids is required when visibility is circles")
        if self.visibility == PostVisibility.GROUPS.value and not self.group_ids:
            raise ValueError("group_ids is required when visibility is groups")
        if self.status == PostStatus.SCHEDULED.value and self.scheduled_at is None:
            raise ValueError("scheduled_at is required for scheduled posts")
        return self


class DraftCreate(PostCreate):
    status: PostStatus = PostStatus.DRAFT


class PostUpdate(SQLModelBase):
    content: Optional[str] = Field(None, min_length=1, max_length=10000)
    post_type: Optional[PostType] = None
    visibility: Optional[PostVisibility] = None
    circle_ids: Optional[List[str]] = None
    group_ids: Optional[List[str]] = None
    media_urls: Optional[List[str]] = None
    meta: Optional[dict] = None


class EngagementCreate(SQLModelBase):
    type: EngagementType
    content: Optional[str] = Field(None, max_length=5000)
    reaction: Optional[str] = Field(None, max_length=30)

    @model_validator(mode="after")
    def check_payload(self):
        if self.type == EngagementType.COMMENT.value and not self.content:
            raise ValueError("content is required for comments")
        if self.type == EngagementType.REACTION.value and not self.reaction:
            raise ValueError("reaction is required for reactions")
        return self


class EngagementDelete(SQLModelBase):
    type: EngagementType


# ==================== Response schemas ====================

class PostResponse(TimestampResponse):
    user_id: str
    content: str
    post_type: str
    visibility: str
    status: str
    circle_ids: List[str]
    group_ids: List[str]
    media_urls: List[str]
    meta: dict
    scheduled_at: Optional[datetime]
    published_at: Optional[datetime]
    author: Optional[UserBrief] = None
    engagement_counts: dict = Field(default_factory=dict)
    score: Optional[float] = None


class EngagementResponse(TimestampResponse):
    post_id: str
    user_id: str
    type: str
    content: Optional[str]
    reaction: Optional[str]
