"""
Forum models
"""
from datetime import datetime
from typing import Optional, List
from sqlmodel import SQLModel, Field, Column, JSON, UniqueConstraint

from .base import SQLModelBase, TimestampMixin, IDMixin, TenantMixin, TimestampResponse, utcnow
from .user import UserBrief


class ForumBase(SQLModelBase):
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=50)


class Forum(ForumBase, TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "forums"

    group_id: Optional[str] = Field(None, foreign_key="groups.id")
    is_active: bool = True
    topics_count: int = 0


class ForumTopic(TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "forum_topics"

    forum_id: str = Field(foreign_key="forums.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    title: str = Field(..., max_length=200)
    content: str
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    is_pinned: bool = Field(default=False, index=True)
    is_locked: bool = False
    views_count: int = 0
    replies_count: int = 0
    last_activity_at: datetime = Field(default_factory=utcnow, index=True)


class ForumReply(TimestampMixin, IDMixin, SQLModel, table=True):
    __tablename__ = "forum_replies"

    topic_id: str = Field(foreign_key="forum_topics.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    content: str
    parent_id: Optional[str] = Field(None, foreign_key="forum_replies.id")


class ForumSubscription(SQLModel, table=True):
    __tablename__ = "forum_subscriptions"
    __table_args__ = (
        UniqueConstraint("topic_id", "user_id", name="uq_forum_subscription"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    topic_id: str = Field(foreign_key="forum_topics.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    created_at: datetime = Field(default_factory=utcnow)


# ==================== Request schemas ====================

class ForumCreate(ForumBase):
    group_id: Optional[str] = None


class TopicCreate(SQLModelBase):
    title: str = Field(..., min_length=3, max_length=200)
    content: str = Field(..., min_length=1, max_length=20000)
    tags: List[str] = Field(default_factory=list, max_length=10)


class TopicUpdate(SQLModelBase):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    content: Optional[str] = Field(None, min_length=1, max_length=20000)
    tags: Optional[List[str]] = None
    is_pinned: Optional[bool] = None
    is_locked: Optional[bool] = None


class ReplyCreate(SQLModelBase):
    content: str = Field(..., min_length=1, max_length=20000)
    parent_id: Optional[str] = None


# ==================== Response schemas ====================

class ForumResponse(TimestampResponse):
    name: str
    description: Optional[str]
    category: Optional[str]
    group_id: Optional[str]
    is_active: bool
    topics_count: int


class TopicResponse(TimestampResponse):
    forum_id: str
    user_id: str
    title: str
    content: str
    tags: List[str]
    is_pinned: bool
    is_locked: bool
    views_count: int
    replies_count: int
    last_activity_at: datetime
    author: Optional[UserBrief] = None
    is_subscribed: bool = False


class ReplyResponse(TimestampResponse):
    topic_id: str
    user_id: str
    content: str
    parent_id: Optional[str]
    author: Optional[UserBrief] = None
