"""
Forum CRUD
"""
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.models.forum import Forum, ForumTopic, ForumReply, ForumSubscription
from .base import CRUDBase


class CRUDForum(CRUDBase[Forum]):
    pass


class CRUDTopic(CRUDBase[ForumTopic]):

    async def get_subscription(self, db: AsyncSession, topic_id: str, user_id: str) -> Optional[ForumSubscription]:
        result = await db.execute(
            select(ForumSubscription).where(
                ForumSubscription.topic_id == topic_id, ForumSubscription.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    async def subscribe(self, db: AsyncSession, topic_id: str, user_id: str) -> None:
        if await self.get_subscription(db, topic_id, user_id) is None:
            db.add(ForumSubscription(topic_id=topic_id, user_id=user_id))
            await db.flush()


class CRUDReply(CRUDBase[ForumReply]):
    pass


forum_crud = CRUDForum(Forum)
topic_crud = CRUDTopic(ForumTopic)
reply_crud = CRUDReply(ForumReply)
