"""
Post and engagement CRUD
"""
from collections import defaultdict
from typing import Optional, List, Dict, Iterable
from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.models.base import utcnow
from alumni.models.post import Post, PostAudience, PostEngagement, PostStatus
from .base import CRUDBase


class CRUDPost(CRUDBase[Post]):

    async def get_live(self, db: AsyncSession, id: str, *, tenant_id: Optional[str] = None) -> Optional[Post]:
        """Post that has not been soft deleted"""
        post = await self.get(db, id, tenant_id=tenant_id)
        if post is None or post.deleted_at is not None:
            return None
        return post

    async def set_audiences(self, db: AsyncSession, post: Post) -> None:
        await db.execute(delete(PostAudience).where(PostAudience.post_id == post.id))
        for circle_id in post.circle_ids or []:
            db.add(PostAudience(post_id=post.id, audience_type="circle", audience_id=circle_id))
        for group_id in post.group_ids or []:
            db.add(PostAudience(post_id=post.id, audience_type="group", audience_id=group_id))
        await db.flush()

    async def by_status(
        self, db: AsyncSession, user_id: str, status: str, *, skip: int = 0, limit: int = 20
    ) -> List[Post]:
        order = Post.scheduled_at.asc() if status == PostStatus.SCHEDULED.value else Post.updated_at.desc()
        return await self.get_multi(
            db,
            filters=[Post.user_id == user_id, Post.status == status, Post.deleted_at.is_(None)],
            skip=skip,
            limit=limit,
            order_by=order,
        )

    async def due_scheduled(self, db: AsyncSession) -> List[Post]:
        result = await db.execute(
            select(Post).where(
                Post.status == PostStatus.SCHEDULED.value,
                Post.scheduled_at <= utcnow(),
                Post.deleted_at.is_(None),
            )
        )
        return list(result.scalars().all())

    async def engagement_counts(self, db: AsyncSession, post_ids: Iterable[str]) -> Dict[str, Dict[str, int]]:
        post_ids = list(post_ids)
        counts: Dict[str, Dict[str, int]] = defaultdict(dict)
        if not post_ids:
            return counts
        result = await db.execute(
            select(PostEngagement.post_id, PostEngagement.type, func.count())
            .where(PostEngagement.post_id.in_(post_ids))
            .group_by(PostEngagement.post_id, PostEngagement.type)
        )
        for post_id, kind, n in result.all():
            counts[post_id][kind] = n
        return counts

    async def get_engagement(
        self, db: AsyncSession, post_id: str, user_id: str, kind: str
    ) -> Optional[PostEngagement]:
        result = await db.execute(
            select(PostEngagement)
            .where(
                PostEngagement.post_id == post_id,
                PostEngagement.user_id == user_id,
                PostEngagement.type == kind,
            )
            .order_by(PostEngagement.created_at.desc())
        )
        return result.scalars().first()

    async def add_engagement(self, db: AsyncSession, **values) -> PostEngagement:
        engagement = PostEngagement(**values)
        db.add(engagement)
        await db.flush()
        await db.refresh(engagement)
        return engagement


post_crud = CRUDPost(Post)
