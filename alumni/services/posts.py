"""
Post service

Creation, visibility rules, drafts, scheduling and engagement. Every change
that alters what a feed shows drops the affected timeline caches.
"""
from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.config import settings
from alumni.core.exceptions import (
    ConflictException,
    NotFoundException,
    PermissionDeniedException,
    UnprocessableException,
)
from alumni.crud import circle_crud, group_crud, post_crud
from alumni.models.base import utcnow
from alumni.models.post import (
    EngagementCreate,
    EngagementType,
    Post,
    PostCreate,
    PostStatus,
    PostUpdate,
    PostVisibility,
    UNIQUE_ENGAGEMENTS,
)
from alumni.models.user import User
from alumni.services import tasks
from alumni.services.timeline import timeline_service


class PostService:

    async def _check_audiences(self, db: AsyncSession, user: User, circle_ids, group_ids) -> None:
        errors = {}
        if circle_ids:
            own = await circle_crud.user_circle_ids(db, user.id)
            if set(circle_ids) - own:
                errors["circle_ids"] = ["You can only post to circles you belong to"]
        if group_ids:
            own = await group_crud.user_group_ids(db, user.id)
            if set(group_ids) - own:
                errors["group_ids"] = ["You can only post to groups you belong to"]
        if errors:
            raise UnprocessableException(errors=errors)

    async def can_view(self, db: AsyncSession, post: Post, user: User) -> bool:
        if post.user_id == user.id:
            return True
        if not post.is_published:
            return False
        if post.visibility == PostVisibility.PUBLIC.value:
            return True
        if post.visibility == PostVisibility.PRIVATE.value:
            return False
        if post.visibility == PostVisibility.CIRCLES.value:
            return bool(set(post.circle_ids or []) & await circle_crud.user_circle_ids(db, user.id))
        if post.visibility == PostVisibility.GROUPS.value:
            return bool(set(post.group_ids or []) & await group_crud.user_group_ids(db, user.id))
        return False

    async def get_visible(self, db: AsyncSession, post_id: str, user: User) -> Post:
        post = await post_crud.get_live(db, post_id, tenant_id=user.tenant_id)
        if post is None:
            raise NotFoundException("Post not found")
        if not await self.can_view(db, post, user):
            raise PermissionDeniedException("You do not have permission to view this post")
        return post

    async def get_owned(self, db: AsyncSession, post_id: str, user: User) -> Post:
        post = await post_crud.get_live(db, post_id, tenant_id=user.tenant_id)
        if post is None:
            raise NotFoundException("Post not found")
        if post.user_id != user.id:
            raise PermissionDeniedException("You can only modify your own posts")
        return post

    async def _announce(self, db: AsyncSession, post: Post, queue) -> None:
        await timeline_service.invalidate_for_post(db, post)
        await queue.dispatch(
            tasks.deliver_webhook_event,
            post.tenant_id,
            "post.created",
            {"post_id": post.id, "user_id": post.user_id, "visibility": post.visibility},
        )
        if settings.federation_enabled and post.visibility == PostVisibility.PUBLIC.value:
            await queue.dispatch(tasks.federate_post, post.id)

    async def create(self, db: AsyncSession, user: User, data: PostCreate, queue) -> Post:
        await self._check_audiences(db, user, data.circle_ids, data.group_ids)

        status = data.status
        if status == PostStatus.SCHEDULED.value and data.scheduled_at <= utcnow():
            raise UnprocessableException(errors={"scheduled_at": ["scheduled_at must be in the future"]})

        values = data.model_dump()
        values.update(tenant_id=user.tenant_id, user_id=user.id)
        if status == PostStatus.PUBLISHED.value:
            values["published_at"] = utcnow()
            values["scheduled_at"] = None
        elif status == PostStatus.DRAFT.value:
            values["scheduled_at"] = None

        post = await post_crud.create(db, obj_in=values)
        await post_crud.set_audiences(db, post)
        logger.info("Post {} created by {} ({})", post.id, user.id, status)

        if post.status == PostStatus.PUBLISHED.value:
            await self._announce(db, post, queue)
        return post

    async def update(self, db: AsyncSession, post: Post, user: User, data: PostUpdate) -> Post:
        await self._check_audiences(db, user, data.circle_ids, data.group_ids)
        before = await timeline_service.affected_user_ids(db, post)

        post = await post_crud.update(db, db_obj=post, obj_in=data)
        if data.circle_ids is not None or data.group_ids is not None:
            await post_crud.set_audiences(db, post)

        for user_id in before | await timeline_service.affected_user_ids(db, post):
            timeline_service.invalidate_user(user_id)
        return post

    async def delete(self, db: AsyncSession, post: Post, queue) -> None:
        post.deleted_at = utcnow()
        await db.flush()
        await timeline_service.invalidate_for_post(db, post)
        await queue.dispatch(
            tasks.deliver_webhook_event, post.tenant_id, "post.deleted", {"post_id": post.id}
        )

    async def publish(self, db: AsyncSession, post: Post, queue) -> Post:
        if post.status == PostStatus.PUBLISHED.value:
            raise ConflictException("Post is already published")
        post.status = PostStatus.PUBLISHED.value
        post.published_at = utcnow()
        post.scheduled_at = None
        await db.flush()
        await db.refresh(post)
        await self._announce(db, post, queue)
        return post

    async def publish_due(self, db: AsyncSession, queue) -> int:
        """Publish scheduled posts whose time has come"""
        published = 0
        for post in await post_crud.due_scheduled(db):
            await self.publish(db, post, queue)
            published += 1
        if published:
            logger.info("Published {} scheduled posts", published)
        return published

    # ==================== Engagement ====================

    async def engage(self, db: AsyncSession, post: Post, user: User, data: EngagementCreate, queue):
        kind = data.type
        if kind in UNIQUE_ENGAGEMENTS and await post_crud.get_engagement(db, post.id, user.id, kind):
            raise ConflictException(f"You have already used {kind} on this post")

        engagement = await post_crud.add_engagement(
            db,
            post_id=post.id,
            user_id=user.id,
            type=kind,
            content=data.content if kind == EngagementType.COMMENT.value else None,
            reaction=data.reaction if kind == EngagementType.REACTION.value else None,
        )
        await timeline_service.invalidate_for_post(db, post)

        event = {
            EngagementType.LIKE.value: "post.liked",
            EngagementType.COMMENT.value: "post.commented",
        }.get(kind)
        if event:
            await queue.dispatch(
                tasks.deliver_webhook_event,
                post.tenant_id,
                event,
                {"post_id": post.id, "user_id": user.id, "engagement_id": engagement.id},
            )
        return engagement

    async def disengage(self, db: AsyncSession, post: Post, user: User, kind: str) -> None:
        engagement = await post_crud.get_engagement(db, post.id, user.id, kind)
        if engagement is None:
            raise NotFoundException("Engagement not found")
        await db.delete(engagement)
        await db.flush()
        await timeline_service.invalidate_for_post(db, post)

    async def engagement_summary(self, db: AsyncSession, post: Post, user: Optional[User] = None) -> dict:
        counts = (await post_crud.engagement_counts(db, [post.id])).get(post.id, {})
        summary = {kind.value: counts.get(kind.value, 0) for kind in EngagementType}
        data = {"post_id": post.id, "counts": summary, "total": sum(summary.values())}
        if user is not None:
            data["mine"] = [
                kind for kind in UNIQUE_ENGAGEMENTS
                if await post_crud.get_engagement(db, post.id, user.id, kind)
            ]
        return data


post_service = PostService()
