"""
Timeline service

Collects the posts a user can see from their circles, groups, connections
and the public feed, ranks them, and caches each page.
"""
import base64
import hashlib
import json
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from loguru import logger
from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.cache import cache
from alumni.core.config import settings
from alumni.core.exceptions import BadRequestException, NotFoundException, PermissionDeniedException
from alumni.crud import circle_crud, connection_crud, group_crud, post_crud, user_crud
from alumni.models.base import utcnow
from alumni.models.post import Post, PostAudience, PostEngagement, PostStatus, PostVisibility, PostResponse
from alumni.models.user import User, UserBrief

CACHE_PREFIX = "timeline:user:"
ACTIVE_THRESHOLD_HOURS = 24


# ==================== Cursor ====================

def encode_cursor(post: Post) -> str:
    payload = json.dumps({"id": post.id, "created_at": post.created_at.isoformat()})
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> Dict[str, Any]:
    try:
        data = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
        return {"id": data["id"], "created_at": datetime.fromisoformat(data["created_at"])}
    except (ValueError, KeyError, TypeError):
        raise BadRequestException("Invalid cursor")


def apply_cursor(query, cursor: Optional[str]):
    if cursor:
        c = decode_cursor(cursor)
        query = query.where(
            or_(
                Post.created_at < c["created_at"],
                and_(Post.created_at == c["created_at"], Post.id < c["id"]),
            )
        )
    return query.order_by(Post.created_at.desc(), Post.id.desc())


# ==================== Scoring ====================

def compute_post_score(
    *,
    age_hours: int,
    from_connection: bool,
    engagement_count: int,
    shared_circles: int,
    shared_groups: int,
    recent_interactions: int,
) -> float:
    score = max(0, 100 - age_hours * 2) * 0.3
    if from_connection:
        score += 50
    score += min(50, engagement_count * 2) * 0.4
    score += (shared_circles * 10 + shared_groups * 15) * 0.3
    score += min(20, recent_interactions * 2) * 0.2
    return round(score, 2)


# ==================== Serialization ====================

async def serialize_posts(
    db: AsyncSession, posts: Sequence[Post], scores: Optional[Dict[str, float]] = None
) -> List[dict]:
    authors = await user_crud.get_many(db, (p.user_id for p in posts))
    counts = await post_crud.engagement_counts(db, (p.id for p in posts))
    items = []
    for post in posts:
        item = PostResponse.model_validate(post)
        author = authors.get(post.user_id)
        item.author = UserBrief.model_validate(author) if author else None
        item.engagement_counts = dict(counts.get(post.id, {}))
        if scores is not None:
            item.score = scores.get(post.id)
        items.append(item.model_dump(mode="json"))
    return items


class TimelineService:

    def _live(self, tenant_id: str):
        return select(Post).where(
            Post.tenant_id == tenant_id,
            Post.status == PostStatus.PUBLISHED.value,
            Post.deleted_at.is_(None),
        )

    async def _fetch(self, db: AsyncSession, query, limit: int, cursor: Optional[str]) -> List[Post]:
        result = await db.execute(apply_cursor(query, cursor).limit(limit))
        return list(result.scalars().unique().all())

    # ==================== Candidate sources ====================

    async def circle_posts(self, db: AsyncSession, user: User, circle_ids, limit: int, cursor: Optional[str]) -> List[Post]:
        if not circle_ids:
            return []
        query = (
            self._live(user.tenant_id)
            .join(PostAudience, PostAudience.post_id == Post.id)
            .where(
                Post.visibility == PostVisibility.CIRCLES.value,
                PostAudience.audience_type == "circle",
                PostAudience.audience_id.in_(list(circle_ids)),
            )
            .distinct()
        )
        return await self._fetch(db, query, limit, cursor)

    async def group_posts(self, db: AsyncSession, user: User, group_ids, limit: int, cursor: Optional[str]) -> List[Post]:
        if not group_ids:
            return []
        query = (
            self._live(user.tenant_id)
            .join(PostAudience, PostAudience.post_id == Post.id)
            .where(
                Post.visibility == PostVisibility.GROUPS.value,
                PostAudience.audience_type == "group",
                PostAudience.audience_id.in_(list(group_ids)),
            )
            .distinct()
        )
        return await self._fetch(db, query, limit, cursor)

    async def public_posts(self, db: AsyncSession, user: User, limit: int, cursor: Optional[str]) -> List[Post]:
        query = self._live(user.tenant_id).where(Post.visibility == PostVisibility.PUBLIC.value)
        return await self._fetch(db, query, limit, cursor)

    async def connection_posts(self, db: AsyncSession, user: User, connection_ids, limit: int, cursor: Optional[str]) -> List[Post]:
        if not connection_ids:
            return []
        query = self._live(user.tenant_id).where(
            Post.user_id.in_(list(connection_ids)),
            Post.visibility.in_([
                PostVisibility.PUBLIC.value,
                PostVisibility.CIRCLES.value,
                PostVisibility.GROUPS.value,
            ]),
        )
        return await self._fetch(db, query, limit, cursor)

    # ==================== Scoring ====================

    async def _interactions_by_author(self, db: AsyncSession, user: User, author_ids: Iterable[str]) -> Dict[str, int]:
        author_ids = list(set(author_ids))
        if not author_ids:
            return {}
        result = await db.execute(
            select(Post.user_id, func.count())
            .select_from(PostEngagement)
            .join(Post, Post.id == PostEngagement.post_id)
            .where(
                PostEngagement.user_id == user.id,
                Post.user_id.in_(author_ids),
                PostEngagement.created_at >= utcnow() - timedelta(days=30),
            )
            .group_by(Post.user_id)
        )
        return dict(result.all())

    async def score_posts(
        self,
        db: AsyncSession,
        posts: Sequence[Post],
        user: User,
        *,
        connection_ids=None,
        circle_ids=None,
        group_ids=None,
    ) -> Dict[str, float]:
        if connection_ids is None:
            connection_ids = await connection_crud.connected_ids(db, user.id)
        if circle_ids is None:
            circle_ids = await circle_crud.user_circle_ids(db, user.id)
        if group_ids is None:
            group_ids = await group_crud.user_group_ids(db, user.id)

        counts = await post_crud.engagement_counts(db, (p.id for p in posts))
        interactions = await self._interactions_by_author(db, user, (p.user_id for p in posts))
        now = utcnow()

        scores = {}
        for post in posts:
            scores[post.id] = compute_post_score(
                age_hours=max(0, int((now - post.created_at).total_seconds() // 3600)),
                from_connection=post.user_id in connection_ids,
                engagement_count=sum(counts.get(post.id, {}).values()),
                shared_circles=len(set(post.circle_ids or []) & set(circle_ids)),
                shared_groups=len(set(post.group_ids or []) & set(group_ids)),
                recent_interactions=interactions.get(post.user_id, 0),
            )
        return scores

    async def score_post(self, db: AsyncSession, post: Post, user: User) -> float:
        return (await self.score_posts(db, [post], user))[post.id]

    # ==================== Timeline ====================

    def cache_key(self, user_id: str, cursor: Optional[str] = None) -> str:
        key = f"{CACHE_PREFIX}{user_id}"
        if cursor:
            key += ":" + hashlib.md5(cursor.encode("utf-8")).hexdigest()
        return key

    def ttl_for(self, user: User) -> int:
        active = (
            user.last_activity_at is not None
            and utcnow() - user.last_activity_at < timedelta(hours=ACTIVE_THRESHOLD_HOURS)
        )
        return settings.timeline_active_ttl if active else settings.timeline_idle_ttl

    async def build_timeline(self, db: AsyncSession, user: User, limit: int, cursor: Optional[str]) -> Dict[str, Any]:
        connection_ids = await connection_crud.connected_ids(db, user.id)
        circle_ids = await circle_crud.user_circle_ids(db, user.id)
        group_ids = await group_crud.user_group_ids(db, user.id)

        candidates: Dict[str, Post] = {}
        for batch in (
            await self.circle_posts(db, user, circle_ids, limit * 2, cursor),
            await self.group_posts(db, user, group_ids, limit * 2, cursor),
            await self.public_posts(db, user, limit, cursor),
            await self.connection_posts(db, user, connection_ids, limit, cursor),
        ):
            for post in batch:
                candidates.setdefault(post.id, post)

        posts = list(candidates.values())
        scores = await self.score_posts(
            db, posts, user, connection_ids=connection_ids, circle_ids=circle_ids, group_ids=group_ids
        )
        posts.sort(key=lambda p: (scores[p.id], p.created_at, p.id), reverse=True)
        page = posts[:limit]

        return {
            "posts": await serialize_posts(db, page, scores),
            "next_cursor": encode_cursor(page[-1]) if page else None,
            "has_more": len(posts) > limit,
        }

    async def get_timeline(
        self, db: AsyncSession, user: User, limit: int = 20, cursor: Optional[str] = None
    ) -> Dict[str, Any]:
        key = self.cache_key(user.id, cursor)
        cached = cache.get(key)
        if cached is not None:
            return cached

        timeline = await self.build_timeline(db, user, limit, cursor)
        cache.set(key, timeline, self.ttl_for(user))
        return timeline

    async def load_more(self, db: AsyncSession, user: User, cursor: str, limit: int = 20) -> Dict[str, Any]:
        return await self.get_timeline(db, user, limit, cursor)

    async def refresh_timeline(self, db: AsyncSession, user: User, limit: int = 20) -> Dict[str, Any]:
        self.invalidate_user(user.id)
        return await self.get_timeline(db, user, limit)

    # ==================== Circle / group feeds ====================

    async def _chronological(self, db: AsyncSession, posts: List[Post], limit: int) -> Dict[str, Any]:
        page = posts[:limit]
        return {
            "posts": await serialize_posts(db, page),
            "next_cursor": encode_cursor(page[-1]) if page else None,
            "has_more": len(posts) > limit,
        }

    async def get_circle_timeline(
        self, db: AsyncSession, user: User, circle_id: str, limit: int = 20, cursor: Optional[str] = None
    ) -> Dict[str, Any]:
        circle = await circle_crud.get(db, circle_id, tenant_id=user.tenant_id)
        if circle is None:
            raise NotFoundException("Circle not found")
        if not await circle_crud.is_member(db, circle_id, user.id):
            raise PermissionDeniedException("You are not a member of this circle")
        posts = await self.circle_posts(db, user, {circle_id}, limit + 1, cursor)
        return await self._chronological(db, posts, limit)

    async def get_group_timeline(
        self, db: AsyncSession, user: User, group_id: str, limit: int = 20, cursor: Optional[str] = None
    ) -> Dict[str, Any]:
        group = await group_crud.get(db, group_id, tenant_id=user.tenant_id)
        if group is None:
            raise NotFoundException("Group not found")
        if group_id not in await group_crud.user_group_ids(db, user.id):
            raise PermissionDeniedException("You are not a member of this group")
        posts = await self.group_posts(db, user, {group_id}, limit + 1, cursor)
        return await self._chronological(db, posts, limit)

    # ==================== Invalidation ====================

    def invalidate_user(self, user_id: str) -> None:
        cache.forget_prefix(f"{CACHE_PREFIX}{user_id}")

    async def affected_user_ids(self, db: AsyncSession, post: Post) -> set:
        affected = {post.user_id}
        if post.circle_ids:
            affected |= await circle_crud.member_ids(db, post.circle_ids)
        if post.group_ids:
            affected |= await group_crud.member_ids(db, post.group_ids)
        if post.visibility == PostVisibility.PUBLIC.value:
            affected |= await connection_crud.connected_ids(db, post.user_id)
        return affected

    async def invalidate_for_post(self, db: AsyncSession, post: Post) -> int:
        affected = await self.affected_user_ids(db, post)
        for user_id in affected:
            self.invalidate_user(user_id)
        logger.debug("Invalidated {} timelines for post {}", len(affected), post.id)
        return len(affected)


timeline_service = TimelineService()
