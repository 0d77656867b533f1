"""
People-you-may-know recommendations

A candidate's score blends shared circles, mutual connections, interest
overlap and location. Results are cached per user for a day.
"""
import re
from datetime import timedelta
from typing import Dict, List, Set

from loguru import logger
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.cache import cache
from alumni.core.config import settings
from alumni.core.exceptions import NotFoundException, UnprocessableException
from alumni.crud import connection_crud, user_crud
from alumni.models.base import utcnow
from alumni.models.circle import Circle, CircleMembership, CircleType
from alumni.models.connection import DismissedRecommendation
from alumni.models.user import User, UserBrief

CACHE_PREFIX = "recommendations:user:"
DISMISS_DAYS = 30
CANDIDATE_LIMIT = 500

WEIGHTS = {
    "shared_circles": 0.40,
    "mutual_connections": 0.30,
    "interests": 0.20,
    "geography": 0.10,
}

STOP_WORDS = {"the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by", "a", "an"}


def extract_interests(user: User) -> Set[str]:
    interests = {i.strip().lower() for i in (user.interests or []) if i and i.strip()}
    interests |= {s.strip().lower() for s in (user.skills or []) if s and s.strip()}
    if user.industry:
        interests.add(user.industry.lower())
    for entry in user.education or []:
        if entry.get("field_of_study"):
            interests.add(str(entry["field_of_study"]).lower())
    for word in (user.bio or "").lower().split():
        word = re.sub(r"[^a-z0-9]", "", word)
        if len(word) > 3 and word not in STOP_WORDS:
            interests.add(word)
    return interests


def jaccard(a: Set[str], b: Set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def geographic_score(a, b) -> float:
    if not a or not b:
        return 0.0
    if a.lower() == b.lower():
        return 1.0
    parts_a = {p.strip() for p in a.lower().split(",")}
    parts_b = {p.strip() for p in b.lower().split(",")}
    return 0.5 if parts_a & parts_b else 0.0


def shared_circles_score(shared: List[Circle], user_circle_count: int) -> float:
    if not user_circle_count:
        return 0.0
    weight = sum(1.0 if c.type == CircleType.SCHOOL_YEAR.value else 0.7 for c in shared)
    return min(weight / user_circle_count, 1.0)


def mutual_connections_score(mutual_count: int) -> float:
    return min(1.0, mutual_count / 10)


class AlumniRecommendationService:

    def cache_key(self, user_id: str) -> str:
        return f"{CACHE_PREFIX}{user_id}"

    async def _dismissed_ids(self, db: AsyncSession, user_id: str) -> Set[str]:
        result = await db.execute(
            select(DismissedRecommendation.dismissed_user_id).where(
                DismissedRecommendation.user_id == user_id,
                DismissedRecommendation.expires_at > utcnow(),
            )
        )
        return set(result.scalars().all())

    async def _circles_by_user(self, db: AsyncSession, user_ids) -> Dict[str, List[Circle]]:
        user_ids = list(user_ids)
        by_user: Dict[str, List[Circle]] = {uid: [] for uid in user_ids}
        if not user_ids:
            return by_user
        result = await db.execute(
            select(CircleMembership.user_id, Circle)
            .join(Circle, Circle.id == CircleMembership.circle_id)
            .where(CircleMembership.user_id.in_(user_ids))
        )
        for user_id, circle in result.all():
            by_user[user_id].append(circle)
        return by_user

    async def compute(self, db: AsyncSession, user: User, limit: int = 10) -> List[dict]:
        excluded = {user.id}
        excluded |= await connection_crud.connected_ids(db, user.id)
        excluded |= await connection_crud.pending_ids(db, user.id)
        excluded |= await self._dismissed_ids(db, user.id)

        result = await db.execute(
            select(User)
            .where(
                User.tenant_id == user.tenant_id,
                User.is_active == True,
                User.hide_from_recommendations == False,
                User.id.not_in(excluded),
            )
            .limit(CANDIDATE_LIMIT)
        )
        candidates = list(result.scalars().all())
        if not candidates:
            return []

        circles = await self._circles_by_user(db, [user.id] + [c.id for c in candidates])
        my_circles = {c.id: c for c in circles[user.id]}
        my_connections = await connection_crud.connected_ids(db, user.id)
        my_interests = extract_interests(user)

        recommendations = []
        for candidate in candidates:
            shared = [c for c in circles[candidate.id] if c.id in my_circles]
            mutual_ids = my_connections & await connection_crud.connected_ids(db, candidate.id)
            interest = jaccard(my_interests, extract_interests(candidate))
            geo = geographic_score(user.location, candidate.location)

            components = {
                "shared_circles": shared_circles_score(shared, len(my_circles)),
                "mutual_connections": mutual_connections_score(len(mutual_ids)),
                "interests": interest,
                "geography": geo,
            }
            score = round(sum(components[k] * w for k, w in WEIGHTS.items()), 2)
            if score <= 0:
                continue

            mutual_users = await user_crud.get_many(db, list(mutual_ids)[:3])
            reasons = []
            if shared:
                reasons.append({
                    "type": "shared_circles",
                    "message": f"You share {len(shared)} circle(s)",
                    "details": [c.name for c in shared],
                })
            if mutual_ids:
                reasons.append({
                    "type": "mutual_connections",
                    "message": f"{len(mutual_ids)} mutual connection(s)",
                    "details": [u.name for u in mutual_users.values()],
                })
            if interest > 0.3:
                reasons.append({"type": "similar_interests", "message": "Similar interests and background", "details": []})
            if geo == 1.0:
                reasons.append({"type": "same_location", "message": f"Located in {candidate.location}", "details": []})

            recommendations.append({
                "user": UserBrief.model_validate(candidate).model_dump(),
                "score": score,
                "components": {k: round(v, 4) for k, v in components.items()},
                "reasons": reasons,
                "shared_circles": [{"id": c.id, "name": c.name, "type": c.type} for c in shared],
                "mutual_connections_count": len(mutual_ids),
            })

        recommendations.sort(key=lambda r: r["score"], reverse=True)
        return recommendations[:limit]

    async def get_recommendations(self, db: AsyncSession, user: User, limit: int = 10) -> List[dict]:
        cached = cache.get(self.cache_key(user.id))
        if cached is not None and cached["limit"] >= limit:
            return cached["items"][:limit]

        recommendations = await self.compute(db, user, limit)
        cache.set(
            self.cache_key(user.id),
            {"limit": limit, "items": recommendations},
            settings.recommendation_ttl,
        )
        return recommendations

    async def dismiss(self, db: AsyncSession, user: User, candidate_id: str) -> None:
        if candidate_id == user.id:
            raise UnprocessableException(errors={"user_id": ["You cannot dismiss yourself"]})
        candidate = await user_crud.get(db, candidate_id, tenant_id=user.tenant_id)
        if candidate is None:
            raise NotFoundException("User not found")

        await db.execute(
            delete(DismissedRecommendation).where(
                DismissedRecommendation.user_id == user.id,
                DismissedRecommendation.dismissed_user_id == candidate_id,
            )
        )
        db.add(DismissedRecommendation(
            user_id=user.id,
            dismissed_user_id=candidate_id,
            expires_at=utcnow() + timedelta(days=DISMISS_DAYS),
        ))
        await db.flush()
        self.clear_cache(user.id)
        logger.debug("User {} dismissed recommendation {}", user.id, candidate_id)

    def clear_cache(self, user_id: str) -> None:
        cache.forget(self.cache_key(user_id))

    async def second_degree_connections(self, db: AsyncSession, user: User, limit: int = 50) -> List[dict]:
        first = await connection_crud.connected_ids(db, user.id)
        via: Dict[str, Set[str]] = {}
        for friend_id in first:
            for other in await connection_crud.connected_ids(db, friend_id):
                if other != user.id and other not in first:
                    via.setdefault(other, set()).add(friend_id)

        users = await user_crud.get_many(db, via.keys())
        ranked = sorted(via.items(), key=lambda kv: len(kv[1]), reverse=True)
        return [
            {
                "user": UserBrief.model_validate(users[uid]).model_dump(),
                "mutual_connections_count": len(friends),
            }
            for uid, friends in ranked[:limit]
            if uid in users and users[uid].is_active
        ]


recommendation_service = AlumniRecommendationService()
