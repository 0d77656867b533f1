"""
Tenant analytics

All metrics are computed from the tenant's own rows over a date range
(default: the last 30 days). Results are cached for five minutes.
"""
import csv
import io
import json
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy import select, func, distinct, or_
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.cache import cache
from alumni.core.exceptions import UnprocessableException
from alumni.models.analytics import AnalyticsSnapshot
from alumni.models.base import utcnow, to_naive_utc
from alumni.models.circle import Circle, CircleMembership, Group, GroupMembership
from alumni.models.connection import Connection, ConnectionStatus
from alumni.models.event import Event, EventCheckIn, EventRegistration
from alumni.models.forum import ForumTopic
from alumni.models.fundraising import CampaignDonation
from alumni.models.job import JobApplication, JobPosting
from alumni.models.post import Post, PostAudience, PostEngagement
from alumni.models.user import User

CACHE_TTL = 300
DEFAULT_DAYS = 30
EXPORT_FORMATS = ("csv", "json")

DateRange = Tuple[datetime, datetime]


def date_range(start: Optional[datetime] = None, end: Optional[datetime] = None) -> DateRange:
    end = to_naive_utc(end) or utcnow()
    start = to_naive_utc(start) or end - timedelta(days=DEFAULT_DAYS)
    if start > end:
        raise UnprocessableException(errors={"start_date": ["start_date must be before end_date"]})
    return start, end


def flatten(data: Any, prefix: str = "") -> List[Tuple[str, Any]]:
    """Nested dicts/lists to (dotted.key, value) pairs"""
    if isinstance(data, dict):
        rows = []
        for key, value in data.items():
            rows.extend(flatten(value, f"{prefix}.{key}" if prefix else str(key)))
        return rows
    if isinstance(data, list):
        rows = []
        for index, value in enumerate(data):
            rows.extend(flatten(value, f"{prefix}.{index}" if prefix else str(index)))
        return rows
    return [(prefix, data)]


def to_csv(data: Any) -> str:
    """
    A list of flat dicts becomes one row per item with the keys as header.
    Anything else is written as metric,value pairs.
    """
    buffer = io.StringIO()
    if isinstance(data, list) and data and all(isinstance(row, dict) for row in data):
        fields = list(dict.fromkeys(key for row in data for key in row))
        writer = csv.DictWriter(buffer, fieldnames=fields)
        writer.writeheader()
        writer.writerows(data)
    else:
        writer = csv.writer(buffer)
        writer.writerow(["metric", "value"])
        writer.writerows(flatten(data))
    return buffer.getvalue()


class AnalyticsService:

    # ==================== Helpers ====================

    @staticmethod
    def _cache_key(tenant_id: str, name: str, span: DateRange) -> str:
        return f"analytics:{tenant_id}:{name}:{span[0]:%Y%m%d%H}:{span[1]:%Y%m%d%H}"

    @staticmethod
    async def _scalar(db: AsyncSession, query) -> int:
        result = await db.execute(query)
        return result.scalar() or 0

    @staticmethod
    def _user_ids(tenant_id: str):
        return select(User.id).where(User.tenant_id == tenant_id)

    # ==================== Single metrics ====================

    async def total_users(self, db: AsyncSession, tenant_id: str, span: DateRange) -> int:
        return await self._scalar(db, select(func.count()).select_from(User).where(User.tenant_id == tenant_id))

    async def new_users(self, db: AsyncSession, tenant_id: str, span: DateRange) -> int:
        return await self._scalar(db, select(func.count()).select_from(User).where(
            User.tenant_id == tenant_id, User.created_at.between(*span)
        ))

    async def active_users(self, db: AsyncSession, tenant_id: str, span: DateRange) -> int:
        posters = select(Post.user_id).where(Post.tenant_id == tenant_id, Post.created_at.between(*span))
        engagers = select(PostEngagement.user_id).where(
            PostEngagement.user_id.in_(self._user_ids(tenant_id)), PostEngagement.created_at.between(*span)
        )
        return await self._scalar(db, select(func.count(distinct(User.id))).where(
            User.tenant_id == tenant_id,
            or_(User.id.in_(posters), User.id.in_(engagers), User.last_activity_at.between(*span)),
        ))

    async def posts_created(self, db: AsyncSession, tenant_id: str, span: DateRange) -> int:
        return await self._scalar(db, select(func.count()).select_from(Post).where(
            Post.tenant_id == tenant_id, Post.created_at.between(*span), Post.deleted_at.is_(None)
        ))

    async def engagement_rate(self, db: AsyncSession, tenant_id: str, span: DateRange) -> float:
        posts = await self.posts_created(db, tenant_id, span)
        engagements = await self._scalar(db, select(func.count()).select_from(PostEngagement).join(
            Post, Post.id == PostEngagement.post_id
        ).where(Post.tenant_id == tenant_id, PostEngagement.created_at.between(*span)))
        return round(engagements / posts * 100, 2) if posts else 0

    async def connections_made(self, db: AsyncSession, tenant_id: str, span: DateRange) -> int:
        return await self._scalar(db, select(func.count()).select_from(Connection).where(
            Connection.tenant_id == tenant_id,
            Connection.status == ConnectionStatus.ACCEPTED.value,
            Connection.connected_at.between(*span),
        ))

    async def events_attended(self, db: AsyncSession, tenant_id: str, span: DateRange) -> int:
        return await self._scalar(db, select(func.count()).select_from(EventCheckIn).join(
            Event, Event.id == EventCheckIn.event_id
        ).where(Event.tenant_id == tenant_id, EventCheckIn.checked_in_at.between(*span)))

    async def network_density(self, db: AsyncSession, tenant_id: str, span: DateRange) -> float:
        users = await self.total_users(db, tenant_id, span)
        connections = await self._scalar(db, select(func.count()).select_from(Connection).where(
            Connection.tenant_id == tenant_id, Connection.status == ConnectionStatus.ACCEPTED.value
        ))
        possible = users * (users - 1) / 2
        return round(connections / possible * 100, 2) if possible else 0

    # ==================== Series ====================

    async def _daily(self, db: AsyncSession, column, *conditions) -> List[Dict[str, Any]]:
        day = func.date(column)
        result = await db.execute(
            select(day, func.count()).where(*conditions).group_by(day).order_by(day)
        )
        return [{"date": str(d), "count": count} for d, count in result.all()]

    async def daily_posts(self, db: AsyncSession, tenant_id: str, span: DateRange) -> List[Dict[str, Any]]:
        return await self._daily(db, Post.created_at, Post.tenant_id == tenant_id, Post.created_at.between(*span))

    async def daily_engagements(self, db: AsyncSession, tenant_id: str, span: DateRange) -> List[Dict[str, Any]]:
        return await self._daily(
            db,
            PostEngagement.created_at,
            PostEngagement.post_id.in_(select(Post.id).where(Post.tenant_id == tenant_id)),
            PostEngagement.created_at.between(*span),
        )

    async def daily_active_users(self, db: AsyncSession, tenant_id: str, span: DateRange) -> List[Dict[str, Any]]:
        return await self._daily(
            db, User.last_activity_at, User.tenant_id == tenant_id, User.last_activity_at.between(*span)
        )

    async def geographic_distribution(self, db: AsyncSession, tenant_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        result = await db.execute(
            select(User.location, func.count().label("count"))
            .where(User.tenant_id == tenant_id, User.location.is_not(None))
            .group_by(User.location)
            .order_by(func.count().desc())
            .limit(limit)
        )
        return [{"location": location, "count": count} for location, count in result.all()]

    async def graduation_year_activity(self, db: AsyncSession, tenant_id: str, span: DateRange) -> List[Dict[str, Any]]:
        result = await db.execute(
            select(User.graduation_year, func.count())
            .where(
                User.tenant_id == tenant_id,
                User.graduation_year.is_not(None),
                User.last_activity_at.between(*span),
            )
            .group_by(User.graduation_year)
            .order_by(User.graduation_year)
        )
        return [{"graduation_year": year, "count": count} for year, count in result.all()]

    async def _audience_participation(
        self, db: AsyncSession, tenant_id: str, span: DateRange, model, membership, key: str, kind: str
    ) -> List[Dict[str, Any]]:
        members = (
            select(func.count()).select_from(membership)
            .where(getattr(membership, key) == model.id)
            .scalar_subquery()
        )
        posts = (
            select(func.count()).select_from(PostAudience)
            .join(Post, Post.id == PostAudience.post_id)
            .where(
                PostAudience.audience_type == kind,
                PostAudience.audience_id == model.id,
                Post.created_at.between(*span),
            )
            .scalar_subquery()
        )
        result = await db.execute(
            select(model.id, model.name, members.label("members"), posts.label("posts"))
            .where(model.tenant_id == tenant_id)
            .order_by(posts.desc())
            .limit(10)
        )
        return [
            {"id": row.id, "name": row.name, "members_count": row.members, "posts_count": row.posts}
            for row in result.all()
        ]

    async def group_participation(self, db: AsyncSession, tenant_id: str, span: DateRange) -> List[Dict[str, Any]]:
        return await self._audience_participation(db, tenant_id, span, Group, GroupMembership, "group_id", "group")

    async def circle_engagement(self, db: AsyncSession, tenant_id: str, span: DateRange) -> List[Dict[str, Any]]:
        return await self._audience_participation(db, tenant_id, span, Circle, CircleMembership, "circle_id", "circle")

    async def feature_usage(self, db: AsyncSession, tenant_id: str, span: DateRange) -> Dict[str, int]:
        tenant_posts = select(Post.id).where(Post.tenant_id == tenant_id)
        tenant_events = select(Event.id).where(Event.tenant_id == tenant_id)
        counts = {
            "posts": select(func.count()).select_from(Post).where(
                Post.tenant_id == tenant_id, Post.created_at.between(*span)),
            "post_engagements": select(func.count()).select_from(PostEngagement).where(
                PostEngagement.post_id.in_(tenant_posts), PostEngagement.created_at.between(*span)),
            "connections": select(func.count()).select_from(Connection).where(
                Connection.tenant_id == tenant_id, Connection.created_at.between(*span)),
            "jobs_posted": select(func.count()).select_from(JobPosting).where(
                JobPosting.tenant_id == tenant_id, JobPosting.created_at.between(*span)),
            "job_applications": select(func.count()).select_from(JobApplication).where(
                JobApplication.tenant_id == tenant_id, JobApplication.created_at.between(*span)),
            "event_registrations": select(func.count()).select_from(EventRegistration).where(
                EventRegistration.event_id.in_(tenant_events), EventRegistration.created_at.between(*span)),
            "donations": select(func.count()).select_from(CampaignDonation).where(
                CampaignDonation.tenant_id == tenant_id, CampaignDonation.created_at.between(*span)),
            "forum_topics": select(func.count()).select_from(ForumTopic).where(
                ForumTopic.tenant_id == tenant_id, ForumTopic.created_at.between(*span)),
        }
        return {name: await self._scalar(db, query) for name, query in counts.items()}

    # ==================== Reports ====================

    async def engagement_metrics(self, db: AsyncSession, tenant_id: str, span: DateRange) -> Dict[str, Any]:
        async def build():
            return {
                "total_users": await self.total_users(db, tenant_id, span),
                "active_users": await self.active_users(db, tenant_id, span),
                "new_users": await self.new_users(db, tenant_id, span),
                "posts_created": await self.posts_created(db, tenant_id, span),
                "engagement_rate": await self.engagement_rate(db, tenant_id, span),
                "connections_made": await self.connections_made(db, tenant_id, span),
                "events_attended": await self.events_attended(db, tenant_id, span),
            }

        return await cache.aremember(self._cache_key(tenant_id, "engagement", span), CACHE_TTL, build)

    async def alumni_activity(self, db: AsyncSession, tenant_id: str, span: DateRange) -> Dict[str, Any]:
        return {
            "daily_active_users": await self.daily_active_users(db, tenant_id, span),
            "post_activity": await self.daily_posts(db, tenant_id, span),
            "engagement_trends": await self.daily_engagements(db, tenant_id, span),
            "geographic_distribution": await self.geographic_distribution(db, tenant_id),
            "graduation_year_activity": await self.graduation_year_activity(db, tenant_id, span),
        }

    async def community_health(self, db: AsyncSession, tenant_id: str, span: DateRange) -> Dict[str, Any]:
        return {
            "network_density": await self.network_density(db, tenant_id, span),
            "group_participation": await self.group_participation(db, tenant_id, span),
            "circle_engagement": await self.circle_engagement(db, tenant_id, span),
        }

    async def platform_usage(self, db: AsyncSession, tenant_id: str, span: DateRange) -> Dict[str, Any]:
        return {"feature_usage": await self.feature_usage(db, tenant_id, span)}

    @property
    def report_metrics(self) -> Dict[str, Callable]:
        return {
            "total_users": self.total_users,
            "active_users": self.active_users,
            "new_users": self.new_users,
            "posts_created": self.posts_created,
            "engagement_rate": self.engagement_rate,
            "connections_made": self.connections_made,
            "events_attended": self.events_attended,
            "network_density": self.network_density,
            "daily_posts": self.daily_posts,
            "daily_engagements": self.daily_engagements,
            "group_participation": self.group_participation,
            "circle_engagement": self.circle_engagement,
            "feature_usage": self.feature_usage,
        }

    async def custom_report(self, db: AsyncSession, tenant_id: str, metrics: List[str], span: DateRange) -> Dict[str, Any]:
        unknown = [m for m in metrics if m not in self.report_metrics]
        if unknown:
            raise UnprocessableException(errors={"metrics": [f"Unknown metrics: {', '.join(unknown)}"]})
        data = {}
        for metric in metrics:
            data[metric] = await self.report_metrics[metric](db, tenant_id, span)
        return {
            "report_data": data,
            "generated_at": utcnow(),
            "date_range": {"start": span[0], "end": span[1]},
        }

    def export(self, data: Any, fmt: str = "csv") -> str:
        if fmt not in EXPORT_FORMATS:
            raise UnprocessableException(errors={"format": [f"Unsupported export format {fmt}"]})
        if fmt == "json":
            return json.dumps(data, default=str, indent=2)
        return to_csv(data)

    # ==================== Snapshots ====================

    async def snapshot(self, db: AsyncSession, tenant_id: str, day: Optional[date] = None) -> AnalyticsSnapshot:
        day = day or utcnow().date()
        start = datetime.combine(day, datetime.min.time())
        span = (start, start + timedelta(days=1))
        metrics = {
            "total_users": await self.total_users(db, tenant_id, span),
            "active_users": await self.active_users(db, tenant_id, span),
            "new_users": await self.new_users(db, tenant_id, span),
            "posts_created": await self.posts_created(db, tenant_id, span),
            "engagement_rate": await self.engagement_rate(db, tenant_id, span),
            "connections_made": await self.connections_made(db, tenant_id, span),
            "events_attended": await self.events_attended(db, tenant_id, span),
            "network_density": await self.network_density(db, tenant_id, span),
        }
        result = await db.execute(
            select(AnalyticsSnapshot).where(
                AnalyticsSnapshot.tenant_id == tenant_id, AnalyticsSnapshot.snapshot_date == day
            )
        )
        snapshot = result.scalar_one_or_none()
        if snapshot is None:
            snapshot = AnalyticsSnapshot(tenant_id=tenant_id, snapshot_date=day)
            db.add(snapshot)
        snapshot.metrics = metrics
        await db.flush()
        logger.info("Analytics snapshot {} for tenant {}", day, tenant_id)
        return snapshot

    async def snapshots(self, db: AsyncSession, tenant_id: str, limit: int = 30) -> List[AnalyticsSnapshot]:
        result = await db.execute(
            select(AnalyticsSnapshot)
            .where(AnalyticsSnapshot.tenant_id == tenant_id)
            .order_by(AnalyticsSnapshot.snapshot_date.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


analytics_service = AnalyticsService()
