"""
Alumni directory

Filtered, paginated listing of a tenant's alumni and the profile view with
its privacy rules.
"""
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, or_, String, cast
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.exceptions import NotFoundException, PermissionDeniedException
from alumni.crud import circle_crud, connection_crud, group_crud, user_crud
from alumni.models.circle import Circle, CircleMembership, Group, GroupMembership, GroupPrivacy, MembershipStatus
from alumni.models.connection import ConnectionStatus
from alumni.models.user import User, UserBrief, UserResponse, ProfileVisibility


@dataclass
class DirectoryFilters:
    search: Optional[str] = None
    graduation_year_from: Optional[int] = None
    graduation_year_to: Optional[int] = None
    location: Optional[str] = None
    industries: List[str] = field(default_factory=list)
    company: Optional[str] = None
    skills: List[str] = field(default_factory=list)
    circle_ids: List[str] = field(default_factory=list)
    group_ids: List[str] = field(default_factory=list)


def _like(value: str) -> str:
    return f"%{value.strip()}%"


class AlumniDirectoryService:

    def build_query(self, tenant_id: str, filters: DirectoryFilters):
        query = select(User).where(User.tenant_id == tenant_id, User.is_active == True)

        if filters.search:
            term = _like(filters.search)
            query = query.where(
                or_(
                    User.name.ilike(term),
                    User.headline.ilike(term),
                    User.current_company.ilike(term),
                    User.current_title.ilike(term),
                    User.bio.ilike(term),
                )
            )
        if filters.graduation_year_from:
            query = query.where(User.graduation_year >= filters.graduation_year_from)
        if filters.graduation_year_to:
            query = query.where(User.graduation_year <= filters.graduation_year_to)
        if filters.location:
            query = query.where(User.location.ilike(_like(filters.location)))
        if filters.industries:
            query = query.where(User.industry.in_(filters.industries))
        if filters.company:
            query = query.where(User.current_company.ilike(_like(filters.company)))
        for skill in filters.skills:
            # skills is a JSON list; match on its serialized text
            query = query.where(func.lower(cast(User.skills, String)).like(f'%"{skill.strip().lower()}"%'))
        if filters.circle_ids:
            query = query.where(
                User.id.in_(
                    select(CircleMembership.user_id).where(CircleMembership.circle_id.in_(filters.circle_ids))
                )
            )
        if filters.group_ids:
            query = query.where(
                User.id.in_(
                    select(GroupMembership.user_id).where(
                        GroupMembership.group_id.in_(filters.group_ids),
                        GroupMembership.status == MembershipStatus.ACTIVE.value,
                    )
                )
            )
        return query

    async def search(
        self, db: AsyncSession, tenant_id: str, filters: DirectoryFilters, *, skip: int = 0, limit: int = 20
    ) -> Tuple[List[User], int]:
        query = self.build_query(tenant_id, filters)
        total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
        result = await db.execute(query.order_by(User.name).offset(skip).limit(limit))
        return list(result.scalars().all()), total

    def directory_entry(self, user: User) -> dict:
        entry = UserBrief.model_validate(user).model_dump()
        entry["industry"] = user.industry
        entry["skills"] = user.skills or []
        if not user.show_work_details:
            entry["current_title"] = None
            entry["current_company"] = None
        return entry

    # ==================== Filter values ====================

    async def _top(self, db: AsyncSession, tenant_id: str, column, limit: int = 20) -> List[dict]:
        result = await db.execute(
            select(column, func.count())
            .where(User.tenant_id == tenant_id, User.is_active == True, column.is_not(None), column != "")
            .group_by(column)
            .order_by(func.count().desc())
            .limit(limit)
        )
        return [{"value": value, "count": count} for value, count in result.all()]

    async def available_filters(self, db: AsyncSession, tenant_id: str) -> Dict[str, Any]:
        years = (await db.execute(
            select(func.min(User.graduation_year), func.max(User.graduation_year)).where(User.tenant_id == tenant_id)
        )).one()

        skill_counts: Counter = Counter()
        result = await db.execute(select(User.skills).where(User.tenant_id == tenant_id, User.is_active == True))
        for skills in result.scalars().all():
            skill_counts.update(s.strip().lower() for s in (skills or []) if s and s.strip())

        circles = await db.execute(
            select(Circle).where(Circle.tenant_id == tenant_id, Circle.member_count > 0).order_by(Circle.member_count.desc())
        )
        groups = await db.execute(
            select(Group)
            .where(Group.tenant_id == tenant_id, Group.member_count > 0, Group.privacy != GroupPrivacy.SECRET.value)
            .order_by(Group.member_count.desc())
        )

        return {
            "graduation_years": {"min": years[0], "max": years[1]},
            "locations": await self._top(db, tenant_id, User.location),
            "industries": await self._top(db, tenant_id, User.industry),
            "companies": await self._top(db, tenant_id, User.current_company),
            "skills": [{"value": s, "count": n} for s, n in skill_counts.most_common(20)],
            "circles": [
                {"id": c.id, "name": c.name, "type": c.type, "member_count": c.member_count}
                for c in circles.scalars().all()
            ],
            "groups": [
                {"id": g.id, "name": g.name, "member_count": g.member_count}
                for g in groups.scalars().all()
            ],
        }

    # ==================== Profile ====================

    async def connection_status(self, db: AsyncSession, alumni: User, viewer: User) -> str:
        if alumni.id == viewer.id:
            return "self"
        connection = await connection_crud.get_between(db, viewer.id, alumni.id)
        if connection is None:
            return "none"
        if connection.status == ConnectionStatus.ACCEPTED.value:
            return "connected"
        if connection.status == ConnectionStatus.PENDING.value:
            return "pending_sent" if connection.requester_id == viewer.id else "pending_received"
        return "none"

    def can_view_contact_info(self, alumni: User, status: str) -> bool:
        if status in ("self", "connected"):
            return True
        return alumni.profile_visibility == ProfileVisibility.PUBLIC.value or alumni.show_contact_info

    def can_view_work_details(self, alumni: User, status: str) -> bool:
        return status in ("self", "connected") or alumni.show_work_details

    async def get_profile(self, db: AsyncSession, alumni_id: str, viewer: User) -> Dict[str, Any]:
        alumni = await user_crud.get(db, alumni_id, tenant_id=viewer.tenant_id)
        if alumni is None or not alumni.is_active:
            raise NotFoundException("Alumni not found")

        status = await self.connection_status(db, alumni, viewer)
        if (
            alumni.profile_visibility == ProfileVisibility.CONNECTIONS.value
            and status not in ("self", "connected")
            and not viewer.is_admin
        ):
            raise PermissionDeniedException("This profile is only visible to connections")

        profile = UserResponse.model_validate(alumni).model_dump(mode="json")
        profile.pop("two_factor_enabled", None)
        if status != "self":
            profile.pop("last_login_at", None)
        profile["phone"] = alumni.phone
        if not self.can_view_contact_info(alumni, status):
            profile["email"] = None
            profile["phone"] = None
        if not self.can_view_work_details(alumni, status):
            profile["current_company"] = None
            profile["current_title"] = None
            profile["years_experience"] = None

        mutual_ids = await connection_crud.mutual_ids(db, viewer.id, alumni.id) if status != "self" else set()
        mutual = await user_crud.get_many(db, mutual_ids)

        shared_circles: List[dict] = []
        shared_groups: List[dict] = []
        if status != "self":
            circle_ids = (await circle_crud.user_circle_ids(db, viewer.id)) & (await circle_crud.user_circle_ids(db, alumni.id))
            for circle_id in circle_ids:
                circle = await circle_crud.get(db, circle_id)
                shared_circles.append({"id": circle.id, "name": circle.name, "type": circle.type})
            group_ids = (await group_crud.user_group_ids(db, viewer.id)) & (await group_crud.user_group_ids(db, alumni.id))
            for group_id in group_ids:
                group = await group_crud.get(db, group_id)
                shared_groups.append({"id": group.id, "name": group.name})

        profile.update(
            connection_status=status,
            mutual_connections={
                "count": len(mutual),
                "users": [UserBrief.model_validate(u).model_dump() for u in list(mutual.values())[:10]],
            },
            shared_circles=shared_circles,
            shared_groups=shared_groups,
        )
        return profile


directory_service = AlumniDirectoryService()
