"""
Circle and group CRUD
"""
from typing import Optional, List, Set
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.models.circle import (
    Circle, CircleMembership, Group, GroupMembership, GroupRole, MembershipStatus,
)
from alumni.models.user import User
from .base import CRUDBase


class CRUDCircle(CRUDBase[Circle]):

    async def user_circle_ids(self, db: AsyncSession, user_id: str) -> Set[str]:
        result = await db.execute(
            select(CircleMembership.circle_id).where(CircleMembership.user_id == user_id)
        )
        return set(result.scalars().all())

    async def user_circles(self, db: AsyncSession, user_id: str) -> List[Circle]:
        result = await db.execute(
            select(Circle)
            .join(CircleMembership, CircleMembership.circle_id == Circle.id)
            .where(CircleMembership.user_id == user_id)
        )
        return list(result.scalars().all())

    async def is_member(self, db: AsyncSession, circle_id: str, user_id: str) -> bool:
        result = await db.execute(
            select(CircleMembership.id).where(
                CircleMembership.circle_id == circle_id, CircleMembership.user_id == user_id
            )
        )
        return result.first() is not None

    async def member_ids(self, db: AsyncSession, circle_ids) -> Set[str]:
        circle_ids = list(circle_ids)
        if not circle_ids:
            return set()
        result = await db.execute(
            select(CircleMembership.user_id).where(CircleMembership.circle_id.in_(circle_ids))
        )
        return set(result.scalars().all())

    async def members(self, db: AsyncSession, circle_id: str, *, skip: int = 0, limit: int = 20) -> List[User]:
        result = await db.execute(
            select(User)
            .join(CircleMembership, CircleMembership.user_id == User.id)
            .where(CircleMembership.circle_id == circle_id)
            .order_by(CircleMembership.joined_at)
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def find_auto(
        self, db: AsyncSession, tenant_id: str, circle_type: str, name: str
    ) -> Optional[Circle]:
        result = await db.execute(
            select(Circle).where(
                Circle.tenant_id == tenant_id,
                Circle.type == circle_type,
                Circle.auto_generated == True,
                func.lower(Circle.name) == name.lower(),
            )
        )
        return result.scalars().first()

    async def add_member(self, db: AsyncSession, circle: Circle, user_id: str) -> bool:
        if await self.is_member(db, circle.id, user_id):
            return False
        db.add(CircleMembership(circle_id=circle.id, user_id=user_id))
        circle.member_count += 1
        await db.flush()
        return True

    async def remove_member(self, db: AsyncSession, circle: Circle, user_id: str) -> bool:
        result = await db.execute(
            select(CircleMembership).where(
                CircleMembership.circle_id == circle.id, CircleMembership.user_id == user_id
            )
        )
        membership = result.scalar_one_or_none()
        if membership is None:
            return False
        await db.delete(membership)
        circle.member_count = max(0, circle.member_count - 1)
        await db.flush()
        return True


class CRUDGroup(CRUDBase[Group]):

    async def user_group_ids(self, db: AsyncSession, user_id: str) -> Set[str]:
        result = await db.execute(
            select(GroupMembership.group_id).where(
                GroupMembership.user_id == user_id,
                GroupMembership.status == MembershipStatus.ACTIVE.value,
            )
        )
        return set(result.scalars().all())

    async def get_membership(self, db: AsyncSession, group_id: str, user_id: str) -> Optional[GroupMembership]:
        result = await db.execute(
            select(GroupMembership).where(
                GroupMembership.group_id == group_id, GroupMembership.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    async def member_ids(self, db: AsyncSession, group_ids) -> Set[str]:
        group_ids = list(group_ids)
        if not group_ids:
            return set()
        result = await db.execute(
            select(GroupMembership.user_id).where(
                GroupMembership.group_id.in_(group_ids),
                GroupMembership.status == MembershipStatus.ACTIVE.value,
            )
        )
        return set(result.scalars().all())

    async def members(
        self, db: AsyncSession, group_id: str, *, status: str = MembershipStatus.ACTIVE.value,
        skip: int = 0, limit: int = 20
    ) -> List[tuple[User, GroupMembership]]:
        result = await db.execute(
            select(User, GroupMembership)
            .join(GroupMembership, GroupMembership.user_id == User.id)
            .where(GroupMembership.group_id == group_id, GroupMembership.status == status)
            .order_by(GroupMembership.joined_at)
            .offset(skip)
            .limit(limit)
        )
        return list(result.all())

    async def add_member(
        self,
        db: AsyncSession,
        group: Group,
        user_id: str,
        *,
        role: str = GroupRole.MEMBER.value,
        status: str = MembershipStatus.ACTIVE.value
    ) -> GroupMembership:
        membership = GroupMembership(group_id=group.id, user_id=user_id, role=role, status=status)
        db.add(membership)
        if status == MembershipStatus.ACTIVE.value:
            group.member_count += 1
        await db.flush()
        return membership

    async def activate(self, db: AsyncSession, group: Group, membership: GroupMembership) -> GroupMembership:
        if membership.status != MembershipStatus.ACTIVE.value:
            membership.status = MembershipStatus.ACTIVE.value
            group.member_count += 1
            await db.flush()
        return membership

    async def remove_member(self, db: AsyncSession, group: Group, membership: GroupMembership) -> None:
        if membership.status == MembershipStatus.ACTIVE.value:
            group.member_count = max(0, group.member_count - 1)
        await db.delete(membership)
        await db.flush()


circle_crud = CRUDCircle(Circle)
group_crud = CRUDGroup(Group)
