"""
Circle membership maintenance

Every alumnus belongs to a "Class of {year}" circle and a circle for their
location. Both are created on first use.
"""
from typing import List, Optional
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.cache import cache
from alumni.crud import circle_crud
from alumni.models.circle import Circle, CircleType
from alumni.models.user import User


class CircleService:

    async def _ensure(
        self,
        db: AsyncSession,
        user: User,
        circle_type: str,
        name: str,
        criteria: dict,
        description: str,
    ) -> Circle:
        circle = await circle_crud.find_auto(db, user.tenant_id, circle_type, name)
        if circle is None:
            circle = await circle_crud.create(db, obj_in={
                "tenant_id": user.tenant_id,
                "name": name,
                "description": description,
                "type": circle_type,
                "criteria": criteria,
                "auto_generated": True,
            })
            logger.info("Created {} circle '{}' for tenant {}", circle_type, name, user.tenant_id)
        await circle_crud.add_member(db, circle, user.id)
        return circle

    async def _leave_stale(self, db: AsyncSession, user: User, circle_type: str, keep: Optional[str]) -> None:
        for circle in await circle_crud.user_circles(db, user.id):
            if circle.auto_generated and circle.type == circle_type and circle.id != keep:
                await circle_crud.remove_member(db, circle, user.id)

    async def ensure_auto_circles(self, db: AsyncSession, user: User) -> List[Circle]:
        """
        Put the user in their class-year and location circles, and take them
        out of auto circles that no longer match their profile.
        """
        joined: List[Circle] = []

        year_circle = None
        if user.graduation_year:
            year_circle = await self._ensure(
                db,
                user,
                CircleType.SCHOOL_YEAR.value,
                f"Class of {user.graduation_year}",
                {"graduation_year": user.graduation_year},
                f"Alumni who graduated in {user.graduation_year}",
            )
            joined.append(year_circle)
        await self._leave_stale(db, user, CircleType.SCHOOL_YEAR.value, year_circle.id if year_circle else None)

        location_circle = None
        location = (user.location or "").strip()
        if location:
            location_circle = await self._ensure(
                db,
                user,
                CircleType.LOCATION.value,
                location,
                {"location": location},
                f"Alumni based in {location}",
            )
            joined.append(location_circle)
        await self._leave_stale(db, user, CircleType.LOCATION.value, location_circle.id if location_circle else None)

        cache.forget_prefix(f"timeline:user:{user.id}")
        cache.forget(f"recommendations:user:{user.id}")
        return joined


circle_service = CircleService()
