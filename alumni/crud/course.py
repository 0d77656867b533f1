"""
Course CRUD
"""
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.models.course import Course
from .base import CRUDBase


class CRUDCourse(CRUDBase[Course]):

    async def get_by_code(self, db: AsyncSession, tenant_id: str, code: str) -> Optional[Course]:
        result = await db.execute(
            select(self.model).where(self.model.tenant_id == tenant_id, self.model.code == code)
        )
        return result.scalar_one_or_none()


course_crud = CRUDCourse(Course)
