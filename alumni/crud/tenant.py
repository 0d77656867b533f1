"""
Tenant CRUD
"""
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.models.tenant import Tenant
from .base import CRUDBase


class CRUDTenant(CRUDBase[Tenant]):

    async def get_by_slug(self, db: AsyncSession, slug: str) -> Optional[Tenant]:
        result = await db.execute(select(self.model).where(self.model.slug == slug))
        return result.scalar_one_or_none()


tenant_crud = CRUDTenant(Tenant)
