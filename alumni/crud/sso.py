"""
SSO configuration CRUD
"""
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.models.sso import SsoConfiguration
from .base import CRUDBase


class CRUDSsoConfiguration(CRUDBase[SsoConfiguration]):

    async def get_by_provider(self, db: AsyncSession, tenant_id: str, provider: str) -> Optional[SsoConfiguration]:
        result = await db.execute(
            select(self.model).where(
                self.model.tenant_id == tenant_id,
                self.model.provider == provider,
            )
        )
        return result.scalars().first()


sso_crud = CRUDSsoConfiguration(SsoConfiguration)
