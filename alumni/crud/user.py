"""
User and access token CRUD
"""
from datetime import timedelta
from typing import Optional, List, Dict, Iterable
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.config import settings
from alumni.core.security import generate_token, hash_token
from alumni.models.base import utcnow
from alumni.models.user import User, AccessToken
from .base import CRUDBase


class CRUDUser(CRUDBase[User]):

    async def get_by_email(self, db: AsyncSession, tenant_id: str, email: str) -> Optional[User]:
        result = await db.execute(
            select(self.model).where(
                self.model.tenant_id == tenant_id,
                func.lower(self.model.email) == email.lower(),
            )
        )
        return result.scalar_one_or_none()

    async def get_by_sso_subject(
        self, db: AsyncSession, tenant_id: str, provider: str, subject: str
    ) -> Optional[User]:
        result = await db.execute(
            select(self.model).where(
                self.model.tenant_id == tenant_id,
                self.model.sso_provider == provider,
                self.model.sso_subject == subject,
            )
        )
        return result.scalar_one_or_none()

    async def get_many(self, db: AsyncSession, ids: Iterable[str]) -> Dict[str, User]:
        ids = list(set(ids))
        if not ids:
            return {}
        result = await db.execute(select(self.model).where(self.model.id.in_(ids)))
        return {u.id: u for u in result.scalars().all()}

    async def active_in_tenant(self, db: AsyncSession, tenant_id: str) -> List[User]:
        result = await db.execute(
            select(self.model).where(self.model.tenant_id == tenant_id, self.model.is_active == True)
        )
        return list(result.scalars().all())


class CRUDAccessToken(CRUDBase[AccessToken]):

    async def issue(self, db: AsyncSession, user: User, name: str = "api") -> tuple[AccessToken, str]:
        """Create a token; returns the row and the plain text shown to the client once"""
        plain = generate_token()
        token = AccessToken(
            user_id=user.id,
            tenant_id=user.tenant_id,
            name=name,
            token_hash=hash_token(plain),
            expires_at=utcnow() + timedelta(minutes=settings.token_ttl_minutes),
        )
        db.add(token)
        await db.flush()
        return token, plain

    async def revoke_all(self, db: AsyncSession, user_id: str) -> None:
        await db.execute(
            update(self.model)
            .where(self.model.user_id == user_id)
            .values(expires_at=utcnow())
        )


user_crud = CRUDUser(User)
token_crud = CRUDAccessToken(AccessToken)
