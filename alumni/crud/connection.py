"""
Connection CRUD

Connections are stored once per pair; either side may be the requester.
"""
from typing import Optional, List, Set
from sqlalchemy import select, func, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.models.connection import Connection, ConnectionStatus
from .base import CRUDBase


class CRUDConnection(CRUDBase[Connection]):

    async def get_between(self, db: AsyncSession, user_a: str, user_b: str) -> Optional[Connection]:
        result = await db.execute(
            select(self.model).where(
                or_(
                    and_(self.model.requester_id == user_a, self.model.addressee_id == user_b),
                    and_(self.model.requester_id == user_b, self.model.addressee_id == user_a),
                )
            )
        )
        return result.scalars().first()

    async def _other_ids(self, db: AsyncSession, user_id: str, status: str) -> Set[str]:
        result = await db.execute(
            select(self.model.requester_id, self.model.addressee_id).where(
                self.model.status == status,
                or_(self.model.requester_id == user_id, self.model.addressee_id == user_id),
            )
        )
        return {b if a == user_id else a for a, b in result.all()}

    async def connected_ids(self, db: AsyncSession, user_id: str) -> Set[str]:
        return await self._other_ids(db, user_id, ConnectionStatus.ACCEPTED.value)

    async def pending_ids(self, db: AsyncSession, user_id: str) -> Set[str]:
        """Users with a pending request to or from user_id"""
        return await self._other_ids(db, user_id, ConnectionStatus.PENDING.value)

    async def mutual_ids(self, db: AsyncSession, user_a: str, user_b: str) -> Set[str]:
        return (await self.connected_ids(db, user_a)) & (await self.connected_ids(db, user_b))

    def _for_user(self, user_id: str, status: Optional[str]):
        conditions = [or_(self.model.requester_id == user_id, self.model.addressee_id == user_id)]
        if status:
            conditions.append(self.model.status == status)
        return conditions

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: str,
        *,
        status: Optional[str] = ConnectionStatus.ACCEPTED.value,
        skip: int = 0,
        limit: int = 20
    ) -> List[Connection]:
        return await self.get_multi(
            db, filters=self._for_user(user_id, status), skip=skip, limit=limit,
        )

    async def count_for_user(
        self, db: AsyncSession, user_id: str, *, status: Optional[str] = ConnectionStatus.ACCEPTED.value
    ) -> int:
        return await self.count(db, filters=self._for_user(user_id, status))

    async def pending_received(self, db: AsyncSession, user_id: str) -> List[Connection]:
        result = await db.execute(
            select(self.model)
            .where(
                self.model.addressee_id == user_id,
                self.model.status == ConnectionStatus.PENDING.value,
            )
            .order_by(self.model.created_at.desc())
        )
        return list(result.scalars().all())

    async def count_accepted_in_tenant(self, db: AsyncSession, tenant_id: str) -> int:
        result = await db.execute(
            select(func.count()).select_from(self.model).where(
                self.model.tenant_id == tenant_id,
                self.model.status == ConnectionStatus.ACCEPTED.value,
            )
        )
        return result.scalar() or 0


connection_crud = CRUDConnection(Connection)
