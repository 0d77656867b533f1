"""
CRUD base class

Works on SQLModel objects directly. Tenant-owned tables are filtered by
tenant_id when one is passed.
"""
from typing import Generic, TypeVar, Type, Optional, List, Any, Dict, Sequence
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

ModelType = TypeVar("ModelType", bound=SQLModel)
CreateSchemaType = TypeVar("CreateSchemaType", bound=SQLModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=SQLModel)


class CRUDBase(Generic[ModelType]):

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def _scoped(self, query, tenant_id: Optional[str], filters: Sequence[Any] = ()):
        if tenant_id is not None:
            query = query.where(self.model.tenant_id == tenant_id)
        for condition in filters:
            query = query.where(condition)
        return query

    async def get(
        self, db: AsyncSession, id: Any, *, tenant_id: Optional[str] = None
    ) -> Optional[ModelType]:
        query = self._scoped(select(self.model).where(self.model.id == id), tenant_id)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def get_multi(
        self,
        db: AsyncSession,
        *,
        tenant_id: Optional[str] = None,
        filters: Sequence[Any] = (),
        skip: int = 0,
        limit: int = 100,
        order_by: Any = None
    ) -> List[ModelType]:
        query = self._scoped(select(self.model), tenant_id, filters)
        if order_by is not None:
            query = query.order_by(*order_by) if isinstance(order_by, (list, tuple)) else query.order_by(order_by)
        else:
            query = query.order_by(self.model.created_at.desc())
        query = query.offset(skip).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def count(
        self,
        db: AsyncSession,
        *,
        tenant_id: Optional[str] = None,
        filters: Sequence[Any] = ()
    ) -> int:
        query = self._scoped(select(func.count()).select_from(self.model), tenant_id, filters)
        result = await db.execute(query)
        return result.scalar() or 0

    async def create(
        self,
        db: AsyncSession,
        *,
        obj_in: CreateSchemaType | Dict[str, Any]
    ) -> ModelType:
        if isinstance(obj_in, dict):
            db_obj = self.model(**obj_in)
        else:
            db_obj = self.model.model_validate(obj_in)

        db.add(db_obj)
        await db.flush()
        await db.refresh(db_obj)
        return db_obj

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: UpdateSchemaType | Dict[str, Any]
    ) -> ModelType:
        """None values are skipped, so PATCH bodies only touch what they send"""
        if isinstance(obj_in, dict):
            update_data = obj_in
        else:
            update_data = obj_in.model_dump(exclude_unset=True)

        for field, value in update_data.items():
            if value is not None:
                setattr(db_obj, field, value)

        await db.flush()
        await db.refresh(db_obj)
        return db_obj

    async def delete(self, db: AsyncSession, *, id: Any, tenant_id: Optional[str] = None) -> bool:
        obj = await self.get(db, id, tenant_id=tenant_id)
        if obj:
            await db.delete(obj)
            await db.flush()
            return True
        return False
