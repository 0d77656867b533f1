"""
Testimonial CRUD
"""
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.models.testimonial import Testimonial, TestimonialStatus
from .base import CRUDBase


class CRUDTestimonial(CRUDBase[Testimonial]):

    async def approved(
        self, db: AsyncSession, tenant_id: str, *, audience: Optional[str] = None, limit: int = 10
    ) -> List[Testimonial]:
        filters = [Testimonial.status == TestimonialStatus.APPROVED.value]
        if audience:
            filters.append(Testimonial.audience_type == audience)
        return await self.get_multi(
            db,
            tenant_id=tenant_id,
            filters=filters,
            limit=limit,
            order_by=[Testimonial.featured.desc(), Testimonial.created_at.desc()],
        )


testimonial_crud = CRUDTestimonial(Testimonial)
