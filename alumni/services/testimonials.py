"""
Testimonial moderation and rotation
"""
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.exceptions import UnprocessableException
from alumni.crud import testimonial_crud
from alumni.models.testimonial import Testimonial, TestimonialCreate, TestimonialStatus


class TestimonialService:

    async def list(
        self,
        db: AsyncSession,
        tenant_id: str,
        *,
        status: Optional[str] = None,
        audience: Optional[str] = None,
        featured: Optional[bool] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Testimonial], int]:
        filters = []
        if status:
            filters.append(Testimonial.status == status)
        if audience:
            filters.append(Testimonial.audience_type == audience)
        if featured is not None:
            filters.append(Testimonial.featured == featured)
        items = await testimonial_crud.get_multi(db, tenant_id=tenant_id, filters=filters, skip=skip, limit=limit)
        total = await testimonial_crud.count(db, tenant_id=tenant_id, filters=filters)
        return items, total

    async def create(self, db: AsyncSession, tenant_id: str, data: TestimonialCreate) -> Testimonial:
        values = data.model_dump()
        values["tenant_id"] = tenant_id
        return await testimonial_crud.create(db, obj_in=values)

    async def set_status(self, db: AsyncSession, testimonial: Testimonial, status: str) -> Testimonial:
        if status not in {s.value for s in TestimonialStatus}:
            raise UnprocessableException(errors={"status": [f"Unknown status {status}"]})
        testimonial.status = status
        if status != TestimonialStatus.APPROVED.value:
            testimonial.featured = False
        await db.flush()
        await db.refresh(testimonial)
        return testimonial

    async def set_featured(self, db: AsyncSession, testimonial: Testimonial, featured: bool = True) -> Testimonial:
        if featured and testimonial.status != TestimonialStatus.APPROVED.value:
            raise UnprocessableException(errors={"featured": ["Only approved testimonials can be featured"]})
        testimonial.featured = featured
        await db.flush()
        await db.refresh(testimonial)
        return testimonial

    async def track(self, db: AsyncSession, testimonial: Testimonial, kind: str) -> Testimonial:
        if kind == "click":
            testimonial.click_count += 1
        else:
            testimonial.view_count += 1
        await db.flush()
        return testimonial

    async def performance(self, db: AsyncSession, tenant_id: str) -> Dict[str, Any]:
        result = await db.execute(
            select(
                Testimonial.status,
                func.count(),
                func.coalesce(func.sum(Testimonial.view_count), 0),
                func.coalesce(func.sum(Testimonial.click_count), 0),
            )
            .where(Testimonial.tenant_id == tenant_id)
            .group_by(Testimonial.status)
        )
        by_status = {}
        views = clicks = 0
        for status, count, status_views, status_clicks in result.all():
            by_status[status] = count
            views += status_views
            clicks += status_clicks
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "total_views": views,
            "total_clicks": clicks,
            "click_through_rate": round(clicks / views * 100, 2) if views else 0,
        }


testimonial_service = TestimonialService()
