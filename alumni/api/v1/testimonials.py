"""
Testimonial API: public submission, moderation, tracking
"""
from typing import Literal, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import Field

from alumni.core.auth import require_admin
from alumni.core.database import get_db
from alumni.core.exceptions import NotFoundException
from alumni.core.response import success_response, paged_response, ResponseModel, PagedResponseModel, DictResponse
from alumni.core.tenancy import get_current_tenant
from alumni.crud import testimonial_crud
from alumni.models.base import SQLModelBase
from alumni.models.tenant import Tenant
from alumni.models.testimonial import Testimonial, TestimonialCreate, TestimonialResponse, TestimonialStatus
from alumni.models.user import User
from alumni.services.testimonials import testimonial_service

router = APIRouter()


class TestimonialStatusUpdate(SQLModelBase):
    status: TestimonialStatus


class TestimonialFeature(SQLModelBase):
    featured: bool = True


class TestimonialTrack(SQLModelBase):
    kind: Literal["view", "click"] = Field("view")


async def get_testimonial_or_404(db: AsyncSession, testimonial_id: str, tenant_id: str) -> Testimonial:
    testimonial = await testimonial_crud.get(db, testimonial_id, tenant_id=tenant_id)
    if testimonial is None:
        raise NotFoundException(f"Testimonial not found: {testimonial_id}")
    return testimonial


def serialize(testimonial: Testimonial) -> dict:
    return TestimonialResponse.model_validate(testimonial).model_dump()


@router.post("", summary="Submit a testimonial", status_code=201, response_model=ResponseModel[TestimonialResponse])
async def submit_testimonial(
    data: TestimonialCreate,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    """
    Submissions wait for moderation before they appear on the homepage
    """
    testimonial = await testimonial_service.create(db, tenant.id, data)
    return success_response(data=serialize(testimonial), message="Testimonial submitted for review", code=201)


@router.get("", summary="List testimonials", response_model=PagedResponseModel[TestimonialResponse])
async def get_testimonials(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[TestimonialStatus] = None,
    audience: Optional[Literal["individual", "institutional"]] = None,
    featured: Optional[bool] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    skip = (page - 1) * page_size
    items, total = await testimonial_service.list(
        db,
        admin.tenant_id,
        status=status.value if status else None,
        audience=audience,
        featured=featured,
        skip=skip,
        limit=page_size,
    )
    return paged_response([serialize(t) for t in items], total, page, page_size)


@router.get("/performance", summary="Views and clicks by status", response_model=DictResponse)
async def get_performance(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await testimonial_service.performance(db, admin.tenant_id))


@router.patch("/{testimonial_id}/status", summary="Moderate a testimonial",
              response_model=ResponseModel[TestimonialResponse])
async def update_status(
    testimonial_id: str,
    data: TestimonialStatusUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    testimonial = await get_testimonial_or_404(db, testimonial_id, admin.tenant_id)
    testimonial = await testimonial_service.set_status(db, testimonial, data.status)
    return success_response(data=serialize(testimonial), message="Testimonial updated")


@router.patch("/{testimonial_id}/feature", summary="Feature a testimonial",
              response_model=ResponseModel[TestimonialResponse])
async def set_featured(
    testimonial_id: str,
    data: TestimonialFeature,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    testimonial = await get_testimonial_or_404(db, testimonial_id, admin.tenant_id)
    testimonial = await testimonial_service.set_featured(db, testimonial, data.featured)
    return success_response(data=serialize(testimonial), message="Testimonial updated")


@router.post("/{testimonial_id}/track", summary="Count a view or click", response_model=DictResponse)
async def track(
    testimonial_id: str,
    data: TestimonialTrack,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    testimonial = await get_testimonial_or_404(db, testimonial_id, tenant.id)
    testimonial = await testimonial_service.track(db, testimonial, data.kind)
    return success_response(data={"view_count": testimonial.view_count, "click_count": testimonial.click_count})
