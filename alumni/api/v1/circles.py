"""
Circle API

Class-year and location circles are maintained automatically; users can
also create and join custom circles.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_current_user
from alumni.core.database import get_db
from alumni.core.exceptions import ConflictException, NotFoundException, UnprocessableException
from alumni.core.response import (
    success_response,
    paged_response,
    ResponseModel,
    PagedResponseModel,
    MessageResponse,
    DictResponse,
)
from alumni.crud import circle_crud
from alumni.models.circle import Circle, CircleType, CircleCreate, CircleResponse
from alumni.models.user import User, UserBrief
from alumni.services.timeline import timeline_service

router = APIRouter()


async def get_circle_or_404(db: AsyncSession, circle_id: str, user: User) -> Circle:
    circle = await circle_crud.get(db, circle_id, tenant_id=user.tenant_id)
    if circle is None:
        raise NotFoundException(f"Circle not found: {circle_id}")
    return circle


def serialize(circle: Circle, member_ids: set) -> dict:
    item = CircleResponse.model_validate(circle)
    item.is_member = circle.id in member_ids
    return item.model_dump()


@router.get("", summary="List circles", response_model=PagedResponseModel[CircleResponse])
async def get_circles(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    type: Optional[CircleType] = None,
    mine: bool = Query(False, description="Only circles I belong to"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    skip = (page - 1) * page_size
    my_ids = await circle_crud.user_circle_ids(db, user.id)
    filters = []
    if type is not None:
        filters.append(Circle.type == type.value)
    if mine:
        filters.append(Circle.id.in_(my_ids))

    circles = await circle_crud.get_multi(
        db, tenant_id=user.tenant_id, filters=filters, skip=skip, limit=page_size,
        order_by=(Circle.member_count.desc(), Circle.name),
    )
    total = await circle_crud.count(db, tenant_id=user.tenant_id, filters=filters)
    return paged_response([serialize(c, my_ids) for c in circles], total, page, page_size)


@router.post("", summary="Create a custom circle", status_code=201, response_model=ResponseModel[CircleResponse])
async def create_circle(
    data: CircleCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    circle = await circle_crud.create(db, obj_in={
        **data.model_dump(),
        "tenant_id": user.tenant_id,
        "type": CircleType.CUSTOM.value,
        "creator_id": user.id,
    })
    await circle_crud.add_member(db, circle, user.id)
    return success_response(data=serialize(circle, {circle.id}), message="Circle created", code=201)


@router.get("/{circle_id}", summary="Circle details", response_model=ResponseModel[CircleResponse])
async def get_circle(
    circle_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    circle = await get_circle_or_404(db, circle_id, user)
    return success_response(data=serialize(circle, await circle_crud.user_circle_ids(db, user.id)))


@router.post("/{circle_id}/join", summary="Join a circle", response_model=MessageResponse)
async def join_circle(
    circle_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    circle = await get_circle_or_404(db, circle_id, user)
    if circle.auto_generated:
        raise UnprocessableException(errors={"circle_id": ["Automatic circles follow your profile"]})
    if not await circle_crud.add_member(db, circle, user.id):
        raise ConflictException("You are already a member of this circle")
    timeline_service.invalidate_user(user.id)
    return success_response(message="Joined circle")


@router.post("/{circle_id}/leave", summary="Leave a circle", response_model=MessageResponse)
async def leave_circle(
    circle_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    circle = await get_circle_or_404(db, circle_id, user)
    if circle.auto_generated:
        raise UnprocessableException(errors={"circle_id": ["Automatic circles follow your profile"]})
    if not await circle_crud.remove_member(db, circle, user.id):
        raise NotFoundException("You are not a member of this circle")
    timeline_service.invalidate_user(user.id)
    return success_response(message="Left circle")


@router.get("/{circle_id}/members", summary="Circle members", response_model=PagedResponseModel[UserBrief])
async def get_members(
    circle_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    circle = await get_circle_or_404(db, circle_id, user)
    skip = (page - 1) * page_size
    members = await circle_crud.members(db, circle.id, skip=skip, limit=page_size)
    items = [UserBrief.model_validate(m).model_dump() for m in members]
    return paged_response(items, circle.member_count, page, page_size)


@router.get("/{circle_id}/timeline", summary="Posts shared with a circle", response_model=DictResponse)
async def get_circle_timeline(
    circle_id: str,
    limit: int = Query(20, ge=1, le=50),
    cursor: Optional[str] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await timeline_service.get_circle_timeline(db, user, circle_id, limit, cursor))
