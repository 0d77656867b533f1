"""
Course catalogue API
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_current_user, require_admin
from alumni.core.database import get_db
from alumni.core.exceptions import ConflictException, NotFoundException
from alumni.core.response import success_response, paged_response, ResponseModel, PagedResponseModel
from alumni.crud import course_crud
from alumni.models.course import Course, CourseCreate, CourseUpdate, CourseResponse
from alumni.models.user import User

router = APIRouter()


@router.get("", summary="List courses", response_model=PagedResponseModel[CourseResponse])
async def get_courses(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    skip = (page - 1) * page_size
    courses = await course_crud.get_multi(
        db, tenant_id=user.tenant_id, skip=skip, limit=page_size, order_by=Course.name
    )
    total = await course_crud.count(db, tenant_id=user.tenant_id)
    items = [CourseResponse.model_validate(c).model_dump() for c in courses]
    return paged_response(items, total, page, page_size)


@router.post("", summary="Create a course", status_code=201, response_model=ResponseModel[CourseResponse])
async def create_course(
    data: CourseCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if await course_crud.get_by_code(db, admin.tenant_id, data.code):
        raise ConflictException(f"Course '{data.code}' already exists")
    course = await course_crud.create(db, obj_in={**data.model_dump(), "tenant_id": admin.tenant_id})
    return success_response(
        data=CourseResponse.model_validate(course).model_dump(),
        message="Course created",
        code=201,
    )


@router.patch("/{course_id}", summary="Update a course", response_model=ResponseModel[CourseResponse])
async def update_course(
    course_id: str,
    data: CourseUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    course = await course_crud.get(db, course_id, tenant_id=admin.tenant_id)
    if course is None:
        raise NotFoundException(f"Course not found: {course_id}")
    course = await course_crud.update(db, db_obj=course, obj_in=data)
    return success_response(data=CourseResponse.model_validate(course).model_dump(), message="Course updated")
