"""
Alumni directory API
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_current_user
from alumni.core.database import get_db
from alumni.core.response import success_response, paged_response, DictResponse, PagedResponseModel
from alumni.models.user import User
from alumni.services.directory import DirectoryFilters, directory_service

router = APIRouter()


@router.get("", summary="Search the alumni directory", response_model=PagedResponseModel[dict])
async def search_alumni(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    graduation_year_from: Optional[int] = Query(None, ge=1900, le=2100),
    graduation_year_to: Optional[int] = Query(None, ge=1900, le=2100),
    location: Optional[str] = None,
    industries: List[str] = Query([]),
    company: Optional[str] = None,
    skills: List[str] = Query([]),
    circle_ids: List[str] = Query([]),
    group_ids: List[str] = Query([]),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    filters = DirectoryFilters(
        search=search,
        graduation_year_from=graduation_year_from,
        graduation_year_to=graduation_year_to,
        location=location,
        industries=industries,
        company=company,
        skills=skills,
        circle_ids=circle_ids,
        group_ids=group_ids,
    )
    skip = (page - 1) * page_size
    users, total = await directory_service.search(db, user.tenant_id, filters, skip=skip, limit=page_size)
    items = [directory_service.directory_entry(u) for u in users]
    return paged_response(items, total, page, page_size)


@router.get("/filters", summary="Available directory filter values", response_model=DictResponse)
async def get_filters(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await directory_service.available_filters(db, user.tenant_id))


@router.get("/{alumni_id}", summary="Alumni profile", response_model=DictResponse)
async def get_profile(
    alumni_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Contact info and work details follow the alumnus' privacy settings
    """
    return success_response(data=await directory_service.get_profile(db, alumni_id, user))
