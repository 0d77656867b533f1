"""
Job match API: flags on a graduate's own matches, tenant statistics
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_current_user, require_admin
from alumni.core.database import get_db
from alumni.core.exceptions import NotFoundException
from alumni.core.response import success_response, ResponseModel, DictResponse
from alumni.crud import job_match_crud
from alumni.models.job import JobMatch, JobMatchResponse
from alumni.models.user import User
from alumni.services.matching import matching_service

router = APIRouter()
statistics_router = APIRouter()


async def get_own_match(db: AsyncSession, match_id: str, user: User) -> JobMatch:
    match = await job_match_crud.get(db, match_id)
    if match is None or match.user_id != user.id:
        raise NotFoundException(f"Match not found: {match_id}")
    return match


@router.post("/{match_id}/view", summary="Mark a match as viewed", response_model=ResponseModel[JobMatchResponse])
async def view_match(
    match_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    match = await matching_service.mark_viewed(db, await get_own_match(db, match_id, user))
    return success_response(data=JobMatchResponse.model_validate(match).model_dump())


@router.post("/{match_id}/apply", summary="Mark a match as applied", response_model=ResponseModel[JobMatchResponse])
async def apply_match(
    match_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    match = await matching_service.mark_applied(db, await get_own_match(db, match_id, user))
    return success_response(data=JobMatchResponse.model_validate(match).model_dump())


@statistics_router.get("/statistics", summary="Matching statistics", response_model=DictResponse)
async def get_statistics(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await matching_service.get_matching_statistics(db, admin.tenant_id))
