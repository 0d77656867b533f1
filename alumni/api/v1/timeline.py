"""
Timeline API
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_current_user
from alumni.core.database import get_db
from alumni.core.response import success_response, DictResponse
from alumni.models.user import User
from alumni.services.timeline import timeline_service

router = APIRouter()


@router.get("", summary="My timeline", response_model=DictResponse)
async def get_timeline(
    limit: int = Query(20, ge=1, le=50),
    cursor: Optional[str] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Scored posts from my circles, groups, connections and public posts,
    returned as {posts, next_cursor, has_more}
    """
    return success_response(data=await timeline_service.get_timeline(db, user, limit, cursor))


@router.get("/more", summary="Next timeline page", response_model=DictResponse)
async def load_more(
    cursor: str,
    limit: int = Query(20, ge=1, le=50),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await timeline_service.load_more(db, user, cursor, limit))


@router.post("/refresh", summary="Rebuild my timeline", response_model=DictResponse)
async def refresh_timeline(
    limit: int = Query(20, ge=1, le=50),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await timeline_service.refresh_timeline(db, user, limit))
