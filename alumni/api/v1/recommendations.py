"""
Alumni recommendation API
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_current_user
from alumni.core.database import get_db
from alumni.core.response import success_response, ListResponse, MessageResponse
from alumni.models.user import User
from alumni.services.recommendations import recommendation_service

router = APIRouter()


@router.get("", summary="People you may know", response_model=ListResponse)
async def get_recommendations(
    limit: int = Query(10, ge=1, le=50),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await recommendation_service.get_recommendations(db, user, limit))


@router.get("/second-degree", summary="Connections of my connections", response_model=ListResponse)
async def get_second_degree(
    limit: int = Query(50, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await recommendation_service.second_degree_connections(db, user, limit))


@router.post("/{user_id}/dismiss", summary="Hide a recommendation for 30 days", response_model=MessageResponse)
async def dismiss_recommendation(
    user_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await recommendation_service.dismiss(db, user, user_id)
    return success_response(message="Recommendation dismissed")
