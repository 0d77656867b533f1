"""
A/B testing API

Visitors are identified by user id when signed in, otherwise by the
X-Session-ID header, falling back to the client address.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import client_ip, get_optional_user, require_admin
from alumni.core.database import get_db
from alumni.core.response import success_response, MessageResponse, DictResponse, ListResponse
from alumni.models.ab_test import ABTestCreate, ABTestStatusUpdate, AssignmentRequest, ConversionRequest
from alumni.models.user import User
from alumni.services.ab_testing import ab_testing_service

router = APIRouter()


def subject_for(request: Request, user: Optional[User], explicit: Optional[str] = None) -> str:
    if explicit:
        return explicit
    if user is not None:
        return user.id
    return request.headers.get("X-Session-ID") or client_ip(request)


@router.get("/active", summary="Active tests with my variants", response_model=DictResponse)
async def get_active_tests(
    request: Request,
    audience: str = Query("individual"),
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    tests = await ab_testing_service.get_active_tests(db, subject_for(request, user), audience)
    return success_response(data=tests)


@router.post("/assignments", summary="Assign a variant", response_model=DictResponse)
async def assign_variant(
    data: AssignmentRequest,
    request: Request,
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    subject = subject_for(request, user, data.subject_id)
    variant = await ab_testing_service.get_variant(db, data.test_id, subject, data.audience)
    return success_response(data={"test_id": data.test_id, "subject_id": subject, "variant": variant})


@router.get("/assignments", summary="My variant assignments", response_model=ListResponse)
async def get_assignments(
    request: Request,
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await ab_testing_service.get_assignments(db, subject_for(request, user)))


@router.post("/conversions", summary="Record a conversion", response_model=DictResponse)
async def track_conversion(
    data: ConversionRequest,
    request: Request,
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Conversion tracking is best effort; tracked is false when recording failed
    """
    tracked = await ab_testing_service.track_conversion(
        db, data.test_id, data.variant_id, data.goal, subject_for(request, user, data.subject_id), data.data
    )
    return success_response(data={"tracked": tracked})


# ==================== Management ====================

@router.get("", summary="List tests", response_model=ListResponse)
async def get_tests(
    active: Optional[bool] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    tests = await ab_testing_service.list_tests(db, active)
    return success_response(data=[t.to_config() for t in tests])


@router.post("", summary="Create a test", status_code=201, response_model=DictResponse)
async def create_test(
    data: ABTestCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    test = await ab_testing_service.create_test(db, data, created_by=admin.id)
    return success_response(data=test.to_config(), message="A/B test created", code=201)


@router.get("/{test_id}/results", summary="Test results", response_model=DictResponse)
async def get_results(
    test_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await ab_testing_service.get_test_results(db, test_id))


@router.patch("/{test_id}", summary="Activate or deactivate a test", response_model=DictResponse)
async def update_test_status(
    test_id: str,
    data: ABTestStatusUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    test = await ab_testing_service.update_test_status(db, test_id, data.active)
    return success_response(data=test.to_config(), message="A/B test updated")


@router.delete("/{test_id}", summary="Delete a test", response_model=MessageResponse)
async def delete_test(
    test_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await ab_testing_service.delete_test(db, test_id)
    return success_response(message="A/B test deleted")
