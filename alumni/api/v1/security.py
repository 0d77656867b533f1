"""
Security API: admin dashboard and events, two-factor setup for the current user
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_current_user, require_admin
from alumni.core.database import get_db
from alumni.core.exceptions import AuthenticationException, NotFoundException, UnprocessableException
from alumni.core.response import success_response, paged_response, ResponseModel, PagedResponseModel, DictResponse, MessageResponse
from alumni.core.security import verify_password
from alumni.crud import security_event_crud
from alumni.models.security import (
    SecurityEvent,
    SecurityEventType,
    Severity,
    SecurityEventResponse,
    TwoFactorDisable,
)
from alumni.models.user import User
from alumni.services.security import security_service

router = APIRouter()


@router.get("/dashboard", summary="Security dashboard", response_model=DictResponse)
async def get_dashboard(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await security_service.get_dashboard(db, admin.tenant_id))


@router.get("/events", summary="Security events", response_model=PagedResponseModel[SecurityEventResponse])
async def get_events(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    severity: Optional[Severity] = None,
    event_type: Optional[SecurityEventType] = None,
    resolved: Optional[bool] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    skip = (page - 1) * page_size
    filters = []
    if severity is not None:
        filters.append(SecurityEvent.severity == severity.value)
    if event_type is not None:
        filters.append(SecurityEvent.event_type == event_type.value)
    if resolved is not None:
        filters.append(SecurityEvent.resolved == resolved)
    events = await security_event_crud.get_multi(
        db, tenant_id=admin.tenant_id, filters=filters, skip=skip, limit=page_size
    )
    total = await security_event_crud.count(db, tenant_id=admin.tenant_id, filters=filters)
    items = [SecurityEventResponse.model_validate(e).model_dump() for e in events]
    return paged_response(items, total, page, page_size)


@router.post("/events/{event_id}/resolve", summary="Resolve a security event",
             response_model=ResponseModel[SecurityEventResponse])
async def resolve_event(
    event_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    event = await security_event_crud.get(db, event_id, tenant_id=admin.tenant_id)
    if event is None:
        raise NotFoundException(f"Security event not found: {event_id}")
    event = await security_service.resolve_event(db, event, admin)
    return success_response(data=SecurityEventResponse.model_validate(event).model_dump(), message="Event resolved")


@router.get("/score", summary="Security score", response_model=DictResponse)
async def get_score(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    score = await security_service.calculate_security_score(db, admin.tenant_id)
    return success_response(data={"score": score})


@router.get("/suspicious", summary="Suspicious activity report", response_model=DictResponse)
async def get_suspicious_activity(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await security_service.detect_suspicious_activity(db, admin.tenant_id))


# ==================== Two-factor ====================

@router.post("/two-factor", summary="Enable two-factor authentication", response_model=DictResponse)
async def enable_two_factor(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Returns the TOTP secret and recovery codes; they are not shown again
    """
    if user.two_factor_enabled:
        raise UnprocessableException(errors={"two_factor": ["Two-factor authentication is already enabled"]})
    return success_response(data=await security_service.enable_two_factor(db, user), message="Two-factor enabled")


@router.post("/two-factor/disable", summary="Disable two-factor authentication", response_model=MessageResponse)
async def disable_two_factor(
    data: TwoFactorDisable,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not user.password_hash or not verify_password(data.password, user.password_hash):
        raise AuthenticationException("Invalid password")
    await security_service.disable_two_factor(db, user)
    return success_response(message="Two-factor disabled")
