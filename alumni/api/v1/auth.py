"""
Authentication API: register, login, logout, current user
"""
from fastapi import APIRouter, Depends, Request
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import client_ip, get_current_user
from alumni.core.database import get_db
from alumni.core.exceptions import (
    AuthenticationException,
    ConflictException,
    PermissionDeniedException,
    TooManyRequestsException,
)
from alumni.core.queue import get_queue
from alumni.core.response import success_response, ResponseModel, MessageResponse
from alumni.core.security import get_password_hash, verify_password
from alumni.core.tenancy import get_current_tenant
from alumni.crud import user_crud, token_crud
from alumni.models.base import utcnow
from alumni.models.tenant import Tenant
from alumni.models.user import User, UserRole, UserRegister, LoginRequest, UserResponse, TokenResponse
from alumni.services import tasks
from alumni.services.circles import circle_service
from alumni.services.security import security_service

router = APIRouter()


def token_payload(user: User, token, plain: str) -> dict:
    return TokenResponse(
        token=plain,
        expires_at=token.expires_at,
        user=UserResponse.model_validate(user),
    ).model_dump()


@router.post("/register", summary="Register an alumni account", status_code=201,
             response_model=ResponseModel[TokenResponse])
async def register(
    data: UserRegister,
    request: Request,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    """
    The first account of a tenant becomes its institution admin
    """
    email = data.email.lower()
    if await user_crud.get_by_email(db, tenant.id, email):
        raise ConflictException("The email has already been taken")

    is_first = await user_crud.count(db, tenant_id=tenant.id) == 0
    values = data.model_dump(exclude={"password"})
    values.update(
        tenant_id=tenant.id,
        email=email,
        password_hash=get_password_hash(data.password),
        role=UserRole.INSTITUTION_ADMIN.value if is_first else UserRole.ALUMNI.value,
    )
    user = await user_crud.create(db, obj_in=values)
    await circle_service.ensure_auto_circles(db, user)

    token, plain = await token_crud.issue(db, user)
    await security_service.record_successful_login(
        db, user, token, client_ip(request), request.headers.get("user-agent")
    )
    await queue.dispatch(
        tasks.deliver_webhook_event, tenant.id, "user.created", {"user_id": user.id, "email": user.email}
    )
    await db.refresh(user)
    logger.info("Registered {} in tenant {}", user.email, tenant.slug)
    return success_response(data=token_payload(user, token, plain), message="Registered", code=201)


@router.post("/login", summary="Log in with email and password", response_model=ResponseModel[TokenResponse])
async def login(
    data: LoginRequest,
    request: Request,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    email = data.email.lower()
    ip = client_ip(request)
    user_agent = request.headers.get("user-agent")

    blocked_until = await security_service.blocked_until(db, email, ip)
    if blocked_until is not None:
        logger.warning("Blocked login attempt for {} from {}", email, ip)
        retry_after = max(1, int((blocked_until - utcnow()).total_seconds()))
        raise TooManyRequestsException(
            "Too many failed login attempts. Please try again later.", retry_after=retry_after
        )

    user = await user_crud.get_by_email(db, tenant.id, email)
    if user is None or not user.password_hash or not verify_password(data.password, user.password_hash):
        await security_service.record_failed_login(
            db, email, ip, user_agent=user_agent, tenant_id=tenant.id
        )
        # the failed attempt must survive the error response
        await db.commit()
        raise AuthenticationException("Invalid credentials")

    if not await security_service.check_security_policy(db, user, "login"):
        raise PermissionDeniedException("Account is disabled")

    if user.two_factor_enabled and not security_service.verify_two_factor(user, data.two_factor_code):
        await security_service.record_failed_login(
            db, email, ip, user_agent=user_agent, tenant_id=tenant.id
        )
        await db.commit()
        raise AuthenticationException("Invalid two-factor code")

    token, plain = await token_crud.issue(db, user)
    await security_service.record_successful_login(db, user, token, ip, user_agent)
    await db.refresh(user)
    return success_response(data=token_payload(user, token, plain), message="Logged in")


@router.post("/logout", summary="Revoke the current token", response_model=MessageResponse)
async def logout(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await security_service.end_session(db, request.state.token)
    return success_response(message="Logged out")


@router.get("/me", summary="Current user", response_model=ResponseModel[UserResponse])
async def me(user: User = Depends(get_current_user)):
    return success_response(data=UserResponse.model_validate(user).model_dump())
