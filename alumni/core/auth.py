"""
Authentication dependencies

Bearer personal access tokens; the plain token is only known to the client,
the database keeps its sha256 digest.
"""
from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.models.base import utcnow
from alumni.models.tenant import Tenant
from alumni.models.user import User, AccessToken
from .database import get_db
from .exceptions import AuthenticationException, PermissionDeniedException
from .security import hash_token
from .tenancy import resolve_tenant

bearer_scheme = HTTPBearer(auto_error=False)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def _authenticate(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
    db: AsyncSession,
) -> Optional[User]:
    if credentials is None or not credentials.credentials:
        return None

    result = await db.execute(
        select(AccessToken).where(AccessToken.token_hash == hash_token(credentials.credentials))
    )
    token = result.scalar_one_or_none()
    if token is None:
        raise AuthenticationException()
    if token.expires_at is not None and token.expires_at <= utcnow():
        raise AuthenticationException("Token expired")

    user = await db.get(User, token.user_id)
    if user is None or not user.is_active:
        raise AuthenticationException()

    tenant = await resolve_tenant(request, db, required=False)
    if tenant is None:
        tenant = await db.get(Tenant, user.tenant_id)
        if tenant is None or not tenant.is_active:
            raise PermissionDeniedException("Tenant is inactive")
        request.state.tenant = tenant
    elif tenant.id != user.tenant_id:
        logger.warning("User {} used a token against tenant {}", user.id, tenant.slug)
        raise PermissionDeniedException("User does not belong to this tenant")

    # imported here: the security service depends on core modules
    from alumni.services.security import security_service

    if not await security_service.validate_session(db, token, client_ip(request)):
        # the request fails, but the invalidation and its security event must stay
        await db.commit()
        raise AuthenticationException("Session is no longer valid")

    now = utcnow()
    token.last_used_at = now
    user.last_activity_at = now
    await db.flush()

    request.state.user = user
    request.state.token = token
    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    user = await _authenticate(request, credentials, db)
    if user is None:
        raise AuthenticationException()
    return user


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    return await _authenticate(request, credentials, db)


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """institution_admin or super_admin"""
    if not user.is_admin:
        raise PermissionDeniedException()
    return user
