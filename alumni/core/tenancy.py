"""
Tenant resolution

A request names its tenant through, in order: the X-Tenant-ID header (id or
slug), the tenant_id query parameter, or the subdomain of the Host header
under settings.base_domain.
"""
from typing import Optional
from fastapi import Depends, Request
from loguru import logger
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.models.tenant import Tenant
from .config import settings
from .database import get_db
from .exceptions import BadRequestException, NotFoundException, PermissionDeniedException


def tenant_identifier(request: Request) -> Optional[str]:
    identifier = request.headers.get("X-Tenant-ID") or request.query_params.get("tenant_id")
    if identifier:
        return identifier.strip()

    host = (request.headers.get("host") or "").split(":")[0].lower()
    suffix = "." + settings.base_domain.lower()
    if host.endswith(suffix):
        sub = host[: -len(suffix)]
        if sub and "." not in sub and sub != "www":
            return sub
    return None


async def resolve_tenant(
    request: Request, db: AsyncSession, *, required: bool = True
) -> Optional[Tenant]:
    cached = getattr(request.state, "tenant", None)
    if cached is not None:
        return cached

    identifier = tenant_identifier(request)
    if not identifier:
        if required:
            raise BadRequestException("Tenant not specified")
        return None

    result = await db.execute(
        select(Tenant).where(or_(Tenant.id == identifier, Tenant.slug == identifier))
    )
    tenant = result.scalar_one_or_none()
    if tenant is None:
        raise NotFoundException(f"Tenant not found: {identifier}")
    if not tenant.is_active:
        logger.warning("Request for inactive tenant {}", tenant.slug)
        raise PermissionDeniedException("Tenant is inactive")

    request.state.tenant = tenant
    return tenant


async def get_current_tenant(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Tenant:
    """Dependency for endpoints that always need a tenant"""
    return await resolve_tenant(request, db)


async def get_optional_tenant(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Optional[Tenant]:
    return await resolve_tenant(request, db, required=False)
