"""
Single sign-on API

Configurations are managed by tenant admins. Sign-in is the OAuth2 / OIDC
authorization code flow: fetch a login url, then post the code and state
the identity provider redirected back with.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import client_ip, require_admin
from alumni.core.database import get_db
from alumni.core.exceptions import ConflictException, NotFoundException
from alumni.core.queue import get_queue
from alumni.core.response import success_response, ResponseModel, MessageResponse, DictResponse, ListResponse
from alumni.core.tenancy import get_current_tenant
from alumni.crud import sso_crud
from alumni.models.sso import (
    SsoConfiguration,
    SsoConfigurationCreate,
    SsoConfigurationUpdate,
    SsoCallback,
    SsoConfigurationResponse,
)
from alumni.models.tenant import Tenant
from alumni.models.user import User, TokenResponse, UserResponse
from alumni.services import tasks
from alumni.services.circles import circle_service
from alumni.services.sso import sso_service

router = APIRouter()


def serialize(config: SsoConfiguration) -> dict:
    item = SsoConfigurationResponse.model_validate(config)
    # setting names only; client secrets never leave the server
    item.settings_configured = sorted(k for k, v in (config.settings or {}).items() if v)
    return item.model_dump()


async def get_config_or_404(db: AsyncSession, config_id: str, tenant_id: str) -> SsoConfiguration:
    config = await sso_crud.get(db, config_id, tenant_id=tenant_id)
    if config is None:
        raise NotFoundException(f"SSO configuration not found: {config_id}")
    return config


async def get_provider_or_404(db: AsyncSession, tenant: Tenant, provider: str) -> SsoConfiguration:
    config = await sso_crud.get_by_provider(db, tenant.id, provider)
    if config is None:
        raise NotFoundException(f"SSO provider not configured: {provider}")
    return config


# ==================== Configuration ====================

@router.get("", summary="List SSO configurations", response_model=ListResponse)
async def get_configurations(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    configs = await sso_crud.get_multi(db, tenant_id=admin.tenant_id)
    return success_response(data=[serialize(c) for c in configs])


@router.post("", summary="Create an SSO configuration", status_code=201,
             response_model=ResponseModel[SsoConfigurationResponse])
async def create_configuration(
    data: SsoConfigurationCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if await sso_crud.get_by_provider(db, admin.tenant_id, data.provider):
        raise ConflictException(f"Provider '{data.provider}' is already configured")
    config = await sso_service.create(db, admin.tenant_id, data)
    return success_response(data=serialize(config), message="SSO configuration created", code=201)


@router.get("/{config_id}", summary="SSO configuration details", response_model=ResponseModel[SsoConfigurationResponse])
async def get_configuration(
    config_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=serialize(await get_config_or_404(db, config_id, admin.tenant_id)))


@router.patch("/{config_id}", summary="Update an SSO configuration",
              response_model=ResponseModel[SsoConfigurationResponse])
async def update_configuration(
    config_id: str,
    data: SsoConfigurationUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    config = await get_config_or_404(db, config_id, admin.tenant_id)
    updates = data.model_dump(exclude_unset=True)
    if data.settings is not None:
        # partial settings merge into the stored ones
        updates["settings"] = {**(config.settings or {}), **data.settings}
    config = await sso_crud.update(db, db_obj=config, obj_in=updates)
    return success_response(data=serialize(config), message="SSO configuration updated")


@router.delete("/{config_id}", summary="Delete an SSO configuration", response_model=MessageResponse)
async def delete_configuration(
    config_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    config = await get_config_or_404(db, config_id, admin.tenant_id)
    await sso_crud.delete(db, id=config.id)
    return success_response(message="SSO configuration deleted")


@router.post("/{config_id}/test", summary="Check an SSO configuration", response_model=DictResponse)
async def test_configuration(
    config_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    config = await get_config_or_404(db, config_id, admin.tenant_id)
    return success_response(data=sso_service.test_configuration(config))


# ==================== Sign-in ====================

@router.get("/{provider}/login", summary="Identity provider login url", response_model=DictResponse)
async def get_login_url(
    provider: str,
    redirect_uri: Optional[str] = Query(None, max_length=1000),
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    config = await get_provider_or_404(db, tenant, provider)
    return success_response(data=sso_service.get_login_url(config, redirect_uri))


@router.post("/{provider}/callback", summary="Complete SSO sign-in", response_model=ResponseModel[TokenResponse])
async def handle_callback(
    provider: str,
    data: SsoCallback,
    request: Request,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    config = await get_provider_or_404(db, tenant, provider)
    user, token, plain, created = await sso_service.handle_callback(
        db,
        config,
        data.code,
        data.state,
        data.redirect_uri,
        ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    if created:
        await circle_service.ensure_auto_circles(db, user)
        await queue.dispatch(
            tasks.deliver_webhook_event,
            tenant.id,
            "user.created",
            {"user_id": user.id, "email": user.email, "sso_provider": provider},
        )
    await db.refresh(user)
    payload = TokenResponse(token=plain, expires_at=token.expires_at, user=UserResponse.model_validate(user))
    return success_response(
        data=payload.model_dump(),
        message="Account created" if created else "Signed in",
    )
