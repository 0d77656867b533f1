"""
Tenant API
"""
from fastapi import APIRouter, Depends
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import require_admin
from alumni.core.database import get_db
from alumni.core.exceptions import ConflictException
from alumni.core.response import success_response, ResponseModel
from alumni.core.tenancy import get_current_tenant
from alumni.crud import tenant_crud
from alumni.models.tenant import Tenant, TenantCreate, TenantUpdate, TenantResponse
from alumni.models.user import User

router = APIRouter()


@router.post("", summary="Create a tenant", status_code=201, response_model=ResponseModel[TenantResponse])
async def create_tenant(
    data: TenantCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Open endpoint: an institution signs up, then its first registered
    user becomes the tenant admin
    """
    if await tenant_crud.get_by_slug(db, data.slug):
        raise ConflictException(f"Tenant '{data.slug}' already exists")
    tenant = await tenant_crud.create(db, obj_in=data)
    logger.info("Tenant {} created", tenant.slug)
    return success_response(
        data=TenantResponse.model_validate(tenant).model_dump(),
        message="Tenant created",
        code=201,
    )


@router.get("/current", summary="Resolved tenant", response_model=ResponseModel[TenantResponse])
async def get_tenant(tenant: Tenant = Depends(get_current_tenant)):
    return success_response(data=TenantResponse.model_validate(tenant).model_dump())


@router.patch("/current", summary="Update the current tenant", response_model=ResponseModel[TenantResponse])
async def update_tenant(
    data: TenantUpdate,
    admin: User = Depends(require_admin),
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    tenant = await tenant_crud.update(db, db_obj=tenant, obj_in=data)
    return success_response(
        data=TenantResponse.model_validate(tenant).model_dump(),
        message="Tenant updated",
    )
