"""
Federation API: status, manual federation, actor documents and inbox
"""
from typing import Any, Dict, Literal
from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_current_user, require_admin
from alumni.core.database import get_db
from alumni.core.exceptions import NotFoundException
from alumni.core.response import success_response, DictResponse
from alumni.core.tenancy import get_current_tenant
from alumni.crud import group_crud, user_crud
from alumni.models.tenant import Tenant
from alumni.models.user import User
from alumni.services.federation import federation_bridge
from alumni.services.posts import post_service

router = APIRouter()


@router.get("/status", summary="Federation status", response_model=DictResponse)
async def get_status(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await federation_bridge.get_status(db))


@router.post("/posts/{post_id}", summary="Federate one of my posts", response_model=DictResponse)
async def federate_post(
    post_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    post = await post_service.get_owned(db, post_id, user)
    return success_response(data=await federation_bridge.federate_post(db, post))


@router.post("/users/me", summary="Federate my profile", response_model=DictResponse)
async def federate_me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await federation_bridge.federate_user(db, user))


@router.post("/groups/{group_id}", summary="Federate a group", response_model=DictResponse)
async def federate_group(
    group_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    group = await group_crud.get(db, group_id, tenant_id=admin.tenant_id)
    if group is None:
        raise NotFoundException(f"Group not found: {group_id}")
    return success_response(data=await federation_bridge.federate_group(db, group))


@router.get("/actors/{user_id}", summary="ActivityPub actor document", response_model=DictResponse)
async def get_actor(
    user_id: str,
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db),
):
    user = await user_crud.get(db, user_id, tenant_id=tenant.id)
    if user is None or not user.is_active:
        raise NotFoundException(f"User not found: {user_id}")
    return success_response(data=federation_bridge.activitypub.user_to_actor(user))


@router.post("/inbox/{protocol}", summary="Receive a federated activity", response_model=DictResponse)
async def inbox(
    protocol: Literal["matrix", "activitypub"],
    payload: Dict[str, Any] = Body(...),
):
    return success_response(data=federation_bridge.handle_incoming_activity(protocol, payload))
