"""
Connection API
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_current_user
from alumni.core.database import get_db
from alumni.core.exceptions import (
    ConflictException,
    NotFoundException,
    PermissionDeniedException,
    UnprocessableException,
)
from alumni.core.queue import get_queue
from alumni.core.response import success_response, paged_response, ResponseModel, PagedResponseModel, ListResponse
from alumni.crud import connection_crud, user_crud
from alumni.models.base import utcnow
from alumni.models.connection import Connection, ConnectionStatus, ConnectionRequest, ConnectionResponse
from alumni.models.user import User, UserBrief
from alumni.services import tasks
from alumni.services.recommendations import recommendation_service
from alumni.services.timeline import timeline_service

router = APIRouter()


async def serialize(db: AsyncSession, connection: Connection, viewer: User) -> dict:
    item = ConnectionResponse.model_validate(connection)
    other = await user_crud.get(db, connection.other_party(viewer.id))
    if other is not None:
        item.user = UserBrief.model_validate(other)
    return item.model_dump()


async def get_addressed(db: AsyncSession, connection_id: str, user: User) -> Connection:
    connection = await connection_crud.get(db, connection_id, tenant_id=user.tenant_id)
    if connection is None:
        raise NotFoundException(f"Connection not found: {connection_id}")
    if connection.addressee_id != user.id:
        raise PermissionDeniedException("Only the recipient can answer a connection request")
    if connection.status != ConnectionStatus.PENDING.value:
        raise UnprocessableException(errors={"status": [f"Connection is already {connection.status}"]})
    return connection


def forget_cached(*user_ids: str) -> None:
    for user_id in user_ids:
        recommendation_service.clear_cache(user_id)
        timeline_service.invalidate_user(user_id)


@router.get("", summary="My connections", response_model=PagedResponseModel[ConnectionResponse])
async def get_connections(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[ConnectionStatus] = Query(ConnectionStatus.ACCEPTED),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    skip = (page - 1) * page_size
    status_value = status.value if status else None
    connections = await connection_crud.list_for_user(db, user.id, status=status_value, skip=skip, limit=page_size)
    total = await connection_crud.count_for_user(db, user.id, status=status_value)
    items = [await serialize(db, c, user) for c in connections]
    return paged_response(items, total, page, page_size)


@router.get("/pending", summary="Requests waiting for my answer", response_model=ListResponse)
async def get_pending(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    connections = await connection_crud.pending_received(db, user.id)
    return success_response(data=[await serialize(db, c, user) for c in connections])


@router.post("", summary="Send a connection request", status_code=201,
             response_model=ResponseModel[ConnectionResponse])
async def request_connection(
    data: ConnectionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    if data.user_id == user.id:
        raise UnprocessableException(errors={"user_id": ["You cannot connect with yourself"]})
    addressee = await user_crud.get(db, data.user_id, tenant_id=user.tenant_id)
    if addressee is None or not addressee.is_active:
        raise NotFoundException(f"User not found: {data.user_id}")

    existing = await connection_crud.get_between(db, user.id, addressee.id)
    if existing is not None and existing.status != ConnectionStatus.DECLINED.value:
        raise ConflictException("A connection already exists between these users")
    if existing is not None:
        # a declined request may be sent again
        await db.delete(existing)
        await db.flush()

    connection = await connection_crud.create(db, obj_in={
        "tenant_id": user.tenant_id,
        "requester_id": user.id,
        "addressee_id": addressee.id,
        "message": data.message,
    })
    forget_cached(user.id, addressee.id)
    await queue.dispatch(
        tasks.deliver_webhook_event,
        user.tenant_id,
        "connection.requested",
        {"connection_id": connection.id, "requester_id": user.id, "addressee_id": addressee.id},
    )
    return success_response(data=await serialize(db, connection, user), message="Connection requested", code=201)


@router.post("/{connection_id}/accept", summary="Accept a connection request",
             response_model=ResponseModel[ConnectionResponse])
async def accept_connection(
    connection_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    connection = await get_addressed(db, connection_id, user)
    connection = await connection_crud.update(db, db_obj=connection, obj_in={
        "status": ConnectionStatus.ACCEPTED.value,
        "connected_at": utcnow(),
    })
    forget_cached(connection.requester_id, connection.addressee_id)
    await queue.dispatch(
        tasks.deliver_webhook_event,
        user.tenant_id,
        "connection.accepted",
        {"connection_id": connection.id, "requester_id": connection.requester_id, "addressee_id": user.id},
    )
    logger.info("Connection {} accepted", connection.id)
    return success_response(data=await serialize(db, connection, user), message="Connection accepted")


@router.post("/{connection_id}/decline", summary="Decline a connection request",
             response_model=ResponseModel[ConnectionResponse])
async def decline_connection(
    connection_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    connection = await get_addressed(db, connection_id, user)
    connection = await connection_crud.update(db, db_obj=connection, obj_in={"status": ConnectionStatus.DECLINED.value})
    forget_cached(connection.requester_id, connection.addressee_id)
    return success_response(data=await serialize(db, connection, user), message="Connection declined")
