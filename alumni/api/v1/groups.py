"""
Group API

Public groups are joined immediately, private groups need approval by a
group admin or moderator, secret groups are invitation only and hidden
from non-members.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from loguru import logger
from sqlalchemy import or_
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
from alumni.core.response import (
    success_response,
    paged_response,
    ResponseModel,
    PagedResponseModel,
    MessageResponse,
    DictResponse,
)
from alumni.crud import group_crud, user_crud
from alumni.models.circle import (
    Group,
    GroupMembership,
    GroupPrivacy,
    GroupRole,
    MembershipStatus,
    GroupCreate,
    GroupUpdate,
    GroupInvite,
    GroupResponse,
)
from alumni.models.user import User, UserBrief
from alumni.services import tasks
from alumni.services.timeline import timeline_service

router = APIRouter()

MANAGER_ROLES = (GroupRole.ADMIN.value, GroupRole.MODERATOR.value)


def serialize(group: Group, membership: Optional[GroupMembership]) -> dict:
    item = GroupResponse.model_validate(group)
    if membership is not None:
        item.membership_status = membership.status
        item.membership_role = membership.role
    return item.model_dump()


async def get_visible_group(db: AsyncSession, group_id: str, user: User):
    group = await group_crud.get(db, group_id, tenant_id=user.tenant_id)
    membership = await group_crud.get_membership(db, group_id, user.id) if group else None
    # secret groups do not exist for outsiders
    if group is None or (group.privacy == GroupPrivacy.SECRET.value and membership is None and not user.is_admin):
        raise NotFoundException(f"Group not found: {group_id}")
    return group, membership


async def require_manager(db: AsyncSession, group: Group, user: User) -> None:
    membership = await group_crud.get_membership(db, group.id, user.id)
    is_manager = (
        membership is not None
        and membership.status == MembershipStatus.ACTIVE.value
        and membership.role in MANAGER_ROLES
    )
    if not is_manager and not user.is_admin:
        raise PermissionDeniedException("Only group admins and moderators can do this")


@router.get("", summary="List groups", response_model=PagedResponseModel[GroupResponse])
async def get_groups(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    category: Optional[str] = None,
    mine: bool = Query(False, description="Only groups I belong to"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    skip = (page - 1) * page_size
    my_ids = await group_crud.user_group_ids(db, user.id)
    filters = [or_(Group.privacy != GroupPrivacy.SECRET.value, Group.id.in_(my_ids))]
    if mine:
        filters.append(Group.id.in_(my_ids))
    if category:
        filters.append(Group.category == category)

    groups = await group_crud.get_multi(db, tenant_id=user.tenant_id, filters=filters, skip=skip, limit=page_size)
    total = await group_crud.count(db, tenant_id=user.tenant_id, filters=filters)
    items = [serialize(g, await group_crud.get_membership(db, g.id, user.id)) for g in groups]
    return paged_response(items, total, page, page_size)


@router.post("", summary="Create a group", status_code=201, response_model=ResponseModel[GroupResponse])
async def create_group(
    data: GroupCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    The creator becomes the group admin
    """
    group = await group_crud.create(db, obj_in={
        **data.model_dump(),
        "tenant_id": user.tenant_id,
        "creator_id": user.id,
    })
    membership = await group_crud.add_member(db, group, user.id, role=GroupRole.ADMIN.value)
    logger.info("Group {} ({}) created by {}", group.id, group.privacy, user.id)
    return success_response(data=serialize(group, membership), message="Group created", code=201)


@router.get("/{group_id}", summary="Group details", response_model=ResponseModel[GroupResponse])
async def get_group(
    group_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    group, membership = await get_visible_group(db, group_id, user)
    return success_response(data=serialize(group, membership))


@router.patch("/{group_id}", summary="Update a group", response_model=ResponseModel[GroupResponse])
async def update_group(
    group_id: str,
    data: GroupUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    group, membership = await get_visible_group(db, group_id, user)
    await require_manager(db, group, user)
    group = await group_crud.update(db, db_obj=group, obj_in=data)
    return success_response(data=serialize(group, membership), message="Group updated")


@router.post("/{group_id}/join", summary="Join a group", response_model=ResponseModel[GroupResponse])
async def join_group(
    group_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    group = await group_crud.get(db, group_id, tenant_id=user.tenant_id)
    if group is None:
        raise NotFoundException(f"Group not found: {group_id}")
    membership = await group_crud.get_membership(db, group_id, user.id)

    if membership is not None and membership.status == MembershipStatus.INVITED.value:
        membership = await group_crud.activate(db, group, membership)
    elif membership is not None:
        raise ConflictException(
            "You are already a member of this group"
            if membership.status == MembershipStatus.ACTIVE.value
            else "Your membership request is pending"
        )
    elif group.privacy == GroupPrivacy.SECRET.value:
        raise PermissionDeniedException("This group is invitation only")
    elif group.privacy == GroupPrivacy.PRIVATE.value:
        membership = await group_crud.add_member(db, group, user.id, status=MembershipStatus.PENDING.value)
        return success_response(data=serialize(group, membership), message="Membership request sent")
    else:
        membership = await group_crud.add_member(db, group, user.id)

    timeline_service.invalidate_user(user.id)
    await queue.dispatch(
        tasks.deliver_webhook_event, user.tenant_id, "group.joined", {"group_id": group.id, "user_id": user.id}
    )
    return success_response(data=serialize(group, membership), message="Joined group")


@router.post("/{group_id}/leave", summary="Leave a group", response_model=MessageResponse)
async def leave_group(
    group_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    group, membership = await get_visible_group(db, group_id, user)
    if membership is None:
        raise NotFoundException("You are not a member of this group")
    if membership.role == GroupRole.ADMIN.value and membership.status == MembershipStatus.ACTIVE.value:
        members = await group_crud.members(db, group.id, limit=1000)
        if not any(m.role == GroupRole.ADMIN.value and u.id != user.id for u, m in members):
            raise UnprocessableException(errors={"group_id": ["The last admin cannot leave the group"]})
    await group_crud.remove_member(db, group, membership)
    timeline_service.invalidate_user(user.id)
    return success_response(message="Left group")


@router.get("/{group_id}/members", summary="Group members", response_model=PagedResponseModel[dict])
async def get_members(
    group_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: MembershipStatus = Query(MembershipStatus.ACTIVE),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    group, _ = await get_visible_group(db, group_id, user)
    if status != MembershipStatus.ACTIVE:
        await require_manager(db, group, user)
    skip = (page - 1) * page_size
    rows = await group_crud.members(db, group.id, status=status.value, skip=skip, limit=page_size)
    items = [
        {**UserBrief.model_validate(u).model_dump(), "role": m.role, "status": m.status, "joined_at": m.joined_at}
        for u, m in rows
    ]
    total = group.member_count if status == MembershipStatus.ACTIVE else len(items)
    return paged_response(items, total, page, page_size)


@router.post("/{group_id}/members/{user_id}/approve", summary="Approve a membership request",
             response_model=MessageResponse)
async def approve_member(
    group_id: str,
    user_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    group, _ = await get_visible_group(db, group_id, user)
    await require_manager(db, group, user)
    membership = await group_crud.get_membership(db, group.id, user_id)
    if membership is None or membership.status != MembershipStatus.PENDING.value:
        raise NotFoundException("No pending request for this user")
    await group_crud.activate(db, group, membership)
    timeline_service.invalidate_user(user_id)
    await queue.dispatch(
        tasks.deliver_webhook_event, user.tenant_id, "group.joined", {"group_id": group.id, "user_id": user_id}
    )
    return success_response(message="Membership approved")


@router.post("/{group_id}/invite", summary="Invite a user", response_model=MessageResponse)
async def invite_member(
    group_id: str,
    data: GroupInvite,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    group, _ = await get_visible_group(db, group_id, user)
    await require_manager(db, group, user)
    invitee = await user_crud.get(db, data.user_id, tenant_id=user.tenant_id)
    if invitee is None:
        raise NotFoundException(f"User not found: {data.user_id}")
    if await group_crud.get_membership(db, group.id, invitee.id):
        raise ConflictException("User is already a member or has a pending request")
    await group_crud.add_member(db, group, invitee.id, status=MembershipStatus.INVITED.value)
    return success_response(message="Invitation sent")


@router.get("/{group_id}/timeline", summary="Posts shared with a group", response_model=DictResponse)
async def get_group_timeline(
    group_id: str,
    limit: int = Query(20, ge=1, le=50),
    cursor: Optional[str] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await timeline_service.get_group_timeline(db, user, group_id, limit, cursor))
