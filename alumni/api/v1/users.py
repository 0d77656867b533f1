"""
User profile API
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_current_user, require_admin
from alumni.core.database import get_db
from alumni.core.exceptions import NotFoundException, UnprocessableException
from alumni.core.queue import get_queue
from alumni.core.response import success_response, ResponseModel
from alumni.crud import course_crud, user_crud
from alumni.models.user import User, UserProfileUpdate, RoleUpdate, UserResponse
from alumni.services import tasks
from alumni.services.circles import circle_service

router = APIRouter()


@router.patch("/me", summary="Update my profile", response_model=ResponseModel[UserResponse])
async def update_profile(
    data: UserProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    """
    Changing graduation year or location moves the user between the
    automatic circles
    """
    if data.course_id and not await course_crud.get(db, data.course_id, tenant_id=user.tenant_id):
        raise UnprocessableException(errors={"course_id": ["Unknown course"]})

    user = await user_crud.update(db, db_obj=user, obj_in=data)
    await circle_service.ensure_auto_circles(db, user)
    await queue.dispatch(
        tasks.deliver_webhook_event,
        user.tenant_id,
        "user.updated",
        {"user_id": user.id, "fields": sorted(data.model_dump(exclude_unset=True))},
    )
    return success_response(data=UserResponse.model_validate(user).model_dump(), message="Profile updated")


@router.patch("/{user_id}/role", summary="Change a user's role", response_model=ResponseModel[UserResponse])
async def update_role(
    user_id: str,
    data: RoleUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await user_crud.get(db, user_id, tenant_id=admin.tenant_id)
    if user is None:
        raise NotFoundException(f"User not found: {user_id}")
    user = await user_crud.update(db, db_obj=user, obj_in={"role": data.role})
    return success_response(data=UserResponse.model_validate(user).model_dump(), message="Role updated")
