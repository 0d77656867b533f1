"""
Post API: posts, drafts, scheduling and engagement
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_current_user
from alumni.core.database import get_db
from alumni.core.queue import get_queue
from alumni.core.response import (
    success_response,
    paged_response,
    ResponseModel,
    PagedResponseModel,
    MessageResponse,
    DictResponse,
)
from alumni.crud import post_crud
from alumni.models.post import (
    Post,
    PostStatus,
    PostCreate,
    DraftCreate,
    PostUpdate,
    EngagementCreate,
    EngagementDelete,
    PostResponse,
    EngagementResponse,
)
from alumni.models.user import User
from alumni.services.posts import post_service
from alumni.services.timeline import serialize_posts

router = APIRouter()


async def serialize(db: AsyncSession, post: Post) -> dict:
    return (await serialize_posts(db, [post]))[0]


async def list_by_status(db: AsyncSession, user: User, status: str, page: int, page_size: int) -> dict:
    skip = (page - 1) * page_size
    posts = await post_crud.by_status(db, user.id, status, skip=skip, limit=page_size)
    total = await post_crud.count(
        db,
        filters=[Post.user_id == user.id, Post.status == status, Post.deleted_at.is_(None)],
    )
    return paged_response(await serialize_posts(db, posts), total, page, page_size)


@router.post("", summary="Create a post", status_code=201, response_model=ResponseModel[PostResponse])
async def create_post(
    data: PostCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    """
    Circle and group ids must be ones the author belongs to. A scheduled
    post needs a future scheduled_at.
    """
    post = await post_service.create(db, user, data, queue)
    return success_response(data=await serialize(db, post), message="Post created", code=201)


@router.get("/drafts", summary="My drafts", response_model=PagedResponseModel[PostResponse])
async def get_drafts(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await list_by_status(db, user, PostStatus.DRAFT.value, page, page_size)


@router.post("/drafts", summary="Save a draft", status_code=201, response_model=ResponseModel[PostResponse])
async def save_draft(
    data: DraftCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    data.status = PostStatus.DRAFT.value
    post = await post_service.create(db, user, data, queue)
    return success_response(data=await serialize(db, post), message="Draft saved", code=201)


@router.get("/scheduled", summary="My scheduled posts", response_model=PagedResponseModel[PostResponse])
async def get_scheduled(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await list_by_status(db, user, PostStatus.SCHEDULED.value, page, page_size)


@router.get("/{post_id}", summary="Post details", response_model=ResponseModel[PostResponse])
async def get_post(
    post_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    post = await post_service.get_visible(db, post_id, user)
    return success_response(data=await serialize(db, post))


@router.patch("/{post_id}", summary="Update a post", response_model=ResponseModel[PostResponse])
async def update_post(
    post_id: str,
    data: PostUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    post = await post_service.get_owned(db, post_id, user)
    post = await post_service.update(db, post, user, data)
    return success_response(data=await serialize(db, post), message="Post updated")


@router.delete("/{post_id}", summary="Delete a post", response_model=MessageResponse)
async def delete_post(
    post_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    post = await post_service.get_owned(db, post_id, user)
    await post_service.delete(db, post, queue)
    return success_response(message="Post deleted")


@router.post("/{post_id}/publish", summary="Publish a draft or scheduled post",
             response_model=ResponseModel[PostResponse])
async def publish_post(
    post_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    post = await post_service.get_owned(db, post_id, user)
    post = await post_service.publish(db, post, queue)
    return success_response(data=await serialize(db, post), message="Post published")


@router.post("/{post_id}/engage", summary="Like, comment, share, bookmark or react",
             status_code=201, response_model=ResponseModel[EngagementResponse])
async def engage(
    post_id: str,
    data: EngagementCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    post = await post_service.get_visible(db, post_id, user)
    engagement = await post_service.engage(db, post, user, data, queue)
    return success_response(
        data=EngagementResponse.model_validate(engagement).model_dump(),
        message="Engagement recorded",
        code=201,
    )


@router.delete("/{post_id}/engage", summary="Remove an engagement", response_model=MessageResponse)
async def disengage(
    post_id: str,
    data: EngagementDelete,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    post = await post_service.get_visible(db, post_id, user)
    await post_service.disengage(db, post, user, data.type)
    return success_response(message="Engagement removed")


@router.get("/{post_id}/engagements", summary="Engagement counts by type", response_model=DictResponse)
async def get_engagements(
    post_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    post = await post_service.get_visible(db, post_id, user)
    return success_response(data=await post_service.engagement_summary(db, post, user))
