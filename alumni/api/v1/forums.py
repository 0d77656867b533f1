"""
Discussion forum API: forums, topics, replies, subscriptions
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_current_user, require_admin
from alumni.core.database import get_db
from alumni.core.exceptions import NotFoundException, PermissionDeniedException, UnprocessableException
from alumni.core.queue import get_queue
from alumni.core.response import (
    success_response,
    paged_response,
    ResponseModel,
    PagedResponseModel,
    MessageResponse,
    DictResponse,
    ListResponse,
)
from alumni.crud import forum_crud, group_crud, reply_crud, topic_crud, user_crud
from alumni.models.base import utcnow
from alumni.models.circle import MembershipStatus
from alumni.models.forum import (
    Forum,
    ForumTopic,
    ForumReply,
    ForumSubscription,
    ForumCreate,
    TopicCreate,
    TopicUpdate,
    ReplyCreate,
    ForumResponse,
    TopicResponse,
    ReplyResponse,
)
from alumni.models.user import User, UserBrief
from alumni.services import tasks

router = APIRouter()


async def get_forum_or_404(db: AsyncSession, forum_id: str, user: User) -> Forum:
    forum = await forum_crud.get(db, forum_id, tenant_id=user.tenant_id)
    if forum is None or not forum.is_active:
        raise NotFoundException(f"Forum not found: {forum_id}")
    if forum.group_id and not user.is_admin:
        membership = await group_crud.get_membership(db, forum.group_id, user.id)
        if membership is None or membership.status != MembershipStatus.ACTIVE.value:
            raise PermissionDeniedException("This forum belongs to a group you are not a member of")
    return forum


async def get_topic_or_404(db: AsyncSession, topic_id: str, user: User) -> ForumTopic:
    topic = await topic_crud.get(db, topic_id, tenant_id=user.tenant_id)
    if topic is None:
        raise NotFoundException(f"Topic not found: {topic_id}")
    await get_forum_or_404(db, topic.forum_id, user)
    return topic


async def serialize_topics(db: AsyncSession, topics, user: User) -> list:
    authors = await user_crud.get_many(db, {t.user_id for t in topics})
    items = []
    for topic in topics:
        item = TopicResponse.model_validate(topic)
        author = authors.get(topic.user_id)
        item.author = UserBrief.model_validate(author) if author else None
        item.is_subscribed = await topic_crud.get_subscription(db, topic.id, user.id) is not None
        items.append(item.model_dump())
    return items


# ==================== Forums ====================

@router.get("", summary="List forums", response_model=ListResponse)
async def get_forums(
    category: Optional[str] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    filters = [Forum.is_active.is_(True)]
    if category:
        filters.append(Forum.category == category)
    forums = await forum_crud.get_multi(db, tenant_id=user.tenant_id, filters=filters, order_by=Forum.name)
    group_ids = await group_crud.user_group_ids(db, user.id)
    visible = [f for f in forums if not f.group_id or f.group_id in group_ids or user.is_admin]
    return success_response(data=[ForumResponse.model_validate(f).model_dump() for f in visible])


@router.post("", summary="Create a forum", status_code=201, response_model=ResponseModel[ForumResponse])
async def create_forum(
    data: ForumCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if data.group_id and not await group_crud.get(db, data.group_id, tenant_id=admin.tenant_id):
        raise UnprocessableException(errors={"group_id": ["Unknown group"]})
    forum = await forum_crud.create(db, obj_in={**data.model_dump(), "tenant_id": admin.tenant_id})
    return success_response(data=ForumResponse.model_validate(forum).model_dump(), message="Forum created", code=201)


# ==================== Topics ====================

@router.get("/{forum_id}/topics", summary="Topics in a forum", response_model=PagedResponseModel[TopicResponse])
async def get_topics(
    forum_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Pinned topics first, then by latest activity
    """
    forum = await get_forum_or_404(db, forum_id, user)
    skip = (page - 1) * page_size
    filters = [ForumTopic.forum_id == forum.id]
    topics = await topic_crud.get_multi(
        db,
        filters=filters,
        skip=skip,
        limit=page_size,
        order_by=(ForumTopic.is_pinned.desc(), ForumTopic.last_activity_at.desc()),
    )
    total = await topic_crud.count(db, filters=filters)
    return paged_response(await serialize_topics(db, topics, user), total, page, page_size)


@router.post("/{forum_id}/topics", summary="Start a topic", status_code=201, response_model=ResponseModel[TopicResponse])
async def create_topic(
    forum_id: str,
    data: TopicCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    forum = await get_forum_or_404(db, forum_id, user)
    topic = await topic_crud.create(db, obj_in={
        **data.model_dump(),
        "tenant_id": user.tenant_id,
        "forum_id": forum.id,
        "user_id": user.id,
    })
    await topic_crud.subscribe(db, topic.id, user.id)
    forum.topics_count += 1
    await db.flush()

    await queue.dispatch(
        tasks.deliver_webhook_event,
        user.tenant_id,
        "forum.topic_created",
        {"forum_id": forum.id, "topic_id": topic.id, "title": topic.title, "user_id": user.id},
    )
    items = await serialize_topics(db, [topic], user)
    return success_response(data=items[0], message="Topic created", code=201)


@router.get("/topics/{topic_id}", summary="Topic with replies", response_model=DictResponse)
async def get_topic(
    topic_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    topic = await get_topic_or_404(db, topic_id, user)
    topic.views_count += 1
    await db.flush()

    skip = (page - 1) * page_size
    replies = await reply_crud.get_multi(
        db,
        filters=[ForumReply.topic_id == topic.id],
        skip=skip,
        limit=page_size,
        order_by=ForumReply.created_at,
    )
    authors = await user_crud.get_many(db, {r.user_id for r in replies})
    reply_items = []
    for reply in replies:
        item = ReplyResponse.model_validate(reply)
        author = authors.get(reply.user_id)
        item.author = UserBrief.model_validate(author) if author else None
        reply_items.append(item.model_dump())

    topic_item = (await serialize_topics(db, [topic], user))[0]
    return success_response(data={"topic": topic_item, "replies": reply_items})


@router.patch("/topics/{topic_id}", summary="Update a topic", response_model=ResponseModel[TopicResponse])
async def update_topic(
    topic_id: str,
    data: TopicUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Authors edit their own topics; pinning and locking is for administrators
    """
    topic = await get_topic_or_404(db, topic_id, user)
    if topic.user_id != user.id and not user.is_admin:
        raise PermissionDeniedException("Only the author can edit this topic")
    if (data.is_pinned is not None or data.is_locked is not None) and not user.is_admin:
        raise PermissionDeniedException("Only administrators can pin or lock topics")
    topic = await topic_crud.update(db, db_obj=topic, obj_in=data)
    items = await serialize_topics(db, [topic], user)
    return success_response(data=items[0], message="Topic updated")


@router.delete("/topics/{topic_id}", summary="Delete a topic", response_model=MessageResponse)
async def delete_topic(
    topic_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    topic = await get_topic_or_404(db, topic_id, user)
    if topic.user_id != user.id and not user.is_admin:
        raise PermissionDeniedException("Only the author can delete this topic")
    forum = await forum_crud.get(db, topic.forum_id)
    await db.execute(delete(ForumReply).where(ForumReply.topic_id == topic.id))
    await db.execute(delete(ForumSubscription).where(ForumSubscription.topic_id == topic.id))
    await topic_crud.delete(db, id=topic.id)
    forum.topics_count = max(0, forum.topics_count - 1)
    await db.flush()
    return success_response(message="Topic deleted")


@router.post("/topics/{topic_id}/subscribe", summary="Toggle my topic subscription", response_model=DictResponse)
async def toggle_subscription(
    topic_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    topic = await get_topic_or_404(db, topic_id, user)
    subscription = await topic_crud.get_subscription(db, topic.id, user.id)
    if subscription is None:
        await topic_crud.subscribe(db, topic.id, user.id)
        return success_response(data={"subscribed": True}, message="Subscribed")
    await db.delete(subscription)
    await db.flush()
    return success_response(data={"subscribed": False}, message="Unsubscribed")


# ==================== Replies ====================

@router.post("/topics/{topic_id}/replies", summary="Reply to a topic", status_code=201,
             response_model=ResponseModel[ReplyResponse])
async def create_reply(
    topic_id: str,
    data: ReplyCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    topic = await get_topic_or_404(db, topic_id, user)
    if topic.is_locked:
        raise PermissionDeniedException("This topic is locked")
    if data.parent_id:
        parent = await reply_crud.get(db, data.parent_id)
        if parent is None or parent.topic_id != topic.id:
            raise UnprocessableException(errors={"parent_id": ["Unknown reply"]})

    reply = await reply_crud.create(db, obj_in={**data.model_dump(), "topic_id": topic.id, "user_id": user.id})
    topic.replies_count += 1
    topic.last_activity_at = utcnow()
    await topic_crud.subscribe(db, topic.id, user.id)
    await db.flush()

    await queue.dispatch(
        tasks.deliver_webhook_event,
        user.tenant_id,
        "forum.reply_created",
        {"topic_id": topic.id, "reply_id": reply.id, "user_id": user.id},
    )
    item = ReplyResponse.model_validate(reply)
    item.author = UserBrief.model_validate(user)
    return success_response(data=item.model_dump(), message="Reply posted", code=201)
