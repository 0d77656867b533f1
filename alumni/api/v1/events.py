"""
Event API: events, registration, check-in, analytics, virtual meetings
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_current_user
from alumni.core.database import get_db
from alumni.core.exceptions import UnprocessableException
from alumni.core.queue import get_queue
from alumni.core.response import (
    success_response,
    paged_response,
    ResponseModel,
    PagedResponseModel,
    DictResponse,
    ListResponse,
)
from alumni.models.event import (
    EventFormat,
    EventType,
    RegistrationStatus,
    EventCreate,
    EventUpdate,
    RegistrationCreate,
    CheckInCreate,
    EventResponse,
    RegistrationResponse,
)
from alumni.models.user import User, UserBrief
from alumni.services.events import DATE_RANGES, EventFilters, event_service

router = APIRouter()


def serialize(event) -> dict:
    return EventResponse.model_validate(event).model_dump()


@router.get("", summary="List events", response_model=PagedResponseModel[EventResponse])
async def get_events(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    type: Optional[EventType] = None,
    format: Optional[EventFormat] = None,
    date_range: Optional[str] = Query(None, description=", ".join(DATE_RANGES)),
    search: Optional[str] = Query(None, max_length=100),
    include_past: bool = False,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if date_range and date_range not in DATE_RANGES:
        raise UnprocessableException(errors={"date_range": [f"date_range must be one of {', '.join(DATE_RANGES)}"]})
    filters = EventFilters(
        type=type.value if type else None,
        format=format.value if format else None,
        date_range=date_range,
        search=search,
        include_past=include_past,
    )
    skip = (page - 1) * page_size
    events, total = await event_service.list_events(db, user, filters, skip=skip, limit=page_size)
    return paged_response([serialize(e) for e in events], total, page, page_size)


@router.post("", summary="Create an event", status_code=201, response_model=ResponseModel[EventResponse])
async def create_event(
    data: EventCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    """
    Virtual and hybrid events on the jitsi platform get a generated room
    """
    event = await event_service.create(db, user, data, queue)
    return success_response(data=serialize(event), message="Event created", code=201)


@router.get("/upcoming", summary="Upcoming events I registered for", response_model=ListResponse)
async def get_upcoming(
    limit: int = Query(10, ge=1, le=50),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    events = await event_service.upcoming(db, user, limit)
    return success_response(data=[serialize(e) for e in events])


@router.get("/recommended", summary="Events picked for me", response_model=ListResponse)
async def get_recommended(
    limit: int = Query(10, ge=1, le=50),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    events = await event_service.recommended(db, user, limit)
    return success_response(data=[serialize(e) for e in events])


@router.get("/{event_id}", summary="Event details", response_model=ResponseModel[EventResponse])
async def get_event(
    event_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    event = await event_service.get_event(db, event_id, user)
    return success_response(data=serialize(event))


@router.patch("/{event_id}", summary="Update an event", response_model=ResponseModel[EventResponse])
async def update_event(
    event_id: str,
    data: EventUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    event = event_service.get_managed(await event_service.get_event(db, event_id, user), user)
    event = await event_service.update(db, event, data)
    return success_response(data=serialize(event), message="Event updated")


@router.post("/{event_id}/register", summary="Register for an event", status_code=201,
             response_model=ResponseModel[RegistrationResponse])
async def register(
    event_id: str,
    data: RegistrationCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    """
    Full events put new registrations on the waitlist; guests count toward capacity
    """
    event = await event_service.get_event(db, event_id, user)
    registration = await event_service.register(db, event, user, data, queue)
    message = "Added to the waitlist" if registration.status == RegistrationStatus.WAITLISTED.value else "Registered"
    return success_response(
        data=RegistrationResponse.model_validate(registration).model_dump(),
        message=message,
        code=201,
    )


@router.post("/{event_id}/cancel", summary="Cancel my registration", response_model=ResponseModel[RegistrationResponse])
async def cancel_registration(
    event_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    event = await event_service.get_event(db, event_id, user)
    registration = await event_service.cancel(db, event, user, queue)
    return success_response(
        data=RegistrationResponse.model_validate(registration).model_dump(),
        message="Registration cancelled",
    )


@router.post("/{event_id}/registrations/{registration_id}/approve", summary="Approve a pending registration",
             response_model=ResponseModel[RegistrationResponse])
async def approve_registration(
    event_id: str,
    registration_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    event = event_service.get_managed(await event_service.get_event(db, event_id, user), user)
    registration = await event_service.approve(db, event, registration_id)
    return success_response(
        data=RegistrationResponse.model_validate(registration).model_dump(),
        message="Registration approved",
    )


@router.post("/{event_id}/check-in", summary="Check in an attendee", status_code=201, response_model=DictResponse)
async def check_in(
    event_id: str,
    data: CheckInCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    """
    Attendees check themselves in; organizers may check in anyone
    """
    event = await event_service.get_event(db, event_id, user)
    target = data.user_id or user.id
    if target != user.id:
        event_service.get_managed(event, user)
    record = await event_service.check_in(db, event, target, data.method, queue)
    return success_response(
        data={
            "id": record.id,
            "event_id": record.event_id,
            "user_id": record.user_id,
            "method": record.method,
            "checked_in_at": record.checked_in_at,
        },
        message="Checked in",
        code=201,
    )


@router.get("/{event_id}/attendees", summary="Event attendees", response_model=ListResponse)
async def get_attendees(
    event_id: str,
    status: Optional[RegistrationStatus] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    event = event_service.get_managed(await event_service.get_event(db, event_id, user), user)
    rows = await event_service.attendees(db, event, status.value if status else None)
    items = []
    for registration, attendee in rows:
        item = RegistrationResponse.model_validate(registration)
        item.attendee = UserBrief.model_validate(attendee)
        items.append(item.model_dump())
    return success_response(data=items)


@router.get("/{event_id}/analytics", summary="Registration analytics", response_model=DictResponse)
async def get_analytics(
    event_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    event = event_service.get_managed(await event_service.get_event(db, event_id, user), user)
    return success_response(data=await event_service.analytics(db, event))


@router.get("/{event_id}/meeting", summary="Virtual meeting credentials", response_model=DictResponse)
async def get_meeting(
    event_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    event = await event_service.get_event(db, event_id, user)
    return success_response(data=await event_service.meeting(db, event, user))
