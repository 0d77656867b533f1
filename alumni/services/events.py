"""
Event service

Listing with filters, registration against capacity (guests take seats too),
waitlist promotion on cancel, check-in, per-event analytics and virtual
meeting setup.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.exceptions import (
    ConflictException,
    NotFoundException,
    PermissionDeniedException,
    UnprocessableException,
)
from alumni.crud import check_in_crud, connection_crud, event_crud, registration_crud
from alumni.models.base import utcnow
from alumni.models.event import (
    Event,
    EventCheckIn,
    EventCreate,
    EventRegistration,
    EventStatus,
    EventUpdate,
    RegistrationCreate,
    RegistrationStatus,
)
from alumni.models.user import User
from alumni.services import tasks
from alumni.services.jitsi import jitsi_service

DATE_RANGES = ("today", "tomorrow", "this_week", "next_week", "this_month", "next_month")


@dataclass
class EventFilters:
    type: Optional[str] = None
    format: Optional[str] = None
    date_range: Optional[str] = None
    search: Optional[str] = None
    include_past: bool = False


def date_range_bounds(name: str, now: datetime) -> Tuple[datetime, datetime]:
    """[start, end) for a named range, weeks starting on Monday"""
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if name == "today":
        return today, today + timedelta(days=1)
    if name == "tomorrow":
        return today + timedelta(days=1), today + timedelta(days=2)
    week_start = today - timedelta(days=today.weekday())
    if name == "this_week":
        return week_start, week_start + timedelta(days=7)
    if name == "next_week":
        return week_start + timedelta(days=7), week_start + timedelta(days=14)
    month_start = today.replace(day=1)
    next_month = (month_start + timedelta(days=32)).replace(day=1)
    if name == "this_month":
        return month_start, next_month
    if name == "next_month":
        return next_month, (next_month + timedelta(days=32)).replace(day=1)
    raise ValueError(f"Unknown date range: {name}")


class EventService:

    async def get_event(self, db: AsyncSession, event_id: str, user: User) -> Event:
        event = await event_crud.get(db, event_id, tenant_id=user.tenant_id)
        if event is None:
            raise NotFoundException("Event not found")
        if event.status == EventStatus.DRAFT.value and event.organizer_id != user.id and not user.is_admin:
            raise NotFoundException("Event not found")
        return event

    def can_manage(self, event: Event, user: User) -> bool:
        return event.organizer_id == user.id or user.is_admin

    def get_managed(self, event: Event, user: User) -> Event:
        if not self.can_manage(event, user):
            raise PermissionDeniedException("Only the organizer can manage this event")
        return event

    # ==================== Listing ====================

    def build_query(self, user: User, filters: EventFilters):
        query = select(Event).where(
            Event.tenant_id == user.tenant_id,
            or_(Event.status == EventStatus.PUBLISHED.value, Event.organizer_id == user.id),
        )
        if filters.type:
            query = query.where(Event.type == filters.type)
        if filters.format:
            query = query.where(Event.format == filters.format)
        if filters.date_range:
            start, end = date_range_bounds(filters.date_range, utcnow())
            query = query.where(Event.start_date >= start, Event.start_date < end)
        elif not filters.include_past:
            query = query.where(Event.end_date >= utcnow())
        if filters.search:
            term = f"%{filters.search.strip()}%"
            query = query.where(
                or_(Event.title.ilike(term), Event.description.ilike(term), Event.venue_name.ilike(term))
            )
        return query

    async def list_events(
        self, db: AsyncSession, user: User, filters: EventFilters, *, skip: int = 0, limit: int = 20
    ) -> Tuple[List[Event], int]:
        query = self.build_query(user, filters)
        total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
        result = await db.execute(query.order_by(Event.start_date.asc()).offset(skip).limit(limit))
        return list(result.scalars().all()), total

    async def upcoming(self, db: AsyncSession, user: User, limit: int = 10) -> List[Event]:
        """Future events the user is registered or waitlisted for"""
        result = await db.execute(
            select(Event)
            .join(EventRegistration, EventRegistration.event_id == Event.id)
            .where(
                EventRegistration.user_id == user.id,
                EventRegistration.status.in_((
                    RegistrationStatus.REGISTERED.value,
                    RegistrationStatus.PENDING.value,
                    RegistrationStatus.WAITLISTED.value,
                )),
                Event.start_date > utcnow(),
                Event.status == EventStatus.PUBLISHED.value,
            )
            .order_by(Event.start_date.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def recommended(self, db: AsyncSession, user: User, limit: int = 10) -> List[Event]:
        """Upcoming events near the user or organized by their connections"""
        registered = await registration_crud.registered_event_ids(db, user.id)
        network = await connection_crud.connected_ids(db, user.id)

        conditions = []
        if user.location:
            conditions.append(Event.venue_address.ilike(f"%{user.location}%"))
        if network:
            conditions.append(Event.organizer_id.in_(network))
        if not conditions:
            return []

        query = select(Event).where(
            Event.tenant_id == user.tenant_id,
            Event.status == EventStatus.PUBLISHED.value,
            Event.start_date > utcnow(),
            Event.organizer_id != user.id,
            or_(*conditions),
        )
        if registered:
            query = query.where(Event.id.not_in(registered))
        result = await db.execute(query.order_by(Event.start_date.asc()).limit(limit))
        return list(result.scalars().all())

    # ==================== Create / update ====================

    def setup_virtual_meeting(self, event: Event, platform: Optional[str], url: Optional[str] = None,
                              password: Optional[str] = None, instructions: Optional[str] = None) -> None:
        platform = platform or "jitsi"
        event.meeting_platform = platform
        if platform == "jitsi":
            meeting = jitsi_service.create_meeting(event.id, event.title)
            event.jitsi_room_id = meeting["room_id"]
            event.meeting_url = meeting["meeting_url"]
            event.jitsi_config = meeting["config"]
            event.meeting_embed_allowed = True
        else:
            if not url or not jitsi_service.validate_meeting_url(url)["valid"]:
                raise UnprocessableException(errors={"meeting_url": ["A valid meeting URL is required"]})
            event.meeting_url = url
            event.meeting_embed_allowed = False
        event.meeting_password = password
        event.meeting_instructions = instructions

    async def create(self, db: AsyncSession, user: User, data: EventCreate, queue) -> Event:
        values = data.model_dump(
            exclude={"meeting_platform", "meeting_url", "meeting_password", "meeting_instructions"}
        )
        values.update(tenant_id=user.tenant_id, organizer_id=user.id)
        event = Event(**values)

        if event.is_virtual:
            self.setup_virtual_meeting(
                event, data.meeting_platform, data.meeting_url, data.meeting_password, data.meeting_instructions
            )
        db.add(event)
        await db.flush()
        await db.refresh(event)
        logger.info("Event {} created by {}", event.id, user.id)

        if event.status == EventStatus.PUBLISHED.value:
            await queue.dispatch(
                tasks.deliver_webhook_event,
                event.tenant_id,
                "event.created",
                {"event_id": event.id, "title": event.title, "start_date": event.start_date.isoformat()},
            )
        return event

    async def update(self, db: AsyncSession, event: Event, data: EventUpdate) -> Event:
        if data.max_capacity is not None and data.max_capacity < await event_crud.seats_taken(db, event.id):
            raise UnprocessableException(errors={"max_capacity": ["Capacity is below current registrations"]})
        event = await event_crud.update(db, db_obj=event, obj_in=data)
        await self._promote_waitlist(db, event)
        return event

    # ==================== Registration ====================

    async def available_spots(self, db: AsyncSession, event: Event) -> Optional[int]:
        if event.max_capacity is None:
            return None
        return event.max_capacity - await event_crud.seats_taken(db, event.id)

    async def _sync_attendees(self, db: AsyncSession, event: Event) -> None:
        event.current_attendees = await event_crud.seats_taken(db, event.id)
        await db.flush()

    async def register(
        self, db: AsyncSession, event: Event, user: User, data: RegistrationCreate, queue
    ) -> EventRegistration:
        if event.status != EventStatus.PUBLISHED.value:
            raise UnprocessableException(errors={"event": ["Event is not open for registration"]})
        if event.registration_deadline and event.registration_deadline < utcnow():
            raise UnprocessableException(errors={"event": ["Registration deadline has passed"]})
        if data.guests_count:
            if not event.allow_guests:
                raise UnprocessableException(errors={"guests_count": ["This event does not allow guests"]})
            if data.guests_count > event.max_guests_per_attendee:
                raise UnprocessableException(errors={
                    "guests_count": [f"At most {event.max_guests_per_attendee} guests per attendee"]
                })

        registration = await registration_crud.get_for(db, event.id, user.id)
        if registration is not None and registration.status != RegistrationStatus.CANCELLED.value:
            raise ConflictException("You are already registered for this event")

        spots = await self.available_spots(db, event)
        if spots is not None and spots < 1 + data.guests_count:
            status = RegistrationStatus.WAITLISTED.value
        elif event.requires_approval:
            status = RegistrationStatus.PENDING.value
        else:
            status = RegistrationStatus.REGISTERED.value

        # a cancelled registration is reused; (event, user) is unique
        if registration is None:
            registration = EventRegistration(event_id=event.id, user_id=user.id)
            db.add(registration)
        registration.status = status
        registration.guests_count = data.guests_count
        registration.notes = data.notes
        registration.registered_at = utcnow()
        registration.cancelled_at = None
        await db.flush()
        await self._sync_attendees(db, event)
        await db.refresh(registration)
        logger.info("User {} {} for event {}", user.id, status, event.id)

        await queue.dispatch(
            tasks.deliver_webhook_event,
            event.tenant_id,
            "event.registered",
            {"event_id": event.id, "user_id": user.id, "status": status},
        )
        return registration

    async def _promote_waitlist(self, db: AsyncSession, event: Event) -> Optional[EventRegistration]:
        waiting = await registration_crud.oldest_waitlisted(db, event.id)
        if waiting is None:
            return None
        spots = await self.available_spots(db, event)
        if spots is not None and spots < 1 + waiting.guests_count:
            return None
        waiting.status = (
            RegistrationStatus.PENDING.value if event.requires_approval else RegistrationStatus.REGISTERED.value
        )
        await db.flush()
        await self._sync_attendees(db, event)
        logger.info("Promoted registration {} from waitlist for event {}", waiting.id, event.id)
        return waiting

    async def cancel(self, db: AsyncSession, event: Event, user: User, queue) -> EventRegistration:
        registration = await registration_crud.get_for(db, event.id, user.id)
        if registration is None or registration.status == RegistrationStatus.CANCELLED.value:
            raise NotFoundException("Registration not found")
        if registration.status == RegistrationStatus.ATTENDED.value:
            raise UnprocessableException(errors={"registration": ["Attended registrations cannot be cancelled"]})

        registration.status = RegistrationStatus.CANCELLED.value
        registration.cancelled_at = utcnow()
        await db.flush()
        await self._sync_attendees(db, event)
        await self._promote_waitlist(db, event)

        await queue.dispatch(
            tasks.deliver_webhook_event,
            event.tenant_id,
            "event.cancelled",
            {"event_id": event.id, "user_id": user.id},
        )
        await db.refresh(registration)
        return registration

    async def approve(self, db: AsyncSession, event: Event, registration_id: str) -> EventRegistration:
        registration = await registration_crud.get(db, registration_id)
        if registration is None or registration.event_id != event.id:
            raise NotFoundException("Registration not found")
        if registration.status != RegistrationStatus.PENDING.value:
            raise UnprocessableException(errors={"registration": ["Only pending registrations can be approved"]})
        registration.status = RegistrationStatus.REGISTERED.value
        await db.flush()
        await db.refresh(registration)
        return registration

    async def check_in(self, db: AsyncSession, event: Event, user_id: str, method: str, queue) -> EventCheckIn:
        registration = await registration_crud.get_for(db, event.id, user_id)
        if registration is None or registration.status not in (
            RegistrationStatus.REGISTERED.value, RegistrationStatus.ATTENDED.value
        ):
            raise UnprocessableException(errors={"user_id": ["User is not registered for this event"]})
        if await check_in_crud.get_for(db, event.id, user_id):
            raise ConflictException("User is already checked in")

        check_in = EventCheckIn(event_id=event.id, user_id=user_id, registration_id=registration.id, method=method)
        db.add(check_in)
        registration.status = RegistrationStatus.ATTENDED.value
        await db.flush()
        await db.refresh(check_in)

        await queue.dispatch(
            tasks.deliver_webhook_event,
            event.tenant_id,
            "event.checked_in",
            {"event_id": event.id, "user_id": user_id, "method": method},
        )
        return check_in

    async def attendees(self, db: AsyncSession, event: Event, status: Optional[str] = None) -> List[Tuple[EventRegistration, User]]:
        query = (
            select(EventRegistration, User)
            .join(User, User.id == EventRegistration.user_id)
            .where(EventRegistration.event_id == event.id)
        )
        if status:
            query = query.where(EventRegistration.status == status)
        result = await db.execute(query.order_by(EventRegistration.registered_at.asc()))
        return list(result.all())

    # ==================== Analytics ====================

    async def analytics(self, db: AsyncSession, event: Event) -> Dict[str, Any]:
        counts = await event_crud.status_counts(db, event.id)
        guests = (await db.execute(
            select(func.coalesce(func.sum(EventRegistration.guests_count), 0)).where(
                EventRegistration.event_id == event.id,
                EventRegistration.status != RegistrationStatus.CANCELLED.value,
            )
        )).scalar() or 0
        check_ins = await check_in_crud.count(db, filters=[EventCheckIn.event_id == event.id])

        registered = counts.get(RegistrationStatus.REGISTERED.value, 0) + counts.get(RegistrationStatus.ATTENDED.value, 0)
        timeline = await db.execute(
            select(func.date(EventRegistration.registered_at), func.count())
            .where(EventRegistration.event_id == event.id)
            .group_by(func.date(EventRegistration.registered_at))
            .order_by(func.date(EventRegistration.registered_at))
        )
        return {
            "event_id": event.id,
            "total_registrations": sum(counts.values()),
            "by_status": {status.value: counts.get(status.value, 0) for status in RegistrationStatus},
            "total_guests": guests,
            "check_ins": check_ins,
            "check_in_rate": round(check_ins / registered * 100, 2) if registered else 0,
            "capacity_utilization": (
                round(event.current_attendees / event.max_capacity * 100, 2) if event.max_capacity else None
            ),
            "registration_timeline": [{"date": str(day), "count": count} for day, count in timeline.all()],
        }

    # ==================== Virtual meeting ====================

    async def meeting(self, db: AsyncSession, event: Event, user: User) -> Dict[str, Any]:
        if not event.is_virtual or not event.meeting_url:
            raise UnprocessableException(errors={"event": ["This event has no virtual meeting"]})
        if not self.can_manage(event, user):
            registration = await registration_crud.get_for(db, event.id, user.id)
            if registration is None or registration.status not in (
                RegistrationStatus.REGISTERED.value, RegistrationStatus.ATTENDED.value
            ):
                raise PermissionDeniedException("Only registered attendees can join this meeting")
        return jitsi_service.meeting_credentials(event, user)


event_service = EventService()
