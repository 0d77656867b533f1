"""
Event, registration and check-in CRUD
"""
from typing import Optional, List, Dict
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.models.event import Event, EventRegistration, EventCheckIn, RegistrationStatus, SEATED_STATUSES
from .base import CRUDBase


class CRUDEvent(CRUDBase[Event]):

    async def seats_taken(self, db: AsyncSession, event_id: str) -> int:
        """Attendees plus their guests in seat-holding registrations"""
        result = await db.execute(
            select(func.count(), func.coalesce(func.sum(EventRegistration.guests_count), 0)).where(
                EventRegistration.event_id == event_id,
                EventRegistration.status.in_(SEATED_STATUSES),
            )
        )
        count, guests = result.one()
        return (count or 0) + (guests or 0)

    async def status_counts(self, db: AsyncSession, event_id: str) -> Dict[str, int]:
        result = await db.execute(
            select(EventRegistration.status, func.count())
            .where(EventRegistration.event_id == event_id)
            .group_by(EventRegistration.status)
        )
        return dict(result.all())


class CRUDRegistration(CRUDBase[EventRegistration]):

    async def get_for(self, db: AsyncSession, event_id: str, user_id: str) -> Optional[EventRegistration]:
        result = await db.execute(
            select(self.model).where(self.model.event_id == event_id, self.model.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def oldest_waitlisted(self, db: AsyncSession, event_id: str) -> Optional[EventRegistration]:
        result = await db.execute(
            select(self.model)
            .where(
                self.model.event_id == event_id,
                self.model.status == RegistrationStatus.WAITLISTED.value,
            )
            .order_by(self.model.registered_at.asc(), self.model.created_at.asc())
        )
        return result.scalars().first()

    async def registered_event_ids(self, db: AsyncSession, user_id: str) -> List[str]:
        result = await db.execute(
            select(self.model.event_id).where(
                self.model.user_id == user_id,
                self.model.status != RegistrationStatus.CANCELLED.value,
            )
        )
        return list(result.scalars().all())


class CRUDCheckIn(CRUDBase[EventCheckIn]):

    async def get_for(self, db: AsyncSession, event_id: str, user_id: str) -> Optional[EventCheckIn]:
        result = await db.execute(
            select(self.model).where(self.model.event_id == event_id, self.model.user_id == user_id)
        )
        return result.scalar_one_or_none()


event_crud = CRUDEvent(Event)
registration_crud = CRUDRegistration(EventRegistration)
check_in_crud = CRUDCheckIn(EventCheckIn)
