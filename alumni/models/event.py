"""
Event, registration and check-in models
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import field_validator, model_validator
from sqlmodel import SQLModel, Field, Column, JSON, UniqueConstraint

from .base import SQLModelBase, TimestampMixin, IDMixin, TenantMixin, TimestampResponse, to_naive_utc, utcnow
from .user import UserBrief


class EventType(str, Enum):
    NETWORKING = "networking"
    REUNION = "reunion"
    WEBINAR = "webinar"
    WORKSHOP = "workshop"
    SOCIAL = "social"
    CAREER_FAIR = "career_fair"
    CONFERENCE = "conference"


class EventFormat(str, Enum):
    IN_PERSON = "in_person"
    VIRTUAL = "virtual"
    HYBRID = "hybrid"


class EventVisibility(str, Enum):
    PUBLIC = "public"
    ALUMNI_ONLY = "alumni_only"
    INSTITUTION_ONLY = "institution_only"


class EventStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class RegistrationStatus(str, Enum):
    REGISTERED = "registered"
    PENDING = "pending"
    WAITLISTED = "waitlisted"
    CANCELLED = "cancelled"
    ATTENDED = "attended"


# Statuses that hold a seat
SEATED_STATUSES = (RegistrationStatus.REGISTERED.value, RegistrationStatus.PENDING.value, RegistrationStatus.ATTENDED.value)


# ==================== Base fields ====================

class EventBase(SQLModelBase):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    type: EventType = EventType.NETWORKING
    format: EventFormat = EventFormat.IN_PERSON
    visibility: EventVisibility = EventVisibility.ALUMNI_ONLY
    start_date: datetime = Field(..., index=True)
    end_date: datetime
    timezone: str = Field("UTC", max_length=50)
    venue_name: Optional[str] = Field(None, max_length=200)
    venue_address: Optional[str] = Field(None, max_length=500)
    max_capacity: Optional[int] = Field(None, ge=1)
    requires_approval: bool = False
    allow_guests: bool = False
    max_guests_per_attendee: int = Field(0, ge=0)
    registration_deadline: Optional[datetime] = None


# ==================== Tables ====================

class Event(EventBase, TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "events"

    type: str = Field(EventType.NETWORKING.value, max_length=30, index=True)
    format: str = Field(EventFormat.IN_PERSON.value, max_length=20, index=True)
    visibility: str = Field(EventVisibility.ALUMNI_ONLY.value, max_length=30)
    status: str = Field(EventStatus.PUBLISHED.value, max_length=20, index=True)
    organizer_id: str = Field(foreign_key="users.id", index=True)
    current_attendees: int = Field(0, ge=0)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    # Virtual meeting
    meeting_platform: Optional[str] = Field(None, max_length=30)
    meeting_url: Optional[str] = Field(None, max_length=500)
    meeting_password: Optional[str] = Field(None, max_length=100)
    meeting_instructions: Optional[str] = None
    jitsi_room_id: Optional[str] = Field(None, max_length=200)
    jitsi_config: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    meeting_embed_allowed: bool = False

    @property
    def is_virtual(self) -> bool:
        return self.format in (EventFormat.VIRTUAL.value, EventFormat.HYBRID.value)

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title})>"


class EventRegistration(TimestampMixin, IDMixin, SQLModel, table=True):
    __tablename__ = "event_registrations"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_registration"),
    )

    event_id: str = Field(foreign_key="events.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    status: str = Field(RegistrationStatus.REGISTERED.value, max_length=20, index=True)
    guests_count: int = Field(0, ge=0)
    notes: Optional[str] = None
    registered_at: datetime = Field(default_factory=utcnow)
    cancelled_at: Optional[datetime] = None


class EventCheckIn(TimestampMixin, IDMixin, SQLModel, table=True):
    __tablename__ = "event_check_ins"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_check_in"),
    )

    event_id: str = Field(foreign_key="events.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    registration_id: str = Field(foreign_key="event_registrations.id")
    method: str = Field("manual", max_length=20)
    checked_in_at: datetime = Field(default_factory=utcnow)


# ==================== Request schemas ====================

class EventCreate(EventBase):
    tags: List[str] = Field(default_factory=list)
    status: EventStatus = EventStatus.PUBLISHED
    meeting_platform: Optional[str] = Field(None, max_length=30)
    meeting_url: Optional[str] = Field(None, max_length=500)
    meeting_password: Optional[str] = Field(None, max_length=100)
    meeting_instructions: Optional[str] = None

    @field_validator("start_date", "end_date", "registration_deadline")
    @classmethod
    def normalize_dates(cls, v):
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class EventUpdate(SQLModelBase):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    venue_name: Optional[str] = Field(None, max_length=200)
    venue_address: Optional[str] = Field(None, max_length=500)
    max_capacity: Optional[int] = Field(None, ge=1)
    requires_approval: Optional[bool] = None
    status: Optional[EventStatus] = None
    tags: Optional[List[str]] = None
    meeting_url: Optional[str] = Field(None, max_length=500)
    meeting_password: Optional[str] = Field(None, max_length=100)
    meeting_instructions: Optional[str] = None
    jitsi_config: Optional[dict] = None


class RegistrationCreate(SQLModelBase):
    guests_count: int = Field(0, ge=0)
    notes: Optional[str] = Field(None, max_length=2000)


class CheckInCreate(SQLModelBase):
    user_id: Optional[str] = None
    method: str = Field("manual", max_length=20)


# ==================== Response schemas ====================

class EventResponse(TimestampResponse):
    title: str
    description: Optional[str]
    type: str
    format: str
    visibility: str
    status: str
    start_date: datetime
    end_date: datetime
    timezone: str
    venue_name: Optional[str]
    venue_address: Optional[str]
    max_capacity: Optional[int]
    current_attendees: int
    requires_approval: bool
    allow_guests: bool
    max_guests_per_attendee: int
    registration_deadline: Optional[datetime]
    organizer_id: str
    tags: List[str]
    meeting_platform: Optional[str]
    meeting_url: Optional[str]
    jitsi_room_id: Optional[str]
    meeting_embed_allowed: bool


class RegistrationResponse(TimestampResponse):
    event_id: str
    user_id: str
    status: str
    guests_count: int
    notes: Optional[str]
    registered_at: datetime
    cancelled_at: Optional[datetime]
    attendee: Optional[UserBrief] = None
