"""
SQLModel base classes

Shared fields and mixins
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    """Naive UTC now; SQLite hands datetimes back without tzinfo"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class SQLModelBase(SQLModel):
    """
    Base config for request/response schemas
    """
    model_config = {
        "from_attributes": True,
        "populate_by_name": True,
        "str_strip_whitespace": True,
        "use_enum_values": True,
        "validate_default": True,
    }


class TimestampMixin(SQLModel):
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        index=True,
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"onupdate": utcnow},
    )


class IDMixin(SQLModel):
    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True,
    )


class TenantMixin(SQLModel):
    """Row-level tenant scoping"""
    tenant_id: str = Field(foreign_key="tenants.id", index=True, nullable=False)


class TimestampResponse(SQLModelBase):
    id: str
    created_at: datetime
    updated_at: datetime
