"""
Federation mapping model

Links a local entity to its identifier on a federation protocol.
"""
from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field, Column, JSON, UniqueConstraint

from .base import TimestampMixin, IDMixin, utcnow


class FederationMapping(TimestampMixin, IDMixin, SQLModel, table=True):
    __tablename__ = "federation_mappings"
    __table_args__ = (
        UniqueConstraint("local_type", "local_id", "protocol", name="uq_federation_mapping"),
    )

    local_type: str = Field(..., max_length=20, index=True)  # post | user | group
    local_id: str = Field(..., index=True)
    protocol: str = Field(..., max_length=20, index=True)
    federation_id: str = Field(..., max_length=500)
    federation_data: dict = Field(default_factory=dict, sa_column=Column(JSON))
    server_name: Optional[str] = Field(None, max_length=255)
    federated_at: datetime = Field(default_factory=utcnow)
