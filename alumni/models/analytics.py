"""
Analytics snapshot model and report schemas
"""
from datetime import date, datetime
from typing import List, Literal, Optional
from sqlmodel import Field, Column, JSON, UniqueConstraint

from .base import SQLModelBase, TimestampMixin, IDMixin, TenantMixin, TimestampResponse


class AnalyticsSnapshot(TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "analytics_snapshots"
    __table_args__ = (
        UniqueConstraint("tenant_id", "snapshot_date", name="uq_analytics_snapshot_day"),
    )

    snapshot_date: date = Field(..., index=True)
    metrics: dict = Field(default_factory=dict, sa_column=Column(JSON))


class ReportRequest(SQLModelBase):
    metrics: List[str] = Field(..., min_length=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ExportRequest(ReportRequest):
    format: Literal["csv", "json"] = "csv"


class AnalyticsSnapshotResponse(TimestampResponse):
    snapshot_date: date
    metrics: dict
