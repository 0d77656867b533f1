"""
A/B test models

Test definitions plus one row per variant assignment and conversion.
"""
from datetime import datetime
from typing import Literal, Optional, List
from pydantic import model_validator
from sqlmodel import SQLModel, Field, Column, JSON, UniqueConstraint

from .base import SQLModelBase, TimestampMixin, utcnow


class ABTest(TimestampMixin, SQLModel, table=True):
    __tablename__ = "ab_tests"

    # slug id, e.g. "cta_button_text" or "new_hero_1716200000"
    id: str = Field(primary_key=True, max_length=150)
    name: str = Field(..., max_length=200)
    description: str = ""
    target_audience: Optional[str] = Field(None, max_length=20)
    variants: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    conversion_goals: dict = Field(default_factory=dict, sa_column=Column(JSON))
    traffic_allocation: int = Field(100, ge=0, le=100)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    active: bool = Field(default=True, index=True)
    created_by: Optional[str] = None

    def to_config(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "target_audience": self.target_audience,
            "variants": self.variants or [],
            "conversion_goals": self.conversion_goals or {},
            "traffic_allocation": self.traffic_allocation,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "active": self.active,
        }


class ABTestAssignment(SQLModel, table=True):
    __tablename__ = "ab_test_assignments"
    __table_args__ = (
        UniqueConstraint("test_id", "subject_id", name="uq_ab_assignment"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    test_id: str = Field(foreign_key="ab_tests.id", index=True)
    variant_id: str = Field(..., max_length=100, index=True)
    subject_id: str = Field(..., max_length=255)
    audience: Optional[str] = Field(None, max_length=20)
    assigned_at: datetime = Field(default_factory=utcnow)


class ABTestConversion(SQLModel, table=True):
    __tablename__ = "ab_test_conversions"

    id: Optional[int] = Field(default=None, primary_key=True)
    test_id: str = Field(foreign_key="ab_tests.id", index=True)
    variant_id: str = Field(..., max_length=100, index=True)
    goal: str = Field(..., max_length=100)
    subject_id: str = Field(..., max_length=255)
    data: dict = Field(default_factory=dict, sa_column=Column(JSON))
    converted_at: datetime = Field(default_factory=utcnow)


# ==================== Request schemas ====================

class VariantConfig(SQLModelBase):
    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=150)
    weight: int = Field(..., ge=0)
    component_overrides: dict = Field(default_factory=dict)


class ABTestCreate(SQLModelBase):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    target_audience: Optional[Literal["individual", "institutional"]] = None
    variants: List[VariantConfig] = Field(..., min_length=2)
    conversion_goals: dict | List[str] = Field(default_factory=list)
    traffic_allocation: int = Field(100, ge=0, le=100)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    active: bool = True

    @model_validator(mode="after")
    def check_variants(self):
        ids = [v.id for v in self.variants]
        if len(ids) != len(set(ids)):
            raise ValueError("variant ids must be unique")
        if sum(v.weight for v in self.variants) <= 0:
            raise ValueError("variant weights must sum to more than zero")
        return self


class ABTestStatusUpdate(SQLModelBase):
    active: bool


class AssignmentRequest(SQLModelBase):
    test_id: str
    audience: str = "individual"
    subject_id: Optional[str] = None


class ConversionRequest(SQLModelBase):
    test_id: str
    variant_id: str
    goal: str = Field(..., min_length=1, max_length=100)
    subject_id: Optional[str] = None
    data: dict = Field(default_factory=dict)
