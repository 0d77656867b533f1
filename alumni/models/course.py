"""
Course model
"""
from typing import Optional, List
from sqlmodel import Field, Column, JSON

from .base import SQLModelBase, TimestampMixin, IDMixin, TenantMixin, TimestampResponse


class CourseBase(SQLModelBase):
    name: str = Field(..., min_length=1, max_length=150)
    code: str = Field(..., min_length=1, max_length=30)
    level: str = Field("bachelor", max_length=30)
    description: Optional[str] = None


class Course(CourseBase, TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "courses"

    skills_gained: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    career_paths: List[str] = Field(default_factory=list, sa_column=Column(JSON))


class CourseCreate(CourseBase):
    skills_gained: List[str] = Field(default_factory=list)
    career_paths: List[str] = Field(default_factory=list)


class CourseUpdate(SQLModelBase):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    level: Optional[str] = Field(None, max_length=30)
    description: Optional[str] = None
    skills_gained: Optional[List[str]] = None
    career_paths: Optional[List[str]] = None


class CourseResponse(TimestampResponse):
    name: str
    code: str
    level: str
    description: Optional[str]
    skills_gained: List[str]
    career_paths: List[str]
