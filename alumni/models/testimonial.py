"""
Testimonial model, shown on the marketing homepage
"""
from enum import Enum
from typing import Optional, Literal
from sqlmodel import Field

from .base import SQLModelBase, TimestampMixin, IDMixin, TenantMixin, TimestampResponse


class TestimonialStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ARCHIVED = "archived"


class TestimonialBase(SQLModelBase):
    author_name: str = Field(..., min_length=1, max_length=150)
    author_title: Optional[str] = Field(None, max_length=150)
    author_company: Optional[str] = Field(None, max_length=150)
    graduation_year: Optional[int] = Field(None, ge=1900, le=2100)
    industry: Optional[str] = Field(None, max_length=100)
    audience_type: Literal["individual", "institutional"] = "individual"
    content: str = Field(..., min_length=10, max_length=2000)
    rating: Optional[int] = Field(None, ge=1, le=5)
    video_url: Optional[str] = Field(None, max_length=500)


class Testimonial(TestimonialBase, TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "testimonials"

    audience_type: str = Field("individual", max_length=20, index=True)
    status: str = Field(TestimonialStatus.PENDING.value, max_length=20, index=True)
    featured: bool = Field(default=False, index=True)
    view_count: int = 0
    click_count: int = 0


class TestimonialCreate(TestimonialBase):
    pass


class TestimonialResponse(TimestampResponse):
    author_name: str
    author_title: Optional[str]
    author_company: Optional[str]
    graduation_year: Optional[int]
    industry: Optional[str]
    audience_type: str
    content: str
    rating: Optional[int]
    video_url: Optional[str]
    status: str
    featured: bool
    view_count: int
    click_count: int
