"""
Homepage request schemas

Nothing here is persisted; lead forms are logged and session state lives
in the cache.
"""
from typing import Any, Dict, List, Literal, Optional
from pydantic import EmailStr
from sqlmodel import Field

from .base import SQLModelBase

Audience = Literal["individual", "institutional"]


class CareerCalculatorRequest(SQLModelBase):
    current_role: str = Field(..., min_length=1, max_length=150)
    industry: str = Field(..., min_length=1, max_length=100)
    experience_years: int = Field(..., ge=0, le=60)
    career_goals: List[str] = Field(default_factory=list)
    location: Optional[str] = Field(None, max_length=150)
    education_level: Optional[str] = Field(None, max_length=100)


class DemoRequest(SQLModelBase):
    institution_name: str = Field(..., min_length=1, max_length=200)
    contact_name: str = Field(..., min_length=1, max_length=150)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)
    alumni_count: Optional[int] = Field(None, ge=0)
    message: Optional[str] = Field(None, max_length=2000)


class TrialSignup(SQLModelBase):
    name: str = Field(..., min_length=1, max_length=150)
    email: EmailStr
    institution_name: Optional[str] = Field(None, max_length=200)
    plan: Optional[str] = Field(None, max_length=50)


class LeadCapture(SQLModelBase):
    email: EmailStr
    source: str = Field(..., min_length=1, max_length=100)
    audience: Audience
    interest_level: Optional[str] = Field(None, max_length=50)
    additional_data: Dict[str, Any] = Field(default_factory=dict)


class AudiencePreference(SQLModelBase):
    audience: Audience
    source: Literal["manual", "auto_detected", "url_param"] = "manual"


class VisitTrack(SQLModelBase):
    path: str = Field(..., min_length=1, max_length=255)


class PersonalizationEvent(SQLModelBase):
    audience: Audience
    event: str = Field(..., min_length=1, max_length=100)
    data: Dict[str, Any] = Field(default_factory=dict)
