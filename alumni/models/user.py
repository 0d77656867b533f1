"""
User and access token models

Alumni profile fields live on the user row.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import EmailStr
from sqlmodel import SQLModel, Field, Column, JSON, UniqueConstraint

from .base import SQLModelBase, TimestampMixin, IDMixin, TenantMixin, TimestampResponse


class UserRole(str, Enum):
    ALUMNI = "alumni"
    EMPLOYER = "employer"
    INSTITUTION_ADMIN = "institution_admin"
    SUPER_ADMIN = "super_admin"


class EmploymentStatus(str, Enum):
    EMPLOYED = "employed"
    UNEMPLOYED = "unemployed"
    SELF_EMPLOYED = "self_employed"
    STUDENT = "student"


class ProfileVisibility(str, Enum):
    PUBLIC = "public"
    ALUMNI = "alumni"
    CONNECTIONS = "connections"


ADMIN_ROLES = {UserRole.INSTITUTION_ADMIN.value, UserRole.SUPER_ADMIN.value}

# Fields counted toward profile completion
PROFILE_FIELDS = (
    "name", "headline", "bio", "avatar_url", "graduation_year", "course_id",
    "location", "industry", "current_company", "current_title", "skills", "education",
)


# ==================== Base fields ====================

class UserProfileBase(SQLModelBase):
    """Editable alumni profile"""
    headline: Optional[str] = Field(None, max_length=200)
    bio: Optional[str] = None
    avatar_url: Optional[str] = Field(None, max_length=500)
    phone: Optional[str] = Field(None, max_length=50)
    graduation_year: Optional[int] = Field(None, ge=1900, le=2100, index=True)
    course_id: Optional[str] = Field(None, foreign_key="courses.id")
    gpa: Optional[float] = Field(None, ge=0, le=4)
    location: Optional[str] = Field(None, max_length=200, index=True)
    industry: Optional[str] = Field(None, max_length=100, index=True)
    current_company: Optional[str] = Field(None, max_length=150, index=True)
    current_title: Optional[str] = Field(None, max_length=150)
    years_experience: int = Field(0, ge=0)
    current_salary: Optional[int] = Field(None, ge=0)
    employment_status: Optional[str] = Field(None, max_length=30)
    job_search_active: bool = False
    profile_visibility: str = Field(ProfileVisibility.ALUMNI.value, max_length=20)
    show_contact_info: bool = False
    show_work_details: bool = True
    hide_from_recommendations: bool = False


# ==================== Tables ====================

class User(UserProfileBase, TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )

    email: str = Field(..., max_length=255, index=True)
    name: str = Field(..., max_length=150)
    password_hash: Optional[str] = Field(None, max_length=255)
    role: str = Field(UserRole.ALUMNI.value, max_length=30, index=True)
    is_active: bool = Field(default=True)

    skills: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    interests: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    # [{"degree", "field_of_study", "institution", "year"}]
    education: List[dict] = Field(default_factory=list, sa_column=Column(JSON))

    last_login_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None

    two_factor_enabled: bool = Field(default=False)
    two_factor_secret: Optional[str] = Field(None, max_length=64)
    two_factor_recovery_codes: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))

    sso_provider: Optional[str] = Field(None, max_length=100)
    sso_subject: Optional[str] = Field(None, max_length=255, index=True)

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def first_name(self) -> str:
        return self.name.split(" ")[0] if self.name else ""

    @property
    def last_name(self) -> str:
        parts = self.name.split(" ", 1) if self.name else []
        return parts[1] if len(parts) > 1 else ""

    @property
    def profile_completion(self) -> int:
        """Percentage of profile fields that are filled in"""
        filled = sum(1 for f in PROFILE_FIELDS if getattr(self, f, None) not in (None, "", []))
        return round(filled / len(PROFILE_FIELDS) * 100)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class AccessToken(TimestampMixin, IDMixin, SQLModel, table=True):
    """Personal access token, stored as a sha256 digest"""
    __tablename__ = "access_tokens"

    user_id: str = Field(foreign_key="users.id", index=True)
    tenant_id: str = Field(foreign_key="tenants.id", index=True)
    name: str = Field("api", max_length=100)
    token_hash: str = Field(..., max_length=64, unique=True, index=True)
    abilities: List[str] = Field(default_factory=lambda: ["*"], sa_column=Column(JSON))
    last_used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


# ==================== Request schemas ====================

class UserRegister(SQLModelBase):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=1, max_length=150)
    graduation_year: Optional[int] = Field(None, ge=1900, le=2100)
    location: Optional[str] = Field(None, max_length=200)
    industry: Optional[str] = Field(None, max_length=100)
    current_company: Optional[str] = Field(None, max_length=150)
    current_title: Optional[str] = Field(None, max_length=150)
    skills: List[str] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)


class LoginRequest(SQLModelBase):
    email: EmailStr
    password: str = Field(..., min_length=1)
    two_factor_code: Optional[str] = None


class UserProfileUpdate(SQLModelBase):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    headline: Optional[str] = Field(None, max_length=200)
    bio: Optional[str] = None
    avatar_url: Optional[str] = Field(None, max_length=500)
    phone: Optional[str] = Field(None, max_length=50)
    graduation_year: Optional[int] = Field(None, ge=1900, le=2100)
    course_id: Optional[str] = None
    gpa: Optional[float] = Field(None, ge=0, le=4)
    location: Optional[str] = Field(None, max_length=200)
    industry: Optional[str] = Field(None, max_length=100)
    current_company: Optional[str] = Field(None, max_length=150)
    current_title: Optional[str] = Field(None, max_length=150)
    years_experience: Optional[int] = Field(None, ge=0)
    current_salary: Optional[int] = Field(None, ge=0)
    employment_status: Optional[EmploymentStatus] = None
    job_search_active: Optional[bool] = None
    profile_visibility: Optional[ProfileVisibility] = None
    show_contact_info: Optional[bool] = None
    show_work_details: Optional[bool] = None
    hide_from_recommendations: Optional[bool] = None
    skills: Optional[List[str]] = None
    interests: Optional[List[str]] = None
    education: Optional[List[dict]] = None


class RoleUpdate(SQLModelBase):
    role: UserRole


# ==================== Response schemas ====================

class UserBrief(SQLModelBase):
    id: str
    name: str
    headline: Optional[str] = None
    avatar_url: Optional[str] = None
    graduation_year: Optional[int] = None
    current_title: Optional[str] = None
    current_company: Optional[str] = None
    location: Optional[str] = None


class UserResponse(TimestampResponse):
    tenant_id: str
    email: str
    name: str
    role: str
    headline: Optional[str]
    bio: Optional[str]
    avatar_url: Optional[str]
    graduation_year: Optional[int]
    course_id: Optional[str]
    gpa: Optional[float]
    location: Optional[str]
    industry: Optional[str]
    current_company: Optional[str]
    current_title: Optional[str]
    years_experience: int
    employment_status: Optional[str]
    job_search_active: bool
    profile_visibility: str
    show_contact_info: bool
    show_work_details: bool
    hide_from_recommendations: bool
    skills: List[str]
    interests: List[str]
    education: List[dict]
    two_factor_enabled: bool
    profile_completion: int
    last_login_at: Optional[datetime]


class TokenResponse(SQLModelBase):
    token: str
    token_type: str = "Bearer"
    expires_at: Optional[datetime]
    user: UserResponse
