"""
Job posting, application and match models
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List
from sqlmodel import SQLModel, Field, Column, JSON, UniqueConstraint

from .base import SQLModelBase, TimestampMixin, IDMixin, TenantMixin, TimestampResponse
from .user import UserBrief


class JobStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"


class EmploymentType(str, Enum):
    FULL_TIME = "full_time"
    PART_TIME = "part_time"
    CONTRACT = "contract"
    INTERNSHIP = "internship"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    INTERVIEWING = "interviewing"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


# ==================== Base fields ====================

class JobPostingBase(SQLModelBase):
    title: str = Field(..., min_length=1, max_length=150, index=True)
    company_name: str = Field(..., min_length=1, max_length=150, index=True)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=200)
    employment_type: EmploymentType = EmploymentType.FULL_TIME
    course_id: Optional[str] = Field(None, foreign_key="courses.id")
    min_experience: int = Field(0, ge=0)
    salary_min: Optional[int] = Field(None, ge=0)
    salary_max: Optional[int] = Field(None, ge=0)
    application_deadline: Optional[datetime] = None


# ==================== Tables ====================

class JobPosting(JobPostingBase, TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "job_postings"

    employment_type: str = Field(EmploymentType.FULL_TIME.value, max_length=20)
    posted_by: str = Field(foreign_key="users.id", index=True)
    status: str = Field(JobStatus.ACTIVE.value, max_length=20, index=True)
    required_skills: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    def __repr__(self) -> str:
        return f"<JobPosting(id={self.id}, title={self.title})>"


class JobApplication(TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "job_applications"
    __table_args__ = (
        UniqueConstraint("job_id", "user_id", name="uq_job_application"),
    )

    job_id: str = Field(foreign_key="job_postings.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    cover_letter: Optional[str] = None
    resume_url: Optional[str] = Field(None, max_length=500)
    status: str = Field(ApplicationStatus.PENDING.value, max_length=20, index=True)


class JobMatch(TimestampMixin, IDMixin, SQLModel, table=True):
    """Graduate-to-job match computed from course, skills, GPA and profile fit"""
    __tablename__ = "job_matches"
    __table_args__ = (
        UniqueConstraint("job_id", "user_id", name="uq_job_match"),
    )

    job_id: str = Field(foreign_key="job_postings.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    match_score: float = 0
    compatibility_score: float = 0
    overall_score: float = Field(0, index=True)
    match_factors: dict = Field(default_factory=dict, sa_column=Column(JSON))
    compatibility_factors: dict = Field(default_factory=dict, sa_column=Column(JSON))
    is_recommended: bool = False
    is_viewed: bool = False
    is_applied: bool = False
    recommended_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    applied_at: Optional[datetime] = None


class JobMatchScore(TimestampMixin, IDMixin, SQLModel, table=True):
    """Network-based match score: connections, skills, education, circles"""
    __tablename__ = "job_match_scores"
    __table_args__ = (
        UniqueConstraint("job_id", "user_id", name="uq_job_match_score"),
    )

    job_id: str = Field(foreign_key="job_postings.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    score: float = Field(0, index=True)
    reasons: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    connection_score: float = 0
    skills_score: float = 0
    education_score: float = 0
    circle_score: float = 0
    mutual_connections_count: int = 0
    calculated_at: Optional[datetime] = None


# ==================== Request schemas ====================

class JobPostingCreate(JobPostingBase):
    required_skills: List[str] = Field(default_factory=list)
    status: JobStatus = JobStatus.ACTIVE


class JobPostingUpdate(SQLModelBase):
    title: Optional[str] = Field(None, min_length=1, max_length=150)
    company_name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=200)
    employment_type: Optional[EmploymentType] = None
    course_id: Optional[str] = None
    min_experience: Optional[int] = Field(None, ge=0)
    salary_min: Optional[int] = Field(None, ge=0)
    salary_max: Optional[int] = Field(None, ge=0)
    required_skills: Optional[List[str]] = None
    status: Optional[JobStatus] = None
    application_deadline: Optional[datetime] = None


class JobApplicationCreate(SQLModelBase):
    cover_letter: Optional[str] = Field(None, max_length=10000)
    resume_url: Optional[str] = Field(None, max_length=500)


class JobApplicationStatusUpdate(SQLModelBase):
    status: ApplicationStatus


# ==================== Response schemas ====================

class JobPostingResponse(TimestampResponse):
    title: str
    company_name: str
    description: Optional[str]
    location: Optional[str]
    employment_type: str
    course_id: Optional[str]
    min_experience: int
    salary_min: Optional[int]
    salary_max: Optional[int]
    required_skills: List[str]
    status: str
    posted_by: str
    application_deadline: Optional[datetime]
    application_count: int = 0


class JobApplicationResponse(TimestampResponse):
    job_id: str
    user_id: str
    cover_letter: Optional[str]
    resume_url: Optional[str]
    status: str
    applicant: Optional[UserBrief] = None


class JobMatchResponse(TimestampResponse):
    job_id: str
    user_id: str
    match_score: float
    compatibility_score: float
    overall_score: float
    match_factors: dict
    compatibility_factors: dict
    is_recommended: bool
    is_viewed: bool
    is_applied: bool


class JobMatchScoreResponse(TimestampResponse):
    job_id: str
    user_id: str
    score: float
    reasons: List[dict]
    connection_score: float
    skills_score: float
    education_score: float
    circle_score: float
    mutual_connections_count: int
    calculated_at: Optional[datetime]
