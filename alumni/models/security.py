"""
Security models: failed logins, security events, session records
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field, Column, JSON, UniqueConstraint

from .base import SQLModelBase, TimestampMixin, IDMixin, TimestampResponse


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SecurityEventType(str, Enum):
    FAILED_LOGIN = "failed_login"
    ACCOUNT_LOCKED = "account_locked"
    LOGIN = "login"
    LOGOUT = "logout"
    MALICIOUS_REQUEST = "malicious_request"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    SESSION_HIJACK = "session_hijack_attempt"
    TWO_FACTOR_ENABLED = "two_factor_enabled"
    TWO_FACTOR_DISABLED = "two_factor_disabled"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"


class FailedLoginAttempt(TimestampMixin, IDMixin, SQLModel, table=True):
    __tablename__ = "failed_login_attempts"
    __table_args__ = (
        UniqueConstraint("email", "ip_address", name="uq_failed_login_email_ip"),
    )

    email: str = Field(..., max_length=255, index=True)
    ip_address: str = Field(..., max_length=45, index=True)
    attempts: int = 0
    last_attempt_at: Optional[datetime] = None
    blocked_until: Optional[datetime] = None
    user_agent: Optional[str] = Field(None, max_length=500)


class SecurityEvent(TimestampMixin, IDMixin, SQLModel, table=True):
    __tablename__ = "security_events"

    tenant_id: Optional[str] = Field(None, index=True)
    event_type: str = Field(..., max_length=50, index=True)
    severity: str = Field(Severity.LOW.value, max_length=20, index=True)
    description: str
    details: dict = Field(default_factory=dict, sa_column=Column(JSON))
    user_id: Optional[str] = Field(None, index=True)
    ip_address: Optional[str] = Field(None, max_length=45, index=True)
    user_agent: Optional[str] = Field(None, max_length=500)
    resolved: bool = Field(default=False, index=True)
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None


class SessionSecurity(TimestampMixin, IDMixin, SQLModel, table=True):
    """One row per issued access token, used to pin it to an IP"""
    __tablename__ = "session_security"

    user_id: str = Field(foreign_key="users.id", index=True)
    token_id: str = Field(foreign_key="access_tokens.id", index=True)
    ip_address: Optional[str] = Field(None, max_length=45)
    user_agent: Optional[str] = Field(None, max_length=500)
    last_activity_at: Optional[datetime] = None
    expires_at: datetime = Field(..., index=True)
    is_active: bool = Field(default=True, index=True)


class SecurityEventResponse(TimestampResponse):
    event_type: str
    severity: str
    description: str
    details: dict
    user_id: Optional[str]
    ip_address: Optional[str]
    resolved: bool
    resolved_at: Optional[datetime]


class TwoFactorDisable(SQLModelBase):
    password: str = Field(..., min_length=1)
