"""
Tenant model
"""
import re
from typing import Optional
from pydantic import field_validator
from sqlmodel import Field

from .base import SQLModelBase, TimestampMixin, IDMixin, TimestampResponse


# ==================== Base fields ====================

class TenantBase(SQLModelBase):
    name: str = Field(..., min_length=1, max_length=150)
    slug: str = Field(..., min_length=2, max_length=63, index=True, unique=True)
    domain: Optional[str] = Field(None, max_length=255)

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        if not re.fullmatch(r"[a-z0-9][a-z0-9-]*", v):
            raise ValueError("slug may only contain lowercase letters, digits and hyphens")
        return v


# ==================== Table ====================

class Tenant(TenantBase, TimestampMixin, IDMixin, table=True):
    __tablename__ = "tenants"

    is_active: bool = Field(default=True)

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, slug={self.slug})>"


# ==================== Request schemas ====================

class TenantCreate(TenantBase):
    pass


class TenantUpdate(SQLModelBase):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    domain: Optional[str] = Field(None, max_length=255)
    is_active: Optional[bool] = None


# ==================== Response schemas ====================

class TenantResponse(TimestampResponse):
    name: str
    slug: str
    domain: Optional[str]
    is_active: bool
