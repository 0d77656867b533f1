"""
SSO configuration model
"""
from enum import Enum
from typing import Optional
from sqlmodel import Field, Column, JSON

from .base import SQLModelBase, TimestampMixin, IDMixin, TenantMixin, TimestampResponse
from .user import UserRole


class SsoProtocol(str, Enum):
    OIDC = "oidc"
    OAUTH2 = "oauth2"
    SAML2 = "saml2"


# Settings each protocol needs before it can be used
REQUIRED_SETTINGS = {
    SsoProtocol.OIDC.value: ("client_id", "client_secret", "authorization_endpoint", "token_endpoint", "userinfo_endpoint"),
    SsoProtocol.OAUTH2.value: ("client_id", "client_secret", "authorization_endpoint", "token_endpoint", "userinfo_endpoint"),
    SsoProtocol.SAML2.value: ("entity_id", "sso_url", "x509_certificate"),
}


class SsoConfigurationBase(SQLModelBase):
    name: str = Field(..., min_length=1, max_length=150)
    provider: str = Field(..., min_length=1, max_length=50)
    protocol: SsoProtocol = SsoProtocol.OIDC
    auto_provision: bool = True
    default_role: UserRole = UserRole.ALUMNI
    is_active: bool = True


class SsoConfiguration(SsoConfigurationBase, TimestampMixin, IDMixin, TenantMixin, table=True):
    __tablename__ = "sso_configurations"

    protocol: str = Field(SsoProtocol.OIDC.value, max_length=20)
    default_role: str = Field(UserRole.ALUMNI.value, max_length=30)
    settings: dict = Field(default_factory=dict, sa_column=Column(JSON))
    # local field -> claim name, e.g. {"email": "email", "name": "name"}
    attribute_mapping: dict = Field(default_factory=dict, sa_column=Column(JSON))
    # external role/group -> local role
    role_mapping: dict = Field(default_factory=dict, sa_column=Column(JSON))


class SsoConfigurationCreate(SsoConfigurationBase):
    settings: dict = Field(default_factory=dict)
    attribute_mapping: dict = Field(default_factory=dict)
    role_mapping: dict = Field(default_factory=dict)


class SsoConfigurationUpdate(SQLModelBase):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    settings: Optional[dict] = None
    attribute_mapping: Optional[dict] = None
    role_mapping: Optional[dict] = None
    auto_provision: Optional[bool] = None
    default_role: Optional[UserRole] = None
    is_active: Optional[bool] = None


class SsoCallback(SQLModelBase):
    code: str = Field(..., min_length=1)
    state: Optional[str] = None
    redirect_uri: Optional[str] = None


class SsoConfigurationResponse(TimestampResponse):
    name: str
    provider: str
    protocol: str
    auto_provision: bool
    default_role: str
    is_active: bool
    attribute_mapping: dict
    role_mapping: dict
    settings_configured: list = Field(default_factory=list)
