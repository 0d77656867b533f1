"""
Single sign-on (OIDC / OAuth2)

The login URL carries a random state kept in the cache for ten minutes.
The callback exchanges the code at the token endpoint, reads the userinfo
endpoint and signs the matching local user in, creating one when the
configuration allows it. SAML configurations can be stored and checked but
not used to sign in.
"""
import secrets
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import httpx
from email_validator import EmailNotValidError, validate_email
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.cache import cache
from alumni.core.exceptions import (
    BadRequestException,
    PermissionDeniedException,
    UnprocessableException,
)
from alumni.crud import sso_crud, token_crud, user_crud
from alumni.models.sso import REQUIRED_SETTINGS, SsoConfiguration, SsoConfigurationCreate, SsoProtocol
from alumni.models.user import AccessToken, User, UserRole

STATE_TTL = 600
DEFAULT_SCOPES = {
    SsoProtocol.OIDC.value: "openid email profile",
    SsoProtocol.OAUTH2.value: "email profile",
}
DEFAULT_ATTRIBUTES = {"email": "email", "name": "name", "subject": "sub"}


def missing_settings(config: SsoConfiguration) -> List[str]:
    values = config.settings or {}
    return [key for key in REQUIRED_SETTINGS.get(config.protocol, ()) if not values.get(key)]


def map_attributes(claims: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
    mapping = {**DEFAULT_ATTRIBUTES, **(mapping or {})}
    return {field: claims.get(claim) for field, claim in mapping.items()}


def map_role(claims: Dict[str, Any], role_mapping: Dict[str, str], default_role: str) -> str:
    external = claims.get("roles") or claims.get("groups") or []
    if isinstance(external, str):
        external = [external]
    valid = {r.value for r in UserRole}
    for role in external:
        mapped = (role_mapping or {}).get(role)
        if mapped in valid:
            return mapped
    return default_role


class SsoService:

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    async def create(self, db: AsyncSession, tenant_id: str, data: SsoConfigurationCreate) -> SsoConfiguration:
        values = data.model_dump()
        values["tenant_id"] = tenant_id
        config = await sso_crud.create(db, obj_in=values)
        logger.info("SSO configuration {} ({}) created for tenant {}", config.provider, config.protocol, tenant_id)
        return config

    def test_configuration(self, config: SsoConfiguration) -> Dict[str, Any]:
        missing = missing_settings(config)
        return {
            "valid": not missing,
            "protocol": config.protocol,
            "missing_settings": missing,
            "message": "Configuration is complete" if not missing else f"Missing settings: {', '.join(missing)}",
        }

    def _require_oauth(self, config: SsoConfiguration) -> None:
        if config.protocol == SsoProtocol.SAML2.value:
            raise BadRequestException("SAML sign-in is not supported")
        if not config.is_active:
            raise BadRequestException("SSO configuration is not active")
        missing = missing_settings(config)
        if missing:
            raise UnprocessableException(errors={"settings": [f"Missing settings: {', '.join(missing)}"]})

    def get_login_url(self, config: SsoConfiguration, redirect_uri: Optional[str] = None) -> Dict[str, str]:
        self._require_oauth(config)
        values = config.settings
        state = secrets.token_urlsafe(24)
        cache.set(f"sso:state:{state}", config.id, STATE_TTL)
        params = {
            "response_type": "code",
            "client_id": values["client_id"],
            "scope": values.get("scope") or DEFAULT_SCOPES[config.protocol],
            "state": state,
        }
        redirect_uri = redirect_uri or values.get("redirect_uri")
        if redirect_uri:
            params["redirect_uri"] = redirect_uri
        separator = "&" if "?" in values["authorization_endpoint"] else "?"
        return {"url": f"{values['authorization_endpoint']}{separator}{urlencode(params)}", "state": state}

    async def handle_callback(
        self,
        db: AsyncSession,
        config: SsoConfiguration,
        code: str,
        state: Optional[str],
        redirect_uri: Optional[str] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Tuple[User, AccessToken, str, bool]:
        self._require_oauth(config)
        if not state or cache.get(f"sso:state:{state}") != config.id:
            raise BadRequestException("Invalid or expired SSO state")
        cache.forget(f"sso:state:{state}")

        values = config.settings
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": values["client_id"],
            "client_secret": values["client_secret"],
        }
        redirect_uri = redirect_uri or values.get("redirect_uri")
        if redirect_uri:
            form["redirect_uri"] = redirect_uri

        async with httpx.AsyncClient(timeout=30.0, transport=self.transport) as client:
            try:
                response = await client.post(values["token_endpoint"], data=form, headers={"Accept": "application/json"})
                response.raise_for_status()
                access_token = response.json().get("access_token")
                if not access_token:
                    raise BadRequestException("Identity provider returned no access token")
                response = await client.get(
                    values["userinfo_endpoint"], headers={"Authorization": f"Bearer {access_token}"}
                )
                response.raise_for_status()
                claims = response.json()
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "SSO exchange with {} failed: status={}, response={}",
                    config.provider, exc.response.status_code, exc.response.text[:500],
                )
                raise BadRequestException("SSO authentication failed")
            except httpx.HTTPError as exc:
                logger.error("SSO exchange with {} raised: {}", config.provider, exc)
                raise BadRequestException("SSO authentication failed")

        return await self.authenticate(db, config, claims, ip=ip, user_agent=user_agent)

    async def authenticate(
        self,
        db: AsyncSession,
        config: SsoConfiguration,
        claims: Dict[str, Any],
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Tuple[User, AccessToken, str, bool]:
        """Returns (user, access token, plain token, created)"""
        from alumni.services.security import security_service

        attributes = map_attributes(claims, config.attribute_mapping)
        try:
            email = validate_email(attributes.get("email") or "", check_deliverability=False).normalized
        except EmailNotValidError:
            raise UnprocessableException(errors={"email": ["Identity provider returned no valid email"]})

        subject = str(attributes.get("subject") or email)
        user = await user_crud.get_by_sso_subject(db, config.tenant_id, config.provider, subject)
        if user is None:
            user = await user_crud.get_by_email(db, config.tenant_id, email)

        created = False
        role = map_role(claims, config.role_mapping, config.default_role)
        if user is None:
            if not config.auto_provision:
                logger.warning("SSO sign-in for unknown {} refused by {}", email, config.provider)
                raise PermissionDeniedException("No account exists for this identity")
            user = await user_crud.create(db, obj_in={
                "tenant_id": config.tenant_id,
                "email": email,
                "name": attributes.get("name") or email.split("@")[0],
                "role": role,
            })
            created = True
            logger.info("Provisioned {} from {}", email, config.provider)
        elif not user.is_active:
            raise PermissionDeniedException("Account is disabled")
        elif config.role_mapping and role != config.default_role:
            user.role = role

        user.sso_provider = config.provider
        user.sso_subject = subject
        token, plain = await token_crud.issue(db, user, name=f"sso:{config.provider}")
        await security_service.record_successful_login(db, user, token, ip, user_agent)
        return user, token, plain, created


sso_service = SsoService()
