"""
Security service

Failed-login throttling, security event log, session pinning, malicious
request detection, rate limiting, security score and two-factor setup.
"""
import json
import re
from datetime import timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl

from fastapi import Request
from loguru import logger
from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.cache import cache
from alumni.core.config import settings
from alumni.core.security import (
    generate_two_factor_secret,
    generate_recovery_codes,
    verify_totp,
)
from alumni.models.base import utcnow
from alumni.models.security import (
    FailedLoginAttempt,
    SecurityEvent,
    SecurityEventType,
    SessionSecurity,
    Severity,
)
from alumni.models.user import AccessToken, User

MALICIOUS_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bunion\b.*\bselect\b",
        r"\bdrop\b.*\btable\b",
        r"\binsert\b.*\binto\b",
        r"\bdelete\b.*\bfrom\b",
        r"\bupdate\b.*\bset\b",
        r"\bor\b.*\b1\s*=\s*1\b",
        r"\band\b.*\b1\s*=\s*1\b",
        r"['\"];.*--",
        r"<script[^>]*>",
        r"javascript:",
    )
]


def _strings(value: Any):
    """Every string inside a decoded JSON document"""
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for k, v in value.items():
            yield str(k)
            yield from _strings(v)
    elif isinstance(value, list):
        for v in value:
            yield from _strings(v)


def match_malicious(text: str) -> Optional[str]:
    for pattern in MALICIOUS_PATTERNS:
        if pattern.search(text):
            return pattern.pattern
    return None


class SecurityService:

    # ==================== Event log ====================

    async def log_security_event(
        self,
        db: AsyncSession,
        event_type: str,
        severity: str,
        description: str,
        details: Optional[dict] = None,
        *,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> SecurityEvent:
        event = SecurityEvent(
            tenant_id=tenant_id,
            event_type=event_type,
            severity=severity,
            description=description,
            details=details or {},
            user_id=user_id,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:500] or None,
        )
        db.add(event)
        await db.flush()

        if severity in (Severity.HIGH.value, Severity.CRITICAL.value):
            logger.warning("Security event {} [{}]: {}", event_type, severity, description)
        else:
            logger.info("Security event {} [{}]: {}", event_type, severity, description)
        return event

    async def resolve_event(self, db: AsyncSession, event: SecurityEvent, resolver: User) -> SecurityEvent:
        event.resolved = True
        event.resolved_at = utcnow()
        event.resolved_by = resolver.id
        await db.flush()
        return event

    # ==================== Login throttling ====================

    async def _attempt(self, db: AsyncSession, email: str, ip: str) -> Optional[FailedLoginAttempt]:
        result = await db.execute(
            select(FailedLoginAttempt).where(
                FailedLoginAttempt.email == email.lower(),
                FailedLoginAttempt.ip_address == ip,
            )
        )
        return result.scalar_one_or_none()

    async def record_failed_login(
        self,
        db: AsyncSession,
        email: str,
        ip: str,
        *,
        user_agent: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> FailedLoginAttempt:
        now = utcnow()
        attempt = await self._attempt(db, email, ip)
        if attempt is None:
            attempt = FailedLoginAttempt(email=email.lower(), ip_address=ip, attempts=0)
            db.add(attempt)
        elif attempt.blocked_until is not None and attempt.blocked_until <= now:
            # previous block has run out, start counting again
            attempt.attempts = 0
            attempt.blocked_until = None

        attempt.attempts += 1
        attempt.last_attempt_at = now
        attempt.user_agent = (user_agent or "")[:500] or None

        blocked = attempt.attempts >= settings.login_max_attempts
        if blocked:
            attempt.blocked_until = now + timedelta(minutes=settings.login_block_minutes)
        await db.flush()

        await self.log_security_event(
            db,
            SecurityEventType.ACCOUNT_LOCKED.value if blocked else SecurityEventType.FAILED_LOGIN.value,
            Severity.HIGH.value if blocked else Severity.MEDIUM.value,
            "Account temporarily locked after repeated failed logins" if blocked else "Failed login attempt",
            {"email": email.lower(), "attempts": attempt.attempts},
            ip_address=ip,
            user_agent=user_agent,
            tenant_id=tenant_id,
        )
        return attempt

    async def blocked_until(self, db: AsyncSession, email: str, ip: str):
        attempt = await self._attempt(db, email, ip)
        if attempt is None or attempt.blocked_until is None:
            return None
        if attempt.blocked_until <= utcnow():
            return None
        return attempt.blocked_until

    async def is_blocked(self, db: AsyncSession, email: str, ip: str) -> bool:
        return await self.blocked_until(db, email, ip) is not None

    async def record_successful_login(
        self,
        db: AsyncSession,
        user: User,
        token: AccessToken,
        ip: Optional[str],
        user_agent: Optional[str] = None,
    ) -> SessionSecurity:
        now = utcnow()
        await db.execute(
            delete(FailedLoginAttempt).where(FailedLoginAttempt.email == user.email.lower())
        )
        session = SessionSecurity(
            user_id=user.id,
            token_id=token.id,
            ip_address=ip,
            user_agent=(user_agent or "")[:500] or None,
            last_activity_at=now,
            expires_at=now + timedelta(hours=settings.session_ttl_hours),
        )
        db.add(session)
        user.last_login_at = now
        await db.flush()

        await self.log_security_event(
            db,
            SecurityEventType.LOGIN.value,
            Severity.LOW.value,
            "User logged in",
            user_id=user.id,
            ip_address=ip,
            user_agent=user_agent,
            tenant_id=user.tenant_id,
        )
        return session

    # ==================== Sessions ====================

    async def validate_session(self, db: AsyncSession, token: AccessToken, ip: str) -> bool:
        """
        A token issued at login is pinned to the login IP. A request from a
        different IP invalidates the session.
        """
        result = await db.execute(
            select(SessionSecurity)
            .where(SessionSecurity.token_id == token.id)
            .order_by(SessionSecurity.created_at.desc())
        )
        session = result.scalars().first()
        if session is None:
            return True

        now = utcnow()
        if not session.is_active or session.expires_at <= now:
            return False

        if session.ip_address and session.ip_address != ip:
            session.is_active = False
            await self.log_security_event(
                db,
                SecurityEventType.SESSION_HIJACK.value,
                Severity.HIGH.value,
                "Session IP address mismatch",
                {"original_ip": session.ip_address, "current_ip": ip},
                user_id=session.user_id,
                ip_address=ip,
                tenant_id=token.tenant_id,
            )
            return False

        session.last_activity_at = now
        session.expires_at = now + timedelta(hours=settings.session_ttl_hours)
        await db.flush()
        return True

    async def end_session(self, db: AsyncSession, token: AccessToken) -> None:
        result = await db.execute(select(SessionSecurity).where(SessionSecurity.token_id == token.id))
        for session in result.scalars().all():
            session.is_active = False
        token.expires_at = utcnow()
        await db.flush()

    async def cleanup_expired_sessions(self, db: AsyncSession) -> int:
        result = await db.execute(
            delete(SessionSecurity).where(SessionSecurity.expires_at < utcnow())
        )
        deleted = result.rowcount or 0
        if deleted:
            await self.log_security_event(
                db,
                "session_cleanup",
                Severity.LOW.value,
                "Expired sessions cleaned up",
                {"deleted_count": deleted},
            )
        return deleted

    # ==================== Request inspection ====================

    async def detect_malicious_request(self, db: AsyncSession, request: Request) -> bool:
        candidates = [request.url.path]
        for key, value in parse_qsl(request.url.query, keep_blank_values=True):
            candidates.extend((key, value))

        body = await request.body()
        if body:
            text = body.decode("utf-8", errors="ignore")
            try:
                candidates.extend(_strings(json.loads(text)))
            except ValueError:
                candidates.append(text)

        for value in candidates:
            pattern = match_malicious(value)
            if pattern:
                tenant = getattr(request.state, "tenant", None)
                await self.log_security_event(
                    db,
                    SecurityEventType.MALICIOUS_REQUEST.value,
                    Severity.CRITICAL.value,
                    "Malicious request detected",
                    {
                        "pattern_matched": pattern,
                        "input_value": value[:500],
                        "request_path": request.url.path,
                    },
                    ip_address=request.client.host if request.client else None,
                    user_agent=request.headers.get("user-agent"),
                    tenant_id=tenant.id if tenant else None,
                )
                return True
        return False

    async def check_rate_limit(
        self,
        db: AsyncSession,
        key: str,
        max_attempts: int,
        window_seconds: int,
        *,
        ip_address: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> bool:
        """True while the caller is within the limit"""
        hits = cache.increment(f"rate_limit:{key}", 1, ttl=window_seconds)
        if hits > max_attempts:
            await self.log_security_event(
                db,
                SecurityEventType.RATE_LIMIT_EXCEEDED.value,
                Severity.MEDIUM.value,
                "Rate limit exceeded",
                {"key": key, "hits": hits, "limit": max_attempts},
                ip_address=ip_address,
                tenant_id=tenant_id,
            )
            return False
        return True

    # ==================== Reporting ====================

    async def _count(self, db: AsyncSession, *conditions) -> int:
        result = await db.execute(select(func.count()).select_from(SecurityEvent).where(*conditions))
        return result.scalar() or 0

    async def _failed_login_total(self, db: AsyncSession, tenant_id: str, since) -> int:
        tenant_emails = select(func.lower(User.email)).where(User.tenant_id == tenant_id)
        result = await db.execute(
            select(func.coalesce(func.sum(FailedLoginAttempt.attempts), 0)).where(
                FailedLoginAttempt.last_attempt_at >= since,
                FailedLoginAttempt.email.in_(tenant_emails),
            )
        )
        return result.scalar() or 0

    async def calculate_security_score(self, db: AsyncSession, tenant_id: str) -> float:
        now = utcnow()
        score = 100.0

        critical = await self._count(
            db,
            SecurityEvent.tenant_id == tenant_id,
            SecurityEvent.severity == Severity.CRITICAL.value,
            SecurityEvent.created_at >= now - timedelta(days=30),
        )
        score -= min(50, critical * 10)

        failed_logins = await self._failed_login_total(db, tenant_id, now - timedelta(days=7))
        score -= min(20, failed_logins * 0.5)

        unresolved = await self._count(
            db,
            SecurityEvent.tenant_id == tenant_id,
            SecurityEvent.resolved == False,
            SecurityEvent.severity.in_([Severity.HIGH.value, Severity.CRITICAL.value]),
        )
        score -= min(15, unresolved * 3)

        result = await db.execute(
            select(func.count(), func.coalesce(func.sum(User.two_factor_enabled), 0)).where(
                User.tenant_id == tenant_id
            )
        )
        total_users, two_factor_users = result.one()
        if total_users:
            adoption = two_factor_users / total_users * 100
            score += min(15, adoption * 0.15)

        return max(0.0, min(100.0, round(score, 2)))

    async def detect_suspicious_activity(self, db: AsyncSession, tenant_id: Optional[str] = None) -> Dict[str, Any]:
        now = utcnow()
        findings: List[dict] = []

        result = await db.execute(
            select(FailedLoginAttempt.ip_address, func.count(func.distinct(FailedLoginAttempt.email)))
            .where(FailedLoginAttempt.last_attempt_at >= now - timedelta(hours=1))
            .group_by(FailedLoginAttempt.ip_address)
            .having(func.count(func.distinct(FailedLoginAttempt.email)) >= 5)
        )
        for ip, emails in result.all():
            findings.append({"type": "credential_stuffing", "ip_address": ip, "distinct_emails": emails})
            await self.log_security_event(
                db,
                SecurityEventType.SUSPICIOUS_ACTIVITY.value,
                Severity.HIGH.value,
                "Multiple failed login attempts from same IP",
                {"ip_address": ip, "distinct_emails": emails},
                ip_address=ip,
                tenant_id=tenant_id,
            )

        conditions = [SecurityEvent.created_at >= now - timedelta(minutes=10)]
        if tenant_id:
            conditions.append(SecurityEvent.tenant_id == tenant_id)
        recent = await self._count(db, *conditions)
        if recent > 20:
            findings.append({"type": "event_burst", "event_count": recent})
            await self.log_security_event(
                db,
                SecurityEventType.SUSPICIOUS_ACTIVITY.value,
                Severity.MEDIUM.value,
                "High volume of security events detected",
                {"event_count": recent},
                tenant_id=tenant_id,
            )

        return {"suspicious": bool(findings), "findings": findings}

    async def has_recent_suspicious_activity(self, db: AsyncSession, user: User) -> bool:
        since = utcnow() - timedelta(hours=24)
        result = await db.execute(
            select(func.coalesce(func.sum(FailedLoginAttempt.attempts), 0)).where(
                FailedLoginAttempt.email == user.email.lower(),
                FailedLoginAttempt.last_attempt_at >= since,
            )
        )
        if (result.scalar() or 0) > 3:
            return True
        return await self._count(
            db,
            SecurityEvent.user_id == user.id,
            SecurityEvent.event_type == SecurityEventType.SUSPICIOUS_ACTIVITY.value,
            SecurityEvent.created_at >= since,
        ) > 0

    async def check_security_policy(self, db: AsyncSession, user: User, action: str) -> bool:
        if action == "login":
            return user.is_active
        if action == "admin_access":
            return user.is_admin
        if action == "data_export":
            return user.is_admin and not await self.has_recent_suspicious_activity(db, user)
        if action == "sensitive_data_access":
            return user.two_factor_enabled and not await self.has_recent_suspicious_activity(db, user)
        return True

    async def get_dashboard(self, db: AsyncSession, tenant_id: str) -> Dict[str, Any]:
        now = utcnow()
        in_tenant = SecurityEvent.tenant_id == tenant_id

        result = await db.execute(
            select(SecurityEvent.event_type, func.count())
            .where(in_tenant, SecurityEvent.created_at >= now - timedelta(days=7))
            .group_by(SecurityEvent.event_type)
        )
        by_type = dict(result.all())

        sessions = await db.execute(
            select(func.count(), func.count(func.distinct(SessionSecurity.user_id)))
            .join(User, User.id == SessionSecurity.user_id)
            .where(
                User.tenant_id == tenant_id,
                SessionSecurity.is_active == True,
                SessionSecurity.expires_at > now,
            )
        )
        active_sessions, active_users = sessions.one()

        return {
            "events_summary": {
                "total_events": await self._count(db, in_tenant),
                "critical_events": await self._count(db, in_tenant, SecurityEvent.severity == Severity.CRITICAL.value),
                "high_events": await self._count(db, in_tenant, SecurityEvent.severity == Severity.HIGH.value),
                "recent_events": sum(by_type.values()),
                "recent_by_type": by_type,
                "unresolved": await self._count(db, in_tenant, SecurityEvent.resolved == False),
            },
            "failed_logins": {
                "recent_attempts": await self._failed_login_total(db, tenant_id, now - timedelta(days=7)),
            },
            "active_sessions": {
                "total": active_sessions,
                "unique_users": active_users,
            },
            "security_score": await self.calculate_security_score(db, tenant_id),
            "generated_at": now.isoformat(),
        }

    # ==================== Two-factor ====================

    async def enable_two_factor(self, db: AsyncSession, user: User) -> Dict[str, Any]:
        secret = generate_two_factor_secret()
        codes = generate_recovery_codes(8)
        user.two_factor_secret = secret
        user.two_factor_recovery_codes = codes
        user.two_factor_enabled = True
        await db.flush()

        await self.log_security_event(
            db,
            SecurityEventType.TWO_FACTOR_ENABLED.value,
            Severity.LOW.value,
            "Two-factor authentication enabled",
            user_id=user.id,
            tenant_id=user.tenant_id,
        )
        return {
            "secret": secret,
            "recovery_codes": codes,
            "otpauth_url": f"otpauth://totp/{settings.app_name}:{user.email}?secret={secret}&issuer={settings.app_name}",
        }

    async def disable_two_factor(self, db: AsyncSession, user: User) -> None:
        user.two_factor_enabled = False
        user.two_factor_secret = None
        user.two_factor_recovery_codes = None
        await db.flush()

        await self.log_security_event(
            db,
            SecurityEventType.TWO_FACTOR_DISABLED.value,
            Severity.MEDIUM.value,
            "Two-factor authentication disabled",
            user_id=user.id,
            tenant_id=user.tenant_id,
        )

    def verify_two_factor(self, user: User, code: Optional[str]) -> bool:
        """TOTP code, or a recovery code which is consumed on use"""
        if not code or not user.two_factor_secret:
            return False
        code = code.strip()
        if code.isdigit() and verify_totp(user.two_factor_secret, code):
            return True
        codes = list(user.two_factor_recovery_codes or [])
        if code in codes:
            codes.remove(code)
            user.two_factor_recovery_codes = codes
            return True
        return False


security_service = SecurityService()
