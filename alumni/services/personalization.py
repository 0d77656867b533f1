"""
Audience detection and personalized homepage content

An anonymous visitor is scored on weighted signals (url param, referrer,
user agent, utm_source) to guess whether they are an individual alum or
someone evaluating the platform for an institution. Content is then
layered: base copy, time of day, region and pages already visited.
"""
import copy
import hashlib
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

from loguru import logger

from alumni.core.cache import cache
from alumni.core.config import settings
from alumni.models.base import utcnow
from alumni.services.homepage import AUDIENCES, homepage_service

INSTITUTIONAL_DOMAINS = (".edu", ".ac.", "university", "college", "admin")
ADMIN_AGENT_HINTS = ("admin", "dashboard", "management", "institutional")
INSTITUTIONAL_SOURCES = ("university", "college", "institution", "admin", "conference")

SESSION_TTL = 60 * 60 * 24 * 30
MAX_VISITED_PAGES = 50


def detect_audience(query: Mapping[str, str], headers: Mapping[str, str]) -> Dict[str, Any]:
    factors: List[dict] = []

    def add(kind: str, value: str, weight: float) -> None:
        factors.append({"type": kind, "value": value, "weight": weight, "contribution": weight})

    audience = query.get("audience")
    if audience in ("institutional", "admin"):
        add("url_param", audience, 0.8)
    elif audience and audience != "individual":
        logger.warning("Invalid audience parameter: {}", audience)

    referrer = headers.get("referer")
    if referrer:
        host = urlparse(referrer).hostname
        if not host:
            logger.warning("Malformed referrer in audience detection: {}", referrer)
        elif any(fragment in host for fragment in INSTITUTIONAL_DOMAINS):
            add("referrer", host, 0.6)

    user_agent = (headers.get("user-agent") or "").lower()
    for hint in ADMIN_AGENT_HINTS:
        if hint in user_agent:
            add("user_agent", hint, 0.3)
            break

    source = query.get("utm_source")
    if source in INSTITUTIONAL_SOURCES:
        add("utm_source", source, 0.5)

    score = sum(f["contribution"] for f in factors)
    weight = sum(f["weight"] for f in factors)
    confidence = min(score / weight, 1.0) if weight else 0.0
    return {
        "detected_audience": "institutional" if confidence > 0.5 else "individual",
        "confidence": confidence,
        "factors": factors,
        "fallback": "individual",
    }


def build_context(query: Mapping[str, str], headers: Mapping[str, str], client_ip: Optional[str] = None) -> Dict[str, Any]:
    return {
        "referrer": headers.get("referer"),
        "user_agent": headers.get("user-agent"),
        "ip": client_ip,
        "utm_source": query.get("utm_source"),
        "utm_medium": query.get("utm_medium"),
        "utm_campaign": query.get("utm_campaign"),
        "utm_content": query.get("utm_content"),
        "utm_term": query.get("utm_term"),
        "session_id": headers.get("x-session-id"),
        "locale": query.get("locale") or (headers.get("accept-language") or "en")[:2],
        "timezone": headers.get("x-timezone") or "UTC",
    }


def content_cache_key(audience: str, context: Mapping[str, Any], hour: int) -> str:
    raw = f"{audience}|{context.get('utm_campaign') or ''}|{context.get('locale') or 'en'}|{hour}"
    return f"homepage:personalized:{hashlib.md5(raw.encode('utf-8')).hexdigest()}"


def apply_geographic(content: Dict[str, Any], timezone: str) -> Dict[str, Any]:
    hero = content.get("hero") or {}
    if "America" in timezone and hero.get("description"):
        hero["description"] = hero["description"].replace("professional networking", "career networking")
    elif "Europe" in timezone:
        for tier in (content.get("pricing") or {}).get("tiers", []):
            if tier.get("price"):
                tier["price_eur"] = round(tier["price"] * 0.85)
    return content


def apply_time_of_day(content: Dict[str, Any], hour: int) -> Dict[str, Any]:
    hero = content.get("hero") or {}
    subtitle = hero.get("subtitle")
    if not subtitle:
        return content
    if 9 <= hour <= 17:
        hero["subtitle"] = subtitle.replace("Join thousands", "Join thousands of professionals")
    elif 18 <= hour <= 22:
        hero["subtitle"] = subtitle.replace("advancing their careers", "building their careers after hours")
    return content


def apply_behavioral(content: Dict[str, Any], visited_pages: List[str]) -> Dict[str, Any]:
    if "/jobs" in visited_pages:
        for feature in (content.get("features") or {}).get("items", []):
            if feature.get("id") == "networking":
                feature["title"] = "Job-Focused Alumni Networking"
                feature["description"] = "Connect with alumni who can help you find your next career opportunity."
    if "/mentorship" in visited_pages:
        primary = (content.get("cta") or {}).get("primary")
        if primary:
            primary["text"] = "Find Your Mentor Today"
    return content


class PersonalizationService:

    def get_personalized_content(self, audience: str, context: Dict[str, Any]) -> Dict[str, Any]:
        if audience not in AUDIENCES:
            logger.warning("Invalid audience {!r}, using individual", audience)
            audience = "individual"

        hour = utcnow().hour
        try:
            content = cache.remember(
                content_cache_key(audience, context, hour),
                settings.personalization_ttl,
                lambda: apply_time_of_day(
                    homepage_service.content(audience, {"utm_campaign": context.get("utm_campaign")}), hour
                ),
            )
            # cached copy stays untouched; the per-visitor layers work on a copy
            content = copy.deepcopy(content)
            if not homepage_service.campaign_override(context.get("utm_campaign")):
                homepage_service.personalize_for_referrer(content["hero"], context.get("referrer"))
            content = apply_geographic(content, context.get("timezone") or "UTC")
            return apply_behavioral(content, self.visited_pages(context.get("session_id")))
        except Exception:
            logger.exception("Personalized content failed for {}, serving defaults", audience)
            return homepage_service.default_content(audience)

    # ==================== Session state ====================

    @staticmethod
    def _session_key(session_id: str, name: str) -> str:
        return f"homepage:session:{session_id}:{name}"

    def store_audience_preference(self, session_id: str, audience: str, source: str = "manual") -> Dict[str, Any]:
        preference = {
            "type": audience,
            "timestamp": utcnow().isoformat(),
            "source": source,
            "session_id": session_id,
        }
        cache.set(self._session_key(session_id, "audience"), preference, SESSION_TTL)
        self.track_event(audience, "audience_preference_stored", {"source": source, "session_id": session_id})
        return preference

    def get_audience_preference(self, session_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not session_id:
            return None
        return cache.get(self._session_key(session_id, "audience"))

    def track_visit(self, session_id: str, path: str) -> List[str]:
        key = self._session_key(session_id, "pages")
        pages = list(cache.get(key, []))
        if path not in pages:
            pages.append(path)
        pages = pages[-MAX_VISITED_PAGES:]
        cache.set(key, pages, SESSION_TTL)
        return pages

    def visited_pages(self, session_id: Optional[str]) -> List[str]:
        if not session_id:
            return []
        return cache.get(self._session_key(session_id, "pages"), [])

    def track_event(self, audience: str, event: str, data: Optional[Dict[str, Any]] = None) -> bool:
        """Best-effort telemetry; never raises"""
        try:
            cache.increment(f"homepage:events:{audience}:{event}", 1, 60 * 60 * 24)
            logger.info("Homepage personalization event {} ({}): {}", event, audience, data or {})
            return True
        except Exception as exc:
            logger.warning("Failed to track personalization event {}: {}", event, exc)
            return False


personalization_service = PersonalizationService()
