"""
Marketing homepage content

Copy lives in content/homepage.yaml, one block per audience. Approved
testimonials from the database take the place of the YAML ones when a
tenant has any.
"""
import uuid
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.content import get_content
from alumni.crud import testimonial_crud
from alumni.models.base import utcnow

AUDIENCES = ("individual", "institutional")
SECTIONS = ("hero", "features", "testimonials", "pricing", "cta", "meta")


def normalize_audience(audience: Optional[str]) -> str:
    return audience if audience in AUDIENCES else "individual"


def extract_institution_name(referrer: str) -> str:
    host = urlparse(referrer).hostname or ""
    parts = host.split(".")
    if parts and parts[0] == "www":
        parts = parts[1:]
    if len(parts) >= 2:
        return parts[0].capitalize()
    return "University"


def career_value(years: int, industry: Optional[str]) -> Dict[str, Any]:
    config = get_content("homepage", "career_calculator")
    base = config["base_increase"]
    experience = min(years * 0.05, 0.3)
    multiplier = config["industry_multipliers"].get(industry or "", config["default_multiplier"])
    return {
        "projected_salary_increase": round(base + base * experience + base * multiplier),
        "networking_value": config["networking_value"],
        "career_advancement_timeline": config["career_advancement_timeline"],
        "personalized_recommendations": config["recommendations"],
        "success_probability": config["success_probability"],
    }


class HomepageService:

    def statistics(self, audience: str) -> Dict[str, Any]:
        stats = get_content("homepage", "statistics.base")
        if normalize_audience(audience) == "institutional":
            stats.update(get_content("homepage", "statistics.institutional"))
        stats["last_updated"] = utcnow().isoformat()
        return stats

    def section(self, name: str, audience: str) -> Any:
        return get_content("homepage", f"{name}.{normalize_audience(audience)}")

    def hero(self, audience: str, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        context = context or {}
        hero = self.personalize_for_referrer(self.section("hero", audience), context.get("referrer"))
        hero.update(self.campaign_override(context.get("utm_campaign")))
        return hero

    @staticmethod
    def campaign_override(campaign: Optional[str]) -> Dict[str, Any]:
        if not campaign:
            return {}
        return get_content("homepage", f"campaigns.{campaign}", default={})

    @staticmethod
    def personalize_for_referrer(hero: Dict[str, Any], referrer: Optional[str]) -> Dict[str, Any]:
        if referrer and ".edu" in referrer:
            hero["headline"] = f"Welcome, {extract_institution_name(referrer)} Alumni!"
        return hero

    def content(self, audience: str, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        audience = normalize_audience(audience)
        content = {name: self.section(name, audience) for name in SECTIONS}
        content["hero"] = self.hero(audience, context)
        return content

    def default_content(self, audience: str) -> Dict[str, Any]:
        return {name: self.section(name, audience) for name in SECTIONS}

    def content_variations(self, audience: str, test_id: str) -> Dict[str, Any]:
        return get_content("homepage", f"variations.{test_id}.{normalize_audience(audience)}", default={})

    # ==================== Testimonials ====================

    async def testimonials(self, db: AsyncSession, tenant_id: Optional[str], audience: str, limit: int = 6) -> Dict[str, Any]:
        block = self.section("testimonials", audience)
        if tenant_id:
            live = await testimonial_crud.approved(db, tenant_id, audience=normalize_audience(audience), limit=limit)
            if live:
                block["items"] = [self.testimonial_item(t) for t in live]
                block["source"] = "database"
        return block

    @staticmethod
    def testimonial_item(testimonial) -> Dict[str, Any]:
        return {
            "id": testimonial.id,
            "quote": testimonial.content,
            "author": {
                "name": testimonial.author_name,
                "graduation_year": testimonial.graduation_year,
                "current_role": testimonial.author_title,
                "current_company": testimonial.author_company,
            },
            "rating": testimonial.rating,
            "video_url": testimonial.video_url,
            "featured": testimonial.featured,
        }

    # ==================== Lead forms ====================

    def process_demo_request(self, data: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("Demo request from {} ({})", data.get("email"), data.get("institution_name"))
        response = get_content("homepage", "demo_request")
        response["success"] = True
        return response

    def process_trial_signup(self, data: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("Trial signup from {}", data.get("email"))
        response = get_content("homepage", "trial_signup")
        response["success"] = True
        return response

    def capture_lead(self, data: Dict[str, Any]) -> Dict[str, Any]:
        lead_id = f"LEAD_{uuid.uuid4().hex[:13]}"
        logger.info("Lead {} captured from {} ({})", lead_id, data.get("email"), data.get("source"))
        return {
            "success": True,
            "lead_id": lead_id,
            "follow_up_scheduled": True,
            "message": get_content("homepage", "lead_capture.message"),
        }

    def features(self, audience: str) -> List[dict]:
        return self.section("features", audience)["items"]


homepage_service = HomepageService()
