"""
Marketing homepage API

Public endpoints. The audience comes from the `audience` query parameter,
then the stored session preference, then detection.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import client_ip, get_optional_user
from alumni.core.database import get_db
from alumni.core.exceptions import BadRequestException, TooManyRequestsException
from alumni.core.response import success_response, DictResponse, ListResponse
from alumni.core.tenancy import get_optional_tenant
from alumni.models.homepage import (
    AudiencePreference,
    CareerCalculatorRequest,
    DemoRequest,
    LeadCapture,
    PersonalizationEvent,
    TrialSignup,
    VisitTrack,
)
from alumni.models.tenant import Tenant
from alumni.models.user import User
from alumni.services.ab_testing import ab_testing_service
from alumni.services.homepage import AUDIENCES, career_value, homepage_service, normalize_audience
from alumni.services.personalization import build_context, detect_audience, personalization_service
from alumni.services.security import security_service

router = APIRouter()

LEAD_RATE_LIMIT = 10
LEAD_RATE_WINDOW = 60

HERO_TEST = "hero_message_dual_audience"
CTA_TEST = "cta_button_text"


def resolve_audience(request: Request, audience: Optional[str]) -> str:
    if audience in AUDIENCES:
        return audience
    preference = personalization_service.get_audience_preference(request.headers.get("X-Session-ID"))
    if preference:
        return normalize_audience(preference.get("type"))
    detected = detect_audience(request.query_params, request.headers)
    return detected["detected_audience"]


def session_id(request: Request) -> str:
    value = request.headers.get("X-Session-ID")
    if not value:
        raise BadRequestException("X-Session-ID header is required")
    return value


@router.get("/statistics", summary="Platform statistics", response_model=DictResponse)
async def get_statistics(request: Request, audience: Optional[str] = None):
    return success_response(data=homepage_service.statistics(resolve_audience(request, audience)))


@router.get("/content", summary="Personalized homepage content", response_model=DictResponse)
async def get_content(
    request: Request,
    audience: Optional[str] = None,
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Personalized copy with the visitor's A/B variants applied on top
    """
    audience = resolve_audience(request, audience)
    context = build_context(request.query_params, request.headers, client_ip(request))
    content = personalization_service.get_personalized_content(audience, context)

    subject = user.id if user else (context["session_id"] or client_ip(request))
    hero_variant = await ab_testing_service.get_variant(db, HERO_TEST, subject, audience)
    overrides = (hero_variant.get("component_overrides") or {}).get(audience)
    if overrides:
        content["hero"].update(overrides)

    variants = {HERO_TEST: hero_variant["id"]}
    if audience == "individual":
        cta_variant = await ab_testing_service.get_variant(db, CTA_TEST, subject, audience)
        cta_text = (cta_variant.get("component_overrides") or {}).get("primary_cta_text")
        primary = (content.get("cta") or {}).get("primary")
        if cta_text and primary:
            primary["text"] = cta_text
        variants[CTA_TEST] = cta_variant["id"]

    return success_response(data={"audience": audience, "content": content, "ab_variants": variants})


@router.get("/detect-audience", summary="Guess the visitor's audience", response_model=DictResponse)
async def get_detected_audience(request: Request):
    return success_response(data=detect_audience(request.query_params, request.headers))


@router.get("/testimonials", summary="Testimonials for an audience", response_model=DictResponse)
async def get_testimonials(
    request: Request,
    audience: Optional[str] = None,
    limit: int = Query(6, ge=1, le=20),
    tenant: Optional[Tenant] = Depends(get_optional_tenant),
    db: AsyncSession = Depends(get_db),
):
    block = await homepage_service.testimonials(
        db, tenant.id if tenant else None, resolve_audience(request, audience), limit
    )
    return success_response(data=block)


@router.get("/features", summary="Feature list for an audience", response_model=ListResponse)
async def get_features(request: Request, audience: Optional[str] = None):
    return success_response(data=homepage_service.features(resolve_audience(request, audience)))


@router.get("/variations/{test_id}", summary="Copy variations for a test", response_model=DictResponse)
async def get_variations(test_id: str, request: Request, audience: Optional[str] = None):
    return success_response(data=homepage_service.content_variations(resolve_audience(request, audience), test_id))


@router.post("/career-calculator", summary="Estimate the value of the network", response_model=DictResponse)
async def calculate_career_value(data: CareerCalculatorRequest):
    return success_response(data=career_value(data.experience_years, data.industry))


# ==================== Lead forms ====================

@router.post("/demo-request", summary="Request a demo", status_code=201, response_model=DictResponse)
async def request_demo(data: DemoRequest):
    personalization_service.track_event("institutional", "demo_request")
    return success_response(data=homepage_service.process_demo_request(data.model_dump()), code=201)


@router.post("/trial-signup", summary="Sign up for a trial", status_code=201, response_model=DictResponse)
async def signup_trial(data: TrialSignup):
    personalization_service.track_event("individual", "trial_signup")
    return success_response(data=homepage_service.process_trial_signup(data.model_dump()), code=201)


@router.post("/leads", summary="Capture a lead", status_code=201, response_model=DictResponse)
async def capture_lead(
    data: LeadCapture,
    request: Request,
    tenant: Optional[Tenant] = Depends(get_optional_tenant),
    db: AsyncSession = Depends(get_db),
):
    """Limited to 10 submissions a minute per IP"""
    ip = client_ip(request)
    allowed = await security_service.check_rate_limit(
        db,
        f"leads:{ip}",
        LEAD_RATE_LIMIT,
        LEAD_RATE_WINDOW,
        ip_address=ip,
        tenant_id=tenant.id if tenant else None,
    )
    if not allowed:
        # keep the rate limit event although the request fails
        await db.commit()
        raise TooManyRequestsException("Too many submissions. Please try again later.", retry_after=LEAD_RATE_WINDOW)
    return success_response(data=homepage_service.capture_lead(data.model_dump()), code=201)


# ==================== Session tracking ====================

@router.post("/audience-preference", summary="Remember the visitor's audience", response_model=DictResponse)
async def store_audience_preference(data: AudiencePreference, request: Request):
    preference = personalization_service.store_audience_preference(session_id(request), data.audience, data.source)
    return success_response(data=preference)


@router.get("/audience-preference", summary="The visitor's stored audience", response_model=DictResponse)
async def get_audience_preference(request: Request):
    preference = personalization_service.get_audience_preference(request.headers.get("X-Session-ID"))
    return success_response(data=preference or {})


@router.post("/track-visit", summary="Record a visited page", response_model=DictResponse)
async def track_visit(data: VisitTrack, request: Request):
    pages = personalization_service.track_visit(session_id(request), data.path)
    return success_response(data={"visited_pages": pages})


@router.post("/track-event", summary="Record a personalization event", response_model=DictResponse)
async def track_event(data: PersonalizationEvent):
    tracked = personalization_service.track_event(data.audience, data.event, data.data)
    return success_response(data={"tracked": tracked})
