"""
API routing
"""
from typing import Optional
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.database import get_db
from alumni.core.exceptions import BadRequestException
from alumni.core.tenancy import get_optional_tenant
from alumni.models.tenant import Tenant
from alumni.services.security import security_service

from .v1 import (
    ab_tests,
    alumni,
    analytics,
    auth,
    campaigns,
    circles,
    connections,
    courses,
    donations,
    email_campaigns,
    events,
    federation,
    forums,
    groups,
    homepage,
    jobs,
    matches,
    posts,
    recommendations,
    security,
    sso,
    tenants,
    testimonials,
    timeline,
    users,
    webhooks,
)


async def reject_malicious_requests(
    request: Request,
    tenant: Optional[Tenant] = Depends(get_optional_tenant),
    db: AsyncSession = Depends(get_db),
) -> None:
    """
    Injection and script patterns in the path, query or body are refused with 400;
    the event is filed under the request's tenant when it names one
    """
    if await security_service.detect_malicious_request(db, request):
        # keep the security event although the request fails
        await db.commit()
        raise BadRequestException("Request blocked")


api_router = APIRouter(dependencies=[Depends(reject_malicious_requests)])

api_router.include_router(tenants.router, prefix="/tenants", tags=["Tenants"])
api_router.include_router(auth.router, prefix="/auth", tags=["Auth"])
api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(alumni.router, prefix="/alumni", tags=["Alumni directory"])
api_router.include_router(connections.router, prefix="/connections", tags=["Connections"])
api_router.include_router(recommendations.router, prefix="/recommendations", tags=["Recommendations"])
api_router.include_router(circles.router, prefix="/circles", tags=["Circles"])
api_router.include_router(groups.router, prefix="/groups", tags=["Groups"])
api_router.include_router(posts.router, prefix="/posts", tags=["Posts"])
api_router.include_router(timeline.router, prefix="/timeline", tags=["Timeline"])
api_router.include_router(courses.router, prefix="/courses", tags=["Courses"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["Jobs"])
api_router.include_router(matches.router, prefix="/matches", tags=["Job matching"])
api_router.include_router(matches.statistics_router, prefix="/matching", tags=["Job matching"])
api_router.include_router(events.router, prefix="/events", tags=["Events"])
api_router.include_router(campaigns.router, prefix="/campaigns", tags=["Fundraising"])
api_router.include_router(donations.router, prefix="/donations", tags=["Fundraising"])
api_router.include_router(forums.router, prefix="/forums", tags=["Forums"])
api_router.include_router(homepage.router, prefix="/homepage", tags=["Homepage"])
api_router.include_router(ab_tests.router, prefix="/ab-tests", tags=["A/B testing"])
api_router.include_router(testimonials.router, prefix="/testimonials", tags=["Testimonials"])
api_router.include_router(security.router, prefix="/security", tags=["Security"])
api_router.include_router(federation.router, prefix="/federation", tags=["Federation"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
api_router.include_router(email_campaigns.router, prefix="/email-campaigns", tags=["Email marketing"])
api_router.include_router(sso.router, prefix="/sso", tags=["SSO"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["Analytics"])
