"""
API v1 routers
"""
from . import (
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

__all__ = [
    "ab_tests",
    "alumni",
    "analytics",
    "auth",
    "campaigns",
    "circles",
    "connections",
    "courses",
    "donations",
    "email_campaigns",
    "events",
    "federation",
    "forums",
    "groups",
    "homepage",
    "jobs",
    "matches",
    "posts",
    "recommendations",
    "security",
    "sso",
    "tenants",
    "testimonials",
    "timeline",
    "users",
    "webhooks",
]
