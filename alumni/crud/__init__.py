"""
CRUD operations
"""
from .tenant import tenant_crud
from .user import user_crud, token_crud
from .course import course_crud
from .connection import connection_crud
from .circle import circle_crud, group_crud
from .post import post_crud
from .job import job_crud, application_crud, job_match_crud, job_match_score_crud
from .event import event_crud, registration_crud, check_in_crud
from .fundraising import campaign_crud, donation_crud, recurring_crud, tax_receipt_crud
from .forum import forum_crud, topic_crud, reply_crud
from .webhook import webhook_crud, delivery_crud
from .email import email_campaign_crud
from .sso import sso_crud
from .testimonial import testimonial_crud
from .security import security_event_crud

__all__ = [
    "tenant_crud",
    "user_crud",
    "token_crud",
    "course_crud",
    "connection_crud",
    "circle_crud",
    "group_crud",
    "post_crud",
    "job_crud",
    "application_crud",
    "job_match_crud",
    "job_match_score_crud",
    "event_crud",
    "registration_crud",
    "check_in_crud",
    "campaign_crud",
    "donation_crud",
    "recurring_crud",
    "tax_receipt_crud",
    "forum_crud",
    "topic_crud",
    "reply_crud",
    "webhook_crud",
    "delivery_crud",
    "email_campaign_crud",
    "sso_crud",
    "testimonial_crud",
    "security_event_crud",
]
