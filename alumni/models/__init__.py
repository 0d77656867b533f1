"""
SQLModel models

Tables and their request/response schemas live side by side per module.
Importing this package registers every table on SQLModel.metadata.
"""
from .base import SQLModelBase, TimestampMixin, IDMixin, TenantMixin, utcnow, to_naive_utc
from .tenant import Tenant, TenantCreate, TenantUpdate, TenantResponse
from .user import User, AccessToken, UserRole, ProfileVisibility, EmploymentStatus, UserBrief, UserResponse
from .course import Course, CourseCreate, CourseUpdate, CourseResponse
from .connection import Connection, ConnectionStatus, DismissedRecommendation
from .circle import (
    Circle, CircleMembership, CircleType,
    Group, GroupMembership, GroupPrivacy, GroupRole, MembershipStatus,
)
from .post import Post, PostAudience, PostEngagement, PostStatus, PostVisibility, PostType, EngagementType
from .job import JobPosting, JobApplication, JobMatch, JobMatchScore, JobStatus, ApplicationStatus
from .event import Event, EventRegistration, EventCheckIn, EventFormat, RegistrationStatus
from .fundraising import (
    FundraisingCampaign, CampaignDonation, RecurringDonation, PaymentTransaction,
    DonationAcknowledgment, TaxReceipt, DonationStatus, RecurringFrequency, RecurringStatus,
)
from .forum import Forum, ForumTopic, ForumReply, ForumSubscription
from .ab_test import ABTest, ABTestAssignment, ABTestConversion
from .testimonial import Testimonial, TestimonialStatus
from .security import FailedLoginAttempt, SecurityEvent, SessionSecurity, Severity, SecurityEventType
from .federation import FederationMapping
from .webhook import Webhook, WebhookDelivery, WebhookStatus, DeliveryStatus, AVAILABLE_EVENTS
from .email import EmailCampaign, EmailRecipient, CampaignState, RecipientStatus
from .sso import SsoConfiguration, SsoProtocol
from .analytics import AnalyticsSnapshot

__all__ = [
    # Base
    "SQLModelBase",
    "TimestampMixin",
    "IDMixin",
    "TenantMixin",
    "utcnow",
    "to_naive_utc",
    # Tenancy and users
    "Tenant",
    "TenantCreate",
    "TenantUpdate",
    "TenantResponse",
    "User",
    "AccessToken",
    "UserRole",
    "ProfileVisibility",
    "EmploymentStatus",
    "UserBrief",
    "UserResponse",
    "Course",
    "CourseCreate",
    "CourseUpdate",
    "CourseResponse",
    # Social
    "Connection",
    "ConnectionStatus",
    "DismissedRecommendation",
    "Circle",
    "CircleMembership",
    "CircleType",
    "Group",
    "GroupMembership",
    "GroupPrivacy",
    "GroupRole",
    "MembershipStatus",
    "Post",
    "PostAudience",
    "PostEngagement",
    "PostStatus",
    "PostVisibility",
    "PostType",
    "EngagementType",
    # Careers
    "JobPosting",
    "JobApplication",
    "JobMatch",
    "JobMatchScore",
    "JobStatus",
    "ApplicationStatus",
    # Events
    "Event",
    "EventRegistration",
    "EventCheckIn",
    "EventFormat",
    "RegistrationStatus",
    # Fundraising
    "FundraisingCampaign",
    "CampaignDonation",
    "RecurringDonation",
    "PaymentTransaction",
    "DonationAcknowledgment",
    "TaxReceipt",
    "DonationStatus",
    "RecurringFrequency",
    "RecurringStatus",
    # Forums
    "Forum",
    "ForumTopic",
    "ForumReply",
    "ForumSubscription",
    # Homepage
    "ABTest",
    "ABTestAssignment",
    "ABTestConversion",
    "Testimonial",
    "TestimonialStatus",
    # Security
    "FailedLoginAttempt",
    "SecurityEvent",
    "SessionSecurity",
    "Severity",
    "SecurityEventType",
    # Integrations
    "FederationMapping",
    "Webhook",
    "WebhookDelivery",
    "WebhookStatus",
    "DeliveryStatus",
    "AVAILABLE_EVENTS",
    "EmailCampaign",
    "EmailRecipient",
    "CampaignState",
    "RecipientStatus",
    "SsoConfiguration",
    "SsoProtocol",
    "AnalyticsSnapshot",
]
