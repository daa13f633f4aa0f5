from .event import Event, EventQuerySet, EventSession, EventStatus, SessionStatus
from .organization import Organization, OrganizationMember, OrganizationRole

__all__ = [
    "Event",
    "EventQuerySet",
    "EventSession",
    "EventStatus",
    "Organization",
    "OrganizationMember",
    "OrganizationRole",
    "SessionStatus",
]
