# src/events/signals.py

import typing as t

import structlog
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from events.models import Event, EventSession, Organization, OrganizationMember
from events.service.ownership_cache import ownership_cache

logger = structlog.get_logger(__name__)


@receiver([post_save, post_delete], sender=Organization)
def evict_organization_ownership(sender: type[Organization], instance: Organization, **kwargs: t.Any) -> None:
    """The owner may have changed, so every cached ownership answer for the organization is dropped."""
    ownership_cache.evict_organization(instance.id)
    ownership_cache.evict_member_roles(instance.id)


@receiver([post_save, post_delete], sender=OrganizationMember)
def evict_member_roles(sender: type[OrganizationMember], instance: OrganizationMember, **kwargs: t.Any) -> None:
    """Drop cached role answers for the organization and for the member across organizations."""
    ownership_cache.evict_member_roles(instance.organization_id)
    ownership_cache.evict_user(instance.user_id)
    logger.debug(
        "member_role_cache_evicted",
        organization_id=str(instance.organization_id),
        user_id=instance.user_id,
    )


@receiver([post_save, post_delete], sender=Event)
def evict_event_ownership(sender: type[Event], instance: Event, **kwargs: t.Any) -> None:
    """Drop the cached event-to-organization mapping, and the session mappings when the event is saved."""
    ownership_cache.evict_event(instance.id)
    if kwargs.get("signal") is post_save:
        for session_id in instance.sessions.values_list("id", flat=True):
            ownership_cache.evict_session(session_id)


@receiver([post_save, post_delete], sender=EventSession)
def evict_session_ownership(sender: type[EventSession], instance: EventSession, **kwargs: t.Any) -> None:
    """Drop the cached session-to-organization mapping."""
    ownership_cache.evict_session(instance.id)
