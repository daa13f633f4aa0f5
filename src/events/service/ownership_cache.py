"""Cached ownership and role checks.

Every cached answer lives under a key that embeds a generation token for each
resource it depends on, e.g.::

    ownership:owner:<org_id>@<org_gen>:<user_id>@<user_gen>

Evicting a resource replaces its generation token, so every key built with the
old token is unreachable from then on and simply expires. This invalidates a
whole key prefix in a single cache write, without scanning the key space.

Eviction is best-effort: a read that fetched its keys before the eviction may
still return the previous answer.
"""

import typing as t
from uuid import UUID, uuid4

import structlog
from django.conf import settings
from django.core.cache import cache

from events.exceptions import NotFoundError

logger = structlog.get_logger(__name__)

ORGANIZATION = "organization"
MEMBER_ROLES = "member-roles"
EVENT = "event"
SESSION = "session"
USER = "user"


def get_generation_cache_key(namespace: str, resource_id: t.Any) -> str:
    return f"ownership:gen:{namespace}:{resource_id}"


class OwnershipCache:
    """Read-through cache for organization, event and session ownership and role checks."""

    def __init__(self, timeout: int | None = None) -> None:
        """Cached answers expire after ``timeout`` seconds (OWNERSHIP_CACHE_TIMEOUT by default)."""
        self.timeout = timeout if timeout is not None else settings.OWNERSHIP_CACHE_TIMEOUT

    def _generation(self, namespace: str, resource_id: t.Any) -> str:
        key = get_generation_cache_key(namespace, resource_id)
        generation = cache.get(key)
        if generation is None:
            cache.add(key, uuid4().hex[:12], timeout=None)
            generation = cache.get(key) or uuid4().hex[:12]
        return t.cast(str, generation)

    def _bump(self, namespace: str, resource_id: t.Any) -> None:
        cache.set(get_generation_cache_key(namespace, resource_id), uuid4().hex[:12], timeout=None)
        logger.debug("ownership_cache_evicted", namespace=namespace, resource_id=str(resource_id))

    def _key(self, kind: str, namespace: str, resource_id: t.Any, user_id: str, *suffix: str) -> str:
        parts = [
            f"{resource_id}@{self._generation(namespace, resource_id)}",
            f"{user_id}@{self._generation(USER, user_id)}",
            *suffix,
        ]
        return f"ownership:{kind}:" + ":".join(parts)

    def is_owner(self, organization_id: UUID, user_id: str) -> bool:
        """Whether ``user_id`` owns the organization.

        Raises:
            NotFoundError: if the organization does not exist. Misses are not cached.
        """
        from events.models import Organization

        def _lookup() -> bool:
            logger.debug("ownership_cache_miss", check="is_owner", organization_id=str(organization_id))
            owner_id = Organization.objects.filter(pk=organization_id).values_list("owner_id", flat=True).first()
            if owner_id is None:
                raise NotFoundError(f"Organization not found with id: {organization_id}")
            return owner_id == user_id

        key = self._key("owner", ORGANIZATION, organization_id, user_id)
        return t.cast(bool, cache.get_or_set(key, _lookup, timeout=self.timeout))

    def has_role(self, organization_id: UUID, user_id: str, role: str) -> bool:
        """Whether ``user_id`` is an active member of the organization holding ``role``."""
        from events.models import OrganizationMember

        def _lookup() -> bool:
            logger.debug("ownership_cache_miss", check="has_role", organization_id=str(organization_id), role=role)
            member = OrganizationMember.objects.filter(organization_id=organization_id, user_id=user_id).first()
            return member is not None and member.has_role(role)

        key = self._key("role", MEMBER_ROLES, organization_id, user_id, str(role))
        return t.cast(bool, cache.get_or_set(key, _lookup, timeout=self.timeout))

    def is_event_owner(self, event_id: UUID, user_id: str) -> bool:
        """Whether ``user_id`` owns the organization the event belongs to.

        Raises:
            NotFoundError: if the event or its organization does not exist.
        """
        from events.models import Event

        def _organization_id() -> UUID:
            organization_id = Event.objects.filter(pk=event_id).values_list("organization_id", flat=True).first()
            if organization_id is None:
                raise NotFoundError(f"Event not found with id: {event_id}")
            return t.cast(UUID, organization_id)

        key = f"ownership:event-org:{event_id}@{self._generation(EVENT, event_id)}"
        organization_id = cache.get_or_set(key, _organization_id, timeout=self.timeout)
        return self.is_owner(organization_id, user_id)

    def _session_organization_id(self, session_id: UUID) -> UUID:
        from events.models import EventSession

        def _lookup() -> UUID:
            organization_id = (
                EventSession.objects.filter(pk=session_id).values_list("event__organization_id", flat=True).first()
            )
            if organization_id is None:
                raise NotFoundError(f"Session not found with id: {session_id}")
            return t.cast(UUID, organization_id)

        key = f"ownership:session-org:{session_id}@{self._generation(SESSION, session_id)}"
        return t.cast(UUID, cache.get_or_set(key, _lookup, timeout=self.timeout))

    def is_session_owner(self, session_id: UUID, user_id: str) -> bool:
        """Whether ``user_id`` owns the organization the session belongs to.

        Raises:
            NotFoundError: if the session or its organization does not exist.
        """
        return self.is_owner(self._session_organization_id(session_id), user_id)

    def session_has_role(self, session_id: UUID, user_id: str, role: str) -> bool:
        """The owner of the session's organization holds every role; anyone else needs an active membership."""
        organization_id = self._session_organization_id(session_id)
        return self.is_owner(organization_id, user_id) or self.has_role(organization_id, user_id, role)

    def evict_organization(self, organization_id: UUID) -> None:
        """Forget every ownership answer for the organization."""
        self._bump(ORGANIZATION, organization_id)

    def evict_member_roles(self, organization_id: UUID) -> None:
        """Forget every role answer for the organization."""
        self._bump(MEMBER_ROLES, organization_id)

    def evict_event(self, event_id: UUID) -> None:
        """Forget which organization the event belongs to."""
        self._bump(EVENT, event_id)

    def evict_session(self, session_id: UUID) -> None:
        """Forget which organization the session belongs to."""
        self._bump(SESSION, session_id)

    def evict_user(self, user_id: str) -> None:
        """Forget every ownership and role answer for the user, across organizations."""
        self._bump(USER, user_id)


ownership_cache = OwnershipCache()
