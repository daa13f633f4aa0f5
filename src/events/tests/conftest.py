import typing as t
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from events.models import Event, EventSession, Organization, OrganizationMember, OrganizationRole
from events.service.event_lifecycle import EventLifecycleManager
from events.service.sales_rules import SalesStartRuleType
from events.service.schedulers import SchedulerBackend
from events.service.session_scheduling import SessionScheduler


@pytest.fixture
def owner_id() -> str:
    return "owner-user"


@pytest.fixture
def reviewer_id() -> str:
    return "reviewer-user"


@pytest.fixture
def organization(owner_id: str) -> Organization:
    return Organization.objects.create(name="Org", owner_id=owner_id)


@pytest.fixture
def admin_member(organization: Organization) -> OrganizationMember:
    return OrganizationMember.objects.create(
        organization=organization, user_id="admin-user", roles=[OrganizationRole.ADMIN]
    )


@pytest.fixture
def event(organization: Organization) -> Event:
    return Event.objects.create(organization=organization, title="Concert")


@pytest.fixture
def session_factory(event: Event) -> t.Callable[..., EventSession]:
    def _create(start_time: datetime, end_time: datetime | None = None, **kwargs: t.Any) -> EventSession:
        return EventSession.objects.create(
            event=event,
            start_time=start_time,
            end_time=end_time or start_time + timedelta(hours=3),
            **kwargs,
        )

    return _create


@pytest.fixture
def future_session(session_factory: t.Callable[..., EventSession], next_week: datetime) -> EventSession:
    return session_factory(
        next_week,
        sales_start_rule_type=SalesStartRuleType.ROLLING,
        sales_start_hours_before=48,
    )


@pytest.fixture
def past_session(session_factory: t.Callable[..., EventSession], now: datetime) -> EventSession:
    return session_factory(now - timedelta(days=2), now - timedelta(days=2) + timedelta(hours=2))


@pytest.fixture
def mock_backend() -> MagicMock:
    backend = MagicMock(spec=SchedulerBackend)
    backend.deletes_after_completion = False
    return backend


@pytest.fixture
def scheduler(mock_backend: MagicMock) -> SessionScheduler:
    return SessionScheduler(backend=mock_backend)


@pytest.fixture
def manager(scheduler: SessionScheduler) -> EventLifecycleManager:
    return EventLifecycleManager(scheduler=scheduler)
