import typing as t
from datetime import datetime, timedelta

import pytest
from django.core.exceptions import ValidationError

from events.models import Event, EventSession, EventStatus, Organization, OrganizationMember, SessionStatus
from events.service.sales_rules import FixedAt, RollingHoursBefore, SalesStartRuleType

pytestmark = pytest.mark.django_db


def test_rolling_rule_resolves_sales_start_on_save(event: Event, next_week: datetime) -> None:
    session = EventSession.objects.create(
        event=event,
        start_time=next_week,
        end_time=next_week + timedelta(hours=2),
        sales_start_rule_type=SalesStartRuleType.ROLLING,
        sales_start_hours_before=24,
    )

    assert session.sales_start_rule == RollingHoursBefore(24)
    assert session.sales_start_time == next_week - timedelta(hours=24)


def test_explicit_sales_start_time_is_kept(event: Event, next_week: datetime, now: datetime) -> None:
    fixed = now + timedelta(days=2)
    session = EventSession.objects.create(
        event=event,
        start_time=next_week,
        end_time=next_week + timedelta(hours=2),
        sales_start_rule_type=SalesStartRuleType.FIXED,
        sales_start_fixed_datetime=fixed,
    )

    assert session.sales_start_rule == FixedAt(fixed)
    assert session.sales_start_time == fixed


def test_rolling_rule_without_hours_is_a_validation_error(event: Event, next_week: datetime) -> None:
    with pytest.raises(ValidationError) as exc_info:
        EventSession.objects.create(
            event=event,
            start_time=next_week,
            end_time=next_week + timedelta(hours=2),
            sales_start_rule_type=SalesStartRuleType.ROLLING,
        )

    assert "sales_start_rule_type" in exc_info.value.message_dict


def test_session_must_end_after_it_starts(event: Event, next_week: datetime) -> None:
    with pytest.raises(ValidationError) as exc_info:
        EventSession.objects.create(event=event, start_time=next_week, end_time=next_week)

    assert "end_time" in exc_info.value.message_dict


def test_is_terminal(future_session: EventSession) -> None:
    assert future_session.is_terminal is False
    for status in (SessionStatus.CANCELLED, SessionStatus.SOLD_OUT, SessionStatus.CLOSED):
        future_session.status = status
        assert future_session.is_terminal is True


def test_is_editable(future_session: EventSession, now: datetime) -> None:
    assert future_session.is_editable(now) is True
    assert future_session.is_editable(future_session.sales_start_time) is False
    assert future_session.is_editable(future_session.end_time + timedelta(minutes=1)) is False


def test_rejection_reason_only_on_rejected_events(event: Event) -> None:
    event.status = EventStatus.REJECTED
    with pytest.raises(ValidationError):
        event.save()

    event.status = EventStatus.PENDING
    event.rejection_reason = "Nope"
    with pytest.raises(ValidationError):
        event.save()


def test_with_sessions_prefetches(event: Event, future_session: EventSession, django_assert_num_queries: t.Any) -> None:
    with django_assert_num_queries(2):
        loaded = Event.objects.with_sessions().get(pk=event.pk)
        assert loaded.organization.name == "Org"
        assert list(loaded.sessions.all()) == [future_session]


def test_member_roles_are_validated(organization: Organization) -> None:
    with pytest.raises(ValidationError):
        OrganizationMember.objects.create(organization=organization, user_id="x", roles=["JANITOR"])


def test_member_is_unique_per_organization(organization: Organization) -> None:
    OrganizationMember.objects.create(organization=organization, user_id="x")

    with pytest.raises(ValidationError):
        OrganizationMember.objects.create(organization=organization, user_id="x")


def test_fixed_sales_start_after_session_start_is_a_validation_error(event: Event, next_week: datetime) -> None:
    with pytest.raises(ValidationError) as exc_info:
        EventSession.objects.create(
            event=event,
            start_time=next_week,
            end_time=next_week + timedelta(hours=2),
            sales_start_rule_type=SalesStartRuleType.FIXED,
            sales_start_fixed_datetime=next_week + timedelta(days=2),
        )

    assert "sales_start_rule_type" in exc_info.value.message_dict
    assert not EventSession.objects.exists()


def test_moving_session_start_before_fixed_sales_start_is_refused(
    future_session: EventSession, next_week: datetime
) -> None:
    future_session.sales_start_rule_type = SalesStartRuleType.FIXED
    future_session.sales_start_fixed_datetime = next_week - timedelta(days=1)
    future_session.save()

    future_session.start_time = next_week - timedelta(days=2)
    future_session.end_time = next_week - timedelta(days=2) + timedelta(hours=2)
    with pytest.raises(ValidationError):
        future_session.save()
