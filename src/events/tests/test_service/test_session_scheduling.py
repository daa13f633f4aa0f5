import typing as t
from datetime import datetime, timedelta
from unittest.mock import MagicMock, call
from uuid import uuid4

import pytest

from events.exceptions import JobNotFound, SchedulerUnavailable, SchedulingConflict, SchedulingFault
from events.models import Event, EventSession, SessionStatus
from events.service.sales_rules import SalesStartRuleType
from events.service.schedulers import JobAction, SessionJobPayload, job_name
from events.service.session_scheduling import SessionScheduler

pytestmark = pytest.mark.django_db


def test_schedules_on_sale_then_closed_job(
    scheduler: SessionScheduler, mock_backend: MagicMock, event: Event, future_session: EventSession, now: datetime
) -> None:
    names = scheduler.schedule_event(event, now=now)

    assert names == [job_name(future_session.id, JobAction.ON_SALE), job_name(future_session.id, JobAction.CLOSED)]
    assert mock_backend.create_job.call_args_list == [
        call(
            f"session-onsale-{future_session.id}",
            future_session.sales_start_time,
            SessionJobPayload(session_id=future_session.id, action=JobAction.ON_SALE),
        ),
        call(
            f"session-closed-{future_session.id}",
            future_session.end_time,
            SessionJobPayload(session_id=future_session.id, action=JobAction.CLOSED),
        ),
    ]
    assert future_session.sales_start_time == future_session.start_time - timedelta(hours=48)
    mock_backend.update_job.assert_not_called()


def test_conflict_falls_back_to_update(
    scheduler: SessionScheduler, mock_backend: MagicMock, event: Event, future_session: EventSession, now: datetime
) -> None:
    def create_job(name: str, run_at: datetime, payload: SessionJobPayload) -> None:
        raise SchedulingConflict(name)

    mock_backend.create_job.side_effect = create_job

    names = scheduler.schedule_event(event, now=now)

    assert len(names) == 2
    assert [c.args[0] for c in mock_backend.update_job.call_args_list] == names
    assert mock_backend.update_job.call_args_list[1].args[1] == future_session.end_time


def test_past_sales_start_is_clamped_to_now(
    scheduler: SessionScheduler,
    mock_backend: MagicMock,
    event: Event,
    session_factory: t.Callable[..., EventSession],
    next_week: datetime,
    yesterday: datetime,
    now: datetime,
) -> None:
    session = session_factory(
        next_week, sales_start_rule_type=SalesStartRuleType.FIXED, sales_start_fixed_datetime=yesterday
    )
    assert session.sales_start_time == yesterday

    scheduler.schedule_event(event, now=now)

    on_sale_call = mock_backend.create_job.call_args_list[0]
    assert on_sale_call.args[0] == job_name(session.id, JobAction.ON_SALE)
    assert on_sale_call.args[1] == now


def test_ineligible_sessions_are_skipped(
    scheduler: SessionScheduler,
    mock_backend: MagicMock,
    event: Event,
    session_factory: t.Callable[..., EventSession],
    next_week: datetime,
    now: datetime,
) -> None:
    session_factory(next_week, status=SessionStatus.CANCELLED)
    session_factory(next_week, status=SessionStatus.SOLD_OUT)
    session_factory(now - timedelta(hours=1), now + timedelta(hours=1))

    assert scheduler.schedule_event(event, now=now) == []
    mock_backend.create_job.assert_not_called()


def test_session_without_end_time_gets_only_on_sale_job(
    scheduler: SessionScheduler, mock_backend: MagicMock, next_week: datetime, now: datetime
) -> None:
    session = EventSession(id=uuid4(), start_time=next_week, end_time=None, sales_start_time=now + timedelta(days=1))

    names = scheduler.schedule_session(session, now)

    assert names == [job_name(session.id, JobAction.ON_SALE)]
    mock_backend.create_job.assert_called_once()


def test_failures_are_aggregated_across_sessions(
    scheduler: SessionScheduler,
    mock_backend: MagicMock,
    event: Event,
    session_factory: t.Callable[..., EventSession],
    next_week: datetime,
    now: datetime,
) -> None:
    failing = session_factory(next_week)
    not_found = session_factory(next_week + timedelta(days=1))
    healthy = session_factory(next_week + timedelta(days=2))

    def create_job(name: str, run_at: datetime, payload: SessionJobPayload) -> None:
        if payload.session_id == failing.id:
            raise SchedulerUnavailable("timed out")
        if payload.session_id == not_found.id:
            raise SchedulingConflict(name)

    mock_backend.create_job.side_effect = create_job
    mock_backend.update_job.side_effect = JobNotFound("gone")

    with pytest.raises(SchedulingFault, match="Failed to schedule one or more sessions") as exc_info:
        scheduler.schedule_event(event, now=now)

    fault = exc_info.value
    assert set(fault.session_ids) == {str(failing.id), str(not_found.id)}
    assert str(failing.id) in str(fault)
    assert isinstance(fault.errors[str(failing.id)], SchedulerUnavailable)
    assert isinstance(fault.errors[str(not_found.id)], JobNotFound)
    # The healthy session was still provisioned in full.
    created = [c.args[0] for c in mock_backend.create_job.call_args_list]
    assert job_name(healthy.id, JobAction.ON_SALE) in created
    assert job_name(healthy.id, JobAction.CLOSED) in created


def test_closed_job_not_attempted_when_on_sale_fails(
    scheduler: SessionScheduler, mock_backend: MagicMock, event: Event, future_session: EventSession, now: datetime
) -> None:
    mock_backend.create_job.side_effect = SchedulerUnavailable("down")

    with pytest.raises(SchedulingFault):
        scheduler.schedule_event(event, now=now)

    mock_backend.create_job.assert_called_once()
    assert mock_backend.create_job.call_args.args[0] == job_name(future_session.id, JobAction.ON_SALE)
