import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from events.exceptions import JobNotFound, SchedulerUnavailable, SchedulingConflict
from events.service.schedulers import JobAction, SessionJobPayload, job_name
from events.service.schedulers.eventbridge import EventBridgeSchedulerBackend, schedule_expression

ONSALE_ARN = "arn:aws:sqs:eu-west-1:123456789012:session-onsale"
CLOSED_ARN = "arn:aws:sqs:eu-west-1:123456789012:session-closed"
ROLE_ARN = "arn:aws:iam::123456789012:role/scheduler"


def client_error(code: str, operation: str = "CreateSchedule") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def backend(client: MagicMock) -> EventBridgeSchedulerBackend:
    return EventBridgeSchedulerBackend(
        client,
        group_name="sessions",
        role_arn=ROLE_ARN,
        queue_arns={JobAction.ON_SALE: ONSALE_ARN, JobAction.CLOSED: CLOSED_ARN},
    )


@pytest.fixture
def payload() -> SessionJobPayload:
    return SessionJobPayload(session_id=uuid4(), action=JobAction.ON_SALE)


@pytest.fixture
def run_at() -> datetime:
    return datetime(2025, 6, 1, 18, 30, 15, tzinfo=timezone.utc)


def test_schedule_expression_is_utc() -> None:
    vienna = timezone(timedelta(hours=2))
    assert schedule_expression(datetime(2025, 6, 1, 20, 30, tzinfo=vienna)) == "at(2025-06-01T18:30:00)"


def test_create_job_request(
    backend: EventBridgeSchedulerBackend, client: MagicMock, payload: SessionJobPayload, run_at: datetime
) -> None:
    name = job_name(payload.session_id, payload.action)

    backend.create_job(name, run_at, payload)

    request = client.create_schedule.call_args.kwargs
    assert request["Name"] == name
    assert request["GroupName"] == "sessions"
    assert request["ScheduleExpression"] == "at(2025-06-01T18:30:15)"
    assert request["ScheduleExpressionTimezone"] == "UTC"
    assert request["FlexibleTimeWindow"] == {"Mode": "OFF"}
    assert request["ActionAfterCompletion"] == "DELETE"
    assert request["Target"]["Arn"] == ONSALE_ARN
    assert request["Target"]["RoleArn"] == ROLE_ARN
    assert json.loads(request["Target"]["Input"]) == {"session_id": str(payload.session_id), "action": "ON_SALE"}


def test_conflict_is_reported(
    backend: EventBridgeSchedulerBackend, client: MagicMock, payload: SessionJobPayload, run_at: datetime
) -> None:
    client.create_schedule.side_effect = client_error("ConflictException")

    with pytest.raises(SchedulingConflict):
        backend.create_job("session-onsale-x", run_at, payload)


@pytest.mark.parametrize("code", ["ValidationException", "ThrottlingException", "AccessDeniedException"])
def test_other_client_errors_are_unavailable(
    backend: EventBridgeSchedulerBackend, client: MagicMock, payload: SessionJobPayload, run_at: datetime, code: str
) -> None:
    client.create_schedule.side_effect = client_error(code)

    with pytest.raises(SchedulerUnavailable, match=code):
        backend.create_job("session-onsale-x", run_at, payload)


def test_connection_errors_are_unavailable(
    backend: EventBridgeSchedulerBackend, client: MagicMock, payload: SessionJobPayload, run_at: datetime
) -> None:
    client.update_schedule.side_effect = EndpointConnectionError(endpoint_url="https://scheduler.example")

    with pytest.raises(SchedulerUnavailable):
        backend.update_job("session-onsale-x", run_at, payload)


def test_update_missing_schedule(
    backend: EventBridgeSchedulerBackend, client: MagicMock, payload: SessionJobPayload, run_at: datetime
) -> None:
    client.update_schedule.side_effect = client_error("ResourceNotFoundException", "UpdateSchedule")

    with pytest.raises(JobNotFound):
        backend.update_job("session-onsale-x", run_at, payload)


def test_delete_ignores_missing_schedule(backend: EventBridgeSchedulerBackend, client: MagicMock) -> None:
    client.delete_schedule.side_effect = client_error("ResourceNotFoundException", "DeleteSchedule")

    backend.delete_job("session-closed-x")

    client.delete_schedule.assert_called_once_with(Name="session-closed-x", GroupName="sessions")
