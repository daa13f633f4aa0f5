"""Session jobs as AWS EventBridge Scheduler one-time schedules.

Schedules use an ``at(...)`` expression in UTC, no flexible time window, and
``ActionAfterCompletion=DELETE`` so EventBridge removes them once they fire.
The target is an SQS queue per action; the message body is the job payload.
"""

import typing as t
from datetime import UTC, datetime

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from events.exceptions import JobNotFound, SchedulerUnavailable, SchedulingConflict

from .base import JobAction, SchedulerBackend, SessionJobPayload

logger = structlog.get_logger(__name__)


def build_scheduler_client() -> t.Any:
    """A boto3 ``scheduler`` client with bounded timeouts and standard retries with backoff."""
    return boto3.client(
        "scheduler",
        region_name=settings.AWS_REGION,
        config=Config(
            connect_timeout=settings.SESSION_SCHEDULER_TIMEOUT_SECONDS,
            read_timeout=settings.SESSION_SCHEDULER_TIMEOUT_SECONDS,
            retries={"max_attempts": settings.SESSION_SCHEDULER_MAX_ATTEMPTS, "mode": "standard"},
        ),
    )


def schedule_expression(run_at: datetime) -> str:
    """Format ``run_at`` as a one-time EventBridge expression, e.g. ``at(2025-06-01T18:30:00)``."""
    return f"at({run_at.astimezone(UTC):%Y-%m-%dT%H:%M:%S})"


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class EventBridgeSchedulerBackend(SchedulerBackend):
    deletes_after_completion = True

    def __init__(
        self,
        client: t.Any = None,
        *,
        group_name: str | None = None,
        role_arn: str | None = None,
        queue_arns: dict[JobAction, str] | None = None,
    ) -> None:
        """Defaults come from the EVENTBRIDGE_* settings."""
        self.client = client or build_scheduler_client()
        self.group_name = group_name or settings.EVENTBRIDGE_SCHEDULER_GROUP
        self.role_arn = role_arn or settings.EVENTBRIDGE_SCHEDULER_ROLE_ARN
        self.queue_arns = queue_arns or {
            JobAction.ON_SALE: settings.EVENTBRIDGE_ONSALE_QUEUE_ARN,
            JobAction.CLOSED: settings.EVENTBRIDGE_CLOSED_QUEUE_ARN,
        }

    def _schedule_request(self, name: str, run_at: datetime, payload: SessionJobPayload) -> dict[str, t.Any]:
        return {
            "Name": name,
            "GroupName": self.group_name,
            "ScheduleExpression": schedule_expression(run_at),
            "ScheduleExpressionTimezone": "UTC",
            "Target": {
                "Arn": self.queue_arns[payload.action],
                "RoleArn": self.role_arn,
                "Input": payload.model_dump_json(),
            },
            "FlexibleTimeWindow": {"Mode": "OFF"},
            "ActionAfterCompletion": "DELETE",
        }

    def create_job(self, name: str, run_at: datetime, payload: SessionJobPayload) -> None:
        """Create the schedule, or raise SchedulingConflict if the name is taken."""
        try:
            self.client.create_schedule(**self._schedule_request(name, run_at, payload))
        except ClientError as e:
            if _error_code(e) == "ConflictException":
                raise SchedulingConflict(name) from e
            raise SchedulerUnavailable(f"EventBridge rejected schedule '{name}': {_error_code(e)}") from e
        except BotoCoreError as e:
            raise SchedulerUnavailable(f"EventBridge unreachable while creating '{name}': {e}") from e
        logger.debug("eventbridge_schedule_created", job_name=name, group=self.group_name)

    def update_job(self, name: str, run_at: datetime, payload: SessionJobPayload) -> None:
        """Replace the schedule's expression and target."""
        try:
            self.client.update_schedule(**self._schedule_request(name, run_at, payload))
        except ClientError as e:
            if _error_code(e) == "ResourceNotFoundException":
                raise JobNotFound(name) from e
            raise SchedulerUnavailable(f"EventBridge rejected update of '{name}': {_error_code(e)}") from e
        except BotoCoreError as e:
            raise SchedulerUnavailable(f"EventBridge unreachable while updating '{name}': {e}") from e
        logger.debug("eventbridge_schedule_updated", job_name=name, group=self.group_name)

    def delete_job(self, name: str) -> None:
        """Delete the schedule; a missing schedule is ignored."""
        try:
            self.client.delete_schedule(Name=name, GroupName=self.group_name)
        except ClientError as e:
            if _error_code(e) == "ResourceNotFoundException":
                return
            raise SchedulerUnavailable(f"EventBridge rejected deletion of '{name}': {_error_code(e)}") from e
        except BotoCoreError as e:
            raise SchedulerUnavailable(f"EventBridge unreachable while deleting '{name}': {e}") from e
