"""Session jobs as django-celery-beat one-off clocked tasks.

Each job is a ``PeriodicTask`` with ``one_off=True`` attached to its own
``ClockedSchedule``. The beat ``DatabaseScheduler`` sends it once, to the queue
configured for its action.
"""

from datetime import datetime

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django_celery_beat.models import ClockedSchedule, PeriodicTask

from events.exceptions import JobNotFound, SchedulerUnavailable, SchedulingConflict

from .base import JobAction, SchedulerBackend, SessionJobPayload

logger = structlog.get_logger(__name__)

SESSION_JOB_TASK = "events.session_job_fired"


class CeleryBeatSchedulerBackend(SchedulerBackend):
    deletes_after_completion = False

    def __init__(self, queues: dict[JobAction, str] | None = None) -> None:
        """Route each action to its own queue."""
        self.queues = queues or {
            JobAction.ON_SALE: settings.SESSION_ONSALE_QUEUE,
            JobAction.CLOSED: settings.SESSION_CLOSED_QUEUE,
        }

    def create_job(self, name: str, run_at: datetime, payload: SessionJobPayload) -> None:
        """Create the clocked one-off task, or raise SchedulingConflict if the name is taken."""
        try:
            with transaction.atomic():
                clocked = ClockedSchedule.objects.create(clocked_time=run_at)
                PeriodicTask.objects.create(
                    name=name,
                    task=SESSION_JOB_TASK,
                    clocked=clocked,
                    one_off=True,
                    kwargs=payload.model_dump_json(),
                    queue=self.queues[payload.action],
                    description=f"{payload.action} for session {payload.session_id}",
                )
        except ValidationError as e:
            # PeriodicTask.save() runs validate_unique() before hitting the database.
            if "name" in getattr(e, "message_dict", {}):
                raise SchedulingConflict(name) from e
            raise SchedulerUnavailable(f"Schedule '{name}' was rejected: {e}") from e
        except IntegrityError as e:
            raise SchedulingConflict(name) from e
        except DatabaseError as e:
            raise SchedulerUnavailable(f"Could not create schedule '{name}': {e}") from e
        logger.debug("celery_beat_job_created", job_name=name, run_at=run_at.isoformat())

    def update_job(self, name: str, run_at: datetime, payload: SessionJobPayload) -> None:
        """Re-arm an existing task for ``run_at``, even if it already ran."""
        try:
            with transaction.atomic():
                task = PeriodicTask.objects.select_for_update().select_related("clocked").get(name=name)
                if task.clocked is None:
                    task.clocked = ClockedSchedule.objects.create(clocked_time=run_at)
                else:
                    task.clocked.clocked_time = run_at
                    task.clocked.save(update_fields=["clocked_time"])
                task.kwargs = payload.model_dump_json()
                task.queue = self.queues[payload.action]
                task.one_off = True
                task.enabled = True
                task.last_run_at = None
                task.total_run_count = 0
                task.save()
        except PeriodicTask.DoesNotExist as e:
            raise JobNotFound(name) from e
        except (DatabaseError, ValidationError) as e:
            raise SchedulerUnavailable(f"Could not update schedule '{name}': {e}") from e
        logger.debug("celery_beat_job_updated", job_name=name, run_at=run_at.isoformat())

    def delete_job(self, name: str) -> None:
        """Delete the task and its clocked schedule."""
        try:
            with transaction.atomic():
                clocked_ids = list(
                    PeriodicTask.objects.filter(name=name, clocked__isnull=False).values_list("clocked_id", flat=True)
                )
                deleted, _ = PeriodicTask.objects.filter(name=name).delete()
                ClockedSchedule.objects.filter(pk__in=clocked_ids).delete()
        except DatabaseError as e:
            raise SchedulerUnavailable(f"Could not delete schedule '{name}': {e}") from e
        if deleted:
            logger.debug("celery_beat_job_deleted", job_name=name)
