"""Celery tasks for session sales jobs.

``session_job_fired`` is what a clocked django-celery-beat job sends when it
fires. ``handle_session_job_message`` is the entry point for consumers of the
EventBridge SQS queues, whose message body is the JSON job payload.
"""

import structlog
from celery import shared_task
from django.db import OperationalError

from events.exceptions import EventNotYetApproved
from events.service.event_lifecycle import EventLifecycleManager
from events.service.schedulers import SessionJobPayload, get_scheduler_backend, job_name

logger = structlog.get_logger(__name__)


def handle_session_job_message(body: str | bytes) -> bool:
    """Apply a job payload received from a queue. Returns whether the session status changed.

    Raises EventNotYetApproved while the approval is still in flight; the
    consumer must leave the message on the queue so it is redelivered.
    """
    payload = SessionJobPayload.model_validate_json(body)
    return EventLifecycleManager().on_job_fired(payload.session_id, payload.action)


@shared_task(
    name="events.session_job_fired",
    autoretry_for=(OperationalError, EventNotYetApproved),
    retry_backoff=2,
    retry_backoff_max=300,
    max_retries=10,
)
def session_job_fired(session_id: str, action: str) -> bool:
    """Move a session to ON_SALE or CLOSED when its job fires, then drop the spent job.

    Delivery is at-least-once; repeated deliveries are no-ops. An on-sale job
    that fires before its event approval commits is retried with backoff, and
    the job is kept until it has been applied.
    """
    payload = SessionJobPayload(session_id=session_id, action=action)
    logger.info("session_job_received", session_id=str(payload.session_id), action=payload.action)
    changed = EventLifecycleManager().on_job_fired(payload.session_id, payload.action)

    backend = get_scheduler_backend()
    if not backend.deletes_after_completion:
        backend.delete_job(job_name(payload.session_id, payload.action))
    return changed
