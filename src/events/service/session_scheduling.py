"""Provision the on-sale and closed jobs for the sessions of an event.

Provisioning is idempotent: job names are derived from the session id, and a
name conflict on create falls back to updating the existing job. Re-running the
pass for an event (for example when approval is retried) moves existing jobs
instead of duplicating them.
"""

import typing as t
from datetime import datetime
from uuid import UUID

import structlog
from django.utils import timezone
from opentelemetry import trace

from events.exceptions import JobNotFound, SchedulerUnavailable, SchedulingConflict, SchedulingFault
from events.models import Event, EventSession, SessionStatus

from .schedulers import JobAction, SchedulerBackend, SessionJobPayload, get_scheduler_backend, job_name

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


class SessionScheduler:
    """Keeps the external job scheduler in line with an event's sessions."""

    def __init__(self, backend: SchedulerBackend | None = None) -> None:
        """Use ``backend``, or the one configured in settings."""
        self.backend = backend or get_scheduler_backend()

    def schedule_event(
        self,
        event: Event,
        sessions: t.Iterable[EventSession] | None = None,
        now: datetime | None = None,
    ) -> list[str]:
        """Provision jobs for every eligible session of ``event``.

        Args:
            event: The event being scheduled.
            sessions: Sessions to consider. Defaults to all sessions of the event.
            now: Reference instant. Defaults to the current time.

        Returns:
            The names of the jobs that were created or updated.

        Raises:
            SchedulingFault: if any session could not be scheduled. Every other
                eligible session has still been attempted.
        """
        now = now or timezone.now()
        sessions = list(event.sessions.all() if sessions is None else sessions)
        logger.debug("scheduling_event_sessions", event_id=str(event.id), session_count=len(sessions))

        provisioned: list[str] = []
        errors: dict[str, Exception] = {}
        for session in sessions:
            if not self.is_eligible(session, now):
                continue
            try:
                provisioned.extend(self.schedule_session(session, now))
            except (SchedulerUnavailable, JobNotFound) as e:
                logger.error(
                    "session_scheduling_failed",
                    event_id=str(event.id),
                    session_id=str(session.id),
                    error=str(e),
                )
                errors[str(session.id)] = e

        if errors:
            raise SchedulingFault(event.id, list(errors), errors) from next(iter(errors.values()))

        logger.info("event_sessions_scheduled", event_id=str(event.id), jobs=len(provisioned))
        return provisioned

    @staticmethod
    def is_eligible(session: EventSession, now: datetime) -> bool:
        """Terminal sessions, sessions without a start time and sessions already started are skipped."""
        if session.status in SessionStatus.terminal():
            logger.debug("session_skipped_terminal", session_id=str(session.id), status=session.status)
            return False
        if session.start_time is None:
            logger.debug("session_skipped_no_start_time", session_id=str(session.id))
            return False
        if session.start_time <= now:
            logger.debug("session_skipped_started", session_id=str(session.id), start_time=session.start_time)
            return False
        return True

    def schedule_session(self, session: EventSession, now: datetime) -> list[str]:
        """Provision the on-sale job, then the closed job when the session has an end time.

        The closed job is only considered once the on-sale job is in place.
        """
        schedule_time = session.sales_start_time or now
        if schedule_time <= now:
            # The scheduler refuses past instants, so overdue sales open right away.
            schedule_time = now

        names = [self.provision(session, JobAction.ON_SALE, schedule_time)]
        if session.end_time is not None:
            names.append(self.provision(session, JobAction.CLOSED, session.end_time))
        return names

    def provision(self, session: EventSession, action: JobAction, run_at: datetime) -> str:
        """Create the job, or update it in place when one with the same name already exists."""
        name = job_name(session.id, action)
        payload = SessionJobPayload(session_id=session.id, action=action)
        with tracer.start_as_current_span("session_scheduler.provision") as span:
            span.set_attribute("scheduler.job_name", name)
            span.set_attribute("scheduler.run_at", run_at.isoformat())
            try:
                self.backend.create_job(name, run_at, payload)
                logger.info("session_job_created", job_name=name, run_at=run_at.isoformat())
            except SchedulingConflict:
                span.add_event("conflict_fallback_to_update")
                self.backend.update_job(name, run_at, payload)
                logger.info("session_job_updated", job_name=name, run_at=run_at.isoformat())
        return name

    def unschedule_session(self, session_id: UUID, actions: t.Iterable[JobAction] = tuple(JobAction)) -> list[str]:
        """Delete the session's jobs for ``actions``. Missing jobs are ignored by the backend.

        Raises:
            SchedulerUnavailable: if the backend could not be reached.
        """
        names = [job_name(session_id, action) for action in actions]
        for name in names:
            self.backend.delete_job(name)
            logger.info("session_job_deleted", job_name=name)
        return names
