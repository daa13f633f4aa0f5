"""Event approval lifecycle and the session status transitions driven by fired jobs.

Event:   PENDING -> APPROVED | REJECTED | (deleted)
Session: SCHEDULED -> ON_SALE -> CLOSED
         SCHEDULED -> CANCELLED            (ended before approval)
         SCHEDULED | ON_SALE -> SOLD_OUT

Owners can also move a session by hand, see ``update_session_status``.
"""

import typing as t
from datetime import datetime
from uuid import UUID

import structlog
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.utils import timezone

from events.exceptions import EventNotYetApproved, InvalidStateError, NotFoundError, SchedulerUnavailable
from events.models import Event, EventSession, EventStatus, SessionStatus

from .ownership_cache import OwnershipCache, ownership_cache
from .schedulers import JobAction
from .session_scheduling import SessionScheduler

logger = structlog.get_logger(__name__)

MANUAL_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.SCHEDULED: frozenset({SessionStatus.ON_SALE, SessionStatus.CANCELLED}),
    SessionStatus.ON_SALE: frozenset({SessionStatus.CLOSED}),
}


class EventLifecycleManager:
    """The only writer of event and session status."""

    def __init__(self, scheduler: SessionScheduler | None = None, ownership: OwnershipCache | None = None) -> None:
        """Collaborators default to the configured scheduler backend and the shared ownership cache."""
        self._scheduler = scheduler
        self.ownership = ownership or ownership_cache

    @property
    def scheduler(self) -> SessionScheduler:
        if self._scheduler is None:
            self._scheduler = SessionScheduler()
        return self._scheduler

    def _get_event(self, event_id: UUID) -> Event:
        try:
            return Event.objects.with_sessions().get(pk=event_id)
        except Event.DoesNotExist as e:
            logger.warning("event_not_found", event_id=str(event_id))
            raise NotFoundError(f"Event not found with ID: {event_id}") from e

    @staticmethod
    def _ensure_pending(event: Event, operation: str) -> None:
        if event.status != EventStatus.PENDING:
            logger.warning("event_transition_refused", event_id=str(event.id), status=event.status, operation=operation)
            raise InvalidStateError(f"Only events with PENDING status can be {operation}.")

    def approve(self, event_id: UUID, user_id: str, now: datetime | None = None) -> Event:
        """Approve a pending event and schedule the sales of its sessions.

        Sessions that have already ended are cancelled. The remaining ones are
        handed to the session scheduler first; the approval is persisted only
        once every job is in place. If scheduling fails, the event stays
        PENDING and calling ``approve`` again is safe.

        The self-approval check runs before the status check, so an owner gets
        PermissionDenied even for an event that is already approved.

        Raises:
            NotFoundError: if the event does not exist.
            PermissionDenied: if ``user_id`` owns the event.
            InvalidStateError: if the event is not PENDING (and ``user_id`` is not the owner).
            SchedulingFault: if one or more sessions could not be scheduled.
        """
        logger.info("event_approval_requested", event_id=str(event_id), user_id=user_id)
        event = self._get_event(event_id)

        if self.ownership.is_owner(event.organization_id, user_id):
            logger.warning("event_self_approval_refused", event_id=str(event_id), user_id=user_id)
            raise PermissionDenied("You cannot approve your own event.")
        self._ensure_pending(event, "approved")

        now = now or timezone.now()
        sessions = list(event.sessions.all())
        expired = [s for s in sessions if not s.is_terminal and s.end_time <= now]
        for session in expired:
            logger.warning(
                "session_cancelled_on_approval",
                event_id=str(event.id),
                session_id=str(session.id),
                end_time=session.end_time.isoformat(),
            )
        remaining = [s for s in sessions if s not in expired]

        jobs = self.scheduler.schedule_event(event, remaining, now=now)

        with transaction.atomic():
            locked = Event.objects.select_for_update().get(pk=event.pk)
            self._ensure_pending(locked, "approved")
            EventSession.objects.filter(pk__in=[s.pk for s in expired]).update(
                status=SessionStatus.CANCELLED, updated_at=now
            )
            locked.status = EventStatus.APPROVED
            locked.save(update_fields=["status", "updated_at"])

        logger.info(
            "event_approved",
            event_id=str(event.id),
            cancelled_sessions=len(expired),
            scheduled_jobs=len(jobs),
        )
        return locked

    def reject(self, event_id: UUID, reason: str) -> Event:
        """Reject a pending event. Nothing is scheduled.

        Raises:
            NotFoundError: if the event does not exist.
            InvalidStateError: if the event is not PENDING.
            ValidationError: if ``reason`` is blank.
        """
        logger.info("event_rejection_requested", event_id=str(event_id))
        event = self._get_event(event_id)
        self._ensure_pending(event, "rejected")
        if not reason or not reason.strip():
            raise ValidationError({"reason": "A rejection reason is required."})

        event.status = EventStatus.REJECTED
        event.rejection_reason = reason.strip()
        event.save(update_fields=["status", "rejection_reason", "updated_at"])
        logger.info("event_rejected", event_id=str(event.id), reason=event.rejection_reason)
        return event

    def delete(self, event_id: UUID, user_id: str) -> None:
        """Delete a pending event and its sessions.

        Pending events were never scheduled, so there are no jobs to clean up.

        Raises:
            NotFoundError: if the event does not exist.
            PermissionDenied: if ``user_id`` does not own the event.
            InvalidStateError: if the event is not PENDING.
        """
        logger.info("event_deletion_requested", event_id=str(event_id), user_id=user_id)
        if not self.ownership.is_event_owner(event_id, user_id):
            logger.warning("event_deletion_refused", event_id=str(event_id), user_id=user_id)
            raise PermissionDenied("You are not authorized to delete this event.")

        event = self._get_event(event_id)
        self._ensure_pending(event, "deleted")
        event.delete()
        logger.info("event_deleted", event_id=str(event_id))

    def on_job_fired(self, session_id: UUID, action: JobAction | str) -> bool:
        """Apply the status change a fired job asks for.

        Safe to call more than once for the same job: anything other than the
        expected source status is a no-op. Unknown sessions are ignored, since the
        session may have been deleted after its job was scheduled.

        Returns:
            Whether the session status changed.

        Raises:
            EventNotYetApproved: if an on-sale job fires while the event is still
                PENDING. The caller must keep the job and redeliver it.
        """
        action = JobAction(action)
        with transaction.atomic():
            session = (
                EventSession.objects.select_for_update().select_related("event").filter(pk=session_id).first()
            )
            if session is None:
                logger.warning("session_job_for_unknown_session", session_id=str(session_id), action=action)
                return False

            match action:
                case JobAction.ON_SALE:
                    if session.event.status == EventStatus.PENDING:
                        # Jobs are provisioned before the approval commits; a job clamped
                        # to now can fire first. It has to be redelivered, not dropped.
                        logger.info("session_on_sale_deferred_pending_approval", session_id=str(session.id))
                        raise EventNotYetApproved(f"Event {session.event_id} is not approved yet.")
                    if session.event.status != EventStatus.APPROVED:
                        logger.warning(
                            "session_on_sale_skipped_event_not_approved",
                            session_id=str(session.id),
                            event_status=session.event.status,
                        )
                        return False
                    allowed_from = {SessionStatus.SCHEDULED}
                    target = SessionStatus.ON_SALE
                case JobAction.CLOSED:
                    allowed_from = {SessionStatus.SCHEDULED, SessionStatus.ON_SALE}
                    target = SessionStatus.CLOSED
                case _:
                    t.assert_never(action)

            return self._transition(session, allowed_from, target)

    def mark_sold_out(self, session_id: UUID) -> bool:
        """Mark a scheduled or on-sale session as sold out; terminal sessions are left alone.

        Raises:
            NotFoundError: if the session does not exist.
        """
        with transaction.atomic():
            session = EventSession.objects.select_for_update().filter(pk=session_id).first()
            if session is None:
                raise NotFoundError(f"EventSession not found with ID: {session_id}")
            return self._transition(session, {SessionStatus.SCHEDULED, SessionStatus.ON_SALE}, SessionStatus.SOLD_OUT)

    def update_session_status(self, session_id: UUID, status: SessionStatus | str, user_id: str) -> EventSession:
        """Move a session by hand on behalf of the organization owner.

        Allowed: SCHEDULED -> ON_SALE | CANCELLED and ON_SALE -> CLOSED. Setting the
        current status again is a no-op. Jobs that can no longer do anything are
        deleted once the change is committed: the on-sale job when sales open,
        both jobs when the session is cancelled or closed.

        Raises:
            NotFoundError: if the session does not exist.
            PermissionDenied: if ``user_id`` does not own the session's organization.
            InvalidStateError: for SOLD_OUT, a terminal session, or any other transition.
        """
        status = SessionStatus(status)
        logger.info("session_status_update_requested", session_id=str(session_id), status=status, user_id=user_id)
        if not self.ownership.is_session_owner(session_id, user_id):
            logger.warning("session_status_update_refused", session_id=str(session_id), user_id=user_id)
            raise PermissionDenied("You are not authorized to update this session's status.")

        with transaction.atomic():
            session = EventSession.objects.select_for_update().filter(pk=session_id).first()
            if session is None:
                raise NotFoundError(f"EventSession not found with ID: {session_id}")
            if session.status == status:
                return session
            if status == SessionStatus.SOLD_OUT:
                raise InvalidStateError("Status SOLD_OUT is determined by the system and cannot be set manually.")
            allowed = MANUAL_TRANSITIONS.get(SessionStatus(session.status), frozenset())
            if status not in allowed:
                logger.warning(
                    "session_manual_transition_refused",
                    session_id=str(session.id),
                    status=session.status,
                    target=status,
                )
                raise InvalidStateError(f"Cannot change a {session.status} session to {status}.")
            self._transition(session, {SessionStatus(session.status)}, status)

        actions = [JobAction.ON_SALE] if status == SessionStatus.ON_SALE else list(JobAction)
        try:
            self.scheduler.unschedule_session(session.id, actions)
        except SchedulerUnavailable as e:
            # Leftover jobs only fire no-ops against the new status.
            logger.warning("session_job_cleanup_failed", session_id=str(session.id), error=str(e))
        return session

    @staticmethod
    def _transition(session: EventSession, allowed_from: set[SessionStatus], target: SessionStatus) -> bool:
        if session.status not in allowed_from:
            logger.info(
                "session_transition_skipped",
                session_id=str(session.id),
                status=session.status,
                target=target,
            )
            return False
        previous = session.status
        session.status = target
        session.save(update_fields=["status", "updated_at"])
        logger.info("session_status_changed", session_id=str(session.id), previous=previous, status=target)
        return True
