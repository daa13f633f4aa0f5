from django.core.exceptions import ObjectDoesNotExist


class InvalidStateError(Exception):
    """Raised when an event or session transition is not allowed from its current status."""


class EventNotYetApproved(Exception):
    """Raised when an on-sale job fires for an event whose approval is not committed yet. Retryable."""


class InvalidRuleError(ValueError):
    """Raised when a sales start rule cannot be resolved to an instant."""


class NotFoundError(ObjectDoesNotExist):
    """Raised when a referenced event or session does not exist."""


class SchedulingConflict(Exception):
    """Raised by a scheduler backend when a job with the same name already exists."""

    def __init__(self, name: str) -> None:
        """Remember the conflicting job name."""
        super().__init__(f"Schedule '{name}' already exists.")
        self.name = name


class JobNotFound(Exception):
    """Raised by a scheduler backend when updating a job that does not exist."""

    def __init__(self, name: str) -> None:
        """Remember the missing job name."""
        super().__init__(f"Schedule '{name}' does not exist.")
        self.name = name


class SchedulerUnavailable(Exception):
    """Raised by a scheduler backend when a call fails for any reason other than a name conflict."""


class SchedulingFault(Exception):
    """Raised when one or more sessions of an event could not be scheduled."""

    def __init__(self, event_id: object, session_ids: list[str], errors: dict[str, Exception]) -> None:
        """Keep track of every session that failed and why."""
        super().__init__(f"Failed to schedule one or more sessions for event {event_id}: {', '.join(session_ids)}")
        self.event_id = event_id
        self.session_ids = session_ids
        self.errors = errors
