from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .base import JobAction, SchedulerBackend, SessionJobPayload, job_name


def get_scheduler_backend() -> SchedulerBackend:
    """Instantiate the backend named by ``SESSION_SCHEDULER_BACKEND``."""
    match settings.SESSION_SCHEDULER_BACKEND:
        case "celery_beat":
            from .celery_beat import CeleryBeatSchedulerBackend

            return CeleryBeatSchedulerBackend()
        case "eventbridge":
            from .eventbridge import EventBridgeSchedulerBackend

            return EventBridgeSchedulerBackend()
    raise ImproperlyConfigured(f"Unknown SESSION_SCHEDULER_BACKEND: {settings.SESSION_SCHEDULER_BACKEND!r}")


__all__ = ["JobAction", "SchedulerBackend", "SessionJobPayload", "get_scheduler_backend", "job_name"]
