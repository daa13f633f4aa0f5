"""Celery setup for ticketly."""

import os
import typing as t

import structlog
from celery import Celery
from celery.signals import task_postrun, task_prerun
from opentelemetry import trace

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "ticketly.settings")

app = Celery("ticketly")

# All celery-related configuration keys use the `CELERY_` prefix in Django settings.
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()


@task_prerun.connect
def celery_task_prerun(task_id: str, task: t.Any, *args: t.Any, **kwargs: t.Any) -> None:
    """Bind Celery task context to structlog before task execution.

    Session job tasks carry the session id and action in their kwargs; those are
    bound too so a fired job can be followed through the logs.
    """
    structlog.contextvars.clear_contextvars()

    context: dict[str, t.Any] = {
        "task_id": task_id,
        "task_name": task.name,
        "queue": task.request.delivery_info.get("routing_key", "default")
        if getattr(task.request, "delivery_info", None)
        else "default",
        "retries": getattr(task.request, "retries", 0),
    }

    task_kwargs = kwargs.get("kwargs") or {}
    for key in ("session_id", "action"):
        if key in task_kwargs:
            context[key] = task_kwargs[key]

    span = trace.get_current_span()
    if span and span.get_span_context().is_valid:
        context["trace_id"] = format(span.get_span_context().trace_id, "032x")

    structlog.contextvars.bind_contextvars(**context)


@task_postrun.connect
def celery_task_postrun(*args: t.Any, **kwargs: t.Any) -> None:
    """Clear structlog context after task execution."""
    structlog.contextvars.clear_contextvars()


# run:
# celery -A ticketly worker -l INFO -Q celery,session-onsale,session-closed
# celery -A ticketly beat -l INFO --scheduler django_celery_beat.schedulers:DatabaseScheduler
