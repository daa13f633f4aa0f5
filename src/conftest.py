"""
This conftest.py provides fixtures shared by every app's tests.
"""

import typing as t
from datetime import datetime, timedelta

import pytest
from django.core.cache import cache
from django.utils import timezone


@pytest.fixture(autouse=True)
def enable_celery_eager_mode(settings: t.Any) -> None:
    """Enable Celery eager mode for tests so tasks execute synchronously.

    This ensures that Celery tasks run immediately in the same process,
    allowing tests to verify their side effects without async complications.
    """
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True


@pytest.fixture(autouse=True)
def use_celery_beat_scheduler(settings: t.Any) -> None:
    """Keep session jobs in the local database unless a test asks otherwise."""
    settings.SESSION_SCHEDULER_BACKEND = "celery_beat"


@pytest.fixture(autouse=True)
def clear_cache() -> t.Iterator[None]:
    """Clear the cache before and after each test so ownership answers never leak between tests."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def now() -> datetime:
    return timezone.now().replace(microsecond=0)


@pytest.fixture
def next_week(now: datetime) -> datetime:
    return now + timedelta(days=7)


@pytest.fixture
def yesterday(now: datetime) -> datetime:
    return now - timedelta(days=1)
