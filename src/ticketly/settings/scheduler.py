"""Settings for the session sales scheduler."""

from decouple import config

# "celery_beat" (django-celery-beat one-off tasks) or "eventbridge" (AWS EventBridge Scheduler)
SESSION_SCHEDULER_BACKEND = config("SESSION_SCHEDULER_BACKEND", default="celery_beat")

# Per-call bound on scheduler backend requests, in seconds
SESSION_SCHEDULER_TIMEOUT_SECONDS = config("SESSION_SCHEDULER_TIMEOUT_SECONDS", default=5.0, cast=float)
SESSION_SCHEDULER_MAX_ATTEMPTS = config("SESSION_SCHEDULER_MAX_ATTEMPTS", default=3, cast=int)

# Celery queues the fired jobs are delivered to
SESSION_ONSALE_QUEUE = config("SESSION_ONSALE_QUEUE", default="session-onsale")
SESSION_CLOSED_QUEUE = config("SESSION_CLOSED_QUEUE", default="session-closed")

# AWS EventBridge Scheduler
AWS_REGION = config("AWS_REGION", default="ap-south-1")
EVENTBRIDGE_SCHEDULER_GROUP = config("EVENTBRIDGE_SCHEDULER_GROUP", default="default")
EVENTBRIDGE_SCHEDULER_ROLE_ARN = config("EVENTBRIDGE_SCHEDULER_ROLE_ARN", default="")
EVENTBRIDGE_ONSALE_QUEUE_ARN = config("EVENTBRIDGE_ONSALE_QUEUE_ARN", default="")
EVENTBRIDGE_CLOSED_QUEUE_ARN = config("EVENTBRIDGE_CLOSED_QUEUE_ARN", default="")

# Ownership cache
OWNERSHIP_CACHE_TIMEOUT = config("OWNERSHIP_CACHE_TIMEOUT", default=3600, cast=int)
