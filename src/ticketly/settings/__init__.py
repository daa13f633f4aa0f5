from .base import *  # noqa: F401,F403
from .celery import *  # noqa: F401,F403
from .observability import *  # noqa: F401,F403
from .scheduler import *  # noqa: F401,F403
