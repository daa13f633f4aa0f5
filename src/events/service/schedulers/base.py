"""The contract every session job scheduler backend fulfils.

Jobs are one-shot: each fires once at ``run_at`` and delivers a
``SessionJobPayload`` to the ``events.session_job_fired`` consumer. Job names
are deterministic per (session, action), so provisioning can fall back from
create to update when the name is already taken.
"""

import abc
from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel


class JobAction(StrEnum):
    ON_SALE = "ON_SALE"
    CLOSED = "CLOSED"


JOB_NAME_PREFIXES = {
    JobAction.ON_SALE: "session-onsale",
    JobAction.CLOSED: "session-closed",
}


class SessionJobPayload(BaseModel):
    session_id: UUID
    action: JobAction


def job_name(session_id: UUID | str, action: JobAction) -> str:
    """Deterministic job name for a session and action, e.g. ``session-onsale-<uuid>``."""
    return f"{JOB_NAME_PREFIXES[action]}-{session_id}"


class SchedulerBackend(abc.ABC):
    """Create, update and delete uniquely named one-shot jobs."""

    # Whether the backend removes a job by itself once it has fired.
    deletes_after_completion: bool = False

    @abc.abstractmethod
    def create_job(self, name: str, run_at: datetime, payload: SessionJobPayload) -> None:
        """Create a job.

        Raises:
            SchedulingConflict: if a job with this name already exists.
            SchedulerUnavailable: for any other failure, timeouts included.
        """

    @abc.abstractmethod
    def update_job(self, name: str, run_at: datetime, payload: SessionJobPayload) -> None:
        """Move an existing job to ``run_at`` and replace its payload.

        Raises:
            JobNotFound: if there is no job with this name.
            SchedulerUnavailable: for any other failure, timeouts included.
        """

    @abc.abstractmethod
    def delete_job(self, name: str) -> None:
        """Delete a job. Deleting a job that does not exist is not an error."""
