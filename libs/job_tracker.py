# =============================================================================
# Job Lifecycle Tracker
# =============================================================================
# Owns job status transitions: PENDING -> PROCESSING -> COMPLETED | FAILED.
# Each transition is a conditional update on the expected current status, so
# a job can never move backwards or between terminal states.
# =============================================================================

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from libs.errors import InvalidTransition, JobNotFound, PipelineError
from libs.models import Job, JobStatus, can_transition

__all__ = ["JobStore", "JobLifecycleTracker", "format_error", "is_terminal", "MAX_ERROR_LENGTH"]

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 1000


class JobStore(Protocol):
    def get_job(self, job_id: str) -> Optional[Job]: ...

    def transition_job(
        self, job_id: str, expected: JobStatus, fields: dict[str, Any]
    ) -> bool: ...


def is_terminal(status: JobStatus | str) -> bool:
    """True for COMPLETED and FAILED."""
    return JobStatus(status).is_terminal


def format_error(error: BaseException | str, limit: int = MAX_ERROR_LENGTH) -> str:
    """Human-readable, length-bounded failure message."""
    if isinstance(error, PipelineError):
        message = f"{error.error_code}: {error}"
    elif isinstance(error, BaseException):
        message = f"{type(error).__name__}: {error}"
    else:
        message = str(error)
    if len(message) > limit:
        message = message[: limit - 3] + "..."
    return message


class JobLifecycleTracker:
    """
    State machine over a job store.

    Example:
        >>> tracker = JobLifecycleTracker(mongodb)
        >>> tracker.start(job_id)
        >>> tracker.succeed(job_id, rows_processed=120, rows_with_errors=3)
    """

    def __init__(self, store: JobStore):
        self.store = store

    def load(self, job_id: str) -> Job:
        job = self.store.get_job(job_id)
        if job is None:
            raise JobNotFound(f"Job {job_id} does not exist")
        return job

    def start(self, job_id: str) -> Job:
        """PENDING -> PROCESSING, stamping started_at."""
        return self._transition(
            job_id,
            JobStatus.PROCESSING,
            {"started_at": datetime.now(timezone.utc)},
        )

    def succeed(
        self,
        job_id: str,
        *,
        rows_processed: int,
        rows_with_errors: int = 0,
        rows_skipped: int = 0,
        error_summary: Optional[str] = None,
        location: Optional[str] = None,
    ) -> Job:
        """PROCESSING -> COMPLETED with the final counters."""
        fields: dict[str, Any] = {
            "completed_at": datetime.now(timezone.utc),
            "rows_processed": rows_processed,
            "rows_with_errors": rows_with_errors,
            "rows_skipped": rows_skipped,
            "error_summary": format_error(error_summary) if error_summary else None,
        }
        if location is not None:
            fields["location"] = location
        return self._transition(job_id, JobStatus.COMPLETED, fields)

    def fail(
        self,
        job_id: str,
        error: BaseException | str,
        *,
        rows_processed: int = 0,
        rows_with_errors: int = 0,
        rows_skipped: int = 0,
    ) -> Job:
        """PROCESSING -> FAILED with a truncated error message."""
        return self._transition(
            job_id,
            JobStatus.FAILED,
            {
                "completed_at": datetime.now(timezone.utc),
                "rows_processed": rows_processed,
                "rows_with_errors": rows_with_errors,
                "rows_skipped": rows_skipped,
                "error_summary": format_error(error),
            },
        )

    def _transition(self, job_id: str, target: JobStatus, fields: dict[str, Any]) -> Job:
        job = self.load(job_id)
        if not can_transition(job.status, target):
            raise InvalidTransition(
                f"Job {job_id} cannot move from {job.status.value} to {target.value}"
            )
        update = dict(fields, status=target.value)
        if not self.store.transition_job(job_id, job.status, update):
            raise InvalidTransition(
                f"Job {job_id} changed status concurrently (expected {job.status.value})"
            )
        logger.info("Job %s: %s -> %s", job_id, job.status.value, target.value)
        return self.load(job_id)
