# =============================================================================
# Job Model
# =============================================================================
# Defines the import/export job document tracked in MongoDB and the allowed
# status transitions between PENDING, PROCESSING, COMPLETED and FAILED.
# =============================================================================

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


__all__ = ["Job", "JobKind", "JobStatus", "ALLOWED_TRANSITIONS", "can_transition"]


class JobKind(str, Enum):
    """Direction of a job."""

    IMPORT = "IMPORT"
    EXPORT = "EXPORT"


class JobStatus(str, Enum):
    """Status of a job in the MongoDB ledger."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Return True when ``current -> target`` is a legal status change."""
    return target in ALLOWED_TRANSITIONS[current]


class Job(BaseModel):
    """
    Job document model for MongoDB tracking.

    Jobs are created by the upload/trigger service with status PENDING and
    are only mutated by the pipelines afterwards. They are never deleted.

    Attributes:
        job_id: Job identity (unique index)
        kind: IMPORT or EXPORT
        status: Current lifecycle status
        parameters: Free-form parameters (layer_code, format, filters, output_location)
        location: Source file (import) or result file (export) path/URL
        rows_processed: Records routed (import) or written (export)
        rows_with_errors: Records rejected with a row-level error
        rows_skipped: Records dropped without an error (e.g. geometry kind mismatch)
        error_summary: Truncated human-readable failure or row-error summary
        created_at: Creation timestamp
        started_at: Timestamp of the PENDING -> PROCESSING transition
        completed_at: Timestamp of the terminal transition
    """

    job_id: str = Field(..., description="Job id (unique)")
    kind: JobKind = Field(..., description="Job direction")
    status: JobStatus = Field(JobStatus.PENDING, description="Lifecycle status")
    parameters: dict[str, Any] = Field(default_factory=dict, description="Job parameters")
    location: Optional[str] = Field(None, description="Source or result location")
    rows_processed: int = Field(0, ge=0)
    rows_with_errors: int = Field(0, ge=0)
    rows_skipped: int = Field(0, ge=0)
    error_summary: Optional[str] = Field(None, description="Failure or row-error summary")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Job creation timestamp",
    )
    started_at: Optional[datetime] = Field(None, description="Processing start timestamp")
    completed_at: Optional[datetime] = Field(None, description="Terminal transition timestamp")

    @property
    def layer_code(self) -> Optional[str]:
        return self.parameters.get("layer_code")
