"""
Import Job Model for bulk PDF ingestion and CSV enrichment.

Tracks per-file (PDF) and per-batch (CSV) progress for client polling.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    """Import job status enum."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class JobType(str, Enum):
    """What an import job ingests."""
    PDF = "pdf"
    CSV = "csv"


TERMINAL_STATUSES = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
    JobStatus.SKIPPED,
    JobStatus.CANCELLED,
})

# Forward-only transitions. CANCELLED is handled out of band by cancel_import.
_ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.SKIPPED},
    JobStatus.PROCESSING: {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.SKIPPED},
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Check whether a worker may move a job from current to target."""
    return target in _ALLOWED_TRANSITIONS.get(JobStatus(current), set())


def compute_progress(processed: int, total: int) -> int:
    """Progress percentage (0-100)."""
    if total <= 0:
        return 0
    return round(processed / total * 100)


class JobError(BaseModel):
    """A per-item failure recorded on a job."""
    archive_no: str
    reason: str


class ImportJobResponse(BaseModel):
    """Schema for the job polling API response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_type: JobType
    file_name: Optional[str] = None
    status: JobStatus
    total: int = 0
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    progress: int = Field(default=0, ge=0, le=100)
    errors: List[JobError] = Field(default_factory=list)
    archive_id: Optional[str] = None
    operator: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, job) -> "ImportJobResponse":
        """Build the response from an ImportJobModel row."""
        return cls(
            id=job.id,
            job_type=job.job_type,
            file_name=job.file_name,
            status=job.status,
            total=job.total,
            processed=job.processed,
            failed=job.failed,
            skipped=job.skipped,
            progress=compute_progress(job.processed, job.total),
            errors=job.errors or [],
            archive_id=job.archive_id,
            operator=job.operator,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class ImportProgress(BaseModel):
    """Compact progress view for CSV batch polling."""
    status: JobStatus
    total: int
    processed: int
    failed: int
    skipped: int = 0
    errors: List[JobError] = Field(default_factory=list)


class ImportHistoryResponse(BaseModel):
    """Paginated import history."""
    items: List[ImportJobResponse]
    total: int
    total_pages: int
