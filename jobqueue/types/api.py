"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from jobqueue.constants import JobState
from jobqueue.types.job import JobOptions, JobSnapshot
from jobqueue.types.queue import QueueStats


class EnqueueJobRequest(BaseModel):
    """Request body for adding a job to a queue."""

    type: str = Field(..., min_length=1, description="Job type, selects the handler")
    data: Any = Field(default=None, description="Payload passed to the handler")
    priority: int | None = Field(default=None, description="Higher runs first")
    delay_ms: int | None = Field(default=None, ge=0, description="Initial delay")
    max_attempts: int | None = Field(default=None, ge=1, le=25, description="Maximum attempts")
    timeout_ms: int | None = Field(default=None, gt=0, description="Per-attempt timeout")
    remove_on_complete: bool | None = Field(default=None, description="Drop the job once it completes")
    remove_on_fail: bool | None = Field(default=None, description="Drop the job once it fails permanently")

    def to_options(self) -> JobOptions:
        """Job options with only the fields the caller set."""
        return JobOptions.build(
            self.model_dump(
                include={
                    "priority",
                    "delay_ms",
                    "max_attempts",
                    "timeout_ms",
                    "remove_on_complete",
                    "remove_on_fail",
                },
                exclude_none=True,
            )
        )


class EnqueueJobResponse(BaseModel):
    """Response body after adding a job."""

    id: str
    queue: str
    type: str
    state: JobState
    scheduled_at: datetime
    message: str = "Job queued"


class JobListResponse(BaseModel):
    """Paginated list of jobs."""

    jobs: list[JobSnapshot]
    total: int
    page: int
    page_size: int
    has_next: bool


class RetryJobResponse(BaseModel):
    """Response body after retrying a failed job."""

    id: str
    state: JobState
    attempts: int
    message: str = "Job queued for retry"


class ClearJobsResponse(BaseModel):
    """Response body after clearing jobs."""

    queue: str
    state: JobState | None
    removed: int


class QueueStatsResponse(BaseModel):
    """Statistics for every managed queue."""

    queues: dict[str, QueueStats]


class QueueStateResponse(BaseModel):
    """Response body after pausing or resuming a queue."""

    queue: str
    paused: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    queues: dict[str, bool]
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Error response body."""

    detail: str
