"""
Job-related type definitions for internal use.
"""

import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from jobqueue.constants import (
    DEFAULT_DELAY_MS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_PRIORITY,
    DEFAULT_TIMEOUT_MS,
    JobState,
)
from jobqueue.exceptions import InvalidJobOptionsError


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_job_id(job_type: str, now: datetime | None = None) -> str:
    """Build a job id from its type, the creation time and a random suffix."""
    now = now or utcnow()
    return f"{job_type}-{int(now.timestamp() * 1000)}-{uuid4().hex[:9]}"


class JobOptions(BaseModel):
    """
    Scheduling options for a new job.

    Unset fields fall back to the owning queue's defaults.
    """

    model_config = ConfigDict(extra="forbid")

    priority: int = Field(default=int(DEFAULT_PRIORITY), description="Higher runs first")
    delay_ms: int = Field(default=DEFAULT_DELAY_MS, ge=0, description="Initial delay")
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0, description="Per-attempt limit")
    remove_on_complete: bool = Field(default=False, description="Drop the job once it completes")
    remove_on_fail: bool = Field(default=False, description="Drop the job once it fails permanently")

    @classmethod
    def build(cls, options: "JobOptions | dict[str, Any] | None" = None, **overrides: Any) -> "JobOptions":
        """
        Build options from a model, a mapping or keyword arguments.

        Raises:
            InvalidJobOptionsError: If any option is out of range or unknown.
        """
        values: dict[str, Any] = {}
        if isinstance(options, JobOptions):
            values.update(options.model_dump(exclude_unset=True))
        elif options:
            values.update(options)
        values.update(overrides)
        try:
            return cls(**values)
        except ValidationError as e:
            raise InvalidJobOptionsError(str(e)) from e

    def merged_over(self, defaults: "JobOptions") -> "JobOptions":
        """Return these options with unset fields taken from ``defaults``."""
        return defaults.model_copy(update=self.model_dump(exclude_unset=True))


class JobSnapshot(BaseModel):
    """
    Payload-free projection of a job.
    Used for status listings, events and API responses.
    """

    id: str
    type: str
    state: JobState
    priority: int
    attempts: int
    max_attempts: int
    delay: int
    timeout: int
    progress: int
    error: str | None
    created_at: datetime
    scheduled_at: datetime
    started_at: datetime | None
    completed_at: datetime | None


@dataclass
class Job:
    """
    One schedulable unit of work and its history.

    The id is fixed at creation; everything else is mutated by the owning
    queue as the job moves through its lifecycle.
    """

    id: str
    type: str
    data: Any
    priority: int
    max_attempts: int
    delay: int
    timeout: int
    created_at: datetime
    scheduled_at: datetime
    state: JobState = JobState.PENDING
    attempts: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    result: Any = None
    progress: int = 0
    remove_on_complete: bool = False
    remove_on_fail: bool = False
    # Bumped on every dispatch; settlements from older attempts are ignored.
    generation: int = 0

    @classmethod
    def create(
        cls,
        job_type: str,
        data: Any = None,
        options: JobOptions | None = None,
    ) -> "Job":
        """Create a new pending job, scheduled ``options.delay_ms`` from now."""
        options = options or JobOptions()
        now = utcnow()
        return cls(
            id=generate_job_id(job_type, now),
            type=job_type,
            data=data,
            priority=options.priority,
            max_attempts=options.max_attempts,
            delay=options.delay_ms,
            timeout=options.timeout_ms,
            created_at=now,
            scheduled_at=now + timedelta(milliseconds=options.delay_ms),
            remove_on_complete=options.remove_on_complete,
            remove_on_fail=options.remove_on_fail,
        )

    @property
    def is_terminal(self) -> bool:
        """Check if the job reached a terminal state."""
        return self.state in (JobState.COMPLETED, JobState.FAILED)

    def is_due(self, now: datetime) -> bool:
        """Check if the job is pending and its scheduled time has arrived."""
        return self.state == JobState.PENDING and self.scheduled_at <= now

    def snapshot(self) -> JobSnapshot:
        """Project every field except ``data`` and ``result``."""
        return JobSnapshot(
            id=self.id,
            type=self.type,
            state=self.state,
            priority=self.priority,
            attempts=self.attempts,
            max_attempts=self.max_attempts,
            delay=self.delay,
            timeout=self.timeout,
            progress=self.progress,
            error=self.error,
            created_at=self.created_at,
            scheduled_at=self.scheduled_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )

    def serialize(self) -> dict[str, Any]:
        """Plain dict form of :meth:`snapshot`."""
        return self.snapshot().model_dump()


@dataclass
class JobContext:
    """
    Context passed to job handlers during execution.
    Contains job metadata and the progress callback.
    """

    job_id: str
    job_type: str
    queue: str
    attempt: int
    max_attempts: int
    _report_progress: Callable[[int], None] = field(repr=False, default=lambda _: None)
    _last_progress: int = field(init=False, repr=False, default=0)

    def progress(self, percent: float) -> int:
        """
        Report execution progress.

        Args:
            percent: Progress between 0 and 100; values outside are clamped.
                Infinities clamp to the nearest bound and NaN repeats the
                last reported value.

        Returns:
            The clamped value that was recorded.
        """
        if math.isnan(percent):
            value = self._last_progress
        elif math.isinf(percent):
            value = 100 if percent > 0 else 0
        else:
            value = max(0, min(100, int(percent)))
        self._last_progress = value
        self._report_progress(value)
        return value

    @property
    def is_last_attempt(self) -> bool:
        """Check if this is the last retry attempt."""
        return self.attempt >= self.max_attempts

    @property
    def remaining_attempts(self) -> int:
        """Get remaining retry attempts."""
        return max(0, self.max_attempts - self.attempt)


# Type alias for job handler functions
JobHandler = Callable[[Any, JobContext], Awaitable[Any] | Any]
