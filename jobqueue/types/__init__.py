"""
Type definitions for the job queue.
Contains input/output type definitions, grouped by module.
"""

from jobqueue.types.api import (
    ClearJobsResponse,
    EnqueueJobRequest,
    EnqueueJobResponse,
    ErrorResponse,
    HealthResponse,
    JobListResponse,
    QueueStateResponse,
    QueueStatsResponse,
    RetryJobResponse,
)
from jobqueue.types.events import (
    JobAddedEvent,
    JobCompletedEvent,
    JobFailedEvent,
    JobProgressEvent,
    JobRemovedEvent,
    JobRetryEvent,
    JobStartedEvent,
    QueueEvent,
    QueuePausedEvent,
    QueueResumedEvent,
    QueueShutdownEvent,
    WebSocketMessage,
)
from jobqueue.types.job import (
    Job,
    JobContext,
    JobHandler,
    JobOptions,
    JobSnapshot,
)
from jobqueue.types.queue import QueueCounters, QueueStats

__all__ = [
    # API types
    "EnqueueJobRequest",
    "EnqueueJobResponse",
    "JobListResponse",
    "RetryJobResponse",
    "ClearJobsResponse",
    "QueueStatsResponse",
    "QueueStateResponse",
    "HealthResponse",
    "ErrorResponse",
    # Job types
    "Job",
    "JobContext",
    "JobHandler",
    "JobOptions",
    "JobSnapshot",
    # Queue types
    "QueueCounters",
    "QueueStats",
    # Event types
    "QueueEvent",
    "JobAddedEvent",
    "JobStartedEvent",
    "JobProgressEvent",
    "JobCompletedEvent",
    "JobRetryEvent",
    "JobFailedEvent",
    "JobRemovedEvent",
    "QueuePausedEvent",
    "QueueResumedEvent",
    "QueueShutdownEvent",
    "WebSocketMessage",
]
