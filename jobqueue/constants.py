"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import IntEnum, StrEnum


class JobState(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - PENDING -> RUNNING (dispatched by a tick)
    - PENDING -> FAILED (no handler registered for the job type)
    - RUNNING -> COMPLETED (handler succeeded)
    - RUNNING -> PENDING (handler failed or timed out, attempts left;
      rescheduled after backoff and reported with a retry event)
    - RUNNING -> FAILED (attempts exhausted)
    - FAILED -> PENDING (manual retry)

    RETRY is part of the status vocabulary shared with consumers; the queue
    itself re-arms retried jobs straight to PENDING.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRY = "retry"


class JobPriority(IntEnum):
    """Named priority tiers. Any integer is a valid priority; higher runs first."""

    LOW = 1
    NORMAL = 5
    HIGH = 10
    CRITICAL = 100


class QueueEventType(StrEnum):
    """Events emitted by a queue over its lifetime."""

    JOB_ADDED = "job.added"
    JOB_STARTED = "job.started"
    JOB_PROGRESS = "job.progress"
    JOB_COMPLETED = "job.completed"
    JOB_RETRY = "job.retry"
    JOB_FAILED = "job.failed"
    JOB_REMOVED = "job.removed"
    QUEUE_PAUSED = "queue.paused"
    QUEUE_RESUMED = "queue.resumed"
    QUEUE_SHUTDOWN = "queue.shutdown"


# Well-known queues provisioned at startup
QUEUE_DEFAULT = "default"
QUEUE_EMAIL = "email"
QUEUE_NOTIFICATIONS = "notifications"
QUEUE_EXPORTS = "exports"

# Default values
DEFAULT_PRIORITY = JobPriority.NORMAL
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_DELAY_MS = 0
DEFAULT_CONCURRENCY = 5
DEFAULT_TICK_INTERVAL_MS = 100
DEFAULT_BACKOFF_BASE_MS = 1000
DEFAULT_SHUTDOWN_TIMEOUT_MS = 30_000

TIMEOUT_ERROR_MESSAGE = "Job timed out"

# API constants
API_V1_PREFIX = "/v1"

# Metrics names
METRIC_JOBS_ADDED = "jobqueue_jobs_added_total"
METRIC_JOBS_FINISHED = "jobqueue_jobs_finished_total"
METRIC_JOB_RETRIES = "jobqueue_job_retries_total"
METRIC_JOB_DURATION = "jobqueue_job_duration_seconds"
METRIC_JOBS_IN_FLIGHT = "jobqueue_jobs_in_flight"
METRIC_QUEUE_DEPTH = "jobqueue_queue_depth"

# Trace span names
SPAN_EXECUTE_JOB = "execute_job"

# Webhook delivery headers
WEBHOOK_SIGNATURE_HEADER = "X-Webhook-Signature"
WEBHOOK_EVENT_HEADER = "X-Webhook-Event"
WEBHOOK_DELIVERY_HEADER = "X-Webhook-Delivery"
