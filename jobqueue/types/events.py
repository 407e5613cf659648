"""
Event type definitions for queue observability.

Every event a queue emits is one variant of the ``QueueEvent`` union,
discriminated by its ``type`` field.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from jobqueue.types.job import JobSnapshot, utcnow


class _BaseQueueEvent(BaseModel):
    """Fields shared by all queue events."""

    queue: str
    timestamp: datetime = Field(default_factory=utcnow)


class JobAddedEvent(_BaseQueueEvent):
    type: Literal["job.added"] = "job.added"
    job: JobSnapshot


class JobStartedEvent(_BaseQueueEvent):
    type: Literal["job.started"] = "job.started"
    job: JobSnapshot
    attempt: int


class JobProgressEvent(_BaseQueueEvent):
    type: Literal["job.progress"] = "job.progress"
    job_id: str
    progress: int


class JobCompletedEvent(_BaseQueueEvent):
    type: Literal["job.completed"] = "job.completed"
    job: JobSnapshot
    result: Any = None
    duration_ms: float


class JobRetryEvent(_BaseQueueEvent):
    type: Literal["job.retry"] = "job.retry"
    job: JobSnapshot
    error: str
    backoff_ms: int


class JobFailedEvent(_BaseQueueEvent):
    type: Literal["job.failed"] = "job.failed"
    job: JobSnapshot
    error: str


class JobRemovedEvent(_BaseQueueEvent):
    type: Literal["job.removed"] = "job.removed"
    job: JobSnapshot


class QueuePausedEvent(_BaseQueueEvent):
    type: Literal["queue.paused"] = "queue.paused"


class QueueResumedEvent(_BaseQueueEvent):
    type: Literal["queue.resumed"] = "queue.resumed"


class QueueShutdownEvent(_BaseQueueEvent):
    type: Literal["queue.shutdown"] = "queue.shutdown"
    drained: bool
    in_flight: int


QueueEvent = Annotated[
    Union[
        JobAddedEvent,
        JobStartedEvent,
        JobProgressEvent,
        JobCompletedEvent,
        JobRetryEvent,
        JobFailedEvent,
        JobRemovedEvent,
        QueuePausedEvent,
        QueueResumedEvent,
        QueueShutdownEvent,
    ],
    Field(discriminator="type"),
]

queue_event_adapter: TypeAdapter[QueueEvent] = TypeAdapter(QueueEvent)


class WebSocketMessage(BaseModel):
    """
    Message format for WebSocket communication.
    """

    type: str
    payload: dict[str, Any]
    timestamp: datetime

    @classmethod
    def from_event(cls, event: _BaseQueueEvent) -> "WebSocketMessage":
        """Create a WebSocket message from a queue event."""
        payload = event.model_dump(mode="json", exclude={"type", "timestamp", "result"})
        return cls(
            type=event.type,
            payload=payload,
            timestamp=event.timestamp,
        )
