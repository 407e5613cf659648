"""
Unit tests for event types and the event emitter.
"""

import pytest

from jobqueue.constants import QueueEventType
from jobqueue.queue.events import EventEmitter
from jobqueue.types.events import (
    JobCompletedEvent,
    QueuePausedEvent,
    WebSocketMessage,
    queue_event_adapter,
)
from jobqueue.types.job import Job


class TestQueueEvent:
    """Tests for the event union."""

    def test_discriminates_on_type(self):
        event = queue_event_adapter.validate_python(
            {"type": "queue.paused", "queue": "email"}
        )

        assert isinstance(event, QueuePausedEvent)
        assert event.queue == "email"

    def test_event_types_cover_enum(self):
        for event_type in QueueEventType:
            assert event_type.value.split(".")[0] in ("job", "queue")

    def test_websocket_message_drops_result(self):
        job = Job.create("export", {"rows": 10})
        event = JobCompletedEvent(
            queue="exports",
            job=job.snapshot(),
            result={"url": "s3://bucket/key"},
            duration_ms=12.5,
        )

        message = WebSocketMessage.from_event(event)

        assert message.type == "job.completed"
        assert "result" not in message.payload
        assert message.payload["job"]["id"] == job.id
        assert message.payload["duration_ms"] == 12.5


class TestEventEmitter:
    """Tests for EventEmitter."""

    def test_filters_by_type(self):
        emitter = EventEmitter()
        seen = []
        emitter.subscribe(seen.append, [QueueEventType.QUEUE_RESUMED])

        emitter.emit(QueuePausedEvent(queue="q"))

        assert seen == []
        assert emitter.listener_count == 1

    def test_unknown_event_type_rejected(self):
        emitter = EventEmitter()
        with pytest.raises(ValueError):
            emitter.subscribe(print, ["job.exploded"])

    @pytest.mark.asyncio
    async def test_async_listener_errors_are_contained(self):
        emitter = EventEmitter()
        seen = []

        async def broken(event):
            raise RuntimeError("boom")

        async def working(event):
            seen.append(event.type)

        emitter.subscribe(broken)
        emitter.subscribe(working)
        emitter.emit(QueuePausedEvent(queue="q"))
        await emitter.wait_pending()

        assert seen == ["queue.paused"]
