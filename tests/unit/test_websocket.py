"""
Unit tests for the WebSocket event broadcaster.
"""

import json

import pytest

from jobqueue.api.websocket import WebSocketManager, event_job_id
from jobqueue.types.events import JobAddedEvent, JobProgressEvent, QueuePausedEvent
from jobqueue.types.job import Job


class FakeWebSocket:
    """Minimal stand-in for a Starlette WebSocket."""

    def __init__(self, fail: bool = False):
        self.accepted = False
        self.sent: list[str] = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_text(self, text: str):
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(text)


class TestWebSocketManager:
    """Tests for WebSocketManager."""

    @pytest.fixture
    def job(self) -> Job:
        return Job.create("email", {"to": "someone@example.com"})

    def test_event_job_id(self, job: Job):
        assert event_job_id(JobAddedEvent(queue="email", job=job.snapshot())) == job.id
        assert event_job_id(JobProgressEvent(queue="email", job_id="j-1", progress=5)) == "j-1"
        assert event_job_id(QueuePausedEvent(queue="email")) is None

    @pytest.mark.asyncio
    async def test_broadcast_respects_queue_filter(self, job: Job):
        manager = WebSocketManager()
        email_ws, exports_ws, all_ws = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
        await manager.connect(email_ws, "email")
        await manager.connect(exports_ws, "exports")
        await manager.connect(all_ws)

        delivered = await manager.broadcast_event(JobAddedEvent(queue="email", job=job.snapshot()))

        assert delivered == 2
        assert email_ws.accepted
        assert exports_ws.sent == []
        message = json.loads(all_ws.sent[0])
        assert message["type"] == "job.added"
        assert message["payload"]["job"]["id"] == job.id
        assert "data" not in message["payload"]["job"]

    @pytest.mark.asyncio
    async def test_job_subscription_narrows_stream(self, job: Job):
        manager = WebSocketManager()
        ws = FakeWebSocket()
        connection = await manager.connect(ws)
        connection.subscribed_jobs.add("other-job")

        await manager.broadcast_event(JobAddedEvent(queue="email", job=job.snapshot()))
        await manager.broadcast_event(QueuePausedEvent(queue="email"))

        assert [json.loads(text)["type"] for text in ws.sent] == ["queue.paused"]

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self):
        manager = WebSocketManager()
        await manager.connect(FakeWebSocket(fail=True), "email")

        delivered = await manager.broadcast_event(QueuePausedEvent(queue="email"))

        assert delivered == 0
        assert manager.get_connection_count() == 0
