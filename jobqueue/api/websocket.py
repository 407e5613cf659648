"""
WebSocket connection manager for real-time queue events.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field

from fastapi import WebSocket, WebSocketDisconnect

from jobqueue.types.events import QueueEvent, WebSocketMessage

logger = logging.getLogger(__name__)


def event_job_id(event: QueueEvent) -> str | None:
    """Id of the job an event is about, if any."""
    job = getattr(event, "job", None)
    if job is not None:
        return job.id
    return getattr(event, "job_id", None)


@dataclass(eq=False)
class ConnectionInfo:
    """Information about a WebSocket connection."""

    websocket: WebSocket
    queue: str | None = None  # None = all queues
    subscribed_jobs: set[str] = field(default_factory=set)  # empty = all jobs

    def wants(self, event: QueueEvent) -> bool:
        """Check if this connection should receive an event."""
        if self.queue is not None and event.queue != self.queue:
            return False
        if self.subscribed_jobs:
            job_id = event_job_id(event)
            return job_id is None or job_id in self.subscribed_jobs
        return True


class WebSocketManager:
    """
    Manager for WebSocket connections.

    Subscribed to the queue manager; forwards every queue event to the
    connections that want it.
    """

    def __init__(self):
        self._connections: list[ConnectionInfo] = []
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, queue: str | None = None) -> ConnectionInfo:
        """Accept a new WebSocket connection."""
        await websocket.accept()

        connection = ConnectionInfo(websocket=websocket, queue=queue)
        async with self._lock:
            self._connections.append(connection)

        logger.info("WebSocket connected", extra={"queue": queue})
        return connection

    async def disconnect(self, connection: ConnectionInfo) -> None:
        """Handle WebSocket disconnection."""
        async with self._lock:
            if connection in self._connections:
                self._connections.remove(connection)

        logger.info("WebSocket disconnected", extra={"queue": connection.queue})

    async def broadcast_event(self, event: QueueEvent) -> int:
        """
        Send an event to every interested connection.

        Returns:
            Number of connections the event was delivered to.
        """
        async with self._lock:
            connections = [c for c in self._connections if c.wants(event)]

        if not connections:
            return 0

        message_json = WebSocketMessage.from_event(event).model_dump_json()

        delivered = 0
        disconnected = []
        for connection in connections:
            try:
                await connection.websocket.send_text(message_json)
                delivered += 1
            except Exception as e:
                logger.warning(
                    f"Failed to send WebSocket message: {e}",
                    extra={"queue": event.queue},
                )
                disconnected.append(connection)

        for connection in disconnected:
            await self.disconnect(connection)

        return delivered

    def get_connection_count(self, queue: str | None = None) -> int:
        """Get the number of active connections, optionally for one queue."""
        if queue is not None:
            return sum(1 for c in self._connections if c.queue == queue)
        return len(self._connections)


async def websocket_handler(
    manager: WebSocketManager,
    websocket: WebSocket,
    queue: str | None = None,
) -> None:
    """
    Handle a WebSocket connection for queue events.

    Clients may send ``{"action": "subscribe", "job_id": ...}`` to narrow
    the stream to specific jobs, ``unsubscribe`` to widen it again, and
    ``ping`` to check liveness.
    """
    connection = await manager.connect(websocket, queue)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
                action = message.get("action")

                if action == "subscribe":
                    job_id = str(message["job_id"])
                    connection.subscribed_jobs.add(job_id)
                    await websocket.send_json({"type": "subscribed", "job_id": job_id})

                elif action == "unsubscribe":
                    job_id = str(message["job_id"])
                    connection.subscribed_jobs.discard(job_id)
                    await websocket.send_json({"type": "unsubscribed", "job_id": job_id})

                elif action == "ping":
                    await websocket.send_json({"type": "pong"})

                else:
                    await websocket.send_json({
                        "type": "error",
                        "message": f"Unknown action: {action}",
                    })

            except (json.JSONDecodeError, AttributeError, KeyError) as e:
                await websocket.send_json({
                    "type": "error",
                    "message": f"Invalid message: {e}",
                })

    except WebSocketDisconnect:
        await manager.disconnect(connection)
