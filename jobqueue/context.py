"""
Application context.

Holds the process-wide collaborators (settings, metrics, queue manager).
Built once at startup and handed to the API app or the worker process.
"""

import logging
from dataclasses import dataclass

from jobqueue.config import Settings, get_settings
from jobqueue.observability.metrics import MetricsCollector, get_metrics
from jobqueue.queue.manager import QueueManager, create_default_manager

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Explicit owner of the queue manager's lifecycle."""

    settings: Settings
    metrics: MetricsCollector
    manager: QueueManager

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        metrics: MetricsCollector | None = None,
    ) -> "AppContext":
        """Build a context with the well-known queues provisioned."""
        settings = settings or get_settings()
        metrics = metrics or get_metrics()
        return cls(
            settings=settings,
            metrics=metrics,
            manager=create_default_manager(settings, metrics),
        )

    def start(self) -> None:
        """Start dispatching on every queue."""
        self.manager.start()
        logger.info("Queues started", extra={"queues": self.manager.names})

    async def shutdown(self, timeout_ms: int | None = None) -> dict[str, bool]:
        """Drain every queue."""
        if timeout_ms is None:
            timeout_ms = self.settings.queue_shutdown_timeout_ms
        return await self.manager.shutdown_all(timeout_ms)
