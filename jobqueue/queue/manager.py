"""
Management of multiple named job queues.
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from jobqueue.config import Settings, get_settings
from jobqueue.constants import (
    DEFAULT_BACKOFF_BASE_MS,
    DEFAULT_CONCURRENCY,
    DEFAULT_SHUTDOWN_TIMEOUT_MS,
    DEFAULT_TICK_INTERVAL_MS,
    QUEUE_DEFAULT,
    QUEUE_EMAIL,
    QUEUE_EXPORTS,
    QUEUE_NOTIFICATIONS,
    QueueEventType,
)
from jobqueue.exceptions import QueueNotFoundError
from jobqueue.observability.metrics import MetricsCollector, get_metrics
from jobqueue.queue.events import EventEmitter, EventListener, EventSubscription
from jobqueue.queue.job_queue import JobQueue
from jobqueue.types.job import JobOptions
from jobqueue.types.queue import QueueStats

logger = logging.getLogger(__name__)


class QueueManager:
    """
    Registry of named queues.

    Queues created through the manager share its metrics collector and
    queue-engine defaults, and forward their events to the manager so a
    single subscription observes every queue.
    """

    def __init__(
        self,
        metrics: MetricsCollector | None = None,
        *,
        tick_interval_ms: int = DEFAULT_TICK_INTERVAL_MS,
        backoff_base_ms: int = DEFAULT_BACKOFF_BASE_MS,
        shutdown_timeout_ms: int = DEFAULT_SHUTDOWN_TIMEOUT_MS,
        default_options: JobOptions | None = None,
    ):
        self._metrics = metrics or get_metrics()
        self._queues: dict[str, JobQueue] = {}
        self._events = EventEmitter()
        self._started = False

        self.tick_interval_ms = tick_interval_ms
        self.backoff_base_ms = backoff_base_ms
        self.shutdown_timeout_ms = shutdown_timeout_ms
        self.default_options = default_options

    @property
    def names(self) -> list[str]:
        return list(self._queues.keys())

    @property
    def queues(self) -> dict[str, JobQueue]:
        return dict(self._queues)

    def create_queue(
        self,
        name: str,
        concurrency: int = DEFAULT_CONCURRENCY,
        **options: Any,
    ) -> JobQueue:
        """
        Create a queue and register it under ``name``.

        An existing queue with the same name is replaced, not stopped;
        shut it down first if it was started.

        Args:
            name: Queue name.
            concurrency: Maximum number of jobs running at once.
            **options: Overrides for ``JobQueue`` keyword arguments.
        """
        settings: dict[str, Any] = {
            "tick_interval_ms": self.tick_interval_ms,
            "backoff_base_ms": self.backoff_base_ms,
            "shutdown_timeout_ms": self.shutdown_timeout_ms,
            "default_options": self.default_options,
            "metrics": self._metrics,
        }
        settings.update(options)
        queue = JobQueue(name, concurrency, **settings)
        queue.subscribe(self._events.emit)

        previous = self._queues.get(name)
        if previous is not None:
            logger.warning(
                "Replacing existing queue",
                extra={"queue": name, "was_started": previous.is_started},
            )
        self._queues[name] = queue

        if self._started:
            queue.start()
        return queue

    def get_queue(self, name: str) -> JobQueue | None:
        return self._queues.get(name)

    def require_queue(self, name: str) -> JobQueue:
        """
        Get a queue by name.

        Raises:
            QueueNotFoundError: If no queue has that name.
        """
        queue = self._queues.get(name)
        if queue is None:
            raise QueueNotFoundError(name)
        return queue

    def subscribe(
        self,
        listener: EventListener,
        event_types: Iterable[QueueEventType | str] | None = None,
    ) -> EventSubscription:
        """Subscribe to events from every managed queue."""
        return self._events.subscribe(listener, event_types)

    def unsubscribe(self, subscription: EventSubscription) -> bool:
        return self._events.unsubscribe(subscription)

    def start(self) -> None:
        """Start the dispatch loop of every managed queue."""
        self._started = True
        for queue in self._queues.values():
            queue.start()

    def get_all_stats(self) -> dict[str, QueueStats]:
        return {name: queue.get_stats() for name, queue in self._queues.items()}

    async def shutdown_all(self, timeout_ms: int | None = None) -> dict[str, bool]:
        """
        Drain every queue concurrently.

        Returns:
            Mapping of queue name to whether it drained before its timeout.
        """
        self._started = False
        names = list(self._queues.keys())
        results = await asyncio.gather(
            *(self._queues[name].shutdown(timeout_ms) for name in names)
        )
        outcome = dict(zip(names, results))
        logger.info("All queues shut down", extra={"drained": outcome})
        return outcome


def create_default_manager(
    settings: Settings | None = None,
    metrics: MetricsCollector | None = None,
) -> QueueManager:
    """
    Build a manager with the well-known queues provisioned.

    Queues: ``default``, ``email``, ``notifications`` and ``exports``, each
    with its own concurrency limit from settings.
    """
    settings = settings or get_settings()

    manager = QueueManager(
        metrics,
        tick_interval_ms=settings.queue_tick_interval_ms,
        backoff_base_ms=settings.queue_backoff_base_ms,
        shutdown_timeout_ms=settings.queue_shutdown_timeout_ms,
        default_options=JobOptions(
            max_attempts=settings.default_max_attempts,
            timeout_ms=settings.default_job_timeout_ms,
        ),
    )
    manager.create_queue(QUEUE_DEFAULT, settings.queue_default_concurrency)
    manager.create_queue(QUEUE_EMAIL, settings.queue_email_concurrency)
    manager.create_queue(QUEUE_NOTIFICATIONS, settings.queue_notifications_concurrency)
    manager.create_queue(QUEUE_EXPORTS, settings.queue_exports_concurrency)
    return manager
