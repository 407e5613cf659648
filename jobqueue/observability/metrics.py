"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from jobqueue.constants import (
    METRIC_JOB_DURATION,
    METRIC_JOB_RETRIES,
    METRIC_JOBS_ADDED,
    METRIC_JOBS_FINISHED,
    METRIC_JOBS_IN_FLIGHT,
    METRIC_QUEUE_DEPTH,
)
from jobqueue.types.queue import QueueStats

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queues.

    Collects metrics for:
    - Job submissions, completions and failures
    - Retries
    - Job execution duration
    - In-flight jobs and per-state queue depth
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.jobs_added = Counter(
            METRIC_JOBS_ADDED,
            "Total number of jobs added",
            ["queue", "job_type"],
            registry=self._registry,
        )

        self.jobs_finished = Counter(
            METRIC_JOBS_FINISHED,
            "Total number of jobs that reached a terminal state",
            ["queue", "job_type", "status"],
            registry=self._registry,
        )

        self.job_retries = Counter(
            METRIC_JOB_RETRIES,
            "Total number of scheduled retries",
            ["queue", "job_type"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job attempt duration in seconds",
            ["queue", "status"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            registry=self._registry,
        )

        self.jobs_in_flight = Gauge(
            METRIC_JOBS_IN_FLIGHT,
            "Number of jobs currently executing",
            ["queue"],
            registry=self._registry,
        )

        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of jobs held by the queue, by state",
            ["queue", "state"],
            registry=self._registry,
        )

    def record_job_added(self, queue: str, job_type: str) -> None:
        """Record a job submission."""
        self.jobs_added.labels(queue=queue, job_type=job_type).inc()

    def record_job_finished(self, queue: str, job_type: str, status: str) -> None:
        """Record a job reaching completed or failed."""
        self.jobs_finished.labels(queue=queue, job_type=job_type, status=status).inc()

    def record_job_retry(self, queue: str, job_type: str) -> None:
        """Record a scheduled retry."""
        self.job_retries.labels(queue=queue, job_type=job_type).inc()

    def observe_attempt(self, queue: str, status: str, duration_seconds: float) -> None:
        """Record how long one attempt ran."""
        self.job_duration.labels(queue=queue, status=status).observe(duration_seconds)

    def set_in_flight(self, queue: str, count: int) -> None:
        """Update in-flight job count for a queue."""
        self.jobs_in_flight.labels(queue=queue).set(count)

    def update_queue_stats(self, stats: QueueStats) -> None:
        """Update depth gauges from a stats snapshot."""
        for state, count in stats.states.items():
            self.queue_depth.labels(queue=stats.name, state=str(state)).set(count)
        self.jobs_in_flight.labels(queue=stats.name).set(stats.in_flight)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
