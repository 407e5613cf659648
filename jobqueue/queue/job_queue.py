"""
In-process job queue.

A queue owns its jobs, a handler per job type and a fixed-period dispatch
loop. Each tick picks the pending jobs whose scheduled time has arrived,
orders them by priority (highest first) and then by scheduled time
(earliest first), and starts as many as the concurrency limit allows.

Handler outcomes drive the job state machine:

    pending -> running -> completed
                       -> pending   (failed or timed out, attempts left;
                                     re-armed after exponential backoff)
                       -> failed    (attempts exhausted)
    pending -> failed               (no handler registered)
    failed  -> pending              (manual retry)

Execution is at-least-once. A timed-out handler is not cancelled; its late
outcome is logged and ignored, so handlers should be idempotent.
"""

import asyncio
import inspect
import logging
import time
from collections.abc import Iterable
from datetime import timedelta
from functools import partial
from typing import Any

from opentelemetry.trace import Status, StatusCode

from jobqueue.constants import (
    DEFAULT_BACKOFF_BASE_MS,
    DEFAULT_CONCURRENCY,
    DEFAULT_SHUTDOWN_TIMEOUT_MS,
    DEFAULT_TICK_INTERVAL_MS,
    SPAN_EXECUTE_JOB,
    TIMEOUT_ERROR_MESSAGE,
    JobState,
    QueueEventType,
)
from jobqueue.exceptions import InvalidJobOptionsError
from jobqueue.observability.metrics import MetricsCollector, get_metrics
from jobqueue.observability.tracing import get_tracer
from jobqueue.queue.events import EventEmitter, EventListener, EventSubscription
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
)
from jobqueue.types.job import Job, JobContext, JobHandler, JobOptions, utcnow
from jobqueue.types.queue import QueueCounters, QueueStats

logger = logging.getLogger(__name__)


class JobQueue:
    """
    Priority job queue with delayed scheduling, timeouts and retries.

    Features:
    - Priority ordering with scheduled-time tie breaking
    - Bounded number of concurrently running handlers
    - Per-attempt timeout
    - Exponential backoff between attempts (``2 ** attempts * backoff_base_ms``)
    - Typed lifecycle events
    - Graceful drain on shutdown
    """

    def __init__(
        self,
        name: str,
        concurrency: int = DEFAULT_CONCURRENCY,
        *,
        tick_interval_ms: int = DEFAULT_TICK_INTERVAL_MS,
        backoff_base_ms: int = DEFAULT_BACKOFF_BASE_MS,
        shutdown_timeout_ms: int = DEFAULT_SHUTDOWN_TIMEOUT_MS,
        default_options: JobOptions | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the queue. Call :meth:`start` from a running event loop
        to begin dispatching.

        Args:
            name: Queue name, used in events, logs and metrics.
            concurrency: Maximum number of jobs running at once.
            tick_interval_ms: Period of the dispatch loop.
            backoff_base_ms: Backoff unit; retry ``n`` waits ``2 ** n`` units.
            shutdown_timeout_ms: Default drain timeout for :meth:`shutdown`.
            default_options: Options applied where ``add`` leaves them unset.
            metrics: Metrics collector. Defaults to the process collector.
        """
        if concurrency < 1:
            raise InvalidJobOptionsError(f"concurrency must be >= 1, got {concurrency}")
        if tick_interval_ms <= 0:
            raise InvalidJobOptionsError(f"tick_interval_ms must be > 0, got {tick_interval_ms}")

        self.name = name
        self.concurrency = concurrency
        self.tick_interval_ms = tick_interval_ms
        self.backoff_base_ms = backoff_base_ms
        self.shutdown_timeout_ms = shutdown_timeout_ms
        self.default_options = default_options or JobOptions()

        self._jobs: dict[str, Job] = {}
        self._handlers: dict[str, JobHandler] = {}
        self._running = 0
        self._paused = False
        self._counters = QueueCounters()
        self._events = EventEmitter()
        self._metrics = metrics or get_metrics()

        self._tick_task: asyncio.Task[None] | None = None
        self._attempt_tasks: set[asyncio.Task[None]] = set()
        # Set whenever no job is in flight
        self._drained = asyncio.Event()
        self._drained.set()

    def __repr__(self) -> str:
        return (
            f"JobQueue(name={self.name!r}, concurrency={self.concurrency}, "
            f"jobs={len(self._jobs)}, running={self._running}, paused={self._paused})"
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def running(self) -> int:
        """Number of attempts currently holding a concurrency slot."""
        return self._running

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def is_started(self) -> bool:
        """Check if the dispatch loop is active."""
        return self._tick_task is not None and not self._tick_task.done()

    @property
    def handler_types(self) -> list[str]:
        """List all registered job types."""
        return list(self._handlers.keys())

    # ------------------------------------------------------------------
    # Handlers and events
    # ------------------------------------------------------------------

    def register(
        self,
        job_type: str,
        handler: JobHandler | None = None,
    ) -> Any:
        """
        Register the handler for a job type, replacing any previous one.

        Can be called directly or used as a decorator::

            @queue.register("send_email")
            async def send_email(data, context):
                ...

        The handler is called as ``handler(data, context)``.
        """
        if handler is None:
            def decorator(fn: JobHandler) -> JobHandler:
                self.register(job_type, fn)
                return fn
            return decorator

        if job_type in self._handlers:
            logger.debug(
                "Replacing handler",
                extra={"queue": self.name, "job_type": job_type},
            )
        self._handlers[job_type] = handler
        return handler

    def subscribe(
        self,
        listener: EventListener,
        event_types: Iterable[QueueEventType | str] | None = None,
    ) -> EventSubscription:
        """Subscribe to this queue's events. See :class:`EventEmitter`."""
        return self._events.subscribe(listener, event_types)

    def unsubscribe(self, subscription: EventSubscription) -> bool:
        return self._events.unsubscribe(subscription)

    def _emit(self, event: QueueEvent) -> None:
        self._events.emit(event)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def add(
        self,
        job_type: str,
        data: Any = None,
        options: JobOptions | dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> Job:
        """
        Create and enqueue a job. Returns immediately; the job runs on a
        later tick.

        Args:
            job_type: Selects the handler.
            data: Payload passed to the handler as-is.
            options: ``JobOptions`` or a mapping of its fields.
            **kwargs: Individual option overrides (``priority``,
                ``delay_ms``, ``max_attempts``, ``timeout_ms``,
                ``remove_on_complete``, ``remove_on_fail``).

        Raises:
            InvalidJobOptionsError: If an option is invalid.
        """
        job_options = JobOptions.build(options, **kwargs).merged_over(self.default_options)
        job = Job.create(job_type, data, job_options)
        self._jobs[job.id] = job

        self._metrics.record_job_added(self.name, job_type)
        logger.debug(
            "Job added",
            extra={
                "queue": self.name,
                "job_id": job.id,
                "job_type": job_type,
                "priority": job.priority,
                "delay_ms": job.delay,
            },
        )
        self._emit(JobAddedEvent(queue=self.name, job=job.snapshot()))
        return job

    def add_bulk(
        self,
        jobs: Iterable[tuple[str, Any] | tuple[str, Any, JobOptions | dict[str, Any] | None]],
    ) -> list[Job]:
        """
        Add several jobs in order.

        Each entry is ``(job_type, data)`` or ``(job_type, data, options)``.
        Every entry's options are validated before any job is added.

        Raises:
            InvalidJobOptionsError: If any entry has invalid options.
        """
        prepared = []
        for entry in jobs:
            job_type, data, *rest = entry
            options = rest[0] if rest else None
            prepared.append((job_type, data, JobOptions.build(options)))
        return [self.add(job_type, data, options) for job_type, data, options in prepared]

    def get_job(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def get_jobs(self, state: JobState | str | None = None) -> list[Job]:
        """List jobs in insertion order, optionally filtered by state."""
        if state is None:
            return list(self._jobs.values())
        state = JobState(state)
        return [job for job in self._jobs.values() if job.state == state]

    def retry(self, job_id: str) -> bool:
        """
        Re-arm a failed job.

        Resets attempts and error and makes the job immediately eligible.

        Returns:
            False if the job does not exist or is not failed.
        """
        job = self._jobs.get(job_id)
        if job is None or job.state != JobState.FAILED:
            return False

        job.state = JobState.PENDING
        job.attempts = 0
        job.error = None
        job.completed_at = None
        job.scheduled_at = utcnow()

        logger.info(
            "Job manually retried",
            extra={"queue": self.name, "job_id": job_id},
        )
        return True

    def remove(self, job_id: str) -> bool:
        """
        Delete a job in any state.

        A running handler is not interrupted; its outcome is discarded.
        """
        job = self._jobs.pop(job_id, None)
        if job is None:
            return False

        if job.state == JobState.RUNNING:
            logger.warning(
                "Removed a running job; its outcome will be discarded",
                extra={"queue": self.name, "job_id": job_id},
            )
        self._emit(JobRemovedEvent(queue=self.name, job=job.snapshot()))
        return True

    def clear(self, state: JobState | str | None = None) -> int:
        """
        Delete every job, or every job in ``state``, emitting
        ``job.removed`` for each.

        Returns:
            Number of jobs deleted.
        """
        if state is not None:
            state = JobState(state)
        doomed = [
            job for job in self._jobs.values() if state is None or job.state == state
        ]
        for job in doomed:
            del self._jobs[job.id]
            self._emit(JobRemovedEvent(queue=self.name, job=job.snapshot()))

        logger.info(
            "Jobs cleared",
            extra={"queue": self.name, "state": state, "count": len(doomed)},
        )
        return len(doomed)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def pause(self) -> None:
        """Stop dispatching new jobs. Running jobs continue."""
        self._paused = True
        logger.info("Queue paused", extra={"queue": self.name})
        self._emit(QueuePausedEvent(queue=self.name))

    def resume(self) -> None:
        """Resume dispatching."""
        self._paused = False
        logger.info("Queue resumed", extra={"queue": self.name})
        self._emit(QueueResumedEvent(queue=self.name))

    def start(self) -> None:
        """Start the dispatch loop. Must be called with a running event loop."""
        if self.is_started:
            return
        self._tick_task = asyncio.create_task(
            self._tick_loop(),
            name=f"jobqueue-tick-{self.name}",
        )
        logger.info(
            "Queue started",
            extra={
                "queue": self.name,
                "concurrency": self.concurrency,
                "tick_interval_ms": self.tick_interval_ms,
            },
        )

    async def shutdown(self, timeout_ms: int | None = None) -> bool:
        """
        Pause, stop the dispatch loop and wait for in-flight jobs.

        Handlers are never cancelled. If they do not finish within
        ``timeout_ms`` the queue gives up waiting and reports it.

        Returns:
            True if every in-flight job settled before the timeout.
        """
        if timeout_ms is None:
            timeout_ms = self.shutdown_timeout_ms

        self._paused = True
        await self._stop_ticking()

        drained = True
        if self._running > 0:
            logger.info(
                f"Waiting for {self._running} jobs to complete",
                extra={"queue": self.name, "timeout_ms": timeout_ms},
            )
            try:
                await asyncio.wait_for(self._drained.wait(), timeout=timeout_ms / 1000)
            except TimeoutError:
                drained = False
                logger.warning(
                    "Shutdown timed out with jobs still in flight",
                    extra={"queue": self.name, "in_flight": self._running},
                )

        logger.info("Queue shutdown", extra={"queue": self.name, "drained": drained})
        self._emit(
            QueueShutdownEvent(queue=self.name, drained=drained, in_flight=self._running)
        )
        return drained

    async def _stop_ticking(self) -> None:
        if self._tick_task is None:
            return
        self._tick_task.cancel()
        try:
            await self._tick_task
        except asyncio.CancelledError:
            pass
        self._tick_task = None

    async def _tick_loop(self) -> None:
        interval = self.tick_interval_ms / 1000
        while True:
            try:
                self.tick()
            except Exception as e:
                logger.exception(
                    f"Error in dispatch loop: {e}",
                    extra={"queue": self.name},
                )
            await asyncio.sleep(interval)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def tick(self) -> int:
        """
        Dispatch due jobs up to the concurrency limit.

        Returns:
            Number of jobs dispatched, including jobs failed for lack of
            a handler.

        Raises:
            RuntimeError: If called without a running event loop.
        """
        # Attempts run as tasks; fail before touching any job state.
        asyncio.get_running_loop()

        if self._paused or self._running >= self.concurrency:
            return 0

        now = utcnow()
        due = sorted(
            (job for job in self._jobs.values() if job.is_due(now)),
            key=lambda job: (-job.priority, job.scheduled_at),
        )

        dispatched = 0
        for job in due:
            if self._running >= self.concurrency:
                break
            self._dispatch(job)
            dispatched += 1
        return dispatched

    def _dispatch(self, job: Job) -> None:
        handler = self._handlers.get(job.type)
        if handler is None:
            job.state = JobState.FAILED
            job.error = f"No handler registered for job type: {job.type}"
            job.completed_at = utcnow()
            logger.error(
                f"No handler for job type: {job.type}",
                extra={"queue": self.name, "job_id": job.id},
            )
            self._metrics.record_job_finished(self.name, job.type, JobState.FAILED)
            self._emit(JobFailedEvent(queue=self.name, job=job.snapshot(), error=job.error))
            if job.remove_on_fail:
                self._drop(job)
            return

        job.state = JobState.RUNNING
        job.started_at = utcnow()
        job.attempts += 1
        job.generation += 1
        self._acquire_slot()

        logger.info(
            "Executing job",
            extra={
                "queue": self.name,
                "job_id": job.id,
                "job_type": job.type,
                "attempt": job.attempts,
            },
        )
        self._emit(JobStartedEvent(queue=self.name, job=job.snapshot(), attempt=job.attempts))

        task = asyncio.create_task(
            self._execute(job, handler, job.generation),
            name=f"job-{job.id}-{job.generation}",
        )
        self._attempt_tasks.add(task)
        task.add_done_callback(self._attempt_tasks.discard)

    async def _execute(self, job: Job, handler: JobHandler, generation: int) -> None:
        context = JobContext(
            job_id=job.id,
            job_type=job.type,
            queue=self.name,
            attempt=job.attempts,
            max_attempts=job.max_attempts,
            _report_progress=partial(self._report_progress, job, generation),
        )
        start_time = time.perf_counter()

        try:
            with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
                span.set_attribute("queue", self.name)
                span.set_attribute("job_id", job.id)
                span.set_attribute("job_type", job.type)
                span.set_attribute("attempt", context.attempt)

                invocation = asyncio.ensure_future(self._invoke(handler, job.data, context))
                done, _ = await asyncio.wait({invocation}, timeout=job.timeout / 1000)

                error = _attempt_error(invocation) if done else TIMEOUT_ERROR_MESSAGE
                if error is not None:
                    span.set_status(Status(StatusCode.ERROR, error))
        finally:
            self._release_slot()

        duration = time.perf_counter() - start_time

        if not done:
            invocation.add_done_callback(
                partial(self._on_late_settlement, job.id, generation)
            )

        if not self._is_current(job, generation):
            logger.info(
                "Discarding outcome of a job that is no longer tracked",
                extra={"queue": self.name, "job_id": job.id, "error": error},
            )
            return

        if error is None:
            self._metrics.observe_attempt(self.name, JobState.COMPLETED, duration)
            self._complete(job, invocation.result(), duration)
        else:
            status = "timeout" if not done else "error"
            self._metrics.observe_attempt(self.name, status, duration)
            logger.warning(
                "Job attempt failed",
                extra={
                    "queue": self.name,
                    "job_id": job.id,
                    "error": error,
                    "attempt": job.attempts,
                },
            )
            job.error = error
            self._handle_failure(job)

    @staticmethod
    async def _invoke(handler: JobHandler, data: Any, context: JobContext) -> Any:
        outcome = handler(data, context)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome

    def _complete(self, job: Job, result: Any, duration: float) -> None:
        job.state = JobState.COMPLETED
        job.result = result
        job.progress = 100
        job.completed_at = utcnow()

        self._counters.completed += 1
        self._counters.processed += 1
        self._metrics.record_job_finished(self.name, job.type, JobState.COMPLETED)

        logger.info(
            "Job completed successfully",
            extra={
                "queue": self.name,
                "job_id": job.id,
                "duration": f"{duration:.3f}s",
            },
        )
        self._emit(
            JobCompletedEvent(
                queue=self.name,
                job=job.snapshot(),
                result=result,
                duration_ms=duration * 1000,
            )
        )
        if job.remove_on_complete:
            self._drop(job)

    def _handle_failure(self, job: Job) -> None:
        """Re-arm the job with backoff, or fail it once attempts run out."""
        error = job.error or "Unknown error"

        if job.attempts < job.max_attempts:
            backoff_ms = (2 ** job.attempts) * self.backoff_base_ms
            job.state = JobState.PENDING
            job.scheduled_at = utcnow() + timedelta(milliseconds=backoff_ms)

            self._metrics.record_job_retry(self.name, job.type)
            logger.info(
                "Job scheduled for retry",
                extra={
                    "queue": self.name,
                    "job_id": job.id,
                    "attempt": job.attempts,
                    "backoff_ms": backoff_ms,
                },
            )
            self._emit(
                JobRetryEvent(
                    queue=self.name,
                    job=job.snapshot(),
                    error=error,
                    backoff_ms=backoff_ms,
                )
            )
            return

        job.state = JobState.FAILED
        job.completed_at = utcnow()

        self._counters.failed += 1
        self._counters.processed += 1
        self._metrics.record_job_finished(self.name, job.type, JobState.FAILED)

        logger.error(
            "Job failed permanently",
            extra={
                "queue": self.name,
                "job_id": job.id,
                "error": error,
                "attempts": job.attempts,
            },
        )
        self._emit(JobFailedEvent(queue=self.name, job=job.snapshot(), error=error))
        if job.remove_on_fail:
            self._drop(job)

    def _drop(self, job: Job) -> None:
        """Forget a settled job that asked to be removed."""
        if self._jobs.get(job.id) is job:
            del self._jobs[job.id]
            self._emit(JobRemovedEvent(queue=self.name, job=job.snapshot()))

    def _is_current(self, job: Job, generation: int) -> bool:
        """Check that an attempt still owns its job."""
        return (
            job.state == JobState.RUNNING
            and job.generation == generation
            and self._jobs.get(job.id) is job
        )

    def _report_progress(self, job: Job, generation: int, value: int) -> None:
        if not self._is_current(job, generation):
            return
        job.progress = value
        self._emit(JobProgressEvent(queue=self.name, job_id=job.id, progress=value))

    def _on_late_settlement(self, job_id: str, generation: int, task: asyncio.Future[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        logger.warning(
            "Ignoring late outcome of a timed-out job",
            extra={
                "queue": self.name,
                "job_id": job_id,
                "generation": generation,
                "error": str(exc) if exc is not None else None,
            },
        )

    def _acquire_slot(self) -> None:
        self._running += 1
        self._drained.clear()
        self._metrics.set_in_flight(self.name, self._running)

    def _release_slot(self) -> None:
        self._running -= 1
        if self._running == 0:
            self._drained.set()
        self._metrics.set_in_flight(self.name, self._running)

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self) -> QueueStats:
        """Cumulative counters plus live per-state counts."""
        states = {state: 0 for state in JobState}
        for job in self._jobs.values():
            states[job.state] += 1

        stats = QueueStats(
            name=self.name,
            concurrency=self.concurrency,
            paused=self._paused,
            in_flight=self._running,
            total=len(self._jobs),
            processed=self._counters.processed,
            completed=self._counters.completed,
            failed=self._counters.failed,
            states=states,
        )
        self._metrics.update_queue_stats(stats)
        return stats


def _attempt_error(task: asyncio.Future[Any]) -> str | None:
    """Failure message of a settled attempt, or None if it succeeded."""
    if task.cancelled():
        return "Job cancelled"
    exc = task.exception()
    if exc is None:
        return None
    return str(exc) or type(exc).__name__
