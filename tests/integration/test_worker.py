"""
Integration tests for queues running end to end.
"""

import asyncio

import pytest

from jobqueue.config import Settings
from jobqueue.constants import QUEUE_DEFAULT, QUEUE_EXPORTS, JobState, QueueEventType
from jobqueue.context import AppContext
from jobqueue.observability.metrics import MetricsCollector
from jobqueue.worker.main import Worker


class TestWorkerIntegration:
    """End-to-end tests through the application context."""

    @pytest.mark.asyncio
    async def test_worker_runs_builtin_handlers(
        self,
        test_settings: Settings,
        metrics: MetricsCollector,
        wait_until,
    ):
        context = AppContext.create(test_settings, metrics)
        worker = Worker(context)
        run = asyncio.create_task(worker.start())
        await wait_until(lambda: context.manager.require_queue(QUEUE_DEFAULT).is_started)

        queue = context.manager.require_queue(QUEUE_DEFAULT)
        echo = queue.add("echo", {"message": "hi"})
        sleep = queue.add("sleep", {"duration_seconds": 0.05, "steps": 5})

        await wait_until(lambda: echo.state == JobState.COMPLETED)
        assert echo.result == {"echo": {"message": "hi"}}

        worker.stop()
        outcome = await run

        assert all(outcome.values())
        assert sleep.state == JobState.COMPLETED
        assert sleep.progress == 100

    @pytest.mark.asyncio
    async def test_priority_order_under_load(self, context: AppContext, wait_until):
        queue = context.manager.require_queue(QUEUE_EXPORTS)
        order: list[str] = []
        started = []
        queue.subscribe(lambda event: started.append(event.job.id), [QueueEventType.JOB_STARTED])

        async def export(data, ctx):
            order.append(data)
            await asyncio.sleep(0.01)

        queue.pause()
        queue.register("export", export)
        for name, priority in [("low", 1), ("normal", 5), ("critical", 100), ("high", 10)]:
            queue.add("export", name, priority=priority)
        queue.resume()

        await wait_until(lambda: len(order) == 4)

        assert order[:2] == ["critical", "high"]
        assert order[2:] == ["normal", "low"]
        assert len(started) == 4

    @pytest.mark.asyncio
    async def test_running_never_exceeds_concurrency(self, context: AppContext, wait_until):
        queue = context.manager.require_queue(QUEUE_EXPORTS)
        peak = 0

        async def export(data, ctx):
            nonlocal peak
            running = len(queue.get_jobs(JobState.RUNNING))
            peak = max(peak, running)
            await asyncio.sleep(0.01)

        queue.register("export", export)
        jobs = [queue.add("export", i) for i in range(8)]

        await wait_until(lambda: all(job.state == JobState.COMPLETED for job in jobs))

        assert peak <= queue.concurrency
