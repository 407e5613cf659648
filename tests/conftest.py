"""
Pytest configuration and shared fixtures.
"""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from prometheus_client import CollectorRegistry

from jobqueue.api.main import create_app
from jobqueue.config import Settings
from jobqueue.context import AppContext
from jobqueue.observability.metrics import MetricsCollector
from jobqueue.queue.job_queue import JobQueue

WaitUntil = Callable[..., Awaitable[None]]


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics collector on a private registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with short timings."""
    return Settings(
        queue_tick_interval_ms=10,
        queue_backoff_base_ms=10,
        queue_shutdown_timeout_ms=500,
        default_job_timeout_ms=1000,
        log_level="DEBUG",
        log_format="console",
    )


@pytest_asyncio.fixture
async def queue(metrics: MetricsCollector) -> AsyncGenerator[JobQueue]:
    """A queue with fast ticks and a 10ms backoff unit. Not started."""
    q = JobQueue(
        "test",
        concurrency=2,
        tick_interval_ms=10,
        backoff_base_ms=10,
        metrics=metrics,
    )
    yield q
    await q.shutdown(timeout_ms=200)


@pytest.fixture
def wait_until() -> WaitUntil:
    """Poll a predicate until it holds or fail after ``timeout`` seconds."""

    async def _wait_until(predicate: Callable[[], Any], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait_until


@pytest_asyncio.fixture
async def context(
    test_settings: Settings,
    metrics: MetricsCollector,
) -> AsyncGenerator[AppContext]:
    """Application context with the well-known queues, started."""
    ctx = AppContext.create(test_settings, metrics)
    ctx.start()
    yield ctx
    await ctx.shutdown(timeout_ms=200)


@pytest.fixture
def app(context: AppContext) -> FastAPI:
    """FastAPI app bound to the test context.

    ASGITransport does not run the lifespan, so the context fixture
    starts and stops the queues instead.
    """
    return create_app(context)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
