"""
Headless worker process.

Builds the application context, wires the built-in handlers onto the
well-known queues and runs them until SIGTERM/SIGINT, then drains.
"""

import asyncio
import logging
import signal

from jobqueue.context import AppContext
from jobqueue.observability.logging import setup_logging
from jobqueue.observability.metrics import setup_metrics
from jobqueue.observability.tracing import setup_tracing
from jobqueue.worker.handlers import register_default_handlers

logger = logging.getLogger(__name__)


class Worker:
    """
    Runs the queues of an application context until stopped.
    """

    def __init__(self, context: AppContext):
        self.context = context
        self._stopped = asyncio.Event()

    async def start(self) -> dict[str, bool]:
        """
        Start the queues and block until :meth:`stop` is called.

        Returns:
            Per-queue drain outcome from the shutdown.
        """
        register_default_handlers(self.context.manager)
        self.context.start()

        logger.info("Worker started", extra={"queues": self.context.manager.names})
        await self._stopped.wait()

        logger.info("Worker draining queues")
        outcome = await self.context.shutdown()
        logger.info("Worker stopped", extra={"drained": outcome})
        return outcome

    def stop(self) -> None:
        """Ask the worker to drain and exit."""
        logger.info("Worker stopping")
        self._stopped.set()


async def run_async() -> None:
    """Run the worker asynchronously."""
    setup_logging()
    context = AppContext.create(metrics=setup_metrics())
    setup_tracing()

    worker = Worker(context)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, worker.stop)

    await worker.start()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
