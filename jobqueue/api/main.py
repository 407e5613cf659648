"""
FastAPI application entry point.

The API process hosts the queues in-process: the lifespan starts them with
the built-in handlers registered and drains them on shutdown.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Query, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from jobqueue import __version__
from jobqueue.api.routes import health_router, queues_router
from jobqueue.api.websocket import WebSocketManager, websocket_handler
from jobqueue.config import get_settings
from jobqueue.context import AppContext
from jobqueue.observability.logging import setup_logging
from jobqueue.observability.metrics import setup_metrics
from jobqueue.observability.tracing import instrument_fastapi, setup_tracing
from jobqueue.worker.handlers import register_default_handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Starts the queues on startup and drains them on shutdown.
    """
    context: AppContext = app.state.context

    setup_logging(context.settings)
    setup_tracing()

    register_default_handlers(context.manager)
    context.start()
    logger.info("Application started")

    yield

    await context.shutdown()
    logger.info("Application shutdown")


def create_app(context: AppContext | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        context: Application context. Built from settings if omitted.

    Returns:
        FastAPI: The configured application instance.
    """
    if context is None:
        context = AppContext.create(metrics=setup_metrics())

    app = FastAPI(
        title="Job Queue API",
        description="Inspect and manage in-process background job queues",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.context = context

    ws_manager = WebSocketManager()
    app.state.ws_manager = ws_manager
    context.manager.subscribe(ws_manager.broadcast_event)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(queues_router)

    @app.websocket("/ws/queues")
    async def queues_websocket(
        websocket: WebSocket,
        queue: str | None = Query(default=None),
    ):
        """
        WebSocket endpoint for real-time queue events.

        Pass ``queue`` to receive events from a single queue only.
        """
        await websocket_handler(ws_manager, websocket, queue)

    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()

    uvicorn.run(
        "jobqueue.api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
