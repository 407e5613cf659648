"""
Health check routes.
"""

from fastapi import APIRouter
from fastapi.responses import Response

from jobqueue import __version__
from jobqueue.api.deps import ContextDep
from jobqueue.types.api import HealthResponse
from jobqueue.types.job import utcnow

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Report whether each managed queue is dispatching.",
)
async def health_check(context: ContextDep) -> HealthResponse:
    """
    Perform a health check.

    The service is degraded when any queue's dispatch loop is not running.
    """
    queues = {name: queue.is_started for name, queue in context.manager.queues.items()}
    healthy = all(queues.values())

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        version=__version__,
        queues=queues,
        timestamp=utcnow(),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(context: ContextDep) -> dict:
    """Ready once every queue is dispatching."""
    queues = context.manager.queues.values()
    return {"ready": bool(queues) and all(queue.is_started for queue in queues)}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    """Liveness probe endpoint."""
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics(context: ContextDep) -> Response:
    """Expose Prometheus metrics, refreshing queue depth gauges first."""
    context.manager.get_all_stats()
    return Response(
        content=context.metrics.get_metrics(),
        media_type=context.metrics.get_content_type(),
    )
