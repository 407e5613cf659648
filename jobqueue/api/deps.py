"""
FastAPI dependencies.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Path, Request, status

from jobqueue.context import AppContext
from jobqueue.exceptions import QueueNotFoundError
from jobqueue.queue.job_queue import JobQueue


def get_context(request: Request) -> AppContext:
    """Application context attached by ``create_app``."""
    return request.app.state.context


def get_queue(
    context: Annotated[AppContext, Depends(get_context)],
    queue_name: Annotated[str, Path()],
) -> JobQueue:
    """
    Resolve the queue named in the path.

    Raises:
        HTTPException: 404 if the queue does not exist.
    """
    try:
        return context.manager.require_queue(queue_name)
    except QueueNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


ContextDep = Annotated[AppContext, Depends(get_context)]
QueueDep = Annotated[JobQueue, Depends(get_queue)]
