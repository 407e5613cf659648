"""
Queue inspection and job management routes.

Listings use the payload-free job snapshot; job data and results are
never returned over HTTP.
"""

import logging

from fastapi import APIRouter, HTTPException, Query, status

from jobqueue.api.deps import ContextDep, QueueDep
from jobqueue.constants import API_V1_PREFIX, JobState
from jobqueue.exceptions import InvalidJobOptionsError
from jobqueue.types.api import (
    ClearJobsResponse,
    EnqueueJobRequest,
    EnqueueJobResponse,
    JobListResponse,
    QueueStateResponse,
    QueueStatsResponse,
    RetryJobResponse,
)
from jobqueue.types.job import JobSnapshot
from jobqueue.types.queue import QueueStats

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_V1_PREFIX}/queues", tags=["Queues"])


@router.get(
    "",
    response_model=QueueStatsResponse,
    summary="List queues",
    description="Statistics for every managed queue.",
)
async def list_queues(context: ContextDep) -> QueueStatsResponse:
    return QueueStatsResponse(queues=context.manager.get_all_stats())


@router.get(
    "/{queue_name}/stats",
    response_model=QueueStats,
    summary="Queue statistics",
)
async def queue_stats(queue: QueueDep) -> QueueStats:
    return queue.get_stats()


@router.post(
    "/{queue_name}/jobs",
    response_model=EnqueueJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Add a job",
    description="Add a job to the queue. Returns immediately; the job runs later.",
)
async def enqueue_job(request: EnqueueJobRequest, queue: QueueDep) -> EnqueueJobResponse:
    """
    Add a job.

    Raises:
        HTTPException: 422 if the options are invalid.
    """
    try:
        job = queue.add(request.type, request.data, request.to_options())
    except InvalidJobOptionsError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e

    return EnqueueJobResponse(
        id=job.id,
        queue=queue.name,
        type=job.type,
        state=job.state,
        scheduled_at=job.scheduled_at,
    )


@router.get(
    "/{queue_name}/jobs",
    response_model=JobListResponse,
    summary="List jobs",
    description="List jobs in a queue with optional state filtering.",
)
async def list_jobs(
    queue: QueueDep,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    state: JobState | None = Query(default=None),
) -> JobListResponse:
    jobs = queue.get_jobs(state)
    total = len(jobs)
    offset = (page - 1) * page_size

    return JobListResponse(
        jobs=[job.snapshot() for job in jobs[offset:offset + page_size]],
        total=total,
        page=page,
        page_size=page_size,
        has_next=(page * page_size) < total,
    )


@router.delete(
    "/{queue_name}/jobs",
    response_model=ClearJobsResponse,
    summary="Clear jobs",
    description="Delete every job in the queue, or every job in the given state.",
)
async def clear_jobs(
    queue: QueueDep,
    state: JobState | None = Query(default=None),
) -> ClearJobsResponse:
    removed = queue.clear(state)
    logger.info(
        "Jobs cleared",
        extra={"queue": queue.name, "state": state, "removed": removed},
    )
    return ClearJobsResponse(queue=queue.name, state=state, removed=removed)


@router.get(
    "/{queue_name}/jobs/{job_id}",
    response_model=JobSnapshot,
    summary="Get job details",
)
async def get_job(job_id: str, queue: QueueDep) -> JobSnapshot:
    job = queue.get_job(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        )
    return job.snapshot()


@router.post(
    "/{queue_name}/jobs/{job_id}/retry",
    response_model=RetryJobResponse,
    summary="Retry a failed job",
    description="Reset a failed job's attempts and make it eligible again.",
)
async def retry_job(job_id: str, queue: QueueDep) -> RetryJobResponse:
    """
    Retry a failed job.

    Raises:
        HTTPException: 404 if the job does not exist, 409 if it is not failed.
    """
    job = queue.get_job(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        )

    if not queue.retry(job_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Job is {job.state}, only failed jobs can be retried",
        )

    return RetryJobResponse(id=job.id, state=job.state, attempts=job.attempts)


@router.delete(
    "/{queue_name}/jobs/{job_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a job",
)
async def remove_job(job_id: str, queue: QueueDep) -> None:
    if not queue.remove(job_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        )


@router.post(
    "/{queue_name}/pause",
    response_model=QueueStateResponse,
    summary="Pause a queue",
)
async def pause_queue(queue: QueueDep) -> QueueStateResponse:
    queue.pause()
    return QueueStateResponse(queue=queue.name, paused=queue.paused)


@router.post(
    "/{queue_name}/resume",
    response_model=QueueStateResponse,
    summary="Resume a queue",
)
async def resume_queue(queue: QueueDep) -> QueueStateResponse:
    queue.resume()
    return QueueStateResponse(queue=queue.name, paused=queue.paused)
