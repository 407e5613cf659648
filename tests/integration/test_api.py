"""
Integration tests for the API endpoints.
"""

import pytest
from httpx import AsyncClient

from jobqueue.constants import QUEUE_DEFAULT, JobState
from jobqueue.context import AppContext


class TestQueueAPI:
    """Integration tests for queue and job endpoints."""

    @pytest.mark.asyncio
    async def test_list_queues(self, client: AsyncClient):
        response = await client.get("/v1/queues")

        assert response.status_code == 200
        queues = response.json()["queues"]
        assert set(queues) == {"default", "email", "notifications", "exports"}
        assert queues["email"]["concurrency"] == 3

    @pytest.mark.asyncio
    async def test_unknown_queue_is_404(self, client: AsyncClient):
        response = await client.get("/v1/queues/nope/stats")

        assert response.status_code == 404
        assert "nope" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_enqueue_and_complete(self, client: AsyncClient, context: AppContext, wait_until):
        queue = context.manager.require_queue(QUEUE_DEFAULT)
        queue.register("echo", lambda data, ctx: data)

        response = await client.post(
            "/v1/queues/default/jobs",
            json={"type": "echo", "data": {"message": "hello"}, "priority": 10},
        )

        assert response.status_code == 202
        body = response.json()
        assert body["state"] == JobState.PENDING
        assert body["queue"] == "default"

        job_id = body["id"]
        await wait_until(lambda: queue.get_job(job_id).state == JobState.COMPLETED)

        response = await client.get(f"/v1/queues/default/jobs/{job_id}")
        assert response.status_code == 200
        job = response.json()
        assert job["state"] == JobState.COMPLETED
        assert job["priority"] == 10
        assert job["progress"] == 100
        assert "data" not in job
        assert "result" not in job

    @pytest.mark.asyncio
    async def test_enqueue_validation(self, client: AsyncClient):
        response = await client.post(
            "/v1/queues/default/jobs",
            json={"type": "echo", "max_attempts": 0},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_enqueue_with_remove_on_complete(self, client: AsyncClient, context: AppContext):
        queue = context.manager.require_queue(QUEUE_DEFAULT)
        queue.pause()

        response = await client.post(
            "/v1/queues/default/jobs",
            json={"type": "echo", "remove_on_complete": True},
        )

        assert response.status_code == 202
        job = queue.get_job(response.json()["id"])
        assert job.remove_on_complete is True
        assert job.remove_on_fail is False

    @pytest.mark.asyncio
    async def test_list_jobs_with_state_filter(self, client: AsyncClient, context: AppContext):
        queue = context.manager.require_queue(QUEUE_DEFAULT)
        queue.pause()
        for _ in range(3):
            queue.add("echo")
        queue.get_jobs()[0].state = JobState.FAILED

        response = await client.get("/v1/queues/default/jobs", params={"page_size": 2})
        body = response.json()
        assert body["total"] == 3
        assert len(body["jobs"]) == 2
        assert body["has_next"] is True

        response = await client.get("/v1/queues/default/jobs", params={"state": "failed"})
        assert response.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_get_missing_job(self, client: AsyncClient):
        response = await client.get("/v1/queues/default/jobs/missing")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_retry_failed_job(self, client: AsyncClient, context: AppContext, wait_until):
        queue = context.manager.require_queue(QUEUE_DEFAULT)
        job = queue.add("unregistered")
        await wait_until(lambda: job.state == JobState.FAILED)
        queue.pause()

        response = await client.post(f"/v1/queues/default/jobs/{job.id}/retry")

        assert response.status_code == 200
        assert response.json()["state"] == JobState.PENDING
        assert response.json()["attempts"] == 0

        response = await client.post(f"/v1/queues/default/jobs/{job.id}/retry")
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_remove_job(self, client: AsyncClient, context: AppContext):
        queue = context.manager.require_queue(QUEUE_DEFAULT)
        queue.pause()
        job = queue.add("echo")

        response = await client.delete(f"/v1/queues/default/jobs/{job.id}")
        assert response.status_code == 204
        assert queue.get_job(job.id) is None

        response = await client.delete(f"/v1/queues/default/jobs/{job.id}")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_clear_jobs(self, client: AsyncClient, context: AppContext):
        queue = context.manager.require_queue("exports")
        queue.pause()
        queue.add("csv")
        queue.add("csv")

        response = await client.delete("/v1/queues/exports/jobs", params={"state": "pending"})

        assert response.json() == {"queue": "exports", "state": "pending", "removed": 2}
        assert queue.get_jobs() == []

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, client: AsyncClient, context: AppContext):
        response = await client.post("/v1/queues/email/pause")
        assert response.json() == {"queue": "email", "paused": True}
        assert context.manager.require_queue("email").paused

        response = await client.post("/v1/queues/email/resume")
        assert response.json() == {"queue": "email", "paused": False}


class TestHealthAPI:
    """Integration tests for health endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert all(body["queues"].values())

    @pytest.mark.asyncio
    async def test_ready_and_live(self, client: AsyncClient):
        assert (await client.get("/ready")).json() == {"ready": True}
        assert (await client.get("/live")).json() == {"alive": True}

    @pytest.mark.asyncio
    async def test_metrics(self, client: AsyncClient, context: AppContext):
        context.manager.require_queue("email").add("welcome")

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "jobqueue_jobs_added_total" in response.text
        assert 'queue="email"' in response.text
