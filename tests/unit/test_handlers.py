"""
Unit tests for built-in job handlers.
"""

import json
from functools import partial

import httpx
import pytest

from jobqueue.constants import (
    QUEUE_DEFAULT,
    QUEUE_EMAIL,
    QUEUE_NOTIFICATIONS,
    WEBHOOK_DELIVERY_HEADER,
    WEBHOOK_EVENT_HEADER,
    WEBHOOK_SIGNATURE_HEADER,
)
from jobqueue.observability.metrics import MetricsCollector
from jobqueue.queue.manager import create_default_manager
from jobqueue.types.job import JobContext
from jobqueue.worker import handlers
from jobqueue.worker.handlers import (
    HandlerError,
    WebhookDeliveryError,
    get_handler,
    handle_echo,
    handle_http_request,
    handle_sleep,
    handle_webhook,
    list_handlers,
    register_builtin_handlers,
    register_default_handlers,
    sign_payload,
)


@pytest.fixture
def progress_reports() -> list[int]:
    return []


@pytest.fixture
def job_context(progress_reports: list[int]) -> JobContext:
    """Create a test job context that records progress."""
    return JobContext(
        job_id="webhook-1700000000000-abc123def",
        job_type="webhook",
        queue="notifications",
        attempt=1,
        max_attempts=3,
        _report_progress=progress_reports.append,
    )


@pytest.fixture
def mock_http(monkeypatch):
    """Route handler HTTP calls through an httpx MockTransport."""
    requests: list[httpx.Request] = []
    responses: list[httpx.Response] = []

    def respond(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return responses.pop(0) if responses else httpx.Response(200, text="ok")

    transport = httpx.MockTransport(respond)
    monkeypatch.setattr(
        handlers.httpx,
        "AsyncClient",
        partial(httpx.AsyncClient, transport=transport),
    )
    return requests, responses


class TestRegistry:
    """Tests for the built-in handler registry."""

    def test_list_handlers(self):
        assert set(list_handlers()) >= {"echo", "sleep", "http_request", "webhook"}

    def test_get_handler(self):
        assert get_handler("echo") is handle_echo
        assert get_handler("nonexistent") is None

    @pytest.mark.asyncio
    async def test_register_default_handlers(self, metrics: MetricsCollector):
        manager = create_default_manager(metrics=metrics)

        register_default_handlers(manager)

        assert "echo" in manager.require_queue(QUEUE_DEFAULT).handler_types
        assert manager.require_queue(QUEUE_NOTIFICATIONS).handler_types == ["webhook"]
        assert manager.require_queue(QUEUE_EMAIL).handler_types == []

    @pytest.mark.asyncio
    async def test_register_unknown_builtin(self, metrics: MetricsCollector):
        queue = create_default_manager(metrics=metrics).require_queue(QUEUE_DEFAULT)
        with pytest.raises(KeyError):
            register_builtin_handlers(queue, ["teleport"])


class TestBuiltinHandlers:
    """Tests for handler behaviour."""

    @pytest.mark.asyncio
    async def test_echo(self, job_context: JobContext):
        assert await handle_echo({"message": "hi"}, job_context) == {"echo": {"message": "hi"}}

    @pytest.mark.asyncio
    async def test_sleep_reports_progress(self, job_context: JobContext, progress_reports):
        result = await handle_sleep({"duration_seconds": 0.02, "steps": 4}, job_context)

        assert result == {"slept_for": 0.02}
        assert progress_reports == [25, 50, 75, 100]

    @pytest.mark.asyncio
    async def test_http_request_requires_url(self, job_context: JobContext):
        with pytest.raises(HandlerError, match="url"):
            await handle_http_request({}, job_context)

    @pytest.mark.asyncio
    async def test_http_request_success(self, job_context: JobContext, mock_http):
        requests, _ = mock_http

        result = await handle_http_request(
            {"url": "https://example.com/hook", "method": "post", "body": {"a": 1}},
            job_context,
        )

        assert result == {"status_code": 200, "body": "ok"}
        assert requests[0].method == "POST"
        assert json.loads(requests[0].content) == {"a": 1}

    @pytest.mark.asyncio
    async def test_http_request_error_status_raises(self, job_context: JobContext, mock_http):
        _, responses = mock_http
        responses.append(httpx.Response(503))

        with pytest.raises(HandlerError, match="HTTP 503"):
            await handle_http_request({"url": "https://example.com"}, job_context)


class TestWebhookHandler:
    """Tests for signed webhook delivery."""

    @pytest.mark.asyncio
    async def test_delivers_signed_payload(self, job_context: JobContext, mock_http):
        requests, _ = mock_http

        result = await handle_webhook(
            {
                "url": "https://partner.example.com/webhooks",
                "event": "application.received",
                "payload": {"application_id": 42},
                "secret": "shh",
            },
            job_context,
        )

        request = requests[0]
        body = json.loads(request.content)
        assert body["event"] == "application.received"
        assert body["data"] == {"application_id": 42}
        assert body["id"] == job_context.job_id
        assert request.headers[WEBHOOK_EVENT_HEADER] == "application.received"
        assert request.headers[WEBHOOK_DELIVERY_HEADER] == job_context.job_id
        assert request.headers[WEBHOOK_SIGNATURE_HEADER] == sign_payload(request.content, "shh")
        assert result["status_code"] == 200

    @pytest.mark.asyncio
    async def test_unsigned_without_secret(self, job_context: JobContext, mock_http):
        requests, _ = mock_http

        await handle_webhook(
            {"url": "https://example.com", "event": "job.created", "delivery_id": "d-1"},
            job_context,
        )

        assert WEBHOOK_SIGNATURE_HEADER not in requests[0].headers
        assert requests[0].headers[WEBHOOK_DELIVERY_HEADER] == "d-1"

    @pytest.mark.asyncio
    async def test_non_2xx_raises_for_retry(self, job_context: JobContext, mock_http):
        _, responses = mock_http
        responses.append(httpx.Response(500, text="x" * 5000))

        with pytest.raises(WebhookDeliveryError) as exc_info:
            await handle_webhook({"url": "https://example.com", "event": "e"}, job_context)

        assert exc_info.value.status_code == 500
        assert len(exc_info.value.body) == handlers.RESPONSE_BODY_LIMIT

    @pytest.mark.asyncio
    async def test_requires_url_and_event(self, job_context: JobContext):
        with pytest.raises(HandlerError):
            await handle_webhook({"url": "https://example.com"}, job_context)
