"""
Built-in job handlers.

Handlers are called as ``handler(data, context)`` and may run more than once
for the same job (retries, timeouts), so they must be idempotent. Raising
marks the attempt as failed; the queue decides whether to retry.
"""

import asyncio
import hashlib
import hmac
import json
import logging
from collections.abc import Callable
from typing import Any
from uuid import uuid4

import httpx

from jobqueue.config import get_settings
from jobqueue.constants import (
    QUEUE_DEFAULT,
    QUEUE_NOTIFICATIONS,
    WEBHOOK_DELIVERY_HEADER,
    WEBHOOK_EVENT_HEADER,
    WEBHOOK_SIGNATURE_HEADER,
)
from jobqueue.exceptions import JobQueueError
from jobqueue.queue.job_queue import JobQueue
from jobqueue.queue.manager import QueueManager
from jobqueue.types.job import JobContext, JobHandler, utcnow

logger = logging.getLogger(__name__)

# Response bodies kept in job results are truncated to this length
RESPONSE_BODY_LIMIT = 1000

# Handler registry
_handlers: dict[str, JobHandler] = {}


class HandlerError(JobQueueError):
    """Raised by a built-in handler when an attempt fails."""


class WebhookDeliveryError(HandlerError):
    """Webhook endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Webhook responded with HTTP {status_code}")
        self.status_code = status_code
        self.body = body


def builtin_handler(job_type: str) -> Callable[[JobHandler], JobHandler]:
    """
    Decorator to add a handler to the built-in registry.

    Example:
        @builtin_handler("send_email")
        async def handle_send_email(data, context):
            ...
    """
    def decorator(handler: JobHandler) -> JobHandler:
        _handlers[job_type] = handler
        return handler
    return decorator


def get_handler(job_type: str) -> JobHandler | None:
    return _handlers.get(job_type)


def list_handlers() -> list[str]:
    """List all built-in job types."""
    return list(_handlers.keys())


def sign_payload(body: bytes, secret: str) -> str:
    """HMAC-SHA256 hex digest of a request body."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


# ============================================================================
# Built-in job handlers
# ============================================================================


@builtin_handler("echo")
async def handle_echo(data: Any, context: JobContext) -> dict[str, Any]:
    """Return the payload unchanged."""
    logger.info(
        "Echo job executing",
        extra={"job_id": context.job_id, "attempt": context.attempt},
    )
    return {"echo": data}


@builtin_handler("sleep")
async def handle_sleep(data: dict[str, Any], context: JobContext) -> dict[str, Any]:
    """
    Sleep, reporting progress along the way.

    Payload:
    - duration_seconds: How long to sleep (default 1)
    - steps: How many progress updates to report (default 10)
    """
    duration = float(data.get("duration_seconds", 1))
    steps = max(1, int(data.get("steps", 10)))

    for step in range(1, steps + 1):
        await asyncio.sleep(duration / steps)
        context.progress(step * 100 / steps)

    return {"slept_for": duration}


@builtin_handler("http_request")
async def handle_http_request(data: dict[str, Any], context: JobContext) -> dict[str, Any]:
    """
    Make an HTTP request. Non-2xx responses fail the attempt.

    Payload:
    - url: The URL to request
    - method: HTTP method (default GET)
    - headers: Optional headers
    - body: Optional JSON body for POST/PUT/PATCH
    """
    url = data.get("url")
    if not url:
        raise HandlerError("Missing 'url' in payload")

    method = data.get("method", "GET").upper()
    headers = data.get("headers", {})
    body = data.get("body")

    logger.info(
        "HTTP request job",
        extra={"job_id": context.job_id, "method": method, "url": url},
    )

    async with httpx.AsyncClient() as client:
        response = await client.request(
            method=method,
            url=url,
            headers=headers,
            json=body if method in ("POST", "PUT", "PATCH") else None,
            timeout=get_settings().webhook_timeout_seconds,
        )

    if not response.is_success:
        raise HandlerError(f"HTTP {response.status_code}")

    return {
        "status_code": response.status_code,
        "body": response.text[:RESPONSE_BODY_LIMIT],
    }


@builtin_handler("webhook")
async def handle_webhook(data: dict[str, Any], context: JobContext) -> dict[str, Any]:
    """
    Deliver a signed webhook.

    The request body is ``{"id", "event", "timestamp", "data"}``, signed with
    HMAC-SHA256 in the signature header when a secret is available.

    Payload:
    - url: Endpoint to POST to
    - event: Event name, sent in the event header
    - payload: Event data
    - secret: Signing secret (falls back to the configured default)
    - delivery_id: Stable id for the delivery (defaults to the job id)
    """
    settings = get_settings()

    url = data.get("url")
    event = data.get("event")
    if not url or not event:
        raise HandlerError("Webhook jobs need 'url' and 'event'")

    delivery_id = data.get("delivery_id") or context.job_id or uuid4().hex
    secret = data.get("secret") or settings.webhook_default_secret

    body = json.dumps(
        {
            "id": delivery_id,
            "event": event,
            "timestamp": utcnow().isoformat(),
            "data": data.get("payload"),
        },
        separators=(",", ":"),
        default=str,
    ).encode()

    headers = {
        "Content-Type": "application/json",
        "User-Agent": settings.webhook_user_agent,
        WEBHOOK_EVENT_HEADER: event,
        WEBHOOK_DELIVERY_HEADER: delivery_id,
    }
    if secret:
        headers[WEBHOOK_SIGNATURE_HEADER] = sign_payload(body, secret)

    async with httpx.AsyncClient() as client:
        response = await client.post(
            url,
            content=body,
            headers=headers,
            timeout=settings.webhook_timeout_seconds,
        )

    text = response.text[:RESPONSE_BODY_LIMIT]
    if not response.is_success:
        raise WebhookDeliveryError(response.status_code, text)

    logger.info(
        "Webhook delivered",
        extra={
            "job_id": context.job_id,
            "delivery_id": delivery_id,
            "event": event,
            "status_code": response.status_code,
        },
    )
    return {"delivery_id": delivery_id, "status_code": response.status_code, "response": text}


def register_builtin_handlers(queue: JobQueue, job_types: list[str] | None = None) -> None:
    """Register built-in handlers (all, or the given types) on a queue."""
    for job_type in job_types or list_handlers():
        handler = get_handler(job_type)
        if handler is None:
            raise KeyError(f"Unknown built-in handler: {job_type}")
        queue.register(job_type, handler)


def register_default_handlers(manager: QueueManager) -> None:
    """Wire built-in handlers onto the well-known queues that exist."""
    default_queue = manager.get_queue(QUEUE_DEFAULT)
    if default_queue is not None:
        register_builtin_handlers(default_queue)

    notifications = manager.get_queue(QUEUE_NOTIFICATIONS)
    if notifications is not None:
        register_builtin_handlers(notifications, ["webhook"])
