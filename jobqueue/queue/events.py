"""
Listener registry for queue events.

Listeners may be plain callables or coroutine functions. Coroutine listeners
are scheduled on the running loop. A failing listener is logged and never
affects the queue that emitted the event.
"""

import asyncio
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from jobqueue.constants import QueueEventType
from jobqueue.types.events import QueueEvent

logger = logging.getLogger(__name__)

EventListener = Callable[[QueueEvent], Awaitable[None] | None]


@dataclass
class EventSubscription:
    """Subscription to events from an emitter."""

    listener: EventListener
    subscription_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_types: frozenset[QueueEventType] | None = None  # None = all types

    def matches(self, event: QueueEvent) -> bool:
        """Check if an event matches this subscription."""
        if self.event_types and event.type not in self.event_types:
            return False
        return True


class EventEmitter:
    """Synchronous fan-out of queue events to subscribed listeners."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, EventSubscription] = {}
        self._pending: set[asyncio.Task[Any]] = set()

    def subscribe(
        self,
        listener: EventListener,
        event_types: Iterable[QueueEventType | str] | None = None,
    ) -> EventSubscription:
        """
        Register a listener.

        Args:
            listener: Called with each matching event.
            event_types: Restrict delivery to these event types.

        Returns:
            The subscription, to be passed to :meth:`unsubscribe`.
        """
        subscription = EventSubscription(
            listener=listener,
            event_types=(
                frozenset(QueueEventType(t) for t in event_types)
                if event_types is not None
                else None
            ),
        )
        self._subscriptions[subscription.subscription_id] = subscription
        return subscription

    def unsubscribe(self, subscription: EventSubscription) -> bool:
        """Remove a subscription. Returns False if it was not registered."""
        return self._subscriptions.pop(subscription.subscription_id, None) is not None

    @property
    def listener_count(self) -> int:
        return len(self._subscriptions)

    def emit(self, event: QueueEvent) -> None:
        """Deliver an event to every matching listener."""
        for subscription in list(self._subscriptions.values()):
            if not subscription.matches(event):
                continue
            try:
                outcome = subscription.listener(event)
                if inspect.isawaitable(outcome):
                    self._schedule(outcome, event)
            except Exception:
                logger.exception(
                    "Event listener raised",
                    extra={"event_type": event.type, "queue": event.queue},
                )

    def _schedule(self, awaitable: Awaitable[None], event: QueueEvent) -> None:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._pending.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(
                    "Async event listener raised",
                    exc_info=t.exception(),
                    extra={"event_type": event.type, "queue": event.queue},
                )

        task.add_done_callback(_done)

    async def wait_pending(self) -> None:
        """Wait for scheduled async listeners to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
