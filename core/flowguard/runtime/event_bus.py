"""
Event Bus - typed outbox of execution-record transitions.

Every state transition of an execution record produces one
ExecutionEvent. Events are appended to the outbox history and delivered
to subscribers through per-subscriber queues:

- Ordering: each subscriber sees events in publish order (FIFO queue,
  one consumer task per subscriber).
- Delivery: at-least-once. A handler that raises is called again with the
  same event, up to ``max_delivery_attempts`` times, before the event is
  dropped for that subscriber with an error log.
- Isolation: a slow or failing subscriber never blocks the engine or
  other subscribers; publish() only enqueues.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Types of events that can be published."""

    # Record lifecycle
    RECORD_CREATED = "record_created"
    ATTEMPT_DISPATCHED = "attempt_dispatched"
    ATTEMPT_SUCCEEDED = "attempt_succeeded"
    ATTEMPT_FAILED = "attempt_failed"
    RETRY_SCHEDULED = "retry_scheduled"
    MOVED_TO_DLQ = "moved_to_dlq"

    # Operator actions
    REPLAY_REQUESTED = "replay_requested"
    RECORD_DELETED = "record_deleted"
    DLQ_PURGED = "dlq_purged"

    # Cancellation
    RECORD_CANCELLED = "record_cancelled"
    OUTCOME_DISCARDED = "outcome_discarded"


@dataclass
class ExecutionEvent:
    """A transition of one execution record."""

    type: EventType
    execution_id: str | None = None
    node_id: str | None = None
    status: str | None = None  # Record status after the transition
    attempt: int | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    sequence: int = 0  # Assigned by the bus, strictly increasing

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "type": self.type.value,
            "execution_id": self.execution_id,
            "node_id": self.node_id,
            "status": self.status,
            "attempt": self.attempt,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "sequence": self.sequence,
        }


# Type for event handlers
EventHandler = Callable[[ExecutionEvent], Awaitable[None]]


@dataclass
class Subscription:
    """A subscription to events, with its own delivery queue."""

    id: str
    event_types: set[EventType]
    handler: EventHandler
    filter_node: str | None = None  # Only receive events for this node
    filter_execution: str | None = None  # Only receive events for this execution
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    worker: asyncio.Task | None = None
    delivered: int = 0
    dropped: int = 0


class EventBus:
    """
    Outbox + fan-out for execution events.

    Example:
        bus = EventBus()

        async def on_dlq(event: ExecutionEvent):
            print(f"{event.execution_id}:{event.node_id} dead-lettered")

        bus.subscribe(event_types=[EventType.MOVED_TO_DLQ], handler=on_dlq)

        await bus.publish(ExecutionEvent(
            type=EventType.MOVED_TO_DLQ,
            execution_id="exec_123",
            node_id="send_mail",
        ))
        await bus.drain()  # wait until every subscriber has handled it
    """

    def __init__(
        self,
        max_history: int = 1000,
        max_delivery_attempts: int = 3,
    ):
        """
        Initialize event bus.

        Args:
            max_history: Maximum events to keep in the outbox history
            max_delivery_attempts: Handler calls per event before it is dropped
        """
        self._subscriptions: dict[str, Subscription] = {}
        self._event_history: list[ExecutionEvent] = []
        self._max_history = max_history
        self._max_delivery_attempts = max(1, max_delivery_attempts)
        self._subscription_counter = 0
        self._sequence = 0

    def subscribe(
        self,
        event_types: list[EventType],
        handler: EventHandler,
        filter_node: str | None = None,
        filter_execution: str | None = None,
    ) -> str:
        """
        Subscribe to events.

        Args:
            event_types: Types of events to receive
            handler: Async function to call for each event
            filter_node: Only receive events for this node
            filter_execution: Only receive events for this execution

        Returns:
            Subscription ID (use to unsubscribe)
        """
        self._subscription_counter += 1
        sub_id = f"sub_{self._subscription_counter}"

        self._subscriptions[sub_id] = Subscription(
            id=sub_id,
            event_types=set(event_types),
            handler=handler,
            filter_node=filter_node,
            filter_execution=filter_execution,
        )
        logger.debug(f"Subscription {sub_id} registered for {event_types}")
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """
        Unsubscribe from events. Events already queued are not delivered.

        Returns:
            True if subscription was found and removed
        """
        subscription = self._subscriptions.pop(subscription_id, None)
        if subscription is None:
            return False
        if subscription.worker and not subscription.worker.done():
            subscription.worker.cancel()
        logger.debug(f"Subscription {subscription_id} removed")
        return True

    async def publish(self, event: ExecutionEvent) -> None:
        """
        Append an event to the outbox and enqueue it for matching subscribers.

        Returns as soon as the event is queued; delivery is asynchronous.
        """
        self._sequence += 1
        event.sequence = self._sequence

        self._event_history.append(event)
        if len(self._event_history) > self._max_history:
            self._event_history = self._event_history[-self._max_history :]

        for subscription in self._subscriptions.values():
            if self._matches(subscription, event):
                subscription.queue.put_nowait(event)
                self._ensure_worker(subscription)

    def _matches(self, subscription: Subscription, event: ExecutionEvent) -> bool:
        """Check if a subscription matches an event."""
        if event.type not in subscription.event_types:
            return False
        if subscription.filter_node and subscription.filter_node != event.node_id:
            return False
        if subscription.filter_execution and subscription.filter_execution != event.execution_id:
            return False
        return True

    def _ensure_worker(self, subscription: Subscription) -> None:
        if subscription.worker is None or subscription.worker.done():
            subscription.worker = asyncio.create_task(self._deliver_loop(subscription))

    async def _deliver_loop(self, subscription: Subscription) -> None:
        """Consume one subscriber's queue in order."""
        while True:
            event = await subscription.queue.get()
            try:
                await self._deliver(subscription, event)
            finally:
                subscription.queue.task_done()

    async def _deliver(self, subscription: Subscription, event: ExecutionEvent) -> None:
        for delivery in range(1, self._max_delivery_attempts + 1):
            try:
                await subscription.handler(event)
                subscription.delivered += 1
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    f"Handler {subscription.id} failed on {event.type} "
                    f"(delivery {delivery}/{self._max_delivery_attempts}): {e}"
                )
        subscription.dropped += 1
        logger.error(
            f"Dropping event #{event.sequence} ({event.type}) for {subscription.id} "
            f"after {self._max_delivery_attempts} failed deliveries"
        )

    async def drain(self) -> None:
        """Wait until every queued event has been handled by its subscriber."""
        for subscription in list(self._subscriptions.values()):
            await subscription.queue.join()

    async def close(self) -> None:
        """Stop all delivery workers. Undelivered events are discarded."""
        workers = [s.worker for s in self._subscriptions.values() if s.worker]
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        for subscription in self._subscriptions.values():
            subscription.worker = None
            subscription.queue = asyncio.Queue()

    # === QUERY METHODS ===

    def get_history(
        self,
        event_type: EventType | None = None,
        execution_id: str | None = None,
        node_id: str | None = None,
        limit: int = 100,
    ) -> list[ExecutionEvent]:
        """
        Get recent events from the outbox, oldest first.

        Args:
            event_type: Filter by event type
            execution_id: Filter by execution
            node_id: Filter by node
            limit: Maximum events to return
        """
        events = [
            e
            for e in self._event_history
            if (event_type is None or e.type == event_type)
            and (execution_id is None or e.execution_id == execution_id)
            and (node_id is None or e.node_id == node_id)
        ]
        return events[-limit:]

    def get_stats(self) -> dict:
        """Get event bus statistics."""
        type_counts: dict[str, int] = {}
        for event in self._event_history:
            type_counts[event.type.value] = type_counts.get(event.type.value, 0) + 1

        return {
            "total_events": len(self._event_history),
            "subscriptions": len(self._subscriptions),
            "events_by_type": type_counts,
            "pending_deliveries": sum(s.queue.qsize() for s in self._subscriptions.values()),
            "dropped_deliveries": sum(s.dropped for s in self._subscriptions.values()),
        }
