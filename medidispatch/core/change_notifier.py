"""
Change notifier for MediDispatch.
Publishes committed entity mutations to dashboards and other observers.
"""

import asyncio
import logging
import uuid
from collections import deque
from typing import Deque, List, Optional, Set

from medidispatch.models.entity import EntityKind
from medidispatch.models.events import MutationEvent

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """
    Stream of mutation events for one subscriber.

    Iterate with ``async for``; iteration ends once the subscription is
    closed or the notifier is stopped. A subscriber that falls more than
    ``max_pending`` events behind is closed with ``overflowed`` set and has
    to re-read current state before subscribing again.
    """

    def __init__(
        self,
        notifier: "ChangeNotifier",
        kind: Optional[EntityKind] = None,
        max_pending: int = 0,
    ):
        self.id = f"sub_{uuid.uuid4().hex[:8]}"
        self.kind = kind
        self._notifier = notifier
        self._queue: asyncio.Queue = asyncio.Queue()
        self._max_pending = max_pending
        self._closed = False
        self._overflowed = False

    def matches(self, event: MutationEvent) -> bool:
        return self.kind is None or event.kind == self.kind

    def _deliver(self, event: MutationEvent) -> None:
        if self._closed:
            return
        if self._max_pending and self._queue.qsize() >= self._max_pending:
            self._overflowed = True
            logger.warning(
                f"Subscription {self.id} fell {self._queue.qsize()} events behind, closing it"
            )
            # The stream already has a gap; drop the backlog with it
            while not self._queue.empty():
                self._queue.get_nowait()
            self._notifier.unsubscribe(self)
            return
        self._queue.put_nowait(event)

    def _shutdown(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def get(self, timeout: Optional[float] = None) -> Optional[MutationEvent]:
        """
        Wait for the next event.

        Returns None once the subscription is closed; raises
        ``asyncio.TimeoutError`` if nothing arrives within ``timeout``.
        """
        if timeout is None:
            item = await self._queue.get()
        else:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        if item is _CLOSED:
            # Keep the marker for any other waiter
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def drain(self) -> List[MutationEvent]:
        """Return every event already queued without waiting."""
        events = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                self._queue.put_nowait(_CLOSED)
                break
            events.append(item)
        return events

    def close(self) -> None:
        """Stop receiving events."""
        self._notifier.unsubscribe(self)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def overflowed(self) -> bool:
        """True if the subscriber was dropped for falling too far behind."""
        return self._overflowed

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> MutationEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class ChangeNotifier:
    """
    Fan-out of committed mutations.

    Supports:
    - Per-kind or all-kind subscriptions delivered as async streams
    - Bounded event history for audit
    - Bounded per-subscriber queues; slow subscribers are dropped
    - Stop/start for shutdown

    ``publish`` never awaits, so the entity store can call it while it still
    holds the entity locks; events for one entity are therefore queued in
    the order their commits happened.
    """

    def __init__(self, max_history: int = 1000, max_pending: int = 1000):
        """
        Initialize the notifier.

        Args:
            max_history: Events kept for audit
            max_pending: Undelivered events a subscriber may queue before it
                is dropped (0 means unbounded)
        """
        self._max_pending = max_pending
        self._subscriptions: Set[Subscription] = set()
        self._history: Deque[MutationEvent] = deque(maxlen=max_history)
        self._is_running = True

        logger.info("ChangeNotifier initialized")

    def publish(self, event: MutationEvent) -> None:
        """
        Publish an event to all matching subscribers.

        Args:
            event: The event to publish
        """
        if not self._is_running:
            logger.warning("ChangeNotifier is stopped, ignoring event")
            return

        self._history.append(event)
        logger.debug(
            f"Publishing {event.action.value} for {event.kind.value} {event.entity_id} v{event.version}"
        )

        for subscription in list(self._subscriptions):
            if subscription.matches(event):
                subscription._deliver(event)

    def publish_many(self, events: List[MutationEvent]) -> None:
        """Publish events in order."""
        for event in events:
            self.publish(event)

    def subscribe(self, kind: Optional[EntityKind] = None) -> Subscription:
        """
        Subscribe to mutations of one entity kind, or all kinds if None.

        Args:
            kind: Entity kind to watch

        Returns:
            A Subscription to iterate over
        """
        subscription = Subscription(self, kind, self._max_pending)
        if not self._is_running:
            subscription._shutdown()
            return subscription
        self._subscriptions.add(subscription)
        logger.debug(f"Subscription {subscription.id} opened for {kind.value if kind else 'all kinds'}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription and end its stream."""
        self._subscriptions.discard(subscription)
        subscription._shutdown()
        logger.debug(f"Subscription {subscription.id} closed")

    def get_history(
        self,
        kind: Optional[EntityKind] = None,
        entity_id: Optional[str] = None,
        limit: int = 100
    ) -> List[MutationEvent]:
        """
        Get event history, optionally filtered.

        Args:
            kind: Optional filter by entity kind
            entity_id: Optional filter by entity id
            limit: Maximum number of events to return

        Returns:
            List of events, most recent first
        """
        history = list(self._history)
        if kind:
            history = [e for e in history if e.kind == kind]
        if entity_id:
            history = [e for e in history if e.entity_id == entity_id]

        history.reverse()
        return history[:limit]

    def get_subscriber_count(self, kind: Optional[EntityKind] = None) -> int:
        """Get number of subscribers watching a kind (including all-kind subscribers)."""
        if kind is None:
            return len(self._subscriptions)
        return sum(1 for s in self._subscriptions if s.kind is None or s.kind == kind)

    def clear_history(self) -> None:
        """Clear event history."""
        self._history.clear()
        logger.info("Event history cleared")

    def stop(self) -> None:
        """Stop publishing and end every open stream."""
        self._is_running = False
        for subscription in list(self._subscriptions):
            self.unsubscribe(subscription)
        logger.info("ChangeNotifier stopped")

    def start(self) -> None:
        """Start/resume publishing."""
        self._is_running = True
        logger.info("ChangeNotifier started")

    @property
    def is_running(self) -> bool:
        return self._is_running


def create_event_id() -> str:
    """Generate a unique event ID."""
    return f"evt_{uuid.uuid4().hex[:12]}"
