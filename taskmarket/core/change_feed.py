"""In-process realtime change feed.

Every committed write in db_client is published here as a ChangeEvent.
Subscribers receive events for one collection, optionally narrowed by an
equality match on row fields, and re-fetch whatever aggregate they show.
"""

import asyncio
import logging
from collections.abc import Iterable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from taskmarket.core.config import Constants


logger = logging.getLogger(__name__)


class ChangeKind(StrEnum):
    """Kind of row change."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"


class ChangeEvent(BaseModel):
    """A committed row change."""

    table: str = Field(..., description="Collection the row belongs to")
    kind: ChangeKind = Field(..., description="INSERT or UPDATE")
    row: dict[str, Any] = Field(default_factory=dict, description="Row state after the change")


class Subscription:
    """Async iterator over change events for a single collection."""

    def __init__(
        self,
        *,
        table: str,
        match: dict[str, Any] | None,
        event_kinds: frozenset[ChangeKind],
        maxsize: int = Constants.SUBSCRIPTION_QUEUE_MAXSIZE,
    ) -> None:
        self.table = table
        self.match = {key: str(value) for key, value in (match or {}).items()}
        self.event_kinds = event_kinds
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, event: ChangeEvent) -> bool:
        """Return True if the event is for this subscription's table, kinds and match filter."""
        if event.table != self.table or event.kind not in self.event_kinds:
            return False
        return all(str(event.row.get(key)) == value for key, value in self.match.items())

    def deliver(self, event: ChangeEvent) -> None:
        """Queue an event, dropping the oldest one when the subscriber falls behind."""
        if self._closed:
            return
        if self._queue.full():
            self._queue.get_nowait()
            logger.debug("change_feed_queue_overflow", extra={"table": self.table})
        self._queue.put_nowait(event)

    def drain_nowait(self) -> list[ChangeEvent]:
        """Return every queued event without waiting."""
        events: list[ChangeEvent] = []
        while not self._queue.empty():
            event = self._queue.get_nowait()
            if event is not None:
                events.append(event)
        return events

    def unsubscribe(self) -> None:
        """Release the subscription. Pending iteration ends after queued events drain."""
        if self._closed:
            return
        self._closed = True
        if self in _subscriptions:
            _subscriptions.remove(self)
        if not self._queue.full():
            self._queue.put_nowait(None)
        logger.debug("change_feed_unsubscribed", extra={"table": self.table})

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.unsubscribe()


_subscriptions: list[Subscription] = []


def subscribe_changes(
    table: str,
    match: dict[str, Any] | None = None,
    event_kinds: Iterable[ChangeKind] = (ChangeKind.INSERT, ChangeKind.UPDATE),
    maxsize: int = Constants.SUBSCRIPTION_QUEUE_MAXSIZE,
) -> Subscription:
    """Subscribe to committed changes on a collection.

    Args:
        table: Collection name (e.g., "tasks")
        match: Optional equality filter on row fields (e.g., {"task_id": "12"})
        event_kinds: Which change kinds to receive
        maxsize: Queued events kept before the oldest is dropped; 1 suits invalidation-only subscribers

    Returns:
        Subscription; iterate it with `async for`, release it with unsubscribe()
    """
    subscription = Subscription(table=table, match=match, event_kinds=frozenset(event_kinds), maxsize=maxsize)
    _subscriptions.append(subscription)
    logger.debug("change_feed_subscribed", extra={"table": table, "match": subscription.match})
    return subscription


def publish(event: ChangeEvent) -> int:
    """Deliver an event to every matching subscription and return how many received it."""
    delivered = 0
    for subscription in list(_subscriptions):
        if subscription.matches(event):
            subscription.deliver(event)
            delivered += 1
    return delivered


def active_subscription_count() -> int:
    """Return the number of live subscriptions."""
    return len(_subscriptions)
