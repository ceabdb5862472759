"""
In-process change feed.

Stores publish one ChangeEvent per affected row after a write commits; each
subscription receives the events of one table whose row matches a single
column equality filter, in publication order.

A subscription buffers at most `maxsize` events. When the buffer overflows the
subscription is marked as having a gap and drops everything until the consumer
calls reset() and re-reads its snapshot, exactly as after a reconnect.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from classdesk.logging_config import get_logger

logger = get_logger(__name__)


class ChangeKind(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    """A row-level change. `old` is set for deletes, `new` for inserts and updates."""

    kind: ChangeKind
    table: str
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None

    @property
    def row(self) -> Dict[str, Any]:
        if self.kind is ChangeKind.DELETE:
            return self.old or {}
        return self.new or {}


class SubscriptionGap(Exception):
    """Events were lost; the consumer must re-snapshot before continuing."""


class SubscriptionClosed(Exception):
    pass


_CLOSED = object()


class Subscription:
    """A filtered, buffered view of the feed for one table."""

    def __init__(self, feed: "ChangeFeed", table: str, column: str, value: Any, maxsize: int):
        self.feed = feed
        self.table = table
        self.column = column
        self.value = value
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.gap = False
        self.closed = False

    def __repr__(self) -> str:
        return f"<Subscription {self.table} {self.column}={self.value!r}>"

    def matches(self, event: ChangeEvent) -> bool:
        return event.table == self.table and event.row.get(self.column) == self.value

    def _deliver(self, event: ChangeEvent) -> None:
        if self.closed or self.gap:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.gap = True
            logger.warning(
                "Subscription buffer overflowed, marking gap",
                extra={"table": self.table, "filter_column": self.column},
            )

    def pending(self) -> int:
        return self._queue.qsize()

    def drain(self) -> List[ChangeEvent]:
        """Return every buffered event without waiting."""
        if self.gap:
            raise SubscriptionGap(repr(self))
        events = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                break
            events.append(item)
        return events

    async def get(self, timeout: Optional[float] = None) -> ChangeEvent:
        """Wait for the next event."""
        if self.gap:
            raise SubscriptionGap(repr(self))
        if self.closed and self._queue.empty():
            raise SubscriptionClosed(repr(self))
        item = await asyncio.wait_for(self._queue.get(), timeout)
        if item is _CLOSED:
            raise SubscriptionClosed(repr(self))
        if self.gap:
            raise SubscriptionGap(repr(self))
        return item

    def reset(self) -> None:
        """Discard buffered events and clear the gap, ahead of a re-snapshot."""
        while not self._queue.empty():
            self._queue.get_nowait()
        self.gap = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.feed._remove(self)
        # Wake a pending get()
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        try:
            return await self.get()
        except SubscriptionClosed:
            raise StopAsyncIteration from None


class ChangeFeed:
    """Fan-out of committed row changes to filtered subscriptions."""

    def __init__(self, maxsize: int = 1000):
        self.maxsize = maxsize
        self._subscriptions: Dict[str, List[Subscription]] = {}

    def subscribe(self, table: str, column: str, value: Any) -> Subscription:
        sub = Subscription(self, table, column, value, self.maxsize)
        self._subscriptions.setdefault(table, []).append(sub)
        logger.debug("Subscribed", extra={"table": table, "filter_column": column})
        return sub

    def publish(self, event: ChangeEvent) -> None:
        for sub in list(self._subscriptions.get(event.table, ())):
            if sub.matches(event):
                sub._deliver(event)

    def publish_all(self, events: List[ChangeEvent]) -> None:
        for event in events:
            self.publish(event)

    def subscriber_count(self, table: Optional[str] = None) -> int:
        if table is not None:
            return len(self._subscriptions.get(table, ()))
        return sum(len(subs) for subs in self._subscriptions.values())

    def _remove(self, sub: Subscription) -> None:
        subs = self._subscriptions.get(sub.table, [])
        if sub in subs:
            subs.remove(sub)
