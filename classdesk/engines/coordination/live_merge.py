"""
Live Merge Engine.

A viewer's local state is a set of keyed collections, each built from a
snapshot read and kept current by folding change events into it:

    INSERT  add the row, or discard it when its key is already present
            (singleton collections replace instead)
    UPDATE  replace the row with the same key and id; ignore unseen rows
    DELETE  remove the row with the same key and id

Display order is derived by a separate sort on (created_at, id), never by
splicing. Subscriptions are opened before the snapshot is read, so the events
buffered meanwhile may repeat rows the snapshot already holds; every rule
above is idempotent under such replays.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple

from classdesk.kernel.errors import TransientIOError
from classdesk.kernel.store.capabilities import Row, Store
from classdesk.kernel.store.change_feed import (
    ChangeEvent,
    ChangeKind,
    Subscription,
    SubscriptionGap,
)
from classdesk.logging_config import get_logger

logger = get_logger(__name__)


def by_id(row: Mapping[str, Any]) -> Hashable:
    return row["id"]


def by_token(row: Mapping[str, Any]) -> Hashable:
    return row["client_token"]


def by_token_and_role(row: Mapping[str, Any]) -> Hashable:
    return (row["client_token"], row["reader_role"])


def is_unhandled_call(row: Mapping[str, Any]) -> bool:
    return row.get("handled_at") is None


@dataclass(frozen=True)
class CollectionSpec:
    """How one table is merged into local state."""

    table: str
    key: Callable[[Mapping[str, Any]], Hashable] = by_id
    # Natural-key collections: a later insert for the same key replaces the row
    singleton: bool = False
    # Rows failing the predicate are not kept; an update that fails it removes the row
    predicate: Optional[Callable[[Mapping[str, Any]], bool]] = None
    # Never replace a row with one whose value in this column is older
    monotonic: Optional[str] = None
    order: Tuple[str, ...] = ("created_at", "id")


MESSAGES = CollectionSpec("messages")
UNHANDLED_CALLS = CollectionSpec("calls", predicate=is_unhandled_call)
LOCKS = CollectionSpec("thread_locks", key=by_token, singleton=True, order=())
PINS = CollectionSpec("thread_pins", key=by_token, singleton=True, order=())
ALIASES = CollectionSpec("student_aliases", key=by_token, singleton=True, order=())
READS = CollectionSpec(
    "thread_reads", key=by_token_and_role, singleton=True, monotonic="last_read_at", order=()
)


def _sort_key(order: Sequence[str]):
    def key(row: Mapping[str, Any]):
        # (missing, value) pairs keep rows without a value at the end
        return tuple((row.get(col) is None, row.get(col) if row.get(col) is not None else 0) for col in order)
    return key


def _older(spec: CollectionSpec, incoming: Mapping[str, Any], current: Mapping[str, Any]) -> bool:
    if spec.monotonic is None:
        return False
    new_value = incoming.get(spec.monotonic)
    old_value = current.get(spec.monotonic)
    if old_value is None:
        return False
    return new_value is None or new_value < old_value


def apply_change(spec: CollectionSpec, rows: Dict[Hashable, Row], event: ChangeEvent) -> bool:
    """
    Fold one change event into `rows`. Returns True if local state changed.
    """
    row = event.row
    if not row:
        return False
    key = spec.key(row)
    current = rows.get(key)

    if event.kind is ChangeKind.INSERT:
        if spec.predicate is not None and not spec.predicate(row):
            return False
        if current is None:
            rows[key] = dict(row)
            return True
        if not spec.singleton or current == row or _older(spec, row, current):
            return False
        rows[key] = dict(row)
        return True

    if event.kind is ChangeKind.UPDATE:
        if current is None or current.get("id") != row.get("id"):
            return False
        if spec.predicate is not None and not spec.predicate(row):
            del rows[key]
            return True
        if current == row or _older(spec, row, current):
            return False
        rows[key] = dict(row)
        return True

    if current is None or current.get("id") != row.get("id"):
        return False
    del rows[key]
    return True


class LiveCollection:
    """Keyed local copy of one table, in display order on read."""

    def __init__(self, spec: CollectionSpec, rows: Optional[Sequence[Row]] = None):
        self.spec = spec
        self._rows: Dict[Hashable, Row] = {}
        for row in rows or ():
            if spec.predicate is None or spec.predicate(row):
                self._rows[spec.key(row)] = dict(row)

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._rows

    def get(self, key: Hashable) -> Optional[Row]:
        row = self._rows.get(key)
        return dict(row) if row is not None else None

    def apply(self, event: ChangeEvent) -> bool:
        return apply_change(self.spec, self._rows, event)

    def rows(self) -> List[Row]:
        rows = [dict(r) for r in self._rows.values()]
        if self.spec.order:
            rows.sort(key=_sort_key(self.spec.order))
        return rows

    def by_key(self) -> Dict[Hashable, Row]:
        return {k: dict(v) for k, v in self._rows.items()}


class LiveView:
    """
    Snapshot plus live stream for a set of collections under one scope.

    `scope` filters both the snapshot reads and the incoming events; the feed
    subscription itself filters on `feed_column`, which must be one of the
    scope columns.
    """

    def __init__(
        self,
        store: Store,
        scope: Mapping[str, Any],
        collections: Sequence[CollectionSpec],
        feed_column: str = "course_code",
    ):
        if feed_column not in scope:
            raise ValueError(f"feed_column {feed_column!r} is not a scope column")
        self.store = store
        self.scope = dict(scope)
        self.feed_column = feed_column
        self.specs = {spec.table: spec for spec in collections}
        self.collections: Dict[str, LiveCollection] = {}
        self._subscriptions: Dict[str, Subscription] = {}
        self.resyncs = 0
        self.closed = False
        # Set while local state may be missing events the feed already dropped
        self._stale = False

    def __getitem__(self, table: str) -> LiveCollection:
        return self.collections[table]

    async def open(self) -> "LiveView":
        """Subscribe to every collection, then read the snapshots."""
        for table in self.specs:
            self._subscriptions[table] = self.store.subscribe(
                table, self.feed_column, self.scope[self.feed_column]
            )
        try:
            await self.resync()
        except TransientIOError:
            self.close()
            raise
        return self

    async def resync(self) -> None:
        """
        Replace local state with fresh snapshots.

        Buffered events are discarded first; the subscriptions stay open, so
        anything committed from here on is still delivered and replayed over
        the new snapshot. If any read fails, nothing local is touched and
        the view stays stale until a later resync succeeds.
        """
        self._stale = True
        for sub in self._subscriptions.values():
            sub.reset()
        fresh: Dict[str, LiveCollection] = {}
        for table, spec in self.specs.items():
            try:
                rows = await self.store.select(table, self.scope)
            except TransientIOError:
                logger.warning("Snapshot read failed", extra={"table": table})
                raise
            fresh[table] = LiveCollection(spec, rows)
        self.collections = fresh
        self._stale = False
        self.resyncs += 1
        self._drain()

    def _in_scope(self, event: ChangeEvent) -> bool:
        row = event.row
        return all(row.get(col) == value for col, value in self.scope.items())

    def _drain(self) -> int:
        changed = 0
        for table, sub in self._subscriptions.items():
            for event in sub.drain():
                if self._in_scope(event) and self.collections[table].apply(event):
                    changed += 1
        return changed

    async def pump(self) -> int:
        """
        Apply every buffered event. Returns how many changed local state.

        A subscription that overflowed is treated like a reconnect: the
        whole view is re-read.
        """
        if self.closed:
            return 0
        if self._stale:
            await self.resync()
            return -1
        try:
            return self._drain()
        except SubscriptionGap:
            logger.info("Feed gap, re-reading snapshot", extra={"scope": self.feed_column})
            await self.resync()
            return -1

    def apply_local(self, table: str, row: Mapping[str, Any], kind: ChangeKind = ChangeKind.INSERT) -> bool:
        """
        Fold the result of this viewer's own write into local state ahead of
        its feed event, which then arrives as a duplicate and is discarded.
        """
        if kind is ChangeKind.DELETE:
            event = ChangeEvent(kind, table, old=dict(row))
        else:
            event = ChangeEvent(kind, table, new=dict(row))
        return self.collections[table].apply(event)

    def close(self) -> None:
        """Unsubscribe everything. Idempotent."""
        for sub in self._subscriptions.values():
            sub.close()
        self._subscriptions.clear()
        self.closed = True
