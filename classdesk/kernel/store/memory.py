"""
In-memory store honouring the same atomicity contracts as the SQL store.

Every operation runs under one asyncio lock, so a conditional insert or
upsert is a true check-and-set. Change events are published before the lock
is released, which keeps feed order identical to commit order.
"""

import asyncio
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence

from classdesk.kernel.errors import ConflictError, NotFoundError
from classdesk.kernel.models.base import utcnow
from classdesk.kernel.store.change_feed import ChangeEvent, ChangeFeed, ChangeKind, Subscription
from classdesk.kernel.store.tables import TABLES, TableSpec, children_of, get_table_spec
from classdesk.logging_config import get_logger

logger = get_logger(__name__)

Row = Dict[str, Any]


def _matches(row: Row, where: Optional[Mapping[str, Any]]) -> bool:
    if not where:
        return True
    return all(row.get(col) == value for col, value in where.items())


def _sort_rows(rows: List[Row], order_by: Sequence[str]) -> List[Row]:
    # Stable sorts applied from the last key to the first
    for key in reversed(order_by):
        descending = key.startswith("-")
        col = key.lstrip("-")
        present = [r for r in rows if r.get(col) is not None]
        missing = [r for r in rows if r.get(col) is None]
        present.sort(key=lambda r: r[col], reverse=descending)
        rows = present + missing
    return rows


class MemoryStore:
    """Dict-backed Store for tests and single-process runs."""

    def __init__(self, feed: Optional[ChangeFeed] = None):
        self.feed = feed or ChangeFeed()
        self._rows: Dict[str, Dict[Any, Row]] = {name: {} for name in TABLES}
        self._serial: Dict[str, int] = {name: 0 for name in TABLES}
        self._lock = asyncio.Lock()
        self._last_ts = None

    # Internal helpers (call with the lock held)

    def _now(self):
        now = utcnow()
        if self._last_ts is not None and now <= self._last_ts:
            now = self._last_ts + timedelta(microseconds=1)
        self._last_ts = now
        return now

    def _new_id(self, spec: TableSpec, values: Mapping[str, Any]) -> Any:
        if spec.id_kind == "natural":
            return values.get(spec.id_column)
        if spec.id_kind == "serial":
            self._serial[spec.name] += 1
            return self._serial[spec.name]
        return uuid.uuid4()

    def _find_conflict(
        self,
        spec: TableSpec,
        row: Row,
        exclude: Any = None,
        rows: Optional[Dict[Any, Row]] = None,
    ) -> Optional[Row]:
        rows = self._rows[spec.name] if rows is None else rows
        for key in spec.all_unique_keys():
            for existing_id, existing in rows.items():
                if existing_id == exclude:
                    continue
                if all(existing.get(c) == row.get(c) for c in key):
                    return existing
        return None

    def _check_parent(self, spec: TableSpec, row: Row) -> None:
        if not spec.parent:
            return
        parent_table, parent_col, child_col = spec.parent
        value = row.get(child_col)
        if not any(p.get(parent_col) == value for p in self._rows[parent_table].values()):
            raise NotFoundError(f"{spec.name}.{child_col}={value!r} references a missing {parent_table} row")

    def _prepare(self, spec: TableSpec, values: Mapping[str, Any]) -> Row:
        unknown = set(values) - set(spec.columns)
        if unknown:
            raise ValueError(f"Unknown columns for {spec.name}: {sorted(unknown)}")
        row: Row = {col: None for col in spec.columns}
        row.update(values)
        if row.get(spec.id_column) is None:
            row[spec.id_column] = self._new_id(spec, values)
        now = None
        for col in spec.timestamps:
            if row.get(col) is None:
                now = now or self._now()
                row[col] = now
        for col in spec.touch:
            if col not in values:
                now = now or self._now()
                row[col] = now
        return row

    def _insert_locked(self, spec: TableSpec, values: Mapping[str, Any]) -> Optional[Row]:
        row = self._prepare(spec, values)
        if self._find_conflict(spec, row) is not None:
            return None
        self._check_parent(spec, row)
        self._rows[spec.name][row[spec.id_column]] = row
        self.feed.publish(ChangeEvent(ChangeKind.INSERT, spec.name, new=dict(row)))
        return dict(row)

    def _delete_locked(self, spec: TableSpec, where: Mapping[str, Any]) -> List[Row]:
        doomed = [r for r in self._rows[spec.name].values() if _matches(r, where)]
        for child in children_of(spec.name):
            _, parent_col, child_col = child.parent
            for parent_row in doomed:
                self._delete_locked(child, {child_col: parent_row[parent_col]})
        for row in doomed:
            del self._rows[spec.name][row[spec.id_column]]
            self.feed.publish(ChangeEvent(ChangeKind.DELETE, spec.name, old=dict(row)))
        return [dict(r) for r in doomed]

    # Store capabilities

    async def select(
        self,
        table: str,
        where: Optional[Mapping[str, Any]] = None,
        order_by: Sequence[str] = (),
    ) -> List[Row]:
        spec = get_table_spec(table)
        async with self._lock:
            rows = [dict(r) for r in self._rows[spec.name].values() if _matches(r, where)]
        if order_by:
            rows = _sort_rows(rows, order_by)
        return rows

    async def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        spec = get_table_spec(table)
        async with self._lock:
            row = self._insert_locked(spec, values)
        if row is None:
            raise ConflictError(f"Duplicate key in {table}")
        return row

    async def insert_if_absent(self, table: str, values: Mapping[str, Any]) -> Optional[Row]:
        spec = get_table_spec(table)
        async with self._lock:
            return self._insert_locked(spec, values)

    async def upsert(
        self,
        table: str,
        values: Mapping[str, Any],
        keys: Sequence[str],
        monotonic: Optional[str] = None,
    ) -> Row:
        spec = get_table_spec(table)
        async with self._lock:
            existing = next(
                (
                    r for r in self._rows[spec.name].values()
                    if all(r.get(k) == values.get(k) for k in keys)
                ),
                None,
            )
            if existing is None:
                row = self._insert_locked(spec, values)
                if row is None:
                    raise ConflictError(f"Duplicate key in {table}")
                return row

            if monotonic is not None:
                current = existing.get(monotonic)
                incoming = values.get(monotonic)
                if current is not None and (incoming is None or incoming <= current):
                    return dict(existing)

            updated = dict(existing)
            updated.update({c: v for c, v in values.items() if c not in keys})
            for col in spec.touch:
                if col not in values:
                    updated[col] = self._now()
            if self._find_conflict(spec, updated, exclude=existing[spec.id_column]) is not None:
                raise ConflictError(f"Duplicate key in {table}")
            self._rows[spec.name][existing[spec.id_column]] = updated
            self.feed.publish(ChangeEvent(ChangeKind.UPDATE, spec.name, new=dict(updated), old=dict(existing)))
            return dict(updated)

    async def update(self, table: str, values: Mapping[str, Any], where: Mapping[str, Any]) -> List[Row]:
        spec = get_table_spec(table)
        async with self._lock:
            changes = []
            for row_id, row in self._rows[spec.name].items():
                if not _matches(row, where):
                    continue
                updated = dict(row)
                updated.update(values)
                for col in spec.touch:
                    if col not in values:
                        updated[col] = self._now()
                changes.append((row_id, row, updated))

            # Check every row against the table as it would be after the update
            tentative = dict(self._rows[spec.name])
            tentative.update({row_id: updated for row_id, _, updated in changes})
            for row_id, _, updated in changes:
                if self._find_conflict(spec, updated, exclude=row_id, rows=tentative) is not None:
                    raise ConflictError(f"Duplicate key in {table}")

            for row_id, row, updated in changes:
                self._rows[spec.name][row_id] = updated
                self.feed.publish(ChangeEvent(ChangeKind.UPDATE, spec.name, new=dict(updated), old=dict(row)))
            return [dict(updated) for _, _, updated in changes]

    async def delete(self, table: str, where: Mapping[str, Any]) -> List[Row]:
        spec = get_table_spec(table)
        async with self._lock:
            return self._delete_locked(spec, where)

    def subscribe(self, table: str, column: str, value: Any) -> Subscription:
        get_table_spec(table)
        return self.feed.subscribe(table, column, value)
