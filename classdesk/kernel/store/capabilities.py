"""
Narrow capability interface over the shared store.

All cross-viewer coordination lives in the store, so every invariant the
engines protect is expressed through one of these primitives. Each capability
is a separate Protocol so a fake can implement (and a test can mock) just the
part an engine uses.

Rows are plain dicts keyed by column name. A `where` mapping matches on
equality; a value of None matches NULL.
"""

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

from classdesk.kernel.store.change_feed import Subscription

Row = Dict[str, Any]
Where = Mapping[str, Any]


@runtime_checkable
class SnapshotRead(Protocol):
    async def select(
        self,
        table: str,
        where: Optional[Where] = None,
        order_by: Sequence[str] = (),
    ) -> List[Row]:
        """Read matching rows. `order_by` names columns, prefix '-' for descending."""
        ...


@runtime_checkable
class ConditionalInsert(Protocol):
    async def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        """Insert a row; raise ConflictError if any unique key already exists."""
        ...

    async def insert_if_absent(self, table: str, values: Mapping[str, Any]) -> Optional[Row]:
        """Insert a row; return None instead of raising when a unique key exists."""
        ...


@runtime_checkable
class ConditionalUpsert(Protocol):
    async def upsert(
        self,
        table: str,
        values: Mapping[str, Any],
        keys: Sequence[str],
        monotonic: Optional[str] = None,
    ) -> Row:
        """
        Insert, or update the row matching `keys`.

        With `monotonic`, an existing row is only updated when the incoming
        value of that column is greater than the stored one. Returns the row
        as it stands after the call.
        """
        ...


@runtime_checkable
class ConditionalUpdate(Protocol):
    async def update(self, table: str, values: Mapping[str, Any], where: Where) -> List[Row]:
        """Update every matching row in one statement; return the updated rows."""
        ...


@runtime_checkable
class Delete(Protocol):
    async def delete(self, table: str, where: Where) -> List[Row]:
        """Delete matching rows (and cascaded children); return the deleted rows."""
        ...


@runtime_checkable
class Subscribe(Protocol):
    def subscribe(self, table: str, column: str, value: Any) -> Subscription:
        """Deliver committed changes to `table` whose `column` equals `value`."""
        ...


@runtime_checkable
class Store(SnapshotRead, ConditionalInsert, ConditionalUpsert, ConditionalUpdate, Delete, Subscribe, Protocol):
    """Everything a viewer session needs from the shared store."""
