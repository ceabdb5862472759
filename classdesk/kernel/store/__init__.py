"""
Shared store: capability interface, change feed and implementations.
"""

from classdesk.kernel.store.capabilities import (
    ConditionalInsert,
    ConditionalUpdate,
    ConditionalUpsert,
    Delete,
    Row,
    SnapshotRead,
    Store,
    Subscribe,
)
from classdesk.kernel.store.change_feed import (
    ChangeEvent,
    ChangeFeed,
    ChangeKind,
    Subscription,
    SubscriptionClosed,
    SubscriptionGap,
)
from classdesk.kernel.store.memory import MemoryStore
from classdesk.kernel.store.sql import SqlStore
from classdesk.kernel.store.tables import TABLES, TableSpec, get_table_spec

__all__ = [
    "ConditionalInsert",
    "ConditionalUpdate",
    "ConditionalUpsert",
    "Delete",
    "Row",
    "SnapshotRead",
    "Store",
    "Subscribe",
    "ChangeEvent",
    "ChangeFeed",
    "ChangeKind",
    "Subscription",
    "SubscriptionClosed",
    "SubscriptionGap",
    "MemoryStore",
    "SqlStore",
    "TABLES",
    "TableSpec",
    "get_table_spec",
]
