"""
Coordination Engine - everything several viewers share through the store.

Components:
- Alias Allocator: sequential anonymous numbers per course
- Read-Cursor Tracker: monotonic per-role read cursors
- Thread Lock Manager: single-SA ownership of a thread
- Call Queue: grouped help calls with bulk resolution
- Thread Pin Registry: pins and thread list ordering
- Live Merge Engine: snapshot + change feed reconciliation
- Viewers: AssistantConsole and ParticipantDesk sessions
"""

from classdesk.engines.coordination.alias_allocator import AliasAllocator, unique_in_order
from classdesk.engines.coordination.read_cursor import (
    ReadCursorTracker,
    is_seen,
    unread_count,
)
from classdesk.engines.coordination.thread_lock import (
    LockState,
    ReleaseOutcome,
    ThreadLockManager,
    ensure_can_reply,
)
from classdesk.engines.coordination.call_queue import CallGroup, CallQueue, group_calls
from classdesk.engines.coordination.thread_pins import ThreadPinRegistry, order_threads
from classdesk.engines.coordination.live_merge import (
    CollectionSpec,
    LiveCollection,
    LiveView,
    apply_change,
)
from classdesk.engines.coordination.viewers import (
    AssistantConsole,
    ParticipantDesk,
    ThreadMessage,
    ThreadSummary,
)

__all__ = [
    "AliasAllocator",
    "unique_in_order",
    "ReadCursorTracker",
    "is_seen",
    "unread_count",
    "LockState",
    "ReleaseOutcome",
    "ThreadLockManager",
    "ensure_can_reply",
    "CallGroup",
    "CallQueue",
    "group_calls",
    "ThreadPinRegistry",
    "order_threads",
    "CollectionSpec",
    "LiveCollection",
    "LiveView",
    "apply_change",
    "AssistantConsole",
    "ParticipantDesk",
    "ThreadMessage",
    "ThreadSummary",
]
