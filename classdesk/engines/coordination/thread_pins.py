"""
Thread pins and thread list ordering.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from classdesk.kernel.events.event_store import EventStore
from classdesk.kernel.models.event_log import EventType
from classdesk.kernel.store.capabilities import Row, Store
from classdesk.logging_config import get_logger

logger = get_logger(__name__)

PIN_KEYS = ("course_code", "client_token")


def order_threads(
    tokens: Iterable[str],
    pinned_at: Mapping[str, Optional[datetime]],
    last_message_at: Mapping[str, Optional[datetime]],
) -> List[str]:
    """
    Pinned threads first by pin time descending, then the rest by latest
    message time descending. Threads with no time sort last in their group.
    """

    def newest_first(times: Mapping[str, Optional[datetime]]):
        def key(token: str):
            ts = times.get(token)
            return (ts is None, -ts.timestamp() if ts is not None else 0.0)
        return key

    pinned = [t for t in tokens if t in pinned_at]
    normal = [t for t in tokens if t not in pinned_at]
    pinned.sort(key=newest_first(pinned_at))
    normal.sort(key=newest_first(last_message_at))
    return pinned + normal


class ThreadPinRegistry:
    """Idempotent pin / unpin of threads."""

    def __init__(self, store: Store):
        self.store = store
        self.events = EventStore(store)

    async def pins(self, course_code: str) -> Dict[str, Row]:
        rows = await self.store.select("thread_pins", {"course_code": course_code})
        return {row["client_token"]: row for row in rows}

    async def pin(self, course_code: str, client_token: str, user_id: Optional[str] = None) -> Row:
        """Pin a thread; pinning an already pinned thread keeps its pin time."""
        row = await self.store.insert_if_absent(
            "thread_pins", {"course_code": course_code, "client_token": client_token}
        )
        if row is None:
            existing = await self.store.select(
                "thread_pins", {"course_code": course_code, "client_token": client_token}
            )
            if existing:
                return existing[0]
            # Unpinned in between; pin again
            return await self.store.upsert(
                "thread_pins", {"course_code": course_code, "client_token": client_token}, keys=PIN_KEYS
            )
        await self.events.log(
            event_type=EventType.THREAD_PINNED,
            entity_type="thread",
            entity_key=client_token,
            course_code=course_code,
            user_id=user_id,
        )
        return row

    async def unpin(self, course_code: str, client_token: str, user_id: Optional[str] = None) -> bool:
        """Unpin a thread. Returns False if it was not pinned."""
        deleted = await self.store.delete(
            "thread_pins", {"course_code": course_code, "client_token": client_token}
        )
        if deleted:
            await self.events.log(
                event_type=EventType.THREAD_UNPINNED,
                entity_type="thread",
                entity_key=client_token,
                course_code=course_code,
                user_id=user_id,
            )
        return bool(deleted)

    async def toggle(self, course_code: str, client_token: str, user_id: Optional[str] = None) -> Optional[Row]:
        """Pin if unpinned, unpin if pinned. Returns the pin row, or None when unpinned."""
        current = await self.store.select(
            "thread_pins", {"course_code": course_code, "client_token": client_token}
        )
        if current:
            await self.unpin(course_code, client_token, user_id)
            return None
        return await self.pin(course_code, client_token, user_id)
