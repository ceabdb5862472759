"""Unit tests for the audit log."""

import uuid
from datetime import datetime, timezone

from classdesk.kernel.errors import TransientIOError
from classdesk.kernel.events.event_store import EventStore
from classdesk.kernel.models.event_log import EventType
from classdesk.kernel.store import MemoryStore


class TestEventStore:
    async def test_log_serializes_payload(self, store: MemoryStore, course: str):
        ref = uuid.uuid4()
        at = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

        row = await EventStore(store).log(
            event_type=EventType.LOCK_CLAIMED,
            entity_type="thread",
            entity_key="t1",
            course_code=course,
            user_id="sa-alice",
            payload={"ref": ref, "at": at, "ids": [ref, 3]},
        )

        assert row["event_type"] == "thread.lock_claimed"
        assert row["payload"] == {"ref": str(ref), "at": at.isoformat(), "ids": [str(ref), 3]}

    async def test_course_activity_newest_first(self, store: MemoryStore, course: str):
        events = EventStore(store)
        for key in ("t1", "t2", "t3"):
            await events.log(EventType.THREAD_PINNED, "thread", key, course_code=course)

        activity = await events.get_course_activity(course, limit=2)

        assert [e["entity_key"] for e in activity] == ["t3", "t2"]

    async def test_failed_append_is_swallowed(self):
        class Unreachable:
            async def insert(self, table, values):
                raise TransientIOError("store unreachable")

        result = await EventStore(Unreachable()).log(EventType.REPLY_SENT, "message", "1")

        assert result is None
