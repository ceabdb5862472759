"""Unit tests for thread pins and list ordering."""

from datetime import datetime, timedelta, timezone

from classdesk.engines.coordination.thread_pins import ThreadPinRegistry, order_threads
from classdesk.kernel.store import MemoryStore


def t(n: int) -> datetime:
    return datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc) + timedelta(minutes=n)


class TestOrderThreads:
    def test_pinned_first_then_latest_message(self):
        """X pinned t2, Y pinned t1, Z last message t5, W last message t3."""
        order = order_threads(
            ["W", "Y", "Z", "X"],
            pinned_at={"X": t(2), "Y": t(1)},
            last_message_at={"Z": t(5), "W": t(3), "X": t(0), "Y": t(9)},
        )

        assert order == ["X", "Y", "Z", "W"]

    def test_threads_without_messages_sort_last(self):
        order = order_threads(
            ["quiet", "busy"],
            pinned_at={},
            last_message_at={"busy": t(1), "quiet": None},
        )

        assert order == ["busy", "quiet"]


class TestPinRegistry:
    async def test_pin_is_idempotent(self, store: MemoryStore, course: str):
        pins = ThreadPinRegistry(store)
        first = await pins.pin(course, "t1")

        again = await pins.pin(course, "t1")

        assert again["pinned_at"] == first["pinned_at"]
        assert len(await store.select("thread_pins")) == 1

    async def test_unpin_absent_is_noop(self, store: MemoryStore, course: str):
        assert await ThreadPinRegistry(store).unpin(course, "t1") is False

    async def test_toggle(self, store: MemoryStore, course: str):
        pins = ThreadPinRegistry(store)

        assert await pins.toggle(course, "t1") is not None
        assert "t1" in await pins.pins(course)
        assert await pins.toggle(course, "t1") is None
        assert await pins.pins(course) == {}
