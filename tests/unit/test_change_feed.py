"""Unit tests for the in-process change feed."""

import asyncio

import pytest

from classdesk.kernel.store.change_feed import (
    ChangeEvent,
    ChangeFeed,
    ChangeKind,
    SubscriptionClosed,
    SubscriptionGap,
)


def _insert(table: str, **row) -> ChangeEvent:
    return ChangeEvent(ChangeKind.INSERT, table, new=row)


class TestSubscriptionFiltering:
    """Events reach only subscriptions whose table and filter match."""

    def test_filter_by_column_value(self):
        feed = ChangeFeed()
        cs101 = feed.subscribe("messages", "course_code", "CS101")
        other = feed.subscribe("messages", "course_code", "MA201")

        feed.publish(_insert("messages", id=1, course_code="CS101"))

        assert [e.row["id"] for e in cs101.drain()] == [1]
        assert other.drain() == []

    def test_filter_by_table(self):
        feed = ChangeFeed()
        sub = feed.subscribe("calls", "course_code", "CS101")

        feed.publish(_insert("messages", id=1, course_code="CS101"))

        assert sub.drain() == []

    def test_delete_matches_on_old_row(self):
        feed = ChangeFeed()
        sub = feed.subscribe("thread_locks", "course_code", "CS101")

        feed.publish(ChangeEvent(ChangeKind.DELETE, "thread_locks", old={"id": "x", "course_code": "CS101"}))

        events = sub.drain()
        assert len(events) == 1
        assert events[0].kind is ChangeKind.DELETE

    def test_publication_order_is_kept(self):
        feed = ChangeFeed()
        sub = feed.subscribe("messages", "course_code", "CS101")

        for i in range(5):
            feed.publish(_insert("messages", id=i, course_code="CS101"))

        assert [e.row["id"] for e in sub.drain()] == [0, 1, 2, 3, 4]


class TestOverflow:
    """A full buffer turns into a gap the consumer must resync from."""

    def test_overflow_marks_gap(self):
        feed = ChangeFeed(maxsize=2)
        sub = feed.subscribe("messages", "course_code", "CS101")

        for i in range(3):
            feed.publish(_insert("messages", id=i, course_code="CS101"))

        assert sub.gap is True
        with pytest.raises(SubscriptionGap):
            sub.drain()

    def test_reset_clears_gap_and_buffer(self):
        feed = ChangeFeed(maxsize=2)
        sub = feed.subscribe("messages", "course_code", "CS101")
        for i in range(3):
            feed.publish(_insert("messages", id=i, course_code="CS101"))

        sub.reset()
        feed.publish(_insert("messages", id=9, course_code="CS101"))

        assert sub.gap is False
        assert [e.row["id"] for e in sub.drain()] == [9]

    async def test_get_raises_gap(self):
        feed = ChangeFeed(maxsize=1)
        sub = feed.subscribe("messages", "course_code", "CS101")
        feed.publish(_insert("messages", id=1, course_code="CS101"))
        feed.publish(_insert("messages", id=2, course_code="CS101"))

        with pytest.raises(SubscriptionGap):
            await sub.get(timeout=0.1)


class TestClose:
    """Closing unsubscribes immediately."""

    def test_close_removes_subscription(self):
        feed = ChangeFeed()
        sub = feed.subscribe("messages", "course_code", "CS101")
        assert feed.subscriber_count("messages") == 1

        sub.close()
        sub.close()

        assert feed.subscriber_count() == 0
        feed.publish(_insert("messages", id=1, course_code="CS101"))
        assert sub.pending() == 0

    async def test_close_wakes_waiting_get(self):
        feed = ChangeFeed()
        sub = feed.subscribe("messages", "course_code", "CS101")

        waiter = asyncio.create_task(sub.get())
        await asyncio.sleep(0)
        sub.close()

        with pytest.raises(SubscriptionClosed):
            await waiter

    async def test_async_iteration_stops_on_close(self):
        feed = ChangeFeed()
        sub = feed.subscribe("messages", "course_code", "CS101")
        feed.publish(_insert("messages", id=1, course_code="CS101"))
        sub.close()

        seen = [event.row["id"] async for event in sub]

        assert seen == [1]
