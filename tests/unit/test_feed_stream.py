"""Unit tests for the SSE change stream."""

import json

import pytest

from classdesk.api.v1.feed import stream_changes
from classdesk.kernel.store import ChangeFeed, MemoryStore


def parse_frame(frame: str):
    lines = frame.strip().split("\n")
    event = lines[0].removeprefix("event: ")
    data = json.loads(lines[1].removeprefix("data: "))
    return event, data


async def _add_message(store, course, token="t1", body="hi"):
    return await store.insert(
        "messages", {"course_code": course, "client_token": token, "role": "participant", "body": body}
    )


class TestStreamChanges:
    async def test_connected_then_events(self, store: MemoryStore, course: str):
        stream = stream_changes(store, ["messages"], "course_code", course, keepalive=5)
        assert await stream.__anext__() == ": connected\n\n"

        row = await _add_message(store, course)
        event, data = parse_frame(await stream.__anext__())

        assert event == "INSERT"
        assert data["table"] == "messages"
        assert data["row"]["id"] == row["id"]
        assert data["row"]["body"] == "hi"
        await stream.aclose()

    async def test_filters_on_column(self, store: MemoryStore, course: str):
        stream = stream_changes(store, ["messages"], "client_token", "t1", keepalive=0.05)
        await stream.__anext__()

        await _add_message(store, course, token="t2")

        assert await stream.__anext__() == ": keepalive\n\n"
        await stream.aclose()

    async def test_stops_when_client_disconnects(self, store: MemoryStore, course: str):
        async def gone() -> bool:
            return True

        stream = stream_changes(store, ["messages"], "course_code", course, is_disconnected=gone, keepalive=0.05)
        await stream.__anext__()

        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    async def test_overflow_becomes_resync(self, course: str):
        store = MemoryStore(ChangeFeed(maxsize=2))
        await store.insert("courses", {"code": course, "title": "t", "password_hash": "x"})
        stream = stream_changes(store, ["messages"], "course_code", course, keepalive=5)
        await stream.__anext__()

        # No await point between inserts, so the reader cannot keep up
        for n in range(3):
            await _add_message(store, course, body=str(n))

        event, data = parse_frame(await stream.__anext__())
        assert event == "resync"
        assert data["table"] == "messages"

        # The stream carries on after the resync marker
        await _add_message(store, course, body="after")
        event, data = parse_frame(await stream.__anext__())
        assert (event, data["row"]["body"]) == ("INSERT", "after")
        await stream.aclose()

    async def test_close_releases_subscriptions(self, store: MemoryStore, feed: ChangeFeed, course: str):
        stream = stream_changes(store, ["messages", "calls"], "course_code", course, keepalive=5)
        await stream.__anext__()
        assert feed.subscriber_count() == 2

        await stream.aclose()

        assert feed.subscriber_count() == 0
