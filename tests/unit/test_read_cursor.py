"""Unit tests for per-role read cursors."""

from datetime import datetime, timedelta, timezone

import pytest

from classdesk.engines.coordination.read_cursor import ReadCursorTracker, is_seen, unread_count
from classdesk.kernel.errors import ValidationError
from classdesk.kernel.models.thread import AuthorRole
from classdesk.kernel.store import MemoryStore

T0 = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


def _msg(role: str, minutes: int) -> dict:
    return {"role": role, "created_at": T0 + timedelta(minutes=minutes)}


class TestMarkRead:
    async def test_decreasing_marks_never_move_cursor_back(self, store: MemoryStore):
        cursors = ReadCursorTracker(store)

        for minutes in (10, 5, 7, 1):
            await cursors.mark_read("CS101", "t1", AuthorRole.ASSISTANT, at=T0 + timedelta(minutes=minutes))

        assert await cursors.get_cursor("CS101", "t1", AuthorRole.ASSISTANT) == T0 + timedelta(minutes=10)

    async def test_cursor_advances(self, store: MemoryStore):
        cursors = ReadCursorTracker(store)
        await cursors.mark_read("CS101", "t1", AuthorRole.PARTICIPANT, at=T0)

        row = await cursors.mark_read("CS101", "t1", AuthorRole.PARTICIPANT, at=T0 + timedelta(seconds=1))

        assert row["last_read_at"] == T0 + timedelta(seconds=1)

    async def test_roles_are_independent(self, store: MemoryStore):
        cursors = ReadCursorTracker(store)
        await cursors.mark_read("CS101", "t1", AuthorRole.ASSISTANT, at=T0)

        assert await cursors.get_cursor("CS101", "t1", AuthorRole.PARTICIPANT) is None
        assert await cursors.cursors_for_role("CS101", AuthorRole.ASSISTANT) == {"t1": T0}

    async def test_default_is_now(self, store: MemoryStore):
        before = datetime.now(timezone.utc)

        row = await ReadCursorTracker(store).mark_read("CS101", "t1", AuthorRole.ASSISTANT)

        assert row["last_read_at"] >= before

    async def test_offset_times_are_stored_in_utc(self, store: MemoryStore):
        cursors = ReadCursorTracker(store)
        plus_two = timezone(timedelta(hours=2))

        row = await cursors.mark_read("CS101", "t1", AuthorRole.ASSISTANT, at=datetime(2026, 10, 19, 11, 30, tzinfo=plus_two))

        assert row["last_read_at"] == T0 + timedelta(minutes=30)
        assert row["last_read_at"].tzinfo == timezone.utc

    async def test_naive_time_is_rejected(self, store: MemoryStore):
        cursors = ReadCursorTracker(store)
        await cursors.mark_read("CS101", "t1", AuthorRole.ASSISTANT, at=T0)

        with pytest.raises(ValidationError) as exc_info:
            await cursors.mark_read("CS101", "t1", AuthorRole.ASSISTANT, at=datetime(2026, 10, 19, 11, 0))

        assert exc_info.value.field == "at"
        assert await cursors.get_cursor("CS101", "t1", AuthorRole.ASSISTANT) == T0


class TestSeenAndUnread:
    def test_seen_iff_cursor_at_or_past_message(self):
        m = _msg("assistant", 5)

        assert is_seen(m, T0 + timedelta(minutes=5))
        assert is_seen(m, T0 + timedelta(minutes=6))
        assert not is_seen(m, T0 + timedelta(minutes=4))
        assert not is_seen(m, None)

    def test_unread_counts_counterpart_messages_after_cursor(self):
        messages = [_msg("participant", 1), _msg("assistant", 2), _msg("participant", 3), _msg("participant", 4)]

        assert unread_count(messages, AuthorRole.ASSISTANT, None) == 3
        assert unread_count(messages, AuthorRole.ASSISTANT, T0 + timedelta(minutes=3)) == 1
        assert unread_count(messages, AuthorRole.PARTICIPANT, T0 + timedelta(minutes=1)) == 1
        assert unread_count(messages, AuthorRole.PARTICIPANT, T0 + timedelta(minutes=2)) == 0
