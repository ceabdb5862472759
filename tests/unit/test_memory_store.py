"""Unit tests for the in-memory store's atomicity and uniqueness contracts."""

from datetime import datetime, timedelta, timezone

import pytest

from classdesk.kernel.errors import ConflictError, NotFoundError
from classdesk.kernel.store import ChangeKind, MemoryStore, Store


CURSOR_KEYS = ("course_code", "client_token", "reader_role")


class TestCapabilities:
    def test_memory_store_satisfies_store_protocol(self, store: MemoryStore):
        assert isinstance(store, Store)

    async def test_unknown_table_rejected(self, store: MemoryStore):
        with pytest.raises(ValueError):
            await store.select("nope")

    async def test_unknown_column_rejected(self, store: MemoryStore, course: str):
        with pytest.raises(ValueError):
            await store.insert("calls", {"course_code": course, "client_token": "t", "colour": "red"})


class TestInsert:
    async def test_serial_ids_and_timestamps_are_assigned(self, store: MemoryStore, course: str):
        first = await store.insert("messages", {"course_code": course, "client_token": "t", "role": "participant"})
        second = await store.insert("messages", {"course_code": course, "client_token": "t", "role": "participant"})

        assert second["id"] == first["id"] + 1
        assert second["created_at"] > first["created_at"]
        assert first["created_at"].tzinfo is not None

    async def test_duplicate_unique_key_raises_conflict(self, store: MemoryStore, course: str):
        await store.insert("thread_pins", {"course_code": course, "client_token": "t"})

        with pytest.raises(ConflictError):
            await store.insert("thread_pins", {"course_code": course, "client_token": "t"})

    async def test_insert_if_absent_returns_none_on_duplicate(self, store: MemoryStore, course: str):
        row = await store.insert_if_absent("thread_pins", {"course_code": course, "client_token": "t"})
        again = await store.insert_if_absent("thread_pins", {"course_code": course, "client_token": "t"})

        assert row is not None
        assert again is None
        assert len(await store.select("thread_pins")) == 1

    async def test_missing_parent_raises_not_found(self, store: MemoryStore):
        with pytest.raises(NotFoundError):
            await store.insert("calls", {"course_code": "GONE", "client_token": "t"})

    async def test_insert_publishes_event(self, store: MemoryStore, course: str):
        sub = store.subscribe("calls", "course_code", course)

        row = await store.insert("calls", {"course_code": course, "client_token": "t"})

        events = sub.drain()
        assert [(e.kind, e.row["id"]) for e in events] == [(ChangeKind.INSERT, row["id"])]


class TestUpsert:
    async def test_upsert_inserts_then_updates(self, store: MemoryStore):
        now = datetime.now(timezone.utc)
        values = {"course_code": "C", "client_token": "t", "reader_role": "assistant"}

        first = await store.upsert("thread_reads", {**values, "last_read_at": now}, keys=CURSOR_KEYS)
        second = await store.upsert(
            "thread_reads", {**values, "last_read_at": now + timedelta(seconds=5)}, keys=CURSOR_KEYS
        )

        assert second["id"] == first["id"]
        assert second["last_read_at"] == now + timedelta(seconds=5)

    async def test_monotonic_upsert_never_regresses(self, store: MemoryStore):
        now = datetime.now(timezone.utc)
        values = {"course_code": "C", "client_token": "t", "reader_role": "assistant"}
        await store.upsert("thread_reads", {**values, "last_read_at": now}, keys=CURSOR_KEYS, monotonic="last_read_at")
        sub = store.subscribe("thread_reads", "course_code", "C")

        row = await store.upsert(
            "thread_reads",
            {**values, "last_read_at": now - timedelta(minutes=1)},
            keys=CURSOR_KEYS,
            monotonic="last_read_at",
        )

        assert row["last_read_at"] == now
        assert sub.drain() == []


class TestUpdate:
    async def test_update_matches_null(self, store: MemoryStore, course: str):
        a = await store.insert("calls", {"course_code": course, "client_token": "t"})
        await store.insert("calls", {"course_code": course, "client_token": "t", "handled_at": datetime.now(timezone.utc)})

        updated = await store.update("calls", {"seat_text": "row 3"}, {"course_code": course, "handled_at": None})

        assert [r["id"] for r in updated] == [a["id"]]

    async def test_update_is_all_or_nothing(self, store: MemoryStore, course: str):
        await store.insert("student_aliases", {"course_code": course, "client_token": "a", "alias_number": 1})
        await store.insert("student_aliases", {"course_code": course, "client_token": "b", "alias_number": 2})

        with pytest.raises(ConflictError):
            await store.update("student_aliases", {"alias_number": 7}, {"course_code": course})

        rows = await store.select("student_aliases", order_by=("alias_number",))
        assert [r["alias_number"] for r in rows] == [1, 2]


class TestDelete:
    async def test_course_delete_cascades_to_linked_tables(self, store: MemoryStore, course: str):
        await store.insert("messages", {"course_code": course, "client_token": "t", "role": "participant"})
        await store.insert("calls", {"course_code": course, "client_token": "t"})
        await store.insert("thread_pins", {"course_code": course, "client_token": "t"})
        await store.insert("student_aliases", {"course_code": course, "client_token": "t", "alias_number": 1})
        await store.insert("thread_locks", {"course_code": course, "client_token": "t", "sa_user_id": "sa"})
        sub = store.subscribe("messages", "course_code", course)

        await store.delete("courses", {"code": course})

        for table in ("messages", "calls", "thread_pins", "student_aliases"):
            assert await store.select(table) == []
        # No cascading relationship for locks
        assert len(await store.select("thread_locks")) == 1
        assert [e.kind for e in sub.drain()] == [ChangeKind.DELETE]

    async def test_delete_missing_row_is_empty(self, store: MemoryStore):
        assert await store.delete("thread_pins", {"course_code": "C", "client_token": "nobody"}) == []


class TestSelect:
    async def test_order_by_descending_with_nulls_last(self, store: MemoryStore, course: str):
        await store.insert("calls", {"course_code": course, "client_token": "a", "seat_text": "b"})
        await store.insert("calls", {"course_code": course, "client_token": "b"})
        await store.insert("calls", {"course_code": course, "client_token": "c", "seat_text": "c"})

        rows = await store.select("calls", order_by=("-seat_text",))

        assert [r["client_token"] for r in rows] == ["c", "a", "b"]
