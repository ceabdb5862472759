"""Unit tests for single-owner thread locks."""

import asyncio

import pytest

from classdesk.engines.coordination.thread_lock import (
    LockState,
    ReleaseOutcome,
    ThreadLockManager,
    ensure_can_reply,
)
from classdesk.kernel.errors import ConflictError
from classdesk.kernel.store import MemoryStore


class TestClaim:
    async def test_claim_unowned_thread(self, store: MemoryStore, course: str):
        lock = await ThreadLockManager(store).claim(course, "t1", "sa-alice", "Alice")

        assert lock.owned_by("sa-alice")
        assert lock.owner_name == "Alice"
        assert lock.locked_at is not None

    async def test_reclaim_by_owner_is_noop(self, store: MemoryStore, course: str):
        locks = ThreadLockManager(store)
        first = await locks.claim(course, "t1", "sa-alice", "Alice")

        again = await locks.claim(course, "t1", "sa-alice", "Alice")

        assert again == first
        assert len(await store.select("thread_locks")) == 1

    async def test_claim_by_other_sa_fails_and_keeps_owner(self, store: MemoryStore, course: str):
        locks = ThreadLockManager(store)
        await locks.claim(course, "t1", "sa-alice", "Alice")

        with pytest.raises(ConflictError) as exc_info:
            await locks.claim(course, "t1", "sa-bob", "Bob")

        assert exc_info.value.owner_id == "sa-alice"
        assert exc_info.value.owner_name == "Alice"
        assert (await locks.get_lock(course, "t1")).owned_by("sa-alice")

    async def test_claim_race_has_exactly_one_winner(self, store: MemoryStore, course: str):
        """SA A and SA B claim the same thread at once."""
        locks_a, locks_b = ThreadLockManager(store), ThreadLockManager(store)

        results = await asyncio.gather(
            locks_a.claim(course, "t1", "sa-alice", "Alice"),
            locks_b.claim(course, "t1", "sa-bob", "Bob"),
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, LockState)]
        losers = [r for r in results if isinstance(r, ConflictError)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert losers[0].owner_id == winners[0].owner_id

        # The loser keeps failing until the winner releases
        loser_id = "sa-bob" if winners[0].owner_id == "sa-alice" else "sa-alice"
        with pytest.raises(ConflictError):
            await locks_a.claim(course, "t1", loser_id, "Loser")
        await locks_a.release(course, "t1", winners[0].owner_id)
        lock = await locks_a.claim(course, "t1", loser_id, "Loser")
        assert lock.owned_by(loser_id)

    async def test_claim_logs_audit_event(self, store: MemoryStore, course: str):
        await ThreadLockManager(store).claim(course, "t1", "sa-alice", "Alice")

        events = await store.select("event_log", {"course_code": course})
        assert [e["event_type"] for e in events] == ["thread.lock_claimed"]


class TestRelease:
    async def test_owner_releases(self, store: MemoryStore, course: str):
        locks = ThreadLockManager(store)
        await locks.claim(course, "t1", "sa-alice", "Alice")

        outcome = await locks.release(course, "t1", "sa-alice")

        assert outcome is ReleaseOutcome.RELEASED
        assert not (await locks.get_lock(course, "t1")).is_owned

    async def test_release_of_unowned_thread_is_reported_noop(self, store: MemoryStore, course: str):
        outcome = await ThreadLockManager(store).release(course, "t1", "sa-alice")

        assert outcome is ReleaseOutcome.NOT_HELD

    async def test_non_owner_cannot_release(self, store: MemoryStore, course: str):
        locks = ThreadLockManager(store)
        await locks.claim(course, "t1", "sa-alice", "Alice")

        with pytest.raises(ConflictError):
            await locks.release(course, "t1", "sa-bob")

        assert (await locks.get_lock(course, "t1")).owned_by("sa-alice")


class TestReplyGate:
    def test_unowned_thread_allows_anyone(self):
        ensure_can_reply(LockState(client_token="t1"), "sa-bob")

    def test_owner_may_reply(self):
        ensure_can_reply(LockState(client_token="t1", owner_id="sa-alice"), "sa-alice")

    def test_other_sa_is_rejected(self):
        with pytest.raises(ConflictError) as exc_info:
            ensure_can_reply(LockState(client_token="t1", owner_id="sa-alice", owner_name="Alice"), "sa-bob")

        assert "Alice" in exc_info.value.message

    async def test_store_check_at_send_time(self, store: MemoryStore, course: str):
        locks = ThreadLockManager(store)
        await locks.claim(course, "t1", "sa-alice", "Alice")

        with pytest.raises(ConflictError):
            await locks.ensure_can_reply(course, "t1", "sa-bob")
