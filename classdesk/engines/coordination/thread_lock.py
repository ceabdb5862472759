"""
Thread Lock Manager.

Per thread: Unowned -> Owned(sa) -> Unowned. A claim is one conditional
insert keyed by the (course, thread) unique constraint: the insert succeeding
means the lock was won. Losing the insert is followed by reading the winner,
never by overwriting it.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from classdesk.config import get_settings
from classdesk.kernel.errors import ConflictError
from classdesk.kernel.events.event_store import EventStore
from classdesk.kernel.models.event_log import EventType
from classdesk.kernel.store.capabilities import Store
from classdesk.logging_config import get_logger

logger = get_logger(__name__)


class ReleaseOutcome(str, Enum):
    RELEASED = "released"
    NOT_HELD = "not_held"  # already unowned; reported, not an error


@dataclass(frozen=True)
class LockState:
    """Owner of a thread, or None for unowned."""

    client_token: str
    owner_id: Optional[str] = None
    owner_name: Optional[str] = None
    locked_at: Optional[datetime] = None

    @property
    def is_owned(self) -> bool:
        return self.owner_id is not None

    def owned_by(self, sa_user_id: str) -> bool:
        return self.owner_id == sa_user_id

    @classmethod
    def from_row(cls, client_token: str, row: Optional[Mapping[str, Any]]) -> "LockState":
        if not row:
            return cls(client_token=client_token)
        return cls(
            client_token=client_token,
            owner_id=row["sa_user_id"],
            owner_name=row.get("sa_name"),
            locked_at=row.get("locked_at"),
        )


def owner_conflict(lock: LockState) -> ConflictError:
    name = lock.owner_name or "Another SA"
    return ConflictError(
        f"{name} is handling this thread",
        owner_id=lock.owner_id,
        owner_name=lock.owner_name,
    )


def ensure_can_reply(lock: LockState, sa_user_id: str) -> None:
    """Reject a send by any SA other than the current owner."""
    if lock.is_owned and not lock.owned_by(sa_user_id):
        raise owner_conflict(lock)


class ThreadLockManager:
    """Claim and release single-owner thread locks."""

    def __init__(self, store: Store, max_attempts: int = 0):
        self.store = store
        self.events = EventStore(store)
        self.max_attempts = max_attempts or get_settings().lock_max_attempts

    def _key(self, course_code: str, client_token: str) -> Dict[str, str]:
        return {"course_code": course_code, "client_token": client_token}

    async def get_lock(self, course_code: str, client_token: str) -> LockState:
        rows = await self.store.select("thread_locks", self._key(course_code, client_token))
        return LockState.from_row(client_token, rows[0] if rows else None)

    async def claim(
        self,
        course_code: str,
        client_token: str,
        sa_user_id: str,
        sa_name: Optional[str],
    ) -> LockState:
        """
        Take ownership of a thread.

        Re-claiming a thread already owned by the same SA succeeds without
        change. Raises ConflictError naming the owner if another SA holds it.
        """
        for _ in range(self.max_attempts):
            row = await self.store.insert_if_absent(
                "thread_locks",
                {**self._key(course_code, client_token), "sa_user_id": sa_user_id, "sa_name": sa_name},
            )
            if row is not None:
                logger.info(
                    "Lock claimed",
                    extra={"client_token": client_token, "sa_user_id": sa_user_id},
                )
                await self.events.log(
                    event_type=EventType.LOCK_CLAIMED,
                    entity_type="thread",
                    entity_key=client_token,
                    course_code=course_code,
                    user_id=sa_user_id,
                    payload={"sa_name": sa_name},
                )
                return LockState.from_row(client_token, row)

            current = await self.get_lock(course_code, client_token)
            if current.owned_by(sa_user_id):
                return current
            if current.is_owned:
                logger.info(
                    "Lock claim conflict",
                    extra={"client_token": client_token, "owner_id": current.owner_id},
                )
                raise owner_conflict(current)
            # Released between our insert and our read; try again

        raise ConflictError("Thread lock is changing hands, try again")

    async def release(self, course_code: str, client_token: str, sa_user_id: str) -> ReleaseOutcome:
        """
        Give up ownership.

        Only the owner's row is deleted. Releasing an unowned thread is a
        reported no-op; releasing another SA's lock raises ConflictError.
        """
        deleted = await self.store.delete(
            "thread_locks",
            {**self._key(course_code, client_token), "sa_user_id": sa_user_id},
        )
        if deleted:
            logger.info("Lock released", extra={"client_token": client_token, "sa_user_id": sa_user_id})
            await self.events.log(
                event_type=EventType.LOCK_RELEASED,
                entity_type="thread",
                entity_key=client_token,
                course_code=course_code,
                user_id=sa_user_id,
            )
            return ReleaseOutcome.RELEASED

        current = await self.get_lock(course_code, client_token)
        if current.is_owned:
            raise owner_conflict(current)
        logger.info("Release of unowned thread", extra={"client_token": client_token})
        return ReleaseOutcome.NOT_HELD

    async def ensure_can_reply(self, course_code: str, client_token: str, sa_user_id: str) -> LockState:
        """Check against the store, not local state, at the point of send."""
        lock = await self.get_lock(course_code, client_token)
        ensure_can_reply(lock, sa_user_id)
        return lock