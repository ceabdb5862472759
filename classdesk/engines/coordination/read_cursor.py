"""
Per-role read cursors.

One row per (course, thread, role) holding the latest timestamp that role has
observed. The write is a monotonic upsert, so a late or replayed MarkRead can
never move a cursor backwards.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

from classdesk.kernel.errors import ValidationError
from classdesk.kernel.models.base import utcnow
from classdesk.kernel.models.thread import AuthorRole
from classdesk.kernel.store.capabilities import Store
from classdesk.logging_config import get_logger

logger = get_logger(__name__)

CURSOR_KEYS = ("course_code", "client_token", "reader_role")


def is_seen(message: Mapping[str, Any], cursor: Optional[datetime]) -> bool:
    """A message is seen by a role iff that role's cursor is at or past it."""
    created_at = message.get("created_at")
    return cursor is not None and created_at is not None and cursor >= created_at


def unread_count(
    messages: Iterable[Mapping[str, Any]],
    viewer_role: AuthorRole,
    cursor: Optional[datetime],
) -> int:
    """Counterpart-authored messages strictly newer than the viewer's cursor."""
    counterpart = viewer_role.counterpart.value
    count = 0
    for m in messages:
        if m.get("role") != counterpart:
            continue
        if cursor is None or (m.get("created_at") is not None and m["created_at"] > cursor):
            count += 1
    return count


class ReadCursorTracker:
    """Reads and advances thread read cursors."""

    def __init__(self, store: Store):
        self.store = store

    async def mark_read(
        self,
        course_code: str,
        client_token: str,
        role: AuthorRole,
        at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Set the cursor to max(current, at) and return the stored row.

        `at` defaults to now, which is what an SA opening a thread records.
        A naive `at` is rejected; cursors are compared in UTC.
        """
        if at is None:
            at = utcnow()
        elif at.tzinfo is None:
            raise ValidationError("Read time must carry a UTC offset", field="at")
        else:
            at = at.astimezone(timezone.utc)
        row = await self.store.upsert(
            "thread_reads",
            {
                "course_code": course_code,
                "client_token": client_token,
                "reader_role": AuthorRole(role).value,
                "last_read_at": at,
            },
            keys=CURSOR_KEYS,
            monotonic="last_read_at",
        )
        logger.debug(
            "Cursor advanced",
            extra={"client_token": client_token, "reader_role": row["reader_role"]},
        )
        return row

    async def get_cursor(
        self,
        course_code: str,
        client_token: str,
        role: AuthorRole,
    ) -> Optional[datetime]:
        rows = await self.store.select(
            "thread_reads",
            {
                "course_code": course_code,
                "client_token": client_token,
                "reader_role": AuthorRole(role).value,
            },
        )
        return rows[0]["last_read_at"] if rows else None

    async def cursors_for_role(self, course_code: str, role: AuthorRole) -> Dict[str, datetime]:
        """client_token → cursor for every thread of the course."""
        rows = await self.store.select(
            "thread_reads",
            {"course_code": course_code, "reader_role": AuthorRole(role).value},
        )
        return {row["client_token"]: row["last_read_at"] for row in rows}
