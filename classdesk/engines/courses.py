"""
Course management: create, list, join, delete.
"""

from typing import List, Optional

from classdesk.kernel.errors import ConflictError, NotFoundError, ValidationError
from classdesk.kernel.events.event_store import EventStore
from classdesk.kernel.identity.password import hash_password, verify_password
from classdesk.kernel.identity.principal import Principal, derive_client_token
from classdesk.kernel.models.event_log import EventType
from classdesk.kernel.store.capabilities import Row, Store
from classdesk.logging_config import get_logger

logger = get_logger(__name__)

# Thread-scoped tables with no cascading relationship to the course row
UNLINKED_THREAD_TABLES = ("thread_locks", "thread_reads")


def _public(course: Row) -> Row:
    return {k: v for k, v in course.items() if k != "password_hash"}


class CourseService:
    """Courses as seen by SAs and joining participants."""

    def __init__(self, store: Store):
        self.store = store
        self.events = EventStore(store)

    async def create_course(
        self,
        code: str,
        title: str,
        password: str,
        created_by: str,
        time_slot: Optional[str] = None,
        room: Optional[str] = None,
    ) -> Row:
        code = (code or "").strip()
        title = (title or "").strip()
        if not code:
            raise ValidationError("Course code is required", field="code")
        if not title:
            raise ValidationError("Course title is required", field="title")
        if not password:
            raise ValidationError("Course password is required", field="password")

        row = await self.store.insert_if_absent(
            "courses",
            {
                "code": code,
                "title": title,
                "time_slot": (time_slot or "").strip() or None,
                "room": (room or "").strip() or None,
                "password_hash": hash_password(password),
                "created_by": created_by,
            },
        )
        if row is None:
            raise ConflictError(f"Course code {code} is already in use")

        logger.info("Course created", extra={"course_code": code})
        await self.events.log(
            event_type=EventType.COURSE_CREATED,
            entity_type="course",
            entity_key=code,
            course_code=code,
            user_id=created_by,
            payload={"title": title},
        )
        return _public(row)

    async def list_courses(self) -> List[Row]:
        rows = await self.store.select("courses", order_by=("-created_at", "code"))
        return [_public(r) for r in rows]

    async def get_course(self, code: str) -> Row:
        rows = await self.store.select("courses", {"code": code})
        if not rows:
            raise NotFoundError(f"Course {code} not found")
        return _public(rows[0])

    async def join_course(self, code: str, password: str, principal: Principal) -> Row:
        """
        Check the code + password pair and return the course with the
        participant's client token. A wrong pair does not say which half was wrong.
        """
        rows = await self.store.select("courses", {"code": (code or "").strip()})
        if not rows or not verify_password(password or "", rows[0]["password_hash"]):
            raise NotFoundError("Course code or password is incorrect")
        course = _public(rows[0])
        course["client_token"] = derive_client_token(principal.user_id, course["code"])
        logger.info("Participant joined", extra={"course_code": course["code"]})
        return course

    async def delete_course(self, code: str, user_id: Optional[str] = None) -> int:
        """
        Delete a course and everything scoped to it.

        Locks and reads are removed explicitly first; the other thread tables
        cascade from the course row. Returns the number of explicitly deleted rows.
        """
        await self.get_course(code)
        removed = 0
        for table in UNLINKED_THREAD_TABLES:
            removed += len(await self.store.delete(table, {"course_code": code}))
        await self.store.delete("courses", {"code": code})

        logger.info("Course deleted", extra={"course_code": code, "unlinked_rows": removed})
        await self.events.log(
            event_type=EventType.COURSE_DELETED,
            entity_type="course",
            entity_key=code,
            course_code=code,
            user_id=user_id,
        )
        return removed
