"""
Help-call queue.

Raw call rows are grouped per thread into one entry with the number of
unhandled calls, the latest call time and the distinct seat hints. Marking a
thread handled stamps every unhandled call of that thread in one update.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from classdesk.kernel.errors import ValidationError
from classdesk.kernel.events.event_store import EventStore
from classdesk.kernel.models.base import utcnow
from classdesk.kernel.models.event_log import EventType
from classdesk.kernel.store.capabilities import Row, Store
from classdesk.logging_config import get_logger

logger = get_logger(__name__)

MAX_SEAT_TEXT = 200


@dataclass
class CallGroup:
    client_token: str
    count: int = 0
    latest_created_at: Optional[datetime] = None
    seat_notes: List[str] = field(default_factory=list)


def is_unhandled(call: Mapping[str, Any]) -> bool:
    return call.get("handled_at") is None


def group_calls(calls: Iterable[Mapping[str, Any]]) -> List[CallGroup]:
    """
    Group unhandled calls by thread, most recently called thread first.

    Seat hints keep first-seen order and drop repeats.
    """
    groups: Dict[str, CallGroup] = {}
    for call in calls:
        if not is_unhandled(call):
            continue
        token = call["client_token"]
        group = groups.setdefault(token, CallGroup(client_token=token))
        group.count += 1
        created_at = call.get("created_at")
        if created_at is not None and (
            group.latest_created_at is None or created_at > group.latest_created_at
        ):
            group.latest_created_at = created_at
        seat = (call.get("seat_text") or "").strip()
        if seat and seat not in group.seat_notes:
            group.seat_notes.append(seat)

    return sorted(
        groups.values(),
        key=lambda g: (g.latest_created_at is not None, g.latest_created_at or datetime.min),
        reverse=True,
    )


class CallQueue:
    """Place and resolve help calls."""

    def __init__(self, store: Store):
        self.store = store
        self.events = EventStore(store)

    async def place_call(
        self,
        course_code: str,
        client_token: str,
        seat_text: Optional[str] = None,
        student_user_id: Optional[str] = None,
    ) -> Row:
        seat = (seat_text or "").strip() or None
        if seat and len(seat) > MAX_SEAT_TEXT:
            raise ValidationError(f"Seat note is limited to {MAX_SEAT_TEXT} characters", field="seat_text")
        row = await self.store.insert(
            "calls",
            {
                "course_code": course_code,
                "client_token": client_token,
                "student_user_id": student_user_id,
                "seat_text": seat,
            },
        )
        logger.info("Call placed", extra={"client_token": client_token})
        return row

    async def unhandled(self, course_code: str) -> List[Row]:
        return await self.store.select(
            "calls",
            {"course_code": course_code, "handled_at": None},
            order_by=("created_at", "id"),
        )

    async def queue(self, course_code: str) -> List[CallGroup]:
        return group_calls(await self.unhandled(course_code))

    async def mark_handled(
        self,
        course_code: str,
        client_token: str,
        sa_user_id: Optional[str] = None,
    ) -> List[Row]:
        """
        Stamp handled_at on every currently unhandled call of the thread.

        Already-handled calls are untouched, so handled_at is never rewritten.
        """
        handled = await self.store.update(
            "calls",
            {"handled_at": utcnow()},
            {"course_code": course_code, "client_token": client_token, "handled_at": None},
        )
        logger.info(
            "Calls handled",
            extra={"client_token": client_token, "count": len(handled)},
        )
        if handled:
            await self.events.log(
                event_type=EventType.CALLS_HANDLED,
                entity_type="thread",
                entity_key=client_token,
                course_code=course_code,
                user_id=sa_user_id,
                payload={"call_ids": [row["id"] for row in handled]},
            )
        return handled
