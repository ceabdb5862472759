"""
Event Store service for append-only audit logging.

Audit rows go through the same store capability as the coordination rows.
They are written after the primary write; a failed append is logged and
never undoes the action it describes.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from classdesk.kernel.errors import ClassDeskError
from classdesk.kernel.models.event_log import EventType
from classdesk.kernel.store.capabilities import ConditionalInsert, SnapshotRead
from classdesk.logging_config import get_logger

logger = get_logger(__name__)


class EventStore:
    """
    Service for appending to and reading the audit log.

    Usage:
        events = EventStore(store)
        await events.log(
            event_type=EventType.LOCK_CLAIMED,
            entity_type="thread",
            entity_key=client_token,
            course_code=course_code,
            user_id=sa_user_id,
            payload={"sa_name": sa_name},
        )
    """

    def __init__(self, store: ConditionalInsert):
        self.store = store

    async def log(
        self,
        event_type: EventType,
        entity_type: str,
        entity_key: str,
        course_code: Optional[str] = None,
        user_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Append one audit row; returns None if the append failed."""
        try:
            return await self.store.insert(
                "event_log",
                {
                    "event_type": event_type.value,
                    "entity_type": entity_type,
                    "entity_key": entity_key,
                    "course_code": course_code,
                    "user_id": user_id,
                    "payload": self._serialize_payload(payload or {}),
                },
            )
        except ClassDeskError as exc:
            logger.warning(
                "Audit append failed",
                extra={"event_type": event_type.value, "entity_key": entity_key, "error": exc.message},
            )
            return None

    async def get_course_activity(self, course_code: str, limit: int = 100) -> List[Dict[str, Any]]:
        """Audit rows for a course, newest first."""
        if not isinstance(self.store, SnapshotRead):
            raise TypeError("Store does not support snapshot reads")
        rows = await self.store.select(
            "event_log", {"course_code": course_code}, order_by=("-created_at",)
        )
        return rows[:limit]

    def _serialize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Convert payload values to JSON-serializable types."""
        result = {}
        for key, value in payload.items():
            if isinstance(value, uuid.UUID):
                result[key] = str(value)
            elif isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, Enum):
                result[key] = value.value
            elif isinstance(value, dict):
                result[key] = self._serialize_payload(value)
            elif isinstance(value, (list, tuple)):
                result[key] = [
                    self._serialize_payload(v) if isinstance(v, dict)
                    else str(v) if isinstance(v, uuid.UUID)
                    else v.isoformat() if isinstance(v, datetime)
                    else v
                    for v in value
                ]
            else:
                result[key] = value
        return result
