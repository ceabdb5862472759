"""
Append-only audit log of coordination actions.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Index, JSON, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from classdesk.kernel.models.base import Base, generate_uuid, utcnow


class EventType(str, Enum):
    """All event types for the audit log."""

    # Course events
    COURSE_CREATED = "course.created"
    COURSE_DELETED = "course.deleted"

    # Thread events
    LOCK_CLAIMED = "thread.lock_claimed"
    LOCK_RELEASED = "thread.lock_released"
    THREAD_PINNED = "thread.pinned"
    THREAD_UNPINNED = "thread.unpinned"
    REPLY_SENT = "thread.reply_sent"

    # Call events
    CALLS_HANDLED = "call.handled"

    # Profile events
    PROFILE_UPDATED = "profile.updated"


class EventLog(Base):
    """Immutable audit record. Not cascaded on course deletion."""

    __tablename__ = "event_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=generate_uuid)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_key: Mapped[str] = mapped_column(String(255), nullable=False)
    course_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_event_log_course_created", "course_code", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<EventLog {self.event_type} {self.entity_type}:{self.entity_key}>"
