"""
Kernel Data Models

SQLAlchemy models for courses and the thread-scoped coordination rows.
"""

from classdesk.kernel.models.base import Base, generate_uuid, utcnow
from classdesk.kernel.models.course import Course, SaProfile
from classdesk.kernel.models.thread import (
    AuthorRole,
    Message,
    Call,
    ThreadLock,
    ThreadRead,
    ThreadPin,
    StudentAlias,
)
from classdesk.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "generate_uuid",
    "utcnow",
    # Course
    "Course",
    "SaProfile",
    # Thread
    "AuthorRole",
    "Message",
    "Call",
    "ThreadLock",
    "ThreadRead",
    "ThreadPin",
    "StudentAlias",
    # Event Log
    "EventLog",
    "EventType",
]
