"""
Thread-scoped models.

A thread has no row of its own: it is the (course_code, client_token) pair that
groups messages, calls, locks, reads, pins and aliases.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from classdesk.kernel.models.base import Base, generate_uuid, utcnow


class AuthorRole(str, Enum):
    """Who wrote a message, and whose read cursor is meant."""
    PARTICIPANT = "participant"
    ASSISTANT = "assistant"

    @property
    def counterpart(self) -> "AuthorRole":
        if self is AuthorRole.PARTICIPANT:
            return AuthorRole.ASSISTANT
        return AuthorRole.PARTICIPANT


class Message(Base):
    """A single message in a participant thread."""

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course_code: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("courses.code", ondelete="CASCADE"),
        nullable=False,
    )
    client_token: Mapped[str] = mapped_column(String(128), nullable=False)
    student_user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # AuthorRole
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    attachment_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attachment_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    attachment_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Snapshot of the SA at send time, not a live join
    sa_user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sa_display_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    parent_message_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("messages.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_messages_course_token_created", "course_code", "client_token", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Message {self.id} {self.role} thread={self.client_token}>"


class Call(Base):
    """A participant's request for in-person help."""

    __tablename__ = "calls"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course_code: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("courses.code", ondelete="CASCADE"),
        nullable=False,
    )
    client_token: Mapped[str] = mapped_column(String(128), nullable=False)
    student_user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    seat_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    handled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )  # terminal once set
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_calls_course_handled", "course_code", "handled_at"),
    )

    def __repr__(self) -> str:
        return f"<Call {self.id} thread={self.client_token} handled={self.handled_at is not None}>"


class ThreadLock(Base):
    """Single-owner claim of a thread by an SA. Absence means unowned."""

    __tablename__ = "thread_locks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=generate_uuid)
    course_code: Mapped[str] = mapped_column(String(64), nullable=False)
    client_token: Mapped[str] = mapped_column(String(128), nullable=False)
    sa_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    sa_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    locked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("course_code", "client_token", name="uq_thread_locks_thread"),
    )

    def __repr__(self) -> str:
        return f"<ThreadLock {self.client_token} sa={self.sa_user_id}>"


class ThreadRead(Base):
    """Latest timestamp one role has observed in a thread."""

    __tablename__ = "thread_reads"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=generate_uuid)
    course_code: Mapped[str] = mapped_column(String(64), nullable=False)
    client_token: Mapped[str] = mapped_column(String(128), nullable=False)
    reader_role: Mapped[str] = mapped_column(String(20), nullable=False)  # AuthorRole
    last_read_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "course_code", "client_token", "reader_role", name="uq_thread_reads_cursor"
        ),
    )


class ThreadPin(Base):
    """Priority marker on a thread; presence means pinned."""

    __tablename__ = "thread_pins"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=generate_uuid)
    course_code: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("courses.code", ondelete="CASCADE"),
        nullable=False,
    )
    client_token: Mapped[str] = mapped_column(String(128), nullable=False)
    pinned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("course_code", "client_token", name="uq_thread_pins_thread"),
    )


class StudentAlias(Base):
    """Sequential anonymous number shown to SAs; immutable once assigned."""

    __tablename__ = "student_aliases"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=generate_uuid)
    course_code: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("courses.code", ondelete="CASCADE"),
        nullable=False,
    )
    client_token: Mapped[str] = mapped_column(String(128), nullable=False)
    alias_number: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("course_code", "client_token", name="uq_student_aliases_thread"),
        UniqueConstraint("course_code", "alias_number", name="uq_student_aliases_number"),
    )
