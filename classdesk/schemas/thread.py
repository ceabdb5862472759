"""
Thread schemas: messages, calls, locks, pins, cursors and the SA board.
"""

import base64
import binascii
from datetime import datetime
from typing import List, Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator


class AttachmentUpload(BaseModel):
    """A file sent inline as base64."""

    filename: str = Field(..., min_length=1, max_length=255)
    content_type: Optional[str] = Field(None, max_length=255)
    data_base64: str

    @field_validator("data_base64")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("data_base64 is not valid base64")
        return v

    def decoded(self) -> bytes:
        return base64.b64decode(self.data_base64)


class MessageCreate(BaseModel):
    """Body text, an attachment, or both."""

    body: Optional[str] = Field(None, max_length=5000)
    attachment: Optional[AttachmentUpload] = None
    parent_message_id: Optional[int] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    client_token: str
    role: str
    body: Optional[str] = None
    attachment_url: Optional[str] = None
    attachment_type: Optional[str] = None
    attachment_name: Optional[str] = None
    sa_display_name: Optional[str] = None
    parent_message_id: Optional[int] = None
    created_at: datetime
    sender: str = ""
    seen_by_counterpart: bool = False


class CallCreate(BaseModel):
    seat_text: Optional[str] = Field(None, max_length=200)


class CallResponse(BaseModel):
    id: int
    client_token: str
    seat_text: Optional[str] = None
    handled_at: Optional[datetime] = None
    created_at: datetime


class CallsHandledResponse(BaseModel):
    client_token: str
    handled: int


class CallGroupResponse(BaseModel):
    count: int
    latest_created_at: Optional[datetime] = None
    seat_notes: List[str] = []


class LockResponse(BaseModel):
    client_token: str
    owned: bool
    owner_id: Optional[str] = None
    owner_name: Optional[str] = None
    locked_at: Optional[datetime] = None


class ReleaseResponse(BaseModel):
    client_token: str
    outcome: str


class PinResponse(BaseModel):
    client_token: str
    pinned: bool
    pinned_at: Optional[datetime] = None


class ReadMark(BaseModel):
    """Explicit cursor advance; defaults to now. Must carry a UTC offset."""

    at: Optional[AwareDatetime] = None


class ReadResponse(BaseModel):
    client_token: str
    reader_role: str
    last_read_at: datetime


class ThreadSummaryResponse(BaseModel):
    client_token: str
    alias: Optional[int] = None
    pinned: bool = False
    pinned_at: Optional[datetime] = None
    lock: LockResponse
    unread: int = 0
    last_message_at: Optional[datetime] = None
    preview: str = ""
    calls: Optional[CallGroupResponse] = None
    participant_read_at: Optional[datetime] = None


class BoardResponse(BaseModel):
    """SA thread list for a course."""

    course_code: str
    threads: List[ThreadSummaryResponse]


class ThreadResponse(BaseModel):
    client_token: str
    messages: List[MessageResponse]
    lock: Optional[LockResponse] = None
    counterpart_read_at: Optional[datetime] = None
    unread: int = 0
    pending_calls: int = 0
