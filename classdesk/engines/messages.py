"""
Message composition for both sides of a thread.

A message needs body text or an attachment. Attachments are uploaded before
the message row is written, so a failed upload writes nothing.
"""

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from classdesk.engines.coordination.thread_lock import ThreadLockManager
from classdesk.kernel.errors import NotFoundError, ValidationError
from classdesk.kernel.events.event_store import EventStore
from classdesk.kernel.models.event_log import EventType
from classdesk.kernel.models.thread import AuthorRole
from classdesk.kernel.storage.blob import BlobStore, build_attachment_path
from classdesk.kernel.store.capabilities import Row, Store
from classdesk.logging_config import get_logger

logger = get_logger(__name__)

PREVIEW_LENGTH = 40
PARTICIPANT_LABEL = "Student (anonymous)"
ASSISTANT_LABEL = "Instructor / SA"
MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024


@dataclass
class Attachment:
    filename: str
    data: bytes
    content_type: Optional[str] = None


def message_preview(message: Mapping[str, Any]) -> str:
    """First line of the body, cut at 40 characters; attachments fall back to their name."""
    body = message.get("body") or ""
    if body.strip():
        first_line = body.split("\n")[0]
        if len(first_line) > PREVIEW_LENGTH:
            return first_line[:PREVIEW_LENGTH] + "…"
        return first_line
    if message.get("attachment_name"):
        return f"📎 {message['attachment_name']}"
    if message.get("attachment_url"):
        return "📎 Attachment"
    return ""


def sender_label(message: Mapping[str, Any]) -> str:
    if message.get("role") == AuthorRole.ASSISTANT.value:
        return message.get("sa_display_name") or ASSISTANT_LABEL
    return PARTICIPANT_LABEL


class MessageService:
    """Writes messages; every send is checked against the store at the point of send."""

    def __init__(self, store: Store, blobs: BlobStore, locks: Optional[ThreadLockManager] = None):
        self.store = store
        self.blobs = blobs
        self.locks = locks or ThreadLockManager(store)
        self.events = EventStore(store)

    async def thread_messages(self, course_code: str, client_token: str) -> List[Row]:
        return await self.store.select(
            "messages",
            {"course_code": course_code, "client_token": client_token},
            order_by=("created_at", "id"),
        )

    async def _check_reply_target(self, course_code: str, client_token: str, parent_id: int) -> None:
        rows = await self.store.select(
            "messages",
            {"id": parent_id, "course_code": course_code, "client_token": client_token},
        )
        if not rows:
            raise NotFoundError(f"Message {parent_id} is not part of this thread")

    async def _upload(
        self,
        course_code: str,
        client_token: str,
        attachment: Optional[Attachment],
    ) -> Mapping[str, Optional[str]]:
        if attachment is None:
            return {"attachment_url": None, "attachment_type": None, "attachment_name": None}
        if len(attachment.data) > MAX_ATTACHMENT_BYTES:
            raise ValidationError("Attachment is too large", field="attachment")
        path = build_attachment_path(course_code, client_token, attachment.filename)
        url = await self.blobs.upload(path, attachment.data, attachment.content_type)
        return {
            "attachment_url": url,
            "attachment_type": attachment.content_type or None,
            "attachment_name": attachment.filename,
        }

    def _validate(self, body: Optional[str], attachment: Optional[Attachment]) -> str:
        text = (body or "").strip()
        if not text and attachment is None:
            raise ValidationError("Enter a message or attach a file", field="body")
        return text

    async def send_participant_message(
        self,
        course_code: str,
        client_token: str,
        student_user_id: str,
        body: Optional[str] = None,
        attachment: Optional[Attachment] = None,
        parent_message_id: Optional[int] = None,
    ) -> Row:
        text = self._validate(body, attachment)
        if parent_message_id is not None:
            await self._check_reply_target(course_code, client_token, parent_message_id)
        files = await self._upload(course_code, client_token, attachment)
        row = await self.store.insert(
            "messages",
            {
                "course_code": course_code,
                "client_token": client_token,
                "student_user_id": student_user_id,
                "role": AuthorRole.PARTICIPANT.value,
                "body": text,
                "parent_message_id": parent_message_id,
                **files,
            },
        )
        logger.info("Participant message sent", extra={"client_token": client_token, "message_id": row["id"]})
        return row

    async def _thread_participant(self, course_code: str, client_token: str) -> Optional[str]:
        """User id on the earliest participant message of the thread that has one."""
        rows = await self.store.select(
            "messages",
            {"course_code": course_code, "client_token": client_token, "role": AuthorRole.PARTICIPANT.value},
            order_by=("created_at", "id"),
        )
        for row in rows:
            if row.get("student_user_id"):
                return row["student_user_id"]
        return None

    async def send_reply(
        self,
        course_code: str,
        client_token: str,
        sa_user_id: str,
        sa_display_name: str,
        body: Optional[str] = None,
        attachment: Optional[Attachment] = None,
        parent_message_id: Optional[int] = None,
    ) -> Row:
        """
        Send an SA reply.

        Rejected with ConflictError when another SA owns the thread, whatever
        the caller's local view shows. The SA's name is stored with the message
        as it is now, so later renames leave history alone.
        """
        text = self._validate(body, attachment)
        await self.locks.ensure_can_reply(course_code, client_token, sa_user_id)
        if parent_message_id is not None:
            await self._check_reply_target(course_code, client_token, parent_message_id)
        student_user_id = await self._thread_participant(course_code, client_token)
        files = await self._upload(course_code, client_token, attachment)
        row = await self.store.insert(
            "messages",
            {
                "course_code": course_code,
                "client_token": client_token,
                "student_user_id": student_user_id,
                "role": AuthorRole.ASSISTANT.value,
                "body": text,
                "sa_user_id": sa_user_id,
                "sa_display_name": sa_display_name,
                "parent_message_id": parent_message_id,
                **files,
            },
        )
        logger.info("Reply sent", extra={"client_token": client_token, "message_id": row["id"]})
        await self.events.log(
            event_type=EventType.REPLY_SENT,
            entity_type="message",
            entity_key=str(row["id"]),
            course_code=course_code,
            user_id=sa_user_id,
            payload={"client_token": client_token},
        )
        return row
