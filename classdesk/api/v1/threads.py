"""
SA thread endpoints: the board, thread reads, replies, locks, pins, cursors
and call resolution.

Every action is checked against the store, not against what the caller last
saw, so two SAs acting on the same thread get consistent answers.
"""

from typing import Optional

from fastapi import APIRouter, status

from classdesk.api.deps import AssistantPrincipal, BlobsDep, StoreDep
from classdesk.engines.coordination.call_queue import CallGroup, CallQueue
from classdesk.engines.coordination.read_cursor import ReadCursorTracker
from classdesk.engines.coordination.thread_lock import LockState, ThreadLockManager
from classdesk.engines.coordination.thread_pins import ThreadPinRegistry
from classdesk.engines.coordination.viewers import AssistantConsole, ThreadMessage
from classdesk.engines.courses import CourseService
from classdesk.engines.messages import Attachment, sender_label
from classdesk.engines.profiles import ProfileService
from classdesk.kernel.models.thread import AuthorRole
from classdesk.schemas.common import ErrorResponse
from classdesk.schemas.thread import (
    BoardResponse,
    CallGroupResponse,
    CallsHandledResponse,
    LockResponse,
    MessageCreate,
    MessageResponse,
    PinResponse,
    ReadMark,
    ReadResponse,
    ReleaseResponse,
    ThreadResponse,
    ThreadSummaryResponse,
)

router = APIRouter()


def lock_response(lock: LockState) -> LockResponse:
    return LockResponse(
        client_token=lock.client_token,
        owned=lock.is_owned,
        owner_id=lock.owner_id,
        owner_name=lock.owner_name,
        locked_at=lock.locked_at,
    )


def message_response(message: ThreadMessage) -> MessageResponse:
    return MessageResponse(
        **{k: v for k, v in message.row.items() if k in MessageResponse.model_fields},
        sender=sender_label(message.row),
        seen_by_counterpart=message.seen_by_counterpart,
    )


def call_group_response(group: Optional[CallGroup]) -> Optional[CallGroupResponse]:
    if group is None:
        return None
    return CallGroupResponse(
        count=group.count,
        latest_created_at=group.latest_created_at,
        seat_notes=group.seat_notes,
    )


def to_attachment(data: MessageCreate) -> Optional[Attachment]:
    if data.attachment is None:
        return None
    return Attachment(
        filename=data.attachment.filename,
        data=data.attachment.decoded(),
        content_type=data.attachment.content_type,
    )


@router.get("/{code}/board", response_model=BoardResponse)
async def get_board(code: str, principal: AssistantPrincipal, store: StoreDep, blobs: BlobsDep):
    """Thread list for the course: pinned first, then by latest message."""
    await CourseService(store).get_course(code)
    async with AssistantConsole(store, blobs, code, principal) as console:
        threads = console.threads()
    return BoardResponse(
        course_code=code,
        threads=[
            ThreadSummaryResponse(
                client_token=t.client_token,
                alias=t.alias,
                pinned=t.pinned,
                pinned_at=t.pinned_at,
                lock=lock_response(t.lock),
                unread=t.unread,
                last_message_at=t.last_message_at,
                preview=t.preview,
                calls=call_group_response(t.calls),
                participant_read_at=t.participant_read_at,
            )
            for t in threads
        ],
    )


@router.get("/{code}/threads/{token}/messages", response_model=ThreadResponse)
async def get_thread(
    code: str,
    token: str,
    principal: AssistantPrincipal,
    store: StoreDep,
    blobs: BlobsDep,
):
    """Open a thread. Opening it marks it read for SAs."""
    await CourseService(store).get_course(code)
    async with AssistantConsole(store, blobs, code, principal) as console:
        messages = await console.select_thread(token)
        lock = console.lock_state(token)
        calls = next((g for g in console.call_queue() if g.client_token == token), None)
        participant_read_at = console.participant_read_at(token)
    return ThreadResponse(
        client_token=token,
        messages=[message_response(m) for m in messages],
        lock=lock_response(lock),
        counterpart_read_at=participant_read_at,
        pending_calls=calls.count if calls else 0,
    )


@router.post(
    "/{code}/threads/{token}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def send_reply(
    code: str,
    token: str,
    data: MessageCreate,
    principal: AssistantPrincipal,
    store: StoreDep,
    blobs: BlobsDep,
):
    """Reply in a thread. Rejected with 409 while another SA owns it."""
    async with AssistantConsole(store, blobs, code, principal) as console:
        row = await console.reply(
            token,
            body=data.body,
            attachment=to_attachment(data),
            parent_message_id=data.parent_message_id,
        )
    return message_response(ThreadMessage(row=row, mine=True))


@router.put(
    "/{code}/threads/{token}/lock",
    response_model=LockResponse,
    responses={409: {"model": ErrorResponse}},
)
async def claim_thread(code: str, token: str, principal: AssistantPrincipal, store: StoreDep):
    """Claim a thread. Re-claiming your own thread is a no-op; another owner is a 409."""
    await CourseService(store).get_course(code)
    name = await ProfileService(store).effective_name(principal)
    lock = await ThreadLockManager(store).claim(code, token, principal.user_id, name)
    return lock_response(lock)


@router.delete("/{code}/threads/{token}/lock", response_model=ReleaseResponse)
async def release_thread(code: str, token: str, principal: AssistantPrincipal, store: StoreDep):
    """Release your claim. Releasing an unowned thread reports `not_held`."""
    outcome = await ThreadLockManager(store).release(code, token, principal.user_id)
    return ReleaseResponse(client_token=token, outcome=outcome.value)


@router.put("/{code}/threads/{token}/pin", response_model=PinResponse)
async def pin_thread(code: str, token: str, principal: AssistantPrincipal, store: StoreDep):
    row = await ThreadPinRegistry(store).pin(code, token, principal.user_id)
    return PinResponse(client_token=token, pinned=True, pinned_at=row["pinned_at"])


@router.delete("/{code}/threads/{token}/pin", response_model=PinResponse)
async def unpin_thread(code: str, token: str, principal: AssistantPrincipal, store: StoreDep):
    await ThreadPinRegistry(store).unpin(code, token, principal.user_id)
    return PinResponse(client_token=token, pinned=False)


@router.put("/{code}/threads/{token}/read", response_model=ReadResponse)
async def mark_read(
    code: str,
    token: str,
    principal: AssistantPrincipal,
    store: StoreDep,
    data: Optional[ReadMark] = None,
):
    """Advance the SA read cursor. The stored cursor never moves back."""
    await CourseService(store).get_course(code)
    at = data.at if data else None
    row = await ReadCursorTracker(store).mark_read(code, token, AuthorRole.ASSISTANT, at=at)
    return ReadResponse(
        client_token=token,
        reader_role=row["reader_role"],
        last_read_at=row["last_read_at"],
    )


@router.post("/{code}/threads/{token}/calls/handled", response_model=CallsHandledResponse)
async def mark_calls_handled(code: str, token: str, principal: AssistantPrincipal, store: StoreDep):
    """Mark every unhandled call of the thread handled."""
    handled = await CallQueue(store).mark_handled(code, token, principal.user_id)
    return CallsHandledResponse(client_token=token, handled=len(handled))
