"""
Participant endpoints: the caller's own thread in a course.

The thread is addressed by the course code alone; the client token is derived
from the caller's identity, so a participant can never reach another thread.
"""

from fastapi import APIRouter, status

from classdesk.api.deps import BlobsDep, CurrentPrincipal, StoreDep
from classdesk.api.v1.threads import message_response, to_attachment
from classdesk.engines.coordination.viewers import ParticipantDesk, ThreadMessage
from classdesk.engines.courses import CourseService
from classdesk.schemas.thread import (
    CallCreate,
    CallResponse,
    MessageCreate,
    MessageResponse,
    ThreadResponse,
)

router = APIRouter()


@router.get("/{code}/me", response_model=ThreadResponse)
async def get_my_thread(code: str, principal: CurrentPrincipal, store: StoreDep, blobs: BlobsDep):
    """
    The caller's thread. Fetching it marks everything up to the newest
    message as read; `unread` is what was unread before this fetch.
    """
    await CourseService(store).get_course(code)
    async with ParticipantDesk(store, blobs, code, principal) as desk:
        messages = desk.thread()
        response = ThreadResponse(
            client_token=desk.client_token,
            messages=[message_response(m) for m in messages],
            counterpart_read_at=desk.assistant_read_at,
            unread=desk.unread_before_open,
            pending_calls=desk.pending_calls(),
        )
    return response


@router.post("/{code}/me/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    code: str,
    data: MessageCreate,
    principal: CurrentPrincipal,
    store: StoreDep,
    blobs: BlobsDep,
):
    """Post a question to the caller's thread."""
    await CourseService(store).get_course(code)
    async with ParticipantDesk(store, blobs, code, principal) as desk:
        row = await desk.send(
            body=data.body,
            attachment=to_attachment(data),
            parent_message_id=data.parent_message_id,
        )
    return message_response(ThreadMessage(row=row, mine=True))


@router.post("/{code}/me/calls", response_model=CallResponse, status_code=status.HTTP_201_CREATED)
async def place_call(code: str, data: CallCreate, principal: CurrentPrincipal, store: StoreDep, blobs: BlobsDep):
    """Call an SA to the caller's seat."""
    await CourseService(store).get_course(code)
    async with ParticipantDesk(store, blobs, code, principal) as desk:
        row = await desk.call(data.seat_text)
    return CallResponse(**{k: v for k, v in row.items() if k in CallResponse.model_fields})
