"""
Change feed over Server-Sent Events.

Remote viewers run their own merge: read the snapshot through the REST
endpoints after this stream has started, then fold each event in. A `resync`
event means events were lost and the snapshot must be read again.
"""

import asyncio
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, List, Optional, Sequence

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from classdesk.api.deps import CurrentPrincipal, StoreDep
from classdesk.engines.courses import CourseService
from classdesk.kernel.identity.principal import derive_client_token
from classdesk.kernel.store.capabilities import Subscribe
from classdesk.kernel.store.change_feed import ChangeEvent, SubscriptionClosed, SubscriptionGap
from classdesk.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()

ASSISTANT_TABLES = ("messages", "calls", "thread_locks", "thread_pins", "thread_reads", "student_aliases")
PARTICIPANT_TABLES = ("messages", "calls", "thread_reads")
KEEPALIVE_SECONDS = 15.0


class FeedEvent(BaseModel):
    """One SSE payload."""

    type: str  # INSERT | UPDATE | DELETE | resync
    table: Optional[str] = None
    row: Optional[Dict[str, Any]] = None


def _to_feed_event(event: ChangeEvent) -> FeedEvent:
    return FeedEvent(type=event.kind.value, table=event.table, row=event.row)


async def stream_changes(
    store: Subscribe,
    tables: Sequence[str],
    column: str,
    value: Any,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    keepalive: float = KEEPALIVE_SECONDS,
) -> AsyncGenerator[str, None]:
    """
    Yield SSE frames for committed changes until the client goes away.

    One reader task per subscription forwards into a single queue so frames
    keep commit order per table.
    """
    merged: asyncio.Queue = asyncio.Queue()
    subscriptions = [store.subscribe(table, column, value) for table in tables]

    async def forward(sub) -> None:
        while True:
            try:
                event = await sub.get()
            except SubscriptionGap:
                sub.reset()
                await merged.put(FeedEvent(type="resync", table=sub.table))
                continue
            except SubscriptionClosed:
                return
            await merged.put(_to_feed_event(event))

    readers: List[asyncio.Task] = [asyncio.create_task(forward(sub)) for sub in subscriptions]
    try:
        yield ": connected\n\n"
        while True:
            try:
                item = await asyncio.wait_for(merged.get(), keepalive)
            except asyncio.TimeoutError:
                if is_disconnected is not None and await is_disconnected():
                    return
                yield ": keepalive\n\n"
                continue
            yield f"event: {item.type}\ndata: {item.model_dump_json()}\n\n"
    finally:
        for sub in subscriptions:
            sub.close()
        for task in readers:
            task.cancel()
        logger.debug("Feed stream closed", extra={"filter_column": column})


@router.get("/{code}/feed")
async def course_feed(code: str, request: Request, principal: CurrentPrincipal, store: StoreDep):
    """
    SAs receive every change in the course; participants only their own thread.
    """
    await CourseService(store).get_course(code)
    if principal.is_assistant:
        tables, column, value = ASSISTANT_TABLES, "course_code", code
    else:
        tables, column, value = PARTICIPANT_TABLES, "client_token", derive_client_token(principal.user_id, code)

    return StreamingResponse(
        stream_changes(store, tables, column, value, is_disconnected=request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
