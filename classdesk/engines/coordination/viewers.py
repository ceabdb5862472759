"""
Viewer sessions.

A viewer is one open page: an SA console over a whole course, or a
participant's desk over their own thread. Each holds a LiveView that merges
the snapshot with the change feed, performs its actions against the store,
and must be closed when the viewer goes away so its subscriptions do not leak.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from classdesk.engines.coordination.alias_allocator import AliasAllocator, unique_in_order
from classdesk.engines.coordination.call_queue import CallGroup, CallQueue, group_calls
from classdesk.engines.coordination.live_merge import (
    ALIASES,
    LOCKS,
    MESSAGES,
    PINS,
    READS,
    UNHANDLED_CALLS,
    LiveView,
)
from classdesk.engines.coordination.read_cursor import ReadCursorTracker, is_seen, unread_count
from classdesk.engines.coordination.thread_lock import LockState, ReleaseOutcome, ThreadLockManager
from classdesk.engines.coordination.thread_pins import ThreadPinRegistry, order_threads
from classdesk.engines.messages import Attachment, MessageService, message_preview
from classdesk.engines.profiles import ProfileService
from classdesk.kernel.errors import NotFoundError, PermissionDeniedError
from classdesk.kernel.identity.principal import Principal, derive_client_token
from classdesk.kernel.models.thread import AuthorRole
from classdesk.kernel.storage.blob import BlobStore
from classdesk.kernel.store.capabilities import Row, Store
from classdesk.kernel.store.change_feed import ChangeKind
from classdesk.logging_config import course_code_var, get_logger

logger = get_logger(__name__)


@dataclass
class ThreadSummary:
    """One row of the SA thread list."""

    client_token: str
    alias: Optional[int] = None
    pinned_at: Optional[datetime] = None
    lock: Optional[LockState] = None
    unread: int = 0
    last_message: Optional[Row] = None
    preview: str = ""
    calls: Optional[CallGroup] = None
    participant_read_at: Optional[datetime] = None

    @property
    def pinned(self) -> bool:
        return self.pinned_at is not None

    @property
    def last_message_at(self) -> Optional[datetime]:
        return self.last_message["created_at"] if self.last_message else None


@dataclass
class ThreadMessage:
    """A message with its read marker for the viewer's own side."""

    row: Row
    mine: bool
    seen_by_counterpart: bool = False
    reply_to: Optional[Row] = field(default=None, repr=False)


class _Viewer(ABC):
    view: Optional[LiveView] = None

    def _live(self) -> LiveView:
        if self.view is None or self.view.closed:
            raise NotFoundError("Viewer is not open")
        return self.view

    async def refresh(self) -> int:
        return await self._live().pump()

    def close(self) -> None:
        if self.view is not None:
            self.view.close()
            logger.debug("Viewer closed")

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()

    @abstractmethod
    async def open(self):
        """Subscribe and load the initial view."""


def _with_reply_targets(rows: List[Row], role: AuthorRole, cursor: Optional[datetime]) -> List[ThreadMessage]:
    by_id = {r["id"]: r for r in rows}
    out = []
    for row in rows:
        mine = row.get("role") == role.value
        out.append(
            ThreadMessage(
                row=row,
                mine=mine,
                seen_by_counterpart=mine and is_seen(row, cursor),
                reply_to=by_id.get(row.get("parent_message_id")),
            )
        )
    return out


class AssistantConsole(_Viewer):
    """Course-wide view for one SA."""

    def __init__(self, store: Store, blobs: BlobStore, course_code: str, principal: Principal):
        if not principal.is_assistant:
            raise PermissionDeniedError("Only SAs can open the console")
        self.store = store
        self.course_code = course_code
        self.principal = principal
        self.locks = ThreadLockManager(store)
        self.cursors = ReadCursorTracker(store)
        self.calls = CallQueue(store)
        self.pins = ThreadPinRegistry(store)
        self.aliases = AliasAllocator(store)
        self.profiles = ProfileService(store)
        self.messages = MessageService(store, blobs, self.locks)
        self.selected: Optional[str] = None
        self.view = None

    async def open(self) -> "AssistantConsole":
        course_code_var.set(self.course_code)
        self.view = await LiveView(
            self.store,
            {"course_code": self.course_code},
            [MESSAGES, UNHANDLED_CALLS, LOCKS, PINS, ALIASES, READS],
        ).open()
        await self._sync_aliases()
        logger.info("Console opened", extra={"sa_user_id": self.principal.user_id})
        return self

    async def refresh(self) -> int:
        changed = await self._live().pump()
        await self._sync_aliases()
        return changed

    def active_tokens(self) -> List[str]:
        """Thread tokens in order of first appearance across messages and calls."""
        view = self._live()
        rows = view["messages"].rows() + view["calls"].rows()
        rows.sort(key=lambda r: (r["created_at"], r["id"]))
        return unique_in_order(r["client_token"] for r in rows)

    async def _sync_aliases(self) -> None:
        view = self._live()
        tokens = self.active_tokens()
        if all(t in view["student_aliases"] for t in tokens):
            return
        await self.aliases.ensure_aliases(self.course_code, tokens)
        await view.pump()

    def alias_map(self) -> Dict[str, int]:
        return {
            token: row["alias_number"]
            for token, row in self._live()["student_aliases"].by_key().items()
        }

    def call_queue(self) -> List[CallGroup]:
        return group_calls(self._live()["calls"].rows())

    def _cursor(self, token: str, role: AuthorRole) -> Optional[datetime]:
        row = self._live()["thread_reads"].get((token, role.value))
        return row["last_read_at"] if row else None

    def threads(self) -> List[ThreadSummary]:
        """Thread list: pinned first, then by latest message."""
        view = self._live()
        aliases = self.alias_map()
        pins = view["thread_pins"].by_key()
        calls = {g.client_token: g for g in self.call_queue()}
        by_thread: Dict[str, List[Row]] = {}
        for row in view["messages"].rows():
            by_thread.setdefault(row["client_token"], []).append(row)

        summaries = {}
        for token in self.active_tokens():
            rows = by_thread.get(token, [])
            last = rows[-1] if rows else None
            summaries[token] = ThreadSummary(
                client_token=token,
                alias=aliases.get(token),
                pinned_at=pins[token]["pinned_at"] if token in pins else None,
                lock=LockState.from_row(token, view["thread_locks"].get(token)),
                unread=unread_count(rows, AuthorRole.ASSISTANT, self._cursor(token, AuthorRole.ASSISTANT)),
                last_message=last,
                preview=message_preview(last) if last else "",
                calls=calls.get(token),
                participant_read_at=self._cursor(token, AuthorRole.PARTICIPANT),
            )

        ordered = order_threads(
            list(summaries),
            {t: s.pinned_at for t, s in summaries.items() if s.pinned},
            {t: s.last_message_at for t, s in summaries.items()},
        )
        return [summaries[t] for t in ordered]

    def thread(self, client_token: str) -> List[ThreadMessage]:
        rows = [r for r in self._live()["messages"].rows() if r["client_token"] == client_token]
        return _with_reply_targets(rows, AuthorRole.ASSISTANT, self._cursor(client_token, AuthorRole.PARTICIPANT))

    def participant_read_at(self, client_token: str) -> Optional[datetime]:
        return self._cursor(client_token, AuthorRole.PARTICIPANT)

    def lock_state(self, client_token: str) -> LockState:
        return LockState.from_row(client_token, self._live()["thread_locks"].get(client_token))

    def can_reply(self, client_token: str) -> bool:
        lock = self.lock_state(client_token)
        return not lock.is_owned or lock.owned_by(self.principal.user_id)

    async def select_thread(self, client_token: str) -> List[ThreadMessage]:
        """Open a thread; viewing it advances the SA read cursor to now."""
        view = self._live()
        self.selected = client_token
        row = await self.cursors.mark_read(self.course_code, client_token, AuthorRole.ASSISTANT)
        view.apply_local("thread_reads", row)
        await view.pump()
        return self.thread(client_token)

    async def claim(self, client_token: str) -> LockState:
        name = await self.profiles.effective_name(self.principal)
        lock = await self.locks.claim(self.course_code, client_token, self.principal.user_id, name)
        await self._live().pump()
        return lock

    async def release(self, client_token: str) -> ReleaseOutcome:
        outcome = await self.locks.release(self.course_code, client_token, self.principal.user_id)
        await self._live().pump()
        return outcome

    async def reply(
        self,
        client_token: str,
        body: Optional[str] = None,
        attachment: Optional[Attachment] = None,
        parent_message_id: Optional[int] = None,
    ) -> Row:
        view = self._live()
        name = await self.profiles.effective_name(self.principal)
        row = await self.messages.send_reply(
            self.course_code,
            client_token,
            self.principal.user_id,
            name,
            body=body,
            attachment=attachment,
            parent_message_id=parent_message_id,
        )
        view.apply_local("messages", row)
        await view.pump()
        return row

    async def mark_handled(self, client_token: str) -> int:
        view = self._live()
        handled = await self.calls.mark_handled(self.course_code, client_token, self.principal.user_id)
        for row in handled:
            view.apply_local("calls", row, ChangeKind.UPDATE)
        await view.pump()
        return len(handled)

    async def toggle_pin(self, client_token: str) -> bool:
        """Returns True if the thread is pinned afterwards."""
        row = await self.pins.toggle(self.course_code, client_token, self.principal.user_id)
        await self._live().pump()
        return row is not None


class ParticipantDesk(_Viewer):
    """A participant's own thread in one course."""

    def __init__(self, store: Store, blobs: BlobStore, course_code: str, principal: Principal):
        self.store = store
        self.course_code = course_code
        self.principal = principal
        self.client_token = derive_client_token(principal.user_id, course_code)
        self.cursors = ReadCursorTracker(store)
        self.calls = CallQueue(store)
        self.messages = MessageService(store, blobs)
        self.view = None
        self.unread_before_open = 0

    async def open(self) -> "ParticipantDesk":
        course_code_var.set(self.course_code)
        self.view = await LiveView(
            self.store,
            {"course_code": self.course_code, "client_token": self.client_token},
            [MESSAGES, UNHANDLED_CALLS, READS],
            feed_column="client_token",
        ).open()
        self.unread_before_open = self.unread()
        await self.mark_tail_read()
        return self

    async def refresh(self, mark_read: bool = True) -> int:
        changed = await self._live().pump()
        if mark_read:
            await self.mark_tail_read()
        return changed

    def _cursor(self, role: AuthorRole) -> Optional[datetime]:
        row = self._live()["thread_reads"].get((self.client_token, role.value))
        return row["last_read_at"] if row else None

    @property
    def assistant_read_at(self) -> Optional[datetime]:
        return self._cursor(AuthorRole.ASSISTANT)

    def thread(self) -> List[ThreadMessage]:
        return _with_reply_targets(
            self._live()["messages"].rows(), AuthorRole.PARTICIPANT, self.assistant_read_at
        )

    def unread(self) -> int:
        return unread_count(
            self._live()["messages"].rows(), AuthorRole.PARTICIPANT, self._cursor(AuthorRole.PARTICIPANT)
        )

    def pending_calls(self) -> int:
        return len(self._live()["calls"])

    async def mark_tail_read(self) -> Optional[Row]:
        """Advance the participant cursor to the newest message observed."""
        view = self._live()
        rows = view["messages"].rows()
        if not rows:
            return None
        current = self._cursor(AuthorRole.PARTICIPANT)
        tail_at = rows[-1]["created_at"]
        if current is not None and current >= tail_at:
            return None
        row = await self.cursors.mark_read(
            self.course_code, self.client_token, AuthorRole.PARTICIPANT, at=tail_at
        )
        view.apply_local("thread_reads", row)
        return row

    async def send(
        self,
        body: Optional[str] = None,
        attachment: Optional[Attachment] = None,
        parent_message_id: Optional[int] = None,
    ) -> Row:
        view = self._live()
        row = await self.messages.send_participant_message(
            self.course_code,
            self.client_token,
            self.principal.user_id,
            body=body,
            attachment=attachment,
            parent_message_id=parent_message_id,
        )
        view.apply_local("messages", row)
        await view.pump()
        return row

    async def call(self, seat_text: Optional[str] = None) -> Row:
        view = self._live()
        row = await self.calls.place_call(
            self.course_code, self.client_token, seat_text, self.principal.user_id
        )
        view.apply_local("calls", row)
        await view.pump()
        return row
