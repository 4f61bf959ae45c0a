"""Pure reducers for the client-side chat state.

Each reducer takes the current ``ChatState`` and one ``Event`` and returns the
next state without side effects. The controller fans every event out to all
reducers, so the open thread, its pinned list, the sidebar and the online set
are each kept by exactly one reducer.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Callable, FrozenSet, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from pairchat.events import (
    MESSAGE_DELETED, MESSAGE_EDITED, MESSAGE_PINNED, MESSAGE_UNPINNED, MESSAGES_READ,
    NEW_MESSAGE, PRESENCE_ONLINE, PROFILE_UPDATED,
)
from pairchat.index import (
    content_version, message_key, patch_message, patch_profile, patch_read, sort_summaries,
)
from pairchat.schemas.conversation import ConversationSummaryDto
from pairchat.schemas.message import MessageDto, ReadReceiptDto
from pairchat.schemas.user import ProfileUpdatedEvent

LOADING = "loading"
READY = "ready"

# Raised locally after the viewer marked a conversation read
CONVERSATION_READ = "local:conversation_read"

MESSAGE_EVENTS = (NEW_MESSAGE, MESSAGE_PINNED, MESSAGE_UNPINNED, MESSAGE_EDITED, MESSAGE_DELETED)


@dataclass(frozen=True)
class Event:
    type: str
    data: Any


@dataclass(frozen=True)
class ConversationRead:
    counterpart_id: UUID
    message_ids: Optional[Tuple[int, ...]] = None  # None: everything from the counterpart


@dataclass(frozen=True)
class ThreadState:
    counterpart_id: UUID
    status: str = LOADING
    messages: Tuple[MessageDto, ...] = ()
    pinned: Tuple[MessageDto, ...] = ()

    def find(self, message_id: int) -> Optional[MessageDto]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None


@dataclass(frozen=True)
class ChatState:
    viewer_id: UUID
    thread: Optional[ThreadState] = None
    sidebar: Tuple[ConversationSummaryDto, ...] = ()
    online_user_ids: FrozenSet[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class Snapshot:
    """Canonical data fetched from the server."""
    counterpart_id: Optional[UUID] = None
    messages: Optional[Sequence[MessageDto]] = None
    pinned: Optional[Sequence[MessageDto]] = None
    sidebar: Optional[Sequence[ConversationSummaryDto]] = None


_PARSERS = {
    NEW_MESSAGE: MessageDto.model_validate,
    MESSAGE_PINNED: MessageDto.model_validate,
    MESSAGE_UNPINNED: MessageDto.model_validate,
    MESSAGE_EDITED: MessageDto.model_validate,
    MESSAGE_DELETED: MessageDto.model_validate,
    MESSAGES_READ: ReadReceiptDto.model_validate,
    PROFILE_UPDATED: ProfileUpdatedEvent.model_validate,
    PRESENCE_ONLINE: lambda ids: frozenset(str(i) for i in ids),
}


def parse_event(envelope: dict) -> Optional[Event]:
    """Turn a wire envelope into an ``Event``; unknown events give None."""
    parser = _PARSERS.get(envelope.get("event"))
    if parser is None:
        return None
    return Event(envelope["event"], parser(envelope.get("data")))


def merge_message(existing: MessageDto, incoming: MessageDto) -> MessageDto:
    """Take the incoming canonical record without reversing one-way flags.

    A stale copy may still carry the newer pin state, but never older content
    or an unread flag the viewer has already seen cleared.
    """
    if existing.deleted and not incoming.deleted:
        return existing
    update = {}
    if existing.read and not incoming.read:
        update["read"] = True
    if content_version(incoming) < content_version(existing):
        update.update(text=existing.text, edited=existing.edited, edited_at=existing.edited_at)
    return incoming.model_copy(update=update) if update else incoming


def _in_thread(thread: ThreadState, viewer_id: UUID, message: MessageDto) -> bool:
    return message.involves(viewer_id) and message.counterpart_of(viewer_id) == thread.counterpart_id


def _upsert(messages: Sequence[MessageDto], message: MessageDto, create: bool) -> Tuple[MessageDto, ...]:
    for position, existing in enumerate(messages):
        if existing.id == message.id:
            if create:
                # Creation events never overwrite a record we already hold
                return tuple(messages)
            updated = list(messages)
            updated[position] = merge_message(existing, message)
            return tuple(updated)
    return tuple(sorted([*messages, message], key=message_key))


def _mark_read(messages: Sequence[MessageDto], predicate: Callable[[MessageDto], bool]) -> Tuple[MessageDto, ...]:
    return tuple(
        m.model_copy(update={"read": True}) if not m.read and predicate(m) else m
        for m in messages
    )


def thread_reducer(state: ChatState, event: Event) -> ChatState:
    thread = state.thread
    if thread is None or thread.status != READY:
        return state

    if event.type in MESSAGE_EVENTS:
        message = event.data
        if not _in_thread(thread, state.viewer_id, message):
            return state
        messages = _upsert(thread.messages, message, create=event.type == NEW_MESSAGE)
        return replace(state, thread=replace(thread, messages=messages))

    if event.type == MESSAGES_READ:
        receipt: ReadReceiptDto = event.data
        if receipt.receiver_id != thread.counterpart_id:
            return state
        ids = set(receipt.message_ids)
        messages = _mark_read(thread.messages, lambda m: m.id in ids)
        return replace(state, thread=replace(thread, messages=messages))

    if event.type == CONVERSATION_READ:
        read: ConversationRead = event.data
        if read.counterpart_id != thread.counterpart_id:
            return state
        ids = None if read.message_ids is None else set(read.message_ids)
        messages = _mark_read(
            thread.messages,
            lambda m: m.sender_id == read.counterpart_id and (ids is None or m.id in ids),
        )
        return replace(state, thread=replace(thread, messages=messages))

    return state


def _sort_pinned(messages: Iterable[MessageDto]) -> Tuple[MessageDto, ...]:
    return tuple(sorted(messages, key=lambda m: (m.pinned_at, m.id), reverse=True))


def pinned_reducer(state: ChatState, event: Event) -> ChatState:
    thread = state.thread
    # New messages are never pinned; a late creation event must not drop a pin
    if thread is None or thread.status != READY or event.type not in MESSAGE_EVENTS or event.type == NEW_MESSAGE:
        return state
    message: MessageDto = event.data
    if not _in_thread(thread, state.viewer_id, message):
        return state

    others = [m for m in thread.pinned if m.id != message.id]
    known = next((m for m in thread.pinned if m.id == message.id), None) or thread.find(message.id)
    merged = message if known is None else merge_message(known, message)
    if event.type in (MESSAGE_UNPINNED, MESSAGE_DELETED) or merged.deleted or not merged.pinned:
        pinned = tuple(others)
    else:
        pinned = _sort_pinned([*others, merged])
    if pinned == thread.pinned:
        return state
    return replace(state, thread=replace(thread, pinned=pinned))


def sidebar_reducer(state: ChatState, event: Event) -> ChatState:
    if event.type in MESSAGE_EVENTS:
        sidebar = patch_message(state.sidebar, state.viewer_id, event.data)
    elif event.type == CONVERSATION_READ:
        read: ConversationRead = event.data
        sidebar = patch_read(state.sidebar, read.counterpart_id, read.message_ids)
    elif event.type == PROFILE_UPDATED:
        sidebar = patch_profile(state.sidebar, event.data)
    else:
        return state
    return replace(state, sidebar=tuple(sidebar))


def presence_reducer(state: ChatState, event: Event) -> ChatState:
    if event.type != PRESENCE_ONLINE:
        return state
    return replace(state, online_user_ids=frozenset(event.data))


DEFAULT_REDUCERS: List[Callable[[ChatState, Event], ChatState]] = [
    thread_reducer,
    pinned_reducer,
    sidebar_reducer,
    presence_reducer,
]


def reconcile(local: ChatState, snapshot: Snapshot) -> ChatState:
    """Replace local state with canonical server data.

    The thread is only replaced when the snapshot belongs to the open
    conversation; the replaced thread is ``ready``.
    """
    state = local
    if snapshot.sidebar is not None:
        state = replace(state, sidebar=tuple(sort_summaries(snapshot.sidebar)))

    thread = state.thread
    if (
        snapshot.messages is not None
        and thread is not None
        and thread.counterpart_id == snapshot.counterpart_id
    ):
        pinned = thread.pinned if snapshot.pinned is None else _sort_pinned(snapshot.pinned)
        state = replace(state, thread=ThreadState(
            counterpart_id=thread.counterpart_id,
            status=READY,
            messages=tuple(sorted(snapshot.messages, key=message_key)),
            pinned=pinned,
        ))
    return state
