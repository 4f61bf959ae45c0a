"""Client-side conversation view controller.

Holds the open thread and the sidebar, applies live events through the
reducers in ``pairchat.client.reducers`` and calls the HTTP API for the
viewer's own actions. Canonical results of those actions are dispatched as the
same events the counterpart receives, so both sides converge on one record.
"""
import logging
from dataclasses import replace
from typing import Callable, List, Optional
from uuid import UUID

from pairchat.client.api import ChatApiClient
from pairchat.client.reducers import (
    CONVERSATION_READ, DEFAULT_REDUCERS, LOADING, READY, ChatState, ConversationRead, Event,
    Snapshot, ThreadState, parse_event, reconcile,
)
from pairchat.errors import ChatError
from pairchat.events import (
    MESSAGE_DELETED, MESSAGE_EDITED, MESSAGE_PINNED, MESSAGE_UNPINNED, NEW_MESSAGE,
)
from pairchat.index import find_summary, unread_chat_count
from pairchat.schemas.message import MessageDto
from pairchat.schemas.user import UserSearchResultDto

logger = logging.getLogger(__name__)


class ConversationViewController:
    def __init__(
        self,
        api: ChatApiClient,
        viewer_id: UUID,
        on_error: Optional[Callable[[str], None]] = None,
        reducers: Optional[List[Callable[[ChatState, Event], ChatState]]] = None,
    ):
        self.api = api
        self.state = ChatState(viewer_id=viewer_id)
        self.reducers = list(DEFAULT_REDUCERS if reducers is None else reducers)
        self._on_error = on_error or (lambda message: logger.warning(message))
        self._pending: List[Event] = []

    @property
    def viewer_id(self) -> UUID:
        return self.state.viewer_id

    @property
    def thread(self) -> Optional[ThreadState]:
        return self.state.thread

    @property
    def unread_chat_count(self) -> int:
        return unread_chat_count(self.state.sidebar)

    def dispatch(self, event: Event) -> ChatState:
        """Apply one event to every reducer.

        While the thread is loading the event is also kept and replayed once
        the snapshot lands, because the snapshot may predate it.
        """
        if self.state.thread is not None and self.state.thread.status == LOADING:
            self._pending.append(event)
        state = self.state
        for reducer in self.reducers:
            state = reducer(state, event)
        self.state = state
        return state

    async def handle_envelope(self, envelope: dict) -> None:
        """Entry point for events arriving over the live connection."""
        event = parse_event(envelope)
        if event is None:
            logger.debug(f"Ignoring unknown event {envelope.get('event')}")
            return
        self.dispatch(event)

        if event.type == NEW_MESSAGE:
            message: MessageDto = event.data
            counterpart_id = message.counterpart_of(self.viewer_id)
            if find_summary(self.state.sidebar, counterpart_id) is None:
                # Someone we have not listed yet
                await self.refresh_sidebar()
            await self._auto_read(message)

    def _report(self, error: ChatError) -> None:
        self._on_error(error.message)

    def _is_unread_from_open_counterpart(self, message: MessageDto) -> bool:
        thread = self.state.thread
        return (
            thread is not None
            and message.sender_id == thread.counterpart_id
            and message.receiver_id == self.viewer_id
            and not message.read
        )

    async def _auto_read(self, message: MessageDto) -> None:
        # Messages arriving in the open conversation are read immediately
        thread = self.state.thread
        if thread is None or thread.status != READY:
            return
        if self._is_unread_from_open_counterpart(message):
            await self.mark_read(thread.counterpart_id)

    async def open(self, counterpart_id: UUID) -> ChatState:
        """Open a conversation: loading, fetch canonical state, then ready."""
        self._pending = []
        self.state = replace(self.state, thread=ThreadState(counterpart_id=counterpart_id, status=LOADING))

        try:
            # Fetching the conversation marks it read on the server
            messages = await self.api.get_messages(counterpart_id)
            pinned = await self.api.get_pinned_messages(counterpart_id)
            sidebar = await self.api.get_conversations()
        except ChatError as e:
            self._report(e)
            if self.state.thread is not None and self.state.thread.counterpart_id == counterpart_id:
                self.state = replace(self.state, thread=None)
            self._pending = []
            return self.state

        thread = self.state.thread
        if thread is None or thread.counterpart_id != counterpart_id:
            # Closed or switched while loading
            return self.state

        self.state = reconcile(self.state, Snapshot(
            counterpart_id=counterpart_id,
            messages=messages,
            pinned=pinned,
            sidebar=sidebar,
        ))
        pending, self._pending = self._pending, []
        for event in pending:
            self.dispatch(event)

        if any(self._is_unread_from_open_counterpart(m) for m in self.state.thread.messages):
            await self.mark_read(counterpart_id)
        return self.state

    def close(self) -> None:
        self._pending = []
        self.state = replace(self.state, thread=None)

    async def refresh_sidebar(self) -> None:
        try:
            sidebar = await self.api.get_conversations()
        except ChatError as e:
            self._report(e)
            return
        self.state = reconcile(self.state, Snapshot(sidebar=sidebar))

    async def refresh(self) -> ChatState:
        """Full resync, used after reconnecting; corrects any lost live event."""
        thread = self.state.thread
        if thread is not None:
            return await self.open(thread.counterpart_id)
        await self.refresh_sidebar()
        return self.state

    async def mark_read(self, counterpart_id: UUID) -> int:
        try:
            updated = await self.api.mark_read(counterpart_id)
        except ChatError as e:
            self._report(e)
            return 0
        self.dispatch(Event(CONVERSATION_READ, ConversationRead(counterpart_id)))
        return updated

    async def send(
        self,
        text: Optional[str] = None,
        image: Optional[str] = None,
        reply_to: Optional[int] = None,
    ) -> Optional[MessageDto]:
        thread = self.state.thread
        if thread is None:
            self._on_error("No conversation selected")
            return None
        try:
            message = await self.api.send_message(thread.counterpart_id, text=text, image=image, reply_to=reply_to)
        except ChatError as e:
            self._report(e)
            return None
        self.dispatch(Event(NEW_MESSAGE, message))
        return message

    async def pin(self, message_id: int) -> Optional[MessageDto]:
        return await self._act(MESSAGE_PINNED, self.api.pin_message, message_id)

    async def unpin(self, message_id: int) -> Optional[MessageDto]:
        return await self._act(MESSAGE_UNPINNED, self.api.unpin_message, message_id)

    async def delete(self, message_id: int) -> Optional[MessageDto]:
        return await self._act(MESSAGE_DELETED, self.api.delete_message, message_id)

    async def edit(self, message_id: int, text: str) -> Optional[MessageDto]:
        return await self._act(MESSAGE_EDITED, self.api.edit_message, message_id, text)

    async def _act(self, event_type: str, call, *args) -> Optional[MessageDto]:
        try:
            message = await call(*args)
        except ChatError as e:
            self._report(e)
            return None
        self.dispatch(Event(event_type, message))
        return message

    async def search(self, query: str) -> List[UserSearchResultDto]:
        if not query.strip():
            return []
        try:
            return await self.api.search_users(query)
        except ChatError as e:
            self._report(e)
            return []
