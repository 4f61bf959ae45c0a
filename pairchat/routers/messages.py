from fastapi import APIRouter, Depends
from typing import List, Optional
from uuid import UUID

from pairchat.dependencies import get_current_user, get_event_bus, get_message_store
from pairchat.models.user import User
from pairchat.schemas.conversation import ConversationSummaryDto
from pairchat.schemas.message import (
    EditMessageRequest, MarkReadResponse, MessageDto, SendMessageRequest, UnreadCountResponse,
)
from pairchat.schemas.user import UserSearchResultDto
from pairchat.services.message_store import MessageStore
from pairchat.ws import EventBus

router = APIRouter()


@router.get("/users", response_model=List[ConversationSummaryDto])
async def get_users_for_sidebar(
    current_user: User = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
):
    """Conversation list: every other active user, most recent activity first."""
    return await store.list_counterparts(current_user.id)


@router.get("/search", response_model=List[UserSearchResultDto])
async def search_users(
    query: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
):
    results = await store.search_counterparts(current_user.id, query)
    return [
        UserSearchResultDto.model_validate(user).model_copy(update={"unread_count": unread})
        for user, unread in results
    ]


@router.get("/unread", response_model=UnreadCountResponse)
async def get_unread_messages_count(
    current_user: User = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
):
    return UnreadCountResponse(total_unread_count=await store.unread_count(current_user.id))


@router.get("/pinned/{user_id}", response_model=List[MessageDto])
async def get_pinned_messages(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
):
    messages = await store.list_pinned(current_user.id, user_id)
    return [MessageDto.model_validate(m) for m in messages]


@router.get("/{user_id}", response_model=List[MessageDto])
async def get_messages(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
    events: EventBus = Depends(get_event_bus),
):
    """Full conversation with ``user_id``; opening it marks the viewer's unread messages read."""
    read_ids = await store.mark_read(current_user.id, user_id)
    messages = await store.list_conversation(current_user.id, user_id)

    # Notify the counterpart that their messages have been read
    await events.messages_read(user_id, current_user.id, read_ids)

    return [MessageDto.model_validate(m) for m in messages]


@router.post("/send/{user_id}", response_model=MessageDto, status_code=201)
async def send_message(
    user_id: UUID,
    body: SendMessageRequest,
    current_user: User = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
    events: EventBus = Depends(get_event_bus),
):
    message = await store.send(
        current_user.id,
        user_id,
        text=body.text,
        image=body.image,
        reply_to=body.reply_to,
    )
    dto = MessageDto.model_validate(message)
    await events.message_created(dto)
    return dto


@router.put("/pin/{message_id}", response_model=MessageDto)
async def pin_message(
    message_id: int,
    current_user: User = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
    events: EventBus = Depends(get_event_bus),
):
    dto = MessageDto.model_validate(await store.pin(message_id, current_user.id))
    await events.message_pinned(dto, current_user.id)
    return dto


@router.put("/unpin/{message_id}", response_model=MessageDto)
async def unpin_message(
    message_id: int,
    current_user: User = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
    events: EventBus = Depends(get_event_bus),
):
    dto = MessageDto.model_validate(await store.unpin(message_id, current_user.id))
    await events.message_unpinned(dto, current_user.id)
    return dto


@router.put("/read/{sender_id}", response_model=MarkReadResponse)
async def mark_messages_as_read(
    sender_id: UUID,
    current_user: User = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
    events: EventBus = Depends(get_event_bus),
):
    read_ids = await store.mark_read(current_user.id, sender_id)
    await events.messages_read(sender_id, current_user.id, read_ids)
    return MarkReadResponse(updated_count=len(read_ids))


@router.put("/edit/{message_id}", response_model=MessageDto)
async def edit_message(
    message_id: int,
    body: EditMessageRequest,
    current_user: User = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
    events: EventBus = Depends(get_event_bus),
):
    dto = MessageDto.model_validate(await store.edit(message_id, current_user.id, body.text))
    await events.message_edited(dto)
    return dto


@router.delete("/delete/{message_id}", response_model=MessageDto)
async def delete_message(
    message_id: int,
    current_user: User = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
    events: EventBus = Depends(get_event_bus),
):
    message, deleted_now = await store.delete(message_id, current_user.id)
    dto = MessageDto.model_validate(message)
    if deleted_now:
        await events.message_deleted(dto)
    return dto
