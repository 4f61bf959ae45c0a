from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pairchat.schemas.base import CamelModel


class SendMessageRequest(CamelModel):
    text: Optional[str] = None
    image: Optional[str] = None
    reply_to: Optional[int] = None


class EditMessageRequest(CamelModel):
    text: str


class MessageDto(CamelModel):
    id: int
    created_at: datetime
    sender_id: UUID
    receiver_id: UUID
    text: Optional[str] = None
    image: Optional[str] = None
    reply_to_id: Optional[int] = None
    read: bool = False
    pinned: bool = False
    pinned_by: Optional[UUID] = None
    pinned_at: Optional[datetime] = None
    deleted: bool = False
    deleted_at: Optional[datetime] = None
    edited: bool = False
    edited_at: Optional[datetime] = None

    def involves(self, user_id: UUID) -> bool:
        return user_id in (self.sender_id, self.receiver_id)

    def counterpart_of(self, user_id: UUID) -> UUID:
        return self.receiver_id if self.sender_id == user_id else self.sender_id


class LastMessageDto(CamelModel):
    """Lightweight projection of a message for the conversation list."""
    id: int
    sender_id: UUID
    text: Optional[str] = None
    has_image: bool = False
    created_at: datetime
    deleted: bool = False
    edited_at: Optional[datetime] = None


class ReadReceiptDto(CamelModel):
    receiver_id: UUID
    message_ids: List[int]


class MarkReadResponse(CamelModel):
    updated_count: int


class UnreadCountResponse(CamelModel):
    total_unread_count: int
