"""Durable message store.

Every mutating operation commits its own unit of work and returns the
canonical record. State transitions that can race (pin against delete, read
flips against new arrivals) are done with conditional UPDATE statements, so
the database row is the single point of atomicity.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pairchat.errors import AlreadyDeletedError, ForbiddenError, NotFoundError, ValidationError
from pairchat.index import build_index
from pairchat.models.message import Message
from pairchat.models.user import User
from pairchat.schemas.conversation import ConversationSummaryDto
from pairchat.schemas.message import MessageDto
from pairchat.schemas.user import UserSummaryDto
from pairchat.services.media import MediaStorage

logger = logging.getLogger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    """Blank strings count as absent."""
    if value is None or not value.strip():
        return None
    return value


def _pair_filter(user_a: UUID, user_b: UUID):
    return or_(
        and_(Message.sender_id == user_a, Message.receiver_id == user_b),
        and_(Message.sender_id == user_b, Message.receiver_id == user_a),
    )


class MessageStore:
    def __init__(self, db: AsyncSession, media: Optional[MediaStorage] = None):
        self.db = db
        self.media = media or MediaStorage()

    async def _load(self, message_id: int) -> Message:
        stmt = (
            select(Message)
            .where(Message.id == message_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        message = result.scalar_one_or_none()
        if message is None:
            raise NotFoundError("Message not found")
        return message

    async def _load_for_participant(self, message_id: int, actor_id: UUID, action: str) -> Message:
        message = await self._load(message_id)
        if not message.involves(actor_id):
            raise ForbiddenError(f"Not authorized to {action} this message")
        return message

    async def get(self, message_id: int) -> Message:
        return await self._load(message_id)

    async def send(
        self,
        sender_id: UUID,
        receiver_id: UUID,
        text: Optional[str] = None,
        image: Optional[str] = None,
        reply_to: Optional[int] = None,
    ) -> Message:
        text = _clean(text)
        image = _clean(image)
        if text is None and image is None:
            raise ValidationError("Message must contain text or an image")

        if sender_id == receiver_id:
            raise ValidationError("Cannot message yourself")

        receiver = await self.db.get(User, receiver_id)
        if receiver is None or receiver.deleted:
            raise NotFoundError("Recipient not found")

        if reply_to is not None:
            parent = await self.db.get(Message, reply_to)
            if parent is None:
                raise NotFoundError("Replied message not found")
            if {parent.sender_id, parent.receiver_id} != {sender_id, receiver_id}:
                raise ValidationError("Replies must stay within the same conversation")

        if image is not None:
            image = await self.media.store(image)

        message = Message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            text=text,
            image=image,
            reply_to_id=reply_to,
        )
        self.db.add(message)
        await self.db.commit()
        await self.db.refresh(message)
        return message

    async def list_conversation(self, user_a: UUID, user_b: UUID) -> List[Message]:
        """All messages of the pair, oldest first, soft-deleted ones included."""
        stmt = (
            select(Message)
            .where(_pair_filter(user_a, user_b))
            .order_by(Message.created_at, Message.id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_pinned(self, user_a: UUID, user_b: UUID) -> List[Message]:
        stmt = (
            select(Message)
            .where(_pair_filter(user_a, user_b), Message.pinned == True)
            .order_by(Message.pinned_at.desc(), Message.id.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def mark_read(self, receiver_id: UUID, sender_id: UUID) -> List[int]:
        """Mark the messages ``sender_id`` sent to ``receiver_id`` as read.

        The unread set is snapshotted first and only those rows are flipped,
        so a message that arrives during the call stays unread. Returns the ids
        this call actually transitioned; an empty list when nothing was unread.
        """
        stmt = (
            select(Message.id)
            .where(
                Message.receiver_id == receiver_id,
                Message.sender_id == sender_id,
                Message.read == False,
            )
            .order_by(Message.id)
        )
        result = await self.db.execute(stmt)
        snapshot = list(result.scalars().all())
        if not snapshot:
            return []

        now = datetime.utcnow()
        transitioned = []
        for message_id in snapshot:
            # A concurrent mark_read may have claimed the row already
            flip = await self.db.execute(
                update(Message)
                .where(Message.id == message_id, Message.read == False)
                .values(read=True, read_at=now)
                .execution_options(synchronize_session=False)
            )
            if flip.rowcount:
                transitioned.append(message_id)
        await self.db.commit()

        logger.debug(f"Marked {len(transitioned)} messages from {sender_id} to {receiver_id} as read")
        return transitioned

    async def pin(self, message_id: int, actor_id: UUID) -> Message:
        message = await self._load_for_participant(message_id, actor_id, "pin")
        if message.deleted:
            raise AlreadyDeletedError("Cannot pin a deleted message")

        result = await self.db.execute(
            update(Message)
            .where(Message.id == message_id, Message.deleted == False)
            .values(pinned=True, pinned_by=actor_id, pinned_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if not result.rowcount:
            # Lost the race against a delete
            raise AlreadyDeletedError("Cannot pin a deleted message")
        return await self._load(message_id)

    async def unpin(self, message_id: int, actor_id: UUID) -> Message:
        message = await self._load_for_participant(message_id, actor_id, "unpin")
        if message.deleted:
            raise AlreadyDeletedError("Cannot unpin a deleted message")

        result = await self.db.execute(
            update(Message)
            .where(Message.id == message_id, Message.deleted == False)
            .values(pinned=False, pinned_by=None, pinned_at=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if not result.rowcount:
            raise AlreadyDeletedError("Cannot unpin a deleted message")
        return await self._load(message_id)

    async def edit(self, message_id: int, actor_id: UUID, new_text: Optional[str]) -> Message:
        message = await self._load(message_id)
        if message.sender_id != actor_id:
            raise ForbiddenError("You can only edit your own messages")

        new_text = _clean(new_text)
        if new_text is None:
            raise ValidationError("Message text cannot be empty")
        if message.deleted:
            raise AlreadyDeletedError("Cannot edit a deleted message")
        if message.text is None:
            raise ValidationError("Only text messages can be edited")

        result = await self.db.execute(
            update(Message)
            .where(
                Message.id == message_id,
                Message.deleted == False,
                Message.text.isnot(None),
            )
            .values(text=new_text, edited=True, edited_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if not result.rowcount:
            raise AlreadyDeletedError("Cannot edit a deleted message")
        return await self._load(message_id)

    async def delete(self, message_id: int, actor_id: UUID) -> Tuple[Message, bool]:
        """Soft delete: the record stays, payload and pin state are cleared.

        Returns the message and whether this call deleted it; deleting an
        already deleted message changes nothing.
        """
        message = await self._load(message_id)
        if message.sender_id != actor_id:
            raise ForbiddenError("You can only delete your own messages")
        if message.deleted:
            return message, False

        result = await self.db.execute(
            update(Message)
            .where(Message.id == message_id, Message.deleted == False)
            .values(
                deleted=True,
                deleted_at=datetime.utcnow(),
                text=None,
                image=None,
                pinned=False,
                pinned_by=None,
                pinned_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return await self._load(message_id), bool(result.rowcount)

    async def unread_count(self, receiver_id: UUID) -> int:
        stmt = select(func.count(Message.id)).where(
            Message.receiver_id == receiver_id,
            Message.read == False,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def unread_by_sender(self, receiver_id: UUID) -> Dict[UUID, int]:
        stmt = (
            select(Message.sender_id, func.count(Message.id))
            .where(Message.receiver_id == receiver_id, Message.read == False)
            .group_by(Message.sender_id)
        )
        result = await self.db.execute(stmt)
        return {sender_id: count for sender_id, count in result.all()}

    async def search_counterparts(self, viewer_id: UUID, query: Optional[str]) -> List[Tuple[User, int]]:
        """Active users whose name contains ``query``, with their unread count."""
        query = (query or "").strip()
        if not query:
            raise ValidationError("Search query is required")

        stmt = (
            select(User)
            .where(
                User.id != viewer_id,
                User.deleted == False,
                func.lower(User.full_name).contains(query.lower(), autoescape=True),
            )
            .order_by(User.full_name)
        )
        result = await self.db.execute(stmt)
        users = result.scalars().all()

        counts = await self.unread_by_sender(viewer_id)
        return [(user, counts.get(user.id, 0)) for user in users]

    async def list_counterparts(self, viewer_id: UUID) -> List[ConversationSummaryDto]:
        """Every other active user with last message and unread state, most recent first."""
        result = await self.db.execute(
            select(User).where(User.id != viewer_id, User.deleted == False)
        )
        users = [UserSummaryDto.model_validate(u) for u in result.scalars().all()]

        result = await self.db.execute(
            select(Message)
            .where(or_(Message.sender_id == viewer_id, Message.receiver_id == viewer_id))
            .order_by(Message.created_at, Message.id)
            .execution_options(populate_existing=True)
        )
        messages = [MessageDto.model_validate(m) for m in result.scalars().all()]

        return build_index(viewer_id, users, messages)
