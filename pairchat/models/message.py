from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime
from pairchat.database import Base


class Message(Base):
    """Direct message between two users.

    The integer id is assigned by the store on insert and doubles as the
    insertion sequence used to break ties between equal ``created_at`` values.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Parties, immutable after creation
    sender_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    receiver_id = Column(Uuid, ForeignKey("users.id"), nullable=False)

    # Payload
    text = Column(Text, nullable=True)
    image = Column(String(1024), nullable=True)
    reply_to_id = Column(Integer, ForeignKey("messages.id"), nullable=True)

    # Status flags
    read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True, default=None)
    pinned = Column(Boolean, default=False, nullable=False)
    pinned_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    pinned_at = Column(DateTime, nullable=True)
    deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    edited = Column(Boolean, default=False, nullable=False)
    edited_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_messages_pair", "sender_id", "receiver_id", "created_at"),
        Index("ix_messages_unread", "receiver_id", "read"),
    )

    # Relationships
    sender = relationship("User", foreign_keys=[sender_id], back_populates="sent_messages")
    receiver = relationship("User", foreign_keys=[receiver_id], back_populates="received_messages")

    def involves(self, user_id) -> bool:
        return user_id in (self.sender_id, self.receiver_id)

    def counterpart_of(self, user_id):
        return self.receiver_id if self.sender_id == user_id else self.sender_id
