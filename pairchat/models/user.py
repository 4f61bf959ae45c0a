from sqlalchemy import Column, String, Boolean, Uuid, DateTime, Text
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
from pairchat.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(100), nullable=False, index=True)  # Public, visible to others
    profile_pic = Column(String(512), nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Soft delete: authored messages stay in the counterpart's history
    deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    # Relationships
    sent_messages = relationship("Message", foreign_keys="Message.sender_id", back_populates="sender")
    received_messages = relationship("Message", foreign_keys="Message.receiver_id", back_populates="receiver")
