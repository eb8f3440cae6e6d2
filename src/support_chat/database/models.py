"""
SQLAlchemy models for the conversation message log.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, declarative_base, relationship

Base = declarative_base()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Conversation(Base):
    """A chat session."""

    __tablename__ = "conversations"

    id = Column(String(128), primary_key=True, default=lambda: str(uuid4()))
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    messages: Mapped[list["Message"]] = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at, Message.id",
    )


class Message(Base):
    """An immutable message appended to a conversation."""

    __tablename__ = "messages"

    # Integer key doubles as the tie-breaker for equal timestamps
    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(
        String(128), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )

    sender = Column(String(16), nullable=False)  # 'user' or 'assistant'

    # Plaintext, or Fernet ciphertext when encryption_key_id is set
    content = Column(Text, nullable=False)
    encryption_key_id = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    conversation: Mapped["Conversation"] = relationship(
        "Conversation", back_populates="messages"
    )

    __table_args__ = (
        Index("idx_messages_conversation_created", "conversation_id", "created_at"),
    )
