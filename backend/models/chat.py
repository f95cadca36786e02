"""Couple chat model: exactly two participants, optional import history."""

from db.database import Base
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Table
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

# A couple chat always has exactly two participants.
CHAT_PARTICIPANT_COUNT = 2


chat_participants = Table(
    "chat_participants",
    Base.metadata,
    Column(
        "chat_id",
        Integer,
        ForeignKey("chats.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    ),
    Column(
        "user_id",
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    ),
)


class Chat(Base):
    __tablename__ = "chats"

    id = Column(Integer, primary_key=True, index=True)
    chat_name = Column(String(200), nullable=False, default="Our Love Story")
    is_active = Column(Boolean, nullable=False, default=True)
    # Shared with live message sends; only updated under the chat row lock.
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    participants = relationship(
        "User",
        secondary=chat_participants,
        back_populates="chats",
        order_by="User.id",
        lazy="selectin",
    )
    messages = relationship(
        "Message", back_populates="chat", cascade="all, delete-orphan", passive_deletes=True
    )
    imports = relationship(
        "ChatImport",
        back_populates="chat",
        cascade="all, delete-orphan",
        order_by="ChatImport.id",
        passive_deletes=True,
    )

    @property
    def participant_ids(self) -> list[int]:
        return [user.id for user in self.participants]

    def has_participant(self, user_id: int) -> bool:
        return user_id in self.participant_ids

    def is_couple(self) -> bool:
        return len(self.participants) == CHAT_PARTICIPANT_COUNT

    def __repr__(self):
        return f"<Chat(id={self.id}, name='{self.chat_name}')>"
