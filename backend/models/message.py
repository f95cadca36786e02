from db.database import Base
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

MAX_MESSAGE_TEXT_LENGTH = 5000


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(
        Integer, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    text = Column(Text, nullable=False)
    content_type = Column(String(20), nullable=False, default="text")
    # For imported messages this is the parsed source timestamp, not wall-clock
    # import time; timelines and analytics order by it.
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    # Imported-from metadata. NULL import_id means a live message.
    # Matches ChatImport.import_id. Not a foreign key: a half-written batch
    # must stay addressable by id even when its registry row never landed.
    import_id = Column(String(32), nullable=True, index=True)
    import_source = Column(String(20), nullable=True)
    original_timestamp = Column(DateTime(timezone=True), nullable=True)
    original_text = Column(Text, nullable=True)
    was_translated = Column(Boolean, nullable=True)
    import_row = Column(Integer, nullable=True)

    __table_args__ = (
        Index("ix_messages_chat_created", "chat_id", "created_at"),
        Index("ix_messages_chat_import", "chat_id", "import_id"),
    )

    # Relationships
    chat = relationship("Chat", back_populates="messages")
    sender = relationship("User")

    @property
    def is_imported(self) -> bool:
        return self.import_id is not None

    @property
    def imported_from(self) -> dict | None:
        if not self.is_imported:
            return None
        return {
            "source": self.import_source,
            "originalTimestamp": self.original_timestamp,
            "originalText": self.original_text,
            "wasTranslated": bool(self.was_translated),
            "importId": self.import_id,
        }

    def __repr__(self):
        return f"<Message(id={self.id}, chat_id={self.chat_id}, sender_id={self.sender_id})>"
