"""ImportRecord: one row per completed chat-history import."""

from db.database import Base
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func


class ChatImport(Base):
    """
    Registry entry for a completed import.

    Written in the same transaction as the imported messages and never
    updated afterwards. Rollback deletes the row together with every message
    carrying the same import_id.
    """

    __tablename__ = "chat_imports"

    # Insertion order per chat is the primary key order.
    id = Column(Integer, primary_key=True, index=True)
    import_id = Column(String(32), nullable=False, unique=True, index=True)
    chat_id = Column(
        Integer, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True
    )
    uploaded_by = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    file_name = Column(String(255), nullable=False)
    format = Column(String(20), nullable=False, default="generic")
    imported_at = Column(DateTime(timezone=True), server_default=func.now())
    message_count = Column(Integer, nullable=False, default=0)
    skipped_count = Column(Integer, nullable=False, default=0)
    date_range_start = Column(DateTime(timezone=True), nullable=True)
    date_range_end = Column(DateTime(timezone=True), nullable=True)
    sender_breakdown = Column(JSON, nullable=False, default=dict)

    # Relationships
    chat = relationship("Chat", back_populates="imports")

    def __repr__(self):
        return (
            f"<ChatImport(import_id='{self.import_id}', chat_id={self.chat_id}, "
            f"messages={self.message_count})>"
        )
