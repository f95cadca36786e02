from db.database import Base
from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func


class User(Base):
    """Account that can own chats and send messages.

    Accounts are managed by the identity service; this service only reads
    the display name when matching sender labels from imported files.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    chats = relationship(
        "Chat", secondary="chat_participants", back_populates="participants"
    )

    def __repr__(self):
        return f"<User(id={self.id}, name='{self.name}')>"
