"""
Import Registry: read side of chat-history imports, plus the shared
participant check used by every import operation.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from models.chat import Chat
from models.chat_import import ChatImport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from services.import_errors import AccessDenied, ChatNotFound


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; those are stored as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def load_chat_for_user(
    db: AsyncSession, chat_id: int, user_id: int, *, for_update: bool = False
) -> Chat:
    """
    Load a chat and check that ``user_id`` participates in it.

    ``for_update`` takes the chat row lock (PostgreSQL; SQLite ignores it).
    Raises ChatNotFound / AccessDenied.
    """
    query = select(Chat).where(Chat.id == chat_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)

    result = await db.execute(query)
    chat = result.scalar_one_or_none()
    if chat is None:
        raise ChatNotFound()
    if not chat.has_participant(user_id):
        raise AccessDenied()
    return chat


def ensure_couple_chat(chat: Chat) -> None:
    if not chat.is_couple():
        raise AccessDenied("Imports are only supported for two-person chats")


@dataclass
class ImportStats:
    total_imports: int = 0
    total_messages: int = 0
    imports: List[ChatImport] = field(default_factory=list)


async def list_imports(db: AsyncSession, chat_id: int, user_id: int) -> List[ChatImport]:
    """ImportRecords for a chat in insertion order. Participant-only."""
    await load_chat_for_user(db, chat_id, user_id)
    result = await db.execute(
        select(ChatImport).where(ChatImport.chat_id == chat_id).order_by(ChatImport.id)
    )
    return list(result.scalars().all())


async def import_stats(db: AsyncSession, chat_id: int, user_id: int) -> ImportStats:
    imports = await list_imports(db, chat_id, user_id)
    return ImportStats(
        total_imports=len(imports),
        total_messages=sum(record.message_count or 0 for record in imports),
        imports=imports,
    )


async def get_import(db: AsyncSession, chat_id: int, import_id: str) -> Optional[ChatImport]:
    result = await db.execute(
        select(ChatImport).where(
            ChatImport.chat_id == chat_id, ChatImport.import_id == import_id
        )
    )
    return result.scalar_one_or_none()
