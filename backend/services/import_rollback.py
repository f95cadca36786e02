"""Rollback Coordinator: remove one import's messages and its ImportRecord."""

import logging
from dataclasses import dataclass

from models.chat_import import ChatImport
from models.message import Message
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from services.chat_locks import ChatLockRegistry, chat_locks
from services.import_errors import ImportNotFound
from services.import_registry import get_import, load_chat_for_user

logger = logging.getLogger(__name__)


@dataclass
class RollbackSummary:
    import_id: str
    messages_removed: int


async def rollback_import(
    db: AsyncSession,
    chat_id: int,
    import_id: str,
    user_id: int,
    locks: ChatLockRegistry = chat_locks,
) -> RollbackSummary:
    """
    Delete every message tagged with ``import_id`` and the ImportRecord in
    one transaction, then recompute the chat's last_message_at.

    Not idempotent: a second call for the same id raises ImportNotFound.
    """
    async with locks.hold(chat_id):
        try:
            chat = await load_chat_for_user(db, chat_id, user_id, for_update=True)
            record = await get_import(db, chat_id, import_id)
            if record is None:
                raise ImportNotFound()

            result = await db.execute(
                delete(Message)
                .where(Message.chat_id == chat_id, Message.import_id == import_id)
                .execution_options(synchronize_session=False)
            )
            removed = result.rowcount or 0
            await db.execute(
                delete(ChatImport)
                .where(ChatImport.id == record.id)
                .execution_options(synchronize_session=False)
            )

            latest = await db.execute(
                select(func.max(Message.created_at)).where(Message.chat_id == chat_id)
            )
            chat.last_message_at = latest.scalar_one_or_none()
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    logger.info(
        f"Rolled back import {import_id} for chat {chat_id}: {removed} messages removed"
    )
    return RollbackSummary(import_id=import_id, messages_removed=removed)
