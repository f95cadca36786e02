"""
Batch Importer: commits parsed records as one auditable import.

Messages are inserted in source order in fixed-size chunks, each inside a
savepoint and retried on transient OperationalError. All chunks, the
ImportRecord and the chat's last_message_at update share one transaction,
taken under the per-chat lock and the chat row lock. On failure the
transaction is rolled back and a compensating delete by import_id is
committed, so no partial import survives.
"""

import asyncio
import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from models.chat_import import ChatImport
from models.message import Message
from sqlalchemy import delete, insert
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from services.chat_csv_parser import ParsedRecord, ParseStats
from services.chat_locks import ChatLockRegistry, chat_locks
from services.import_errors import ChatImportError, ImportFailed
from services.import_registry import as_utc, ensure_couple_chat, load_chat_for_user
from services.sender_resolver import SenderResolver

logger = logging.getLogger(__name__)

IMPORT_SOURCE = "csv"
MAX_RETRY_DELAY = 2.0


@dataclass
class ImportSummary:
    import_id: Optional[str]
    messages_imported: int
    rows_skipped: int
    date_range_start: Optional[datetime] = None
    date_range_end: Optional[datetime] = None
    sender_breakdown: Dict[str, int] = field(default_factory=dict)
    sender_resolution: dict = field(default_factory=dict)
    unmatched_senders: List[str] = field(default_factory=list)
    batches: int = 0

    @property
    def nothing_imported(self) -> bool:
        return self.messages_imported == 0


class BatchImporter:
    def __init__(
        self,
        db: AsyncSession,
        batch_size: int = 1000,
        max_retries: int = 3,
        retry_base_delay: float = 0.1,
        locks: ChatLockRegistry = chat_locks,
    ):
        self.db = db
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.locks = locks

    async def run(
        self,
        *,
        chat_id: int,
        uploader_id: int,
        records: Iterable[ParsedRecord],
        resolver: SenderResolver,
        stats: ParseStats,
        file_name: str,
        source_format: str,
    ) -> ImportSummary:
        import_id = uuid.uuid4().hex
        async with self.locks.hold(chat_id):
            try:
                summary = await self._write(
                    import_id, chat_id, uploader_id, records, resolver, stats,
                    file_name, source_format,
                )
                await self.db.commit()
            except ChatImportError:
                await self._abort(import_id)
                raise
            except asyncio.CancelledError:
                await self._abort(import_id)
                raise
            except Exception:
                logger.error(
                    "Import %s into chat %s failed", import_id, chat_id, exc_info=True
                )
                await self._abort(import_id)
                raise ImportFailed()

        if summary.import_id:
            logger.info(
                "Import %s committed: %d messages into chat %s in %d batches (%d rows skipped)",
                import_id, summary.messages_imported, chat_id, summary.batches,
                summary.rows_skipped,
            )
        return summary

    async def _write(
        self,
        import_id: str,
        chat_id: int,
        uploader_id: int,
        records: Iterable[ParsedRecord],
        resolver: SenderResolver,
        stats: ParseStats,
        file_name: str,
        source_format: str,
    ) -> ImportSummary:
        chat = await load_chat_for_user(self.db, chat_id, uploader_id, for_update=True)
        ensure_couple_chat(chat)

        batch: List[dict] = []
        batches = 0
        for record in records:
            batch.append(self._message_row(chat_id, import_id, record, resolver))
            if len(batch) >= self.batch_size:
                batches += 1
                await self._insert_batch(batch, batches)
                batch = []
        if batch:
            batches += 1
            await self._insert_batch(batch, batches)

        resolver.enforce_policy()

        summary = ImportSummary(
            import_id=None,
            messages_imported=stats.accepted,
            rows_skipped=stats.skipped,
            date_range_start=stats.earliest,
            date_range_end=stats.latest,
            sender_breakdown=dict(stats.sender_counts),
            sender_resolution=resolver.resolution.as_dict(),
            unmatched_senders=resolver.resolution.unmatched,
            batches=batches,
        )
        if stats.accepted == 0:
            return summary

        self.db.add(
            ChatImport(
                import_id=import_id,
                chat_id=chat_id,
                uploaded_by=uploader_id,
                file_name=file_name[:255],
                format=source_format,
                message_count=stats.accepted,
                skipped_count=stats.skipped,
                date_range_start=stats.earliest,
                date_range_end=stats.latest,
                sender_breakdown=summary.sender_breakdown,
            )
        )
        current = as_utc(chat.last_message_at)
        if current is None or stats.latest > current:
            chat.last_message_at = stats.latest
        await self.db.flush()

        summary.import_id = import_id
        return summary

    @staticmethod
    def _message_row(
        chat_id: int, import_id: str, record: ParsedRecord, resolver: SenderResolver
    ) -> dict:
        return {
            "chat_id": chat_id,
            "sender_id": resolver.resolve(record.sender_label),
            "text": record.text,
            "content_type": "text",
            "created_at": record.timestamp,
            "import_id": import_id,
            "import_source": IMPORT_SOURCE,
            "original_timestamp": record.timestamp,
            "original_text": record.original_text,
            "was_translated": record.was_translated,
            "import_row": record.row_number,
        }

    async def _insert_batch(self, rows: List[dict], batch_number: int) -> None:
        attempt = 0
        while True:
            try:
                async with self.db.begin_nested():
                    await self.db.execute(insert(Message), rows)
                return
            except OperationalError as e:
                attempt += 1
                if attempt > self.max_retries:
                    raise
                delay = min(self.retry_base_delay * (2 ** (attempt - 1)), MAX_RETRY_DELAY)
                logger.warning(
                    f"Transient error writing batch {batch_number} "
                    f"(attempt={attempt}): {type(e).__name__}; retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay + random.uniform(0, 0.05))

    async def _abort(self, import_id: str) -> None:
        """Roll back, then commit a compensating delete for anything already durable."""
        await self.db.rollback()
        try:
            result = await self.db.execute(
                delete(Message)
                .where(Message.import_id == import_id)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception:
            logger.error("Compensating delete for import %s failed", import_id, exc_info=True)
            await self.db.rollback()
            return
        if result.rowcount:
            logger.warning(
                "Compensating delete removed %d messages of import %s",
                result.rowcount, import_id,
            )
