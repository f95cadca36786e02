"""
End-to-end chat-history import for a single upload.

Content Guard -> encrypted working copy -> decrypt once -> parse (streamed)
-> resolve senders -> batch import. The encrypted artifact is removed when
the pipeline finishes, whatever the outcome, and the whole run is bounded by
IMPORT_TIMEOUT_SECONDS.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from config import Settings
from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from services.batch_importer import BatchImporter, ImportSummary
from services.chat_csv_parser import AUTO_FORMAT, ChatCsvParser
from services.chat_locks import ChatLockRegistry, chat_locks
from services.import_errors import ImportFailed
from services.import_registry import ensure_couple_chat, load_chat_for_user
from services.sender_resolver import Participant, SenderResolver
from services.upload_store import StoredUpload, UploadStore

logger = logging.getLogger(__name__)


@dataclass
class ImportOutcome:
    summary: ImportSummary
    format: str
    format_confidence: float
    warnings: List[dict] = field(default_factory=list)


class ImportPipeline:
    def __init__(
        self,
        db: AsyncSession,
        store: UploadStore,
        settings: Settings,
        locks: ChatLockRegistry = chat_locks,
    ):
        self.db = db
        self.store = store
        self.settings = settings
        self.importer = BatchImporter(
            db,
            batch_size=settings.IMPORT_BATCH_SIZE,
            max_retries=settings.IMPORT_WRITE_RETRIES,
            retry_base_delay=settings.IMPORT_RETRY_BASE_DELAY,
            locks=locks,
        )

    async def run(
        self,
        *,
        chat_id: int,
        user_id: int,
        file: UploadFile,
        fmt: str = AUTO_FORMAT,
        sender_map: Optional[Mapping[str, int]] = None,
    ) -> ImportOutcome:
        try:
            return await asyncio.wait_for(
                self._run(chat_id, user_id, file, fmt, sender_map),
                timeout=self.settings.IMPORT_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Import into chat {chat_id} exceeded "
                f"{self.settings.IMPORT_TIMEOUT_SECONDS}s and was cancelled"
            )
            raise ImportFailed("Import timed out. No messages were imported.")

    async def _run(
        self,
        chat_id: int,
        user_id: int,
        file: UploadFile,
        fmt: str,
        sender_map: Optional[Mapping[str, int]],
    ) -> ImportOutcome:
        upload: Optional[StoredUpload] = None
        try:
            # Access and request shape are checked before anything is stored.
            chat = await load_chat_for_user(self.db, chat_id, user_id)
            ensure_couple_chat(chat)
            resolver = SenderResolver(
                [Participant.from_user(u) for u in chat.participants],
                uploader_id=user_id,
                overrides=sender_map,
                require_match=self.settings.IMPORT_REQUIRE_SENDER_MATCH,
            )
            parser = ChatCsvParser(fmt, max_field_size=self.settings.IMPORT_MAX_FILE_SIZE)

            upload = await self.store.accept(file, owner_id=user_id, chat_id=chat_id)
            raw = await self.store.open_for_parsing(upload)
            records = parser.parse(raw)

            summary = await self.importer.run(
                chat_id=chat_id,
                uploader_id=user_id,
                records=records,
                resolver=resolver,
                stats=parser.stats,
                file_name=upload.original_name,
                source_format=parser.format,
            )
        finally:
            if upload is not None:
                upload.cleanup()

        return ImportOutcome(
            summary=summary,
            format=parser.format,
            format_confidence=parser.confidence,
            warnings=self._warnings(parser, summary),
        )

    @staticmethod
    def _warnings(parser: ChatCsvParser, summary: ImportSummary) -> List[dict]:
        warnings = parser.stats.warnings()
        if summary.unmatched_senders:
            warnings.append(
                {
                    "type": "SenderFallback",
                    "reason": "attributed_to_uploader",
                    "labels": summary.unmatched_senders,
                }
            )
        if summary.nothing_imported:
            warnings.append(
                {
                    "type": "NothingToImport",
                    "reason": "no_parseable_rows",
                    "count": parser.stats.total_rows,
                }
            )
        return warnings
