"""
Working storage for uploaded chat exports.

The upload is streamed into memory with an early size cut-off, screened by
the ContentGuard, and only then written to disk - encrypted. Plaintext never
touches the filesystem. The artifact lives for a single import attempt.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from services.content_guard import ContentGuard, secure_storage_name
from services.file_encryption import FileEncryptor, remove_quietly
from services.import_errors import TooLarge, UnsupportedFormat

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024  # 64KB chunks for streaming file reads
ENCRYPTED_SUFFIX = ".enc"


@dataclass
class StoredUpload:
    """An accepted upload; ``path`` always points at the encrypted artifact."""

    original_name: str
    size: int
    content_type: str
    path: Path
    owner_id: int
    chat_id: int

    def cleanup(self) -> bool:
        removed = remove_quietly(self.path)
        if removed:
            logger.debug("Removed working artifact %s", self.path.name)
        return removed


class UploadStore:
    def __init__(self, upload_dir: Path, guard: ContentGuard, encryptor: FileEncryptor):
        self.upload_dir = Path(upload_dir)
        self.guard = guard
        self.encryptor = encryptor

    async def read_limited(self, file: UploadFile) -> bytes:
        """
        Read the upload in chunks, aborting as soon as the limit is exceeded.

        Prevents an oversized body from being buffered in full.
        """
        max_size = self.guard.policy.max_file_size
        chunks = []
        total_size = 0

        while True:
            chunk = await file.read(CHUNK_SIZE)
            if not chunk:
                break

            total_size += len(chunk)
            if total_size > max_size:
                raise TooLarge(max_size)

            chunks.append(chunk)

        return b"".join(chunks)

    async def accept(self, file: UploadFile, owner_id: int, chat_id: int) -> StoredUpload:
        """Screen, encrypt and store an upload. Raises a ChatImportError on rejection."""
        if file is None or not file.filename:
            raise UnsupportedFormat("No file uploaded")

        # Declared metadata is rejected before any of the body is read.
        self.guard.check_declared(file.filename, file.content_type)
        declared_size: Optional[int] = getattr(file, "size", None)
        if declared_size is not None:
            self.guard.check_size(declared_size)

        content = await self.read_limited(file)
        self.guard.validate(
            file.filename,
            file.content_type,
            len(content),
            content[: self.guard.policy.scan_window],
        )

        path = self.upload_dir / (secure_storage_name(file.filename) + ENCRYPTED_SUFFIX)
        await self.encryptor.encrypt_to_path(content, path)

        logger.info(
            "Accepted upload for chat %s (%d bytes) as %s", chat_id, len(content), path.name
        )
        return StoredUpload(
            original_name=file.filename,
            size=len(content),
            content_type=file.content_type or "",
            path=path,
            owner_id=owner_id,
            chat_id=chat_id,
        )

    async def open_for_parsing(self, upload: StoredUpload) -> bytes:
        """Decrypt the artifact once, right before parsing."""
        return await self.encryptor.decrypt_from_path(upload.path)

    def leftover_artifacts(self) -> list[Path]:
        if not self.upload_dir.exists():
            return []
        return sorted(p for p in self.upload_dir.iterdir() if p.is_file())
