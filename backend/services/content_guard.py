"""
Content Guard: first line of screening for uploaded chat exports.

Checks are advisory, not a malware scanner: extension and declared MIME
allow-lists, a size ceiling, a signature scan over the head of the file, and
a null-byte ratio heuristic for binary content posing as text.
"""

import logging
import os
import re
import secrets
import time
from dataclasses import dataclass
from typing import Iterable, Optional

from config import Settings
from services.import_errors import SuspiciousContent, TooLarge, UnsupportedFormat

logger = logging.getLogger(__name__)

# Binary container headers only mean something at offset 0; matching "MZ" or
# "PK" anywhere would reject ordinary chat text.
BINARY_SIGNATURES: tuple[tuple[str, bytes], ...] = (
    ("pe_executable", b"MZ"),
    ("zip_archive", b"PK"),
    ("elf_executable", b"\x7fELF"),
    ("java_class", b"\xca\xfe\xba\xbe"),
)

# Script markers are matched anywhere in the window, case-insensitively.
SCRIPT_SIGNATURES: tuple[tuple[str, bytes], ...] = (
    ("php_script", b"<?php"),
    ("script_tag", b"<script"),
    ("javascript_uri", b"javascript:"),
    ("vbscript_uri", b"vbscript:"),
)

UTF8_BOM = b"\xef\xbb\xbf"

_SAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9_-]")


def normalize_mime_type(declared: Optional[str]) -> str:
    mime_type = (declared or "").strip().strip("\"'")
    if ";" in mime_type:
        mime_type = mime_type.split(";", 1)[0]
    return mime_type.strip().lower()


def file_extension(filename: Optional[str]) -> str:
    return os.path.splitext(os.path.basename(filename or ""))[1].lower()


@dataclass(frozen=True)
class GuardPolicy:
    allowed_extensions: tuple[str, ...]
    allowed_mime_types: tuple[str, ...]
    max_file_size: int
    scan_window: int = 1024
    max_null_ratio: float = 0.1

    @classmethod
    def from_settings(cls, settings: Settings) -> "GuardPolicy":
        return cls(
            allowed_extensions=tuple(settings.import_allowed_extensions),
            allowed_mime_types=tuple(settings.import_allowed_mime_types),
            max_file_size=settings.IMPORT_MAX_FILE_SIZE,
            scan_window=settings.IMPORT_SCAN_WINDOW_BYTES,
            max_null_ratio=settings.IMPORT_MAX_NULL_BYTE_RATIO,
        )


class ContentGuard:
    """Validates upload metadata and screens the first bytes of the content."""

    def __init__(self, policy: GuardPolicy):
        self.policy = policy

    def check_declared(self, filename: Optional[str], content_type: Optional[str]) -> None:
        """Extension and MIME checks; run before any byte is read."""
        ext = file_extension(filename)
        if ext not in self.policy.allowed_extensions:
            raise UnsupportedFormat(
                f"Invalid file extension: {ext or '<none>'}. "
                f"Only {', '.join(self.policy.allowed_extensions)} files are allowed."
            )

        mime_type = normalize_mime_type(content_type)
        if mime_type not in self.policy.allowed_mime_types:
            raise UnsupportedFormat(
                f"Invalid MIME type: {mime_type or '<none>'}. "
                f"Allowed: {', '.join(self.policy.allowed_mime_types)}."
            )

    def check_size(self, size: int) -> None:
        if size > self.policy.max_file_size:
            raise TooLarge(self.policy.max_file_size)

    def scan(self, head: bytes) -> None:
        """Signature and null-byte screening over the scan window."""
        window = head[: self.policy.scan_window]
        if not window:
            return

        start = window[len(UTF8_BOM):] if window.startswith(UTF8_BOM) else window
        matched = next(
            (label for label, signature in BINARY_SIGNATURES if start.startswith(signature)),
            None,
        )
        if matched is None:
            lowered = window.lower()
            matched = next(
                (label for label, signature in SCRIPT_SIGNATURES if signature in lowered),
                None,
            )
        if matched is not None:
            logger.warning("Upload rejected by signature scan (%s)", matched)
            raise SuspiciousContent("File contains suspicious content and may be malicious")

        null_bytes = window.count(0)
        if null_bytes > len(window) * self.policy.max_null_ratio:
            logger.warning(
                "Upload rejected: %d null bytes in %d-byte window", null_bytes, len(window)
            )
            raise SuspiciousContent(
                "File contains excessive null bytes and may not be a valid CSV file"
            )

    def validate(
        self,
        filename: Optional[str],
        content_type: Optional[str],
        size: int,
        head: bytes,
    ) -> None:
        """Run every check in order; raises on the first failure."""
        self.check_declared(filename, content_type)
        self.check_size(size)
        self.scan(head)


def secure_storage_name(original_name: Optional[str], allowed: Iterable[str] = (".csv",)) -> str:
    """
    Build a collision-resistant on-disk name that never echoes path segments.

    Format: ``<epoch-ms>-<16 hex>-<sanitized base>.<ext>``.
    """
    base_name = os.path.basename(original_name or "")
    ext = file_extension(base_name)
    if ext not in allowed:
        ext = ""
    stem = base_name[: len(base_name) - len(ext)] if ext else base_name
    stem = _SAFE_NAME_RE.sub("", stem)[:50]
    return f"{int(time.time() * 1000)}-{secrets.token_hex(8)}-{stem}{ext}"
