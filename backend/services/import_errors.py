"""
Error taxonomy for the chat-history import pipeline.

Every error carries a stable machine-readable ``kind`` and a short public
message. Internal causes (exceptions, paths, key material) are logged by the
raiser and never placed in ``public_message``.
"""

from typing import Iterable, Optional

from fastapi import status


class ChatImportError(Exception):
    kind = "ImportError"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Import request failed"

    def __init__(self, public_message: Optional[str] = None):
        self.public_message = public_message or self.default_message
        super().__init__(self.public_message)

    def to_payload(self) -> dict:
        return {"success": False, "error": self.kind, "details": self.public_message}


class UnsupportedFormat(ChatImportError):
    kind = "UnsupportedFormat"
    status_code = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE
    default_message = "Unsupported file format"


class TooLarge(ChatImportError):
    kind = "TooLarge"
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        super().__init__(f"File too large. Maximum size is {format_file_size(max_bytes)}")

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["maxBytes"] = self.max_bytes
        return payload


class SuspiciousContent(ChatImportError):
    kind = "SuspiciousContent"
    default_message = "File failed the security check and was discarded"


class EncryptionFailed(ChatImportError):
    kind = "EncryptionFailed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "File processing failed"


class DecryptionFailed(ChatImportError):
    kind = "DecryptionFailed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "File processing failed"


class ChatNotFound(ChatImportError):
    kind = "ChatNotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Chat not found"


class AccessDenied(ChatImportError):
    kind = "AccessDenied"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not authorized to access this chat"


class UnresolvedSenders(ChatImportError):
    kind = "UnresolvedSenders"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = (
        "Some senders could not be matched to a chat participant. "
        "Resubmit with a sender_map for these labels."
    )

    def __init__(self, labels: Iterable[str], public_message: Optional[str] = None):
        self.labels = sorted(set(labels))
        super().__init__(public_message)

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["unmatchedSenders"] = self.labels
        return payload


class ImportFailed(ChatImportError):
    kind = "ImportFailed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Import failed. No messages were imported."


class ImportNotFound(ChatImportError):
    kind = "ImportNotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Import not found"


def format_file_size(num_bytes: int) -> str:
    """Human-readable size, e.g. 52428800 -> '50 MB'."""
    if num_bytes < 1024:
        return f"{num_bytes} Bytes"
    size = float(num_bytes)
    for unit in ("KB", "MB", "GB"):
        size /= 1024
        if size < 1024 or unit == "GB":
            return f"{round(size, 2):g} {unit}"
    return f"{num_bytes} Bytes"
