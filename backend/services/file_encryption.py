"""
At-rest encryption for uploaded chat exports.

Uses Fernet (AES-128-CBC + HMAC-SHA256) from ``cryptography``. The key is
loaded once at startup into a KeyProvider and injected into FileEncryptor;
nothing in this module reads settings lazily.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from config import Settings
from services.import_errors import DecryptionFailed, EncryptionFailed

logger = logging.getLogger(__name__)


class KeyProvider:
    """
    Holds the process-wide file encryption keys.

    The first key encrypts; all keys (current + previous) decrypt, which lets
    a deployment rotate FILE_ENCRYPTION_KEY without breaking in-flight files.
    """

    def __init__(self, current_key: str, previous_keys: Optional[Iterable[str]] = None):
        if not current_key or not current_key.strip():
            raise ValueError(
                "FILE_ENCRYPTION_KEY is not set. Generate one with "
                "Fernet.generate_key() and set it in the environment."
            )
        keys = [current_key.strip(), *[k.strip() for k in (previous_keys or []) if k.strip()]]
        try:
            self._fernets = [Fernet(key.encode("ascii")) for key in keys]
        except (ValueError, UnicodeEncodeError) as exc:
            # Do not echo the key value.
            raise ValueError(
                "FILE_ENCRYPTION_KEY is malformed: expected a 32-byte url-safe base64 key"
            ) from exc

    @classmethod
    def from_settings(cls, settings: Settings) -> "KeyProvider":
        return cls(settings.FILE_ENCRYPTION_KEY, settings.previous_encryption_keys)

    @property
    def key_count(self) -> int:
        return len(self._fernets)

    def cipher(self) -> MultiFernet:
        return MultiFernet(self._fernets)


class FileEncryptor:
    """Encrypts/decrypts whole files; CPU work runs off the event loop."""

    def __init__(self, key_provider: KeyProvider):
        self._cipher = key_provider.cipher()

    def encrypt(self, raw: bytes) -> bytes:
        return self._cipher.encrypt(raw)

    def decrypt(self, token: bytes) -> bytes:
        return self._cipher.decrypt(token)

    async def encrypt_to_path(self, raw: bytes, path: Path) -> Path:
        """
        Encrypt ``raw`` and write it to ``path``.

        On any failure the partially written file is removed and
        EncryptionFailed is raised; plaintext is never written to disk.
        """
        try:
            token = await asyncio.to_thread(self.encrypt, raw)
            await asyncio.to_thread(_write_private_file, path, token)
        except Exception:
            logger.error("File encryption failed for %s", path.name, exc_info=True)
            remove_quietly(path)
            raise EncryptionFailed()
        return path

    async def decrypt_from_path(self, path: Path) -> bytes:
        """Read and decrypt an artifact. The artifact is left in place."""
        try:
            token = await asyncio.to_thread(path.read_bytes)
            return await asyncio.to_thread(self.decrypt, token)
        except InvalidToken:
            logger.error("Decryption failed for %s: invalid token or wrong key", path.name)
            raise DecryptionFailed()
        except OSError:
            logger.error("Decryption failed for %s: unreadable artifact", path.name, exc_info=True)
            raise DecryptionFailed()


def _write_private_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "wb") as fh:
        fh.write(data)


def remove_quietly(path: Optional[Path]) -> bool:
    """Delete ``path`` if it exists. Returns True when a file was removed."""
    if path is None:
        return False
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError:
        logger.error("Failed to remove working file %s", path, exc_info=True)
        return False
