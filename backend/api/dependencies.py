from pathlib import Path

from config import Settings, get_settings
from db.database import get_db
from fastapi import Depends, Request
from services.content_guard import ContentGuard, GuardPolicy
from services.file_encryption import FileEncryptor
from services.import_errors import EncryptionFailed
from services.import_pipeline import ImportPipeline
from services.upload_store import UploadStore
from sqlalchemy.ext.asyncio import AsyncSession


def get_file_encryptor(request: Request) -> FileEncryptor:
    """The encryptor built at startup from FILE_ENCRYPTION_KEY."""
    encryptor = getattr(request.app.state, "file_encryptor", None)
    if encryptor is None:
        # Lifespan did not run (or failed); refuse rather than store plaintext.
        raise EncryptionFailed()
    return encryptor


def get_upload_store(
    encryptor: FileEncryptor = Depends(get_file_encryptor),
    settings: Settings = Depends(get_settings),
) -> UploadStore:
    return UploadStore(
        upload_dir=Path(settings.IMPORT_UPLOAD_DIR),
        guard=ContentGuard(GuardPolicy.from_settings(settings)),
        encryptor=encryptor,
    )


def get_import_pipeline(
    db: AsyncSession = Depends(get_db),
    store: UploadStore = Depends(get_upload_store),
    settings: Settings = Depends(get_settings),
) -> ImportPipeline:
    return ImportPipeline(db, store, settings)
