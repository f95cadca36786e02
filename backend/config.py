import logging
import warnings
from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


logger = logging.getLogger(__name__)


# Default insecure secret key - MUST be changed in production
_DEFAULT_INSECURE_SECRET_KEY = "your-secret-key-here-change-in-production"


class AppMode(str, Enum):
    DEV = "dev"
    PROD = "prod"


def _split_csv_setting(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    # Application mode - defaults to DEV for safety
    # SECURITY: In production, explicitly set APP_MODE=prod
    APP_MODE: AppMode = AppMode.DEV

    # Debug mode - MUST be False in production
    DEBUG: bool = False

    # Database (SQLite default for dev, use PostgreSQL in production)
    DATABASE_URL: str = "sqlite+aiosqlite:///./chat_import.db"

    # Server configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # JWT verification (tokens are issued by the account service)
    SECRET_KEY: str = _DEFAULT_INSECURE_SECRET_KEY
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # At-rest encryption for uploaded chat exports.
    # Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
    # SECURITY: no default - the app refuses to start without a valid key.
    FILE_ENCRYPTION_KEY: str = ""
    # Comma-separated retired keys, accepted for decryption only (key rotation)
    FILE_ENCRYPTION_PREVIOUS_KEYS: str = ""

    # Working storage for encrypted uploads (files never outlive a request)
    IMPORT_UPLOAD_DIR: str = "uploads"

    # Upload screening
    IMPORT_MAX_FILE_SIZE: int = 50 * 1024 * 1024  # 50MB
    IMPORT_ALLOWED_EXTENSIONS: str = ".csv"
    IMPORT_ALLOWED_MIME_TYPES: str = "text/csv,application/csv,text/plain"
    IMPORT_SCAN_WINDOW_BYTES: int = 1024
    IMPORT_MAX_NULL_BYTE_RATIO: float = 0.1

    # Bulk write tuning
    IMPORT_BATCH_SIZE: int = 1000
    IMPORT_WRITE_RETRIES: int = 3
    IMPORT_RETRY_BASE_DELAY: float = 0.1  # seconds, doubled per attempt

    # Whole-pipeline budget for one upload
    IMPORT_TIMEOUT_SECONDS: float = 300.0

    # When True, sender labels that match no participant block the import
    # instead of being attributed to the uploader.
    IMPORT_REQUIRE_SENDER_MATCH: bool = False

    # CORS
    CORS_ALLOWED_ORIGINS: str = ""  # Comma-separated list of allowed origins

    @property
    def import_allowed_extensions(self) -> List[str]:
        return [ext.lower() for ext in _split_csv_setting(self.IMPORT_ALLOWED_EXTENSIONS)]

    @property
    def import_allowed_mime_types(self) -> List[str]:
        return [mime.lower() for mime in _split_csv_setting(self.IMPORT_ALLOWED_MIME_TYPES)]

    @property
    def previous_encryption_keys(self) -> List[str]:
        return _split_csv_setting(self.FILE_ENCRYPTION_PREVIOUS_KEYS)

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """
        Get allowed CORS origins.

        SECURITY: In production, never return ["*"]. Always configure
        CORS_ALLOWED_ORIGINS explicitly in production.
        """
        origins = []

        if self.APP_MODE == AppMode.DEV:
            origins = [
                "http://localhost:3000",
                "http://localhost:5173",
                "http://127.0.0.1:3000",
                "http://127.0.0.1:5173",
            ]

        origins.extend(_split_csv_setting(self.CORS_ALLOWED_ORIGINS))

        if not origins and self.APP_MODE == AppMode.PROD:
            logger.warning(
                "SECURITY WARNING: No CORS_ALLOWED_ORIGINS configured in production. "
                "Cross-origin requests will be blocked."
            )

        return origins

    @property
    def LOG_LEVEL(self) -> str:
        return "DEBUG" if self.DEBUG else "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env variables


def _validate_settings(settings: Settings) -> Settings:
    """
    Validate settings and warn/error on security issues.

    SECURITY: This function ensures critical security settings are properly
    configured in production environments. The encryption key itself is
    validated when the KeyProvider is built at startup.
    """
    if settings.IMPORT_MAX_FILE_SIZE <= 0:
        raise ValueError("IMPORT_MAX_FILE_SIZE must be positive")
    if not 0 < settings.IMPORT_MAX_NULL_BYTE_RATIO <= 1:
        raise ValueError("IMPORT_MAX_NULL_BYTE_RATIO must be in (0, 1]")
    if settings.IMPORT_BATCH_SIZE <= 0:
        raise ValueError("IMPORT_BATCH_SIZE must be positive")

    if settings.APP_MODE == AppMode.PROD:
        # CRITICAL: Fail fast if using default secret key in production
        if settings.SECRET_KEY == _DEFAULT_INSECURE_SECRET_KEY:
            error_msg = (
                "CRITICAL SECURITY ERROR: Default SECRET_KEY is being used in production! "
                "Set a strong, unique SECRET_KEY environment variable."
            )
            logger.critical(error_msg)
            raise ValueError(error_msg)

        # CRITICAL: Fail fast if DEBUG is enabled in production
        if settings.DEBUG:
            error_msg = (
                "CRITICAL SECURITY ERROR: DEBUG=True in production! "
                "Debug mode exposes sensitive information in error responses."
            )
            logger.critical(error_msg)
            raise ValueError(error_msg)

        if len(settings.SECRET_KEY) < 32:
            warnings.warn(
                "SECRET_KEY appears to be weak (less than 32 characters). "
                "Consider using a longer, more random key for production.",
                SecurityWarning,
                stacklevel=2,
            )

        if not settings.IMPORT_REQUIRE_SENDER_MATCH:
            logger.warning(
                "IMPORT_REQUIRE_SENDER_MATCH is disabled: unmatched sender labels "
                "will be attributed to the uploading account."
            )

    return settings


class SecurityWarning(UserWarning):
    """Warning for security-related configuration issues."""
    pass


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    This function validates settings on first access and raises errors
    for critical security misconfigurations in production.
    """
    settings = Settings()
    return _validate_settings(settings)
