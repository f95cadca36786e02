import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from api.routes import chat_imports
from config import AppMode, get_settings
from db.database import init_db
from fastapi import APIRouter, FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from middleware.security import SecurityHeadersMiddleware
from middleware.upload_limit import MULTIPART_OVERHEAD, UploadSizeLimitMiddleware
from services.file_encryption import FileEncryptor, KeyProvider
from services.import_errors import ChatImportError
from services.error_sanitizer import public_error_payload
from starlette.formparsers import MultiPartParser
from starlette.requests import Request

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Silence noisy loggers
logging.getLogger("aiosqlite").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

# Keep multipart uploads in memory so a plaintext export is never spooled to a
# temporary file on disk. This is process-wide; UploadSizeLimitMiddleware
# rejects any import body that could exceed it before the form is parsed.
MultiPartParser.spool_max_size = settings.IMPORT_MAX_FILE_SIZE + MULTIPART_OVERHEAD + 1


def build_file_encryptor() -> FileEncryptor:
    """Fail fast on a missing or malformed FILE_ENCRYPTION_KEY."""
    key_provider = KeyProvider.from_settings(settings)
    logger.info(f"File encryption ready ({key_provider.key_count} key(s) loaded)")
    return FileEncryptor(key_provider)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle events: startup and shutdown"""

    # === STARTUP ===
    logger.info(f"Starting Chat Import Service in {settings.APP_MODE.value} mode...")

    app.state.file_encryptor = build_file_encryptor()

    upload_dir = Path(settings.IMPORT_UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    # Artifacts only outlive a request when a process died mid-import. Anything
    # younger than the import timeout may still belong to another worker.
    cutoff = time.time() - settings.IMPORT_TIMEOUT_SECONDS
    leftovers = [p for p in upload_dir.iterdir() if p.is_file() and p.stat().st_mtime < cutoff]
    if leftovers:
        for path in leftovers:
            path.unlink(missing_ok=True)
        logger.warning(f"Removed {len(leftovers)} stale upload artifact(s) from {upload_dir}")

    await init_db()
    logger.info("Database initialized")

    yield

    # === SHUTDOWN ===
    logger.info("Shutting down Chat Import Service...")


app = FastAPI(
    title="Chat History Import Service",
    description="Secure import of chat exports (CSV) into two-person chats",
    version="1.0.0",
    lifespan=lifespan,
    debug=(settings.APP_MODE == AppMode.DEV),
)

MAX_ERROR_STRING_CHARS = 400
MAX_ERROR_CONTAINER_ITEMS = 50
MAX_ERROR_DEPTH = 8


def _truncate_string(value: str, max_chars: int = MAX_ERROR_STRING_CHARS) -> str:
    if len(value) <= max_chars:
        return value
    return f"{value[:max_chars]}...(truncated)"


def _sanitize_for_json(value: Any, *, _depth: int = 0) -> Any:
    """
    Make sure error payloads are always UTF-8 encodable.

    RequestValidationError details can echo user input (unpaired surrogates,
    very long form fields); encode safely and truncate.
    """
    if _depth > MAX_ERROR_DEPTH:
        return "<max depth reached>"
    if value is None:
        return None
    if isinstance(value, (int, float, bool)):
        return value
    if isinstance(value, str):
        safe = value.encode("utf-8", errors="replace").decode("utf-8", errors="replace")
        return _truncate_string(safe)
    if isinstance(value, bytes):
        return _truncate_string(value.decode("utf-8", errors="replace"))
    if isinstance(value, (list, tuple, set)):
        items = list(value)
        out = [_sanitize_for_json(v, _depth=_depth + 1) for v in items[:MAX_ERROR_CONTAINER_ITEMS]]
        if len(items) > MAX_ERROR_CONTAINER_ITEMS:
            out.append(f"... ({len(items) - MAX_ERROR_CONTAINER_ITEMS} more items truncated)")
        return out
    if isinstance(value, dict):
        items = list(value.items())
        out: dict[str, Any] = {}
        for k, v in items[:MAX_ERROR_CONTAINER_ITEMS]:
            out[str(_sanitize_for_json(k, _depth=_depth + 1))] = _sanitize_for_json(v, _depth=_depth + 1)
        if len(items) > MAX_ERROR_CONTAINER_ITEMS:
            out["__truncated__"] = f"{len(items) - MAX_ERROR_CONTAINER_ITEMS} more keys truncated"
        return out
    try:
        return _sanitize_for_json(str(value), _depth=_depth + 1)
    except Exception:
        return "<unserializable>"


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    safe_errors = _sanitize_for_json(exc.errors())
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": safe_errors},
    )


@app.exception_handler(ChatImportError)
async def chat_import_exception_handler(request: Request, exc: ChatImportError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind}")
    return JSONResponse(status_code=exc.status_code, content=public_error_payload(exc))


# Security middlewares (order matters - first added = last executed)
# 1. Upload size limit - rejects oversized imports before the form is parsed
app.add_middleware(UploadSizeLimitMiddleware, max_file_size=settings.IMPORT_MAX_FILE_SIZE)

# 2. Security headers - adds security headers to all responses
app.add_middleware(SecurityHeadersMiddleware)

# 3. Request logging (development only)
if settings.APP_MODE == AppMode.DEV:
    from middleware.logging import RequestLoggingMiddleware, configure_request_logging

    configure_request_logging(settings.LOG_LEVEL)
    app.add_middleware(RequestLoggingMiddleware)

# 4. CORS middleware - must be last (first to process incoming requests)
allow_credentials = "*" not in settings.CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=allow_credentials,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
)

# API Routes - versioned under /api/v1/
api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(chat_imports.router)
app.include_router(api_v1_router)

# Backward compatibility: Also mount routes at /api/ (deprecated)
api_compat_router = APIRouter(prefix="/api", deprecated=True)
api_compat_router.include_router(chat_imports.router)
app.include_router(api_compat_router)


@app.get("/")
async def root():
    return {
        "name": "Chat History Import API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "mode": settings.APP_MODE.value,
        "encryption_ready": getattr(app.state, "file_encryptor", None) is not None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=(settings.APP_MODE == AppMode.DEV),
    )
