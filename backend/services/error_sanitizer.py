import re
from typing import Optional


_SUSPICIOUS_ERROR_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"traceback", re.IGNORECASE),
    re.compile(r"\bfile\s+\".*?\.py\"", re.IGNORECASE),
    re.compile(r"sqlalchemy", re.IGNORECASE),
    re.compile(r"sqlite3|asyncpg", re.IGNORECASE),
    re.compile(r"\boperationalerror\b", re.IGNORECASE),
    re.compile(r"\bintegrityerror\b", re.IGNORECASE),
    re.compile(r"\[sql:", re.IGNORECASE),
    re.compile(r"\b(insert|delete)\s+(into|from)\b", re.IGNORECASE),
    re.compile(r"fernet|invalidtoken|encryption_key", re.IGNORECASE),
    re.compile(r"\.enc\b|uploads[/\\]", re.IGNORECASE),
    re.compile(r"/home/|/users/|/tmp/|/var/|[a-z]:\\", re.IGNORECASE),
)


def sanitize_public_error_message(
    message: Optional[str],
    *,
    fallback: str = "Internal error",
    max_chars: int = 240,
) -> Optional[str]:
    """
    Sanitize an error message before returning it to clients.

    Treat `message` as untrusted: it may carry SQL, storage paths or key
    material (especially if derived from `str(exception)`).
    """
    if not message:
        return None

    safe = message.encode("utf-8", errors="replace").decode("utf-8", errors="replace")
    safe = re.sub(r"\s+", " ", safe).strip()
    if not safe:
        return None

    if any(p.search(safe) for p in _SUSPICIOUS_ERROR_PATTERNS):
        return fallback

    if len(safe) > max_chars:
        return f"{safe[:max_chars]}..."
    return safe


def public_error_payload(exc) -> dict:
    """Render a ChatImportError as the client-facing JSON body."""
    payload = exc.to_payload()
    payload["details"] = sanitize_public_error_message(
        payload.get("details"), fallback=type(exc).default_message
    ) or type(exc).default_message
    return payload
