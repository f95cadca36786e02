"""Middleware package for response hardening, upload limits and request logging."""

from .logging import RequestLoggingMiddleware, configure_request_logging
from .security import SecurityHeadersMiddleware
from .upload_limit import MULTIPART_OVERHEAD, UploadSizeLimitMiddleware

__all__ = [
    "MULTIPART_OVERHEAD",
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
    "UploadSizeLimitMiddleware",
    "configure_request_logging",
]
