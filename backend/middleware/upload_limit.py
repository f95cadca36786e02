"""Reject oversized chat-export uploads before the multipart body is parsed."""

from typing import Callable

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from services.error_sanitizer import public_error_payload
from services.import_errors import TooLarge

# Room for multipart boundaries, part headers and the small form fields.
MULTIPART_OVERHEAD = 16 * 1024

UPLOAD_PATH_SUFFIX = "/csv-import"


class UploadSizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Enforce the import size limit on ``Content-Length``.

    Import uploads must declare their length. Anything larger than the file
    limit plus multipart overhead is answered with 413 before Starlette
    starts spooling the form, so an oversized export never reaches disk.
    """

    def __init__(self, app, max_file_size: int, multipart_overhead: int = MULTIPART_OVERHEAD):
        super().__init__(app)
        self.max_file_size = max_file_size
        self.max_body_size = max_file_size + multipart_overhead

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method != "POST" or not request.url.path.endswith(UPLOAD_PATH_SUFFIX):
            return await call_next(request)

        content_length = request.headers.get("content-length")
        if content_length is None:
            return JSONResponse(
                status_code=status.HTTP_411_LENGTH_REQUIRED,
                content={
                    "success": False,
                    "error": "LengthRequired",
                    "details": "Uploads must send a Content-Length header",
                },
            )

        try:
            length = int(content_length)
        except ValueError:
            length = -1
        if length < 0:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={
                    "success": False,
                    "error": "BadRequest",
                    "details": "Invalid Content-Length header",
                },
            )

        if length > self.max_body_size:
            exc = TooLarge(self.max_file_size)
            return JSONResponse(status_code=exc.status_code, content=public_error_payload(exc))

        return await call_next(request)
