"""Error envelope and status mapping for the ent API.

All failures answer with ErrorResponse: an ErrorKind value (or an HTTP
fallback code) in ``code``, a caller-safe ``message``, optional
``details`` and the ``request_id`` also sent as X-Request-Id. Only this
module decides which HTTP status an error kind maps to.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from ent.api.schemas import ErrorResponse
from ent.storage.errors import ErrorKind

REQUEST_ID_HEADER = "X-Request-Id"

ERROR_KIND_TO_STATUS: dict[ErrorKind, int] = {
    ErrorKind.BUCKET_NOT_FOUND: 404,
    ErrorKind.FILE_NOT_FOUND: 404,
    ErrorKind.INVALID_PARAM: 400,
}

HTTP_STATUS_TO_CODE: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    413: "PAYLOAD_TOO_LARGE",
    422: "UNPROCESSABLE_ENTITY",
    500: "INTERNAL_ERROR",
}


def _get_request_id(request: Request) -> str:
    """Return the ID assigned by RequestIdMiddleware, or a fresh one.

    Errors raised outside the middleware (for example by Starlette's
    server error handler) still get an ID.
    """
    request_id: str | None = getattr(request.state, "request_id", None)
    if request_id is not None:
        return str(request_id)
    return str(uuid.uuid4())


def make_error_response(
    request: Request,
    *,
    code: str,
    message: str,
    http_status: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build the error envelope response for request.

    Args:
        request: Incoming request; supplies the request ID.
        code: Error code, usually an ErrorKind value such as "FILE_NOT_FOUND".
        message: Message safe to show to API callers.
        http_status: Status of the response.
        details: Bucket, key or field context. Never filesystem paths.
    """
    request_id = _get_request_id(request)
    envelope = ErrorResponse(code=code, message=message, details=details, request_id=request_id)
    return JSONResponse(
        status_code=http_status,
        content=envelope.model_dump(),
        headers={REQUEST_ID_HEADER: request_id},
    )


def status_for_kind(kind: ErrorKind) -> int:
    """Map an error kind to its HTTP status; unknown kinds are server errors."""
    return ERROR_KIND_TO_STATUS.get(kind, 500)


def get_error_code_for_status(status_code: int) -> str:
    """Get standard error code for HTTP status code."""
    return HTTP_STATUS_TO_CODE.get(status_code, "ERROR")
