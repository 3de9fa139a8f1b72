"""Exception handlers registered by create_app().

EntError is translated by kind. Routing errors from Starlette (unknown
paths, unsupported methods) and request validation errors keep their own
status. Anything else is a 500 whose details stay in the server log.
"""

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from ent.api.error_model import (
    get_error_code_for_status,
    make_error_response,
    status_for_kind,
)
from ent.storage.errors import EntError, ErrorKind

logger = logging.getLogger(__name__)


async def ent_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for EntError.

    Client-side kinds keep their message. Server-side kinds are logged and
    answered with a generic message so paths and OS errors do not leak.
    """
    assert isinstance(exc, EntError)

    status = status_for_kind(exc.kind)
    details: dict[str, Any] | None = None
    if status >= 500:
        logger.error(
            "Storage failure in %s: %s",
            exc.operation or request.url.path,
            exc,
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        message = "An internal error occurred"
    else:
        message = exc.message
        if exc.bucket:
            details = {"bucket": exc.bucket}
            if exc.key:
                details["key"] = exc.key

    return make_error_response(
        request,
        code=exc.kind.value,
        message=message,
        http_status=status,
        details=details,
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Answer Starlette routing errors such as 404 and 405 with the envelope."""
    assert isinstance(exc, HTTPException)
    response = make_error_response(
        request,
        code=get_error_code_for_status(exc.status_code),
        message=str(exc.detail or f"HTTP {exc.status_code}"),
        http_status=exc.status_code,
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def request_validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Report malformed request parameters as INVALID_PARAM with status 400."""
    assert isinstance(exc, RequestValidationError)

    params = sorted({str(error["loc"][-1]) for error in exc.errors() if error.get("loc")})
    return make_error_response(
        request,
        code=ErrorKind.INVALID_PARAM.value,
        message=f"invalid param: {', '.join(params)}" if params else "invalid param",
        http_status=400,
        details={"params": params} if params else None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Answer unexpected exceptions with an opaque 500 and log the traceback."""
    logger.exception(
        "Unhandled %s on %s %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        extra={"request_id": getattr(request.state, "request_id", None)},
    )
    return make_error_response(
        request,
        code="INTERNAL_ERROR",
        message="An internal error occurred",
        http_status=500,
    )
