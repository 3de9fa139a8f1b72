"""Request ID middleware for the ent API.

Every request gets an ID that is echoed in the ``X-Request-Id`` response
header and in error envelopes, so client logs and server logs line up.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ent.api.error_model import REQUEST_ID_HEADER

logger = logging.getLogger(__name__)

# Longer caller IDs are replaced rather than copied into logs and headers.
MAX_REQUEST_ID_LENGTH = 128


def accept_request_id(raw: str | None) -> str | None:
    """Return a caller-supplied request ID if it is safe to reuse."""
    if raw is None:
        return None
    candidate = raw.strip()
    if not candidate or len(candidate) > MAX_REQUEST_ID_LENGTH:
        return None
    if not candidate.isascii() or not candidate.isprintable():
        return None
    return candidate


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Reuse the caller's X-Request-Id when acceptable, otherwise mint a uuid4.

    The ID is stored on ``request.state.request_id`` for handlers and
    exception handlers.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        raw = request.headers.get(REQUEST_ID_HEADER)
        request_id = accept_request_id(raw)
        if request_id is None:
            request_id = str(uuid.uuid4())
            if raw:
                logger.debug("Replaced unusable request id of length %d", len(raw))

        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
