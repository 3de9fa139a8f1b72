"""ent FastAPI application factory.

This module provides the create_app() factory for serving a BlobService
over HTTP.
"""

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from starlette.middleware.cors import CORSMiddleware

from ent.api.errors import (
    ent_error_handler,
    generic_exception_handler,
    http_exception_handler,
    request_validation_error_handler,
)
from ent.api.middleware.request_id import RequestIdMiddleware
from ent.api.routes.buckets import router as buckets_router
from ent.api.routes.files import router as files_router
from ent.observability.tracing import TracingHandle, instrument_fastapi, instrument_storage
from ent.storage.errors import EntError
from ent.storage.service import BlobService

ENT_VERSION = "0.1.0"

CORS_ALLOW_HEADERS = ["Accept", "Authorization", "Content-Type", "Origin"]
CORS_ALLOW_METHODS = ["GET", "POST", "DELETE"]
CORS_ALLOW_ORIGINS = ["*"]


def create_app(service: BlobService, tracing: TracingHandle | None = None) -> FastAPI:
    """Create and configure the ent FastAPI application.

    Middleware ordering (outermost to innermost):
    1. RequestIdMiddleware - ensures request_id is available everywhere
    2. CORSMiddleware - answers preflight requests and adds CORS headers

    Note: Starlette middleware is added in reverse order (last added = outermost).

    Args:
        service: BlobService the routes operate on.
        tracing: Tracing state from configure_tracing(); None leaves the app
            uninstrumented.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="ent",
        description="Namespaced blob store",
        version=ENT_VERSION,
    )

    app.state.service = service
    app.state.tracing = tracing

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOW_ORIGINS,
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
    )
    app.add_middleware(RequestIdMiddleware)

    if tracing is not None:
        instrument_fastapi(app, tracing)
        instrument_storage(service.filesystem, tracing)

    app.add_exception_handler(EntError, ent_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # File routes first: "/{bucket}/{key:path}" must not be shadowed.
    app.include_router(files_router)
    app.include_router(buckets_router)

    return app
