"""File routes for the ent API.

- POST /{bucket}/{key} (createFile) stores the request body
- GET /{bucket}/{key} (getFile) streams the stored bytes
- HEAD /{bucket}/{key} (fileExists) answers with headers only
- DELETE /{bucket}/{key} (deleteFile)

Storage calls block, so they run in the thread pool. Every response for an
existing file carries ETag (hex digest) and Last-Modified headers.
"""

from __future__ import annotations

import logging
import tempfile
import time

from fastapi import APIRouter, Request, Response
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool

from ent.api.error_model import status_for_kind
from ent.api.routes.buckets import get_service
from ent.api.schemas import ResponseCreated, ResponseDeleted, ResponseFile, format_timestamp
from ent.storage.errors import EntError
from ent.storage.files import File
from ent.storage.service import BlobService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Files"])

HEADER_ETAG = "ETag"
HEADER_LAST_MODIFIED = "Last-Modified"

# Request bodies above this size spill from memory to a temporary file.
SPOOL_MAX_MEMORY = 1024 * 1024


def blob_headers(handle: File) -> dict[str, str]:
    """Return the ETag and Last-Modified headers for an open handle."""
    return {
        HEADER_ETAG: handle.hexdigest(),
        HEADER_LAST_MODIFIED: format_timestamp(handle.last_modified),
    }


def _store(
    service: BlobService, bucket_name: str, key: str, source: object
) -> tuple[ResponseFile, dict[str, str]]:
    bucket = service.bucket(bucket_name)
    with service.create(bucket_name, key, source) as handle:  # type: ignore[arg-type]
        return ResponseFile.from_file(handle, bucket), blob_headers(handle)


def _remove(service: BlobService, bucket_name: str, key: str) -> ResponseFile:
    bucket = service.bucket(bucket_name)
    with service.open(bucket_name, key) as handle:
        described = ResponseFile.from_file(handle, bucket)
    service.delete(bucket_name, key)
    return described


def _open_with_headers(
    service: BlobService, bucket_name: str, key: str
) -> tuple[File, dict[str, str]]:
    handle = service.open(bucket_name, key)
    try:
        headers = blob_headers(handle)
        headers["Content-Length"] = str(handle.size())
    except BaseException:
        handle.close()
        raise
    return handle, headers


def _head(service: BlobService, bucket_name: str, key: str) -> dict[str, str]:
    with service.open(bucket_name, key) as handle:
        return blob_headers(handle)


@router.post(
    "/{bucket}/{key:path}",
    status_code=201,
    response_model=ResponseCreated,
    response_model_by_alias=True,
)
async def create_file(
    bucket: str, key: str, request: Request, response: Response
) -> ResponseCreated:
    """Store the request body under key, replacing any previous content."""
    start = time.perf_counter_ns()
    service = get_service(request)
    await run_in_threadpool(service.bucket, bucket)

    with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY) as spool:
        async for chunk in request.stream():
            await run_in_threadpool(spool.write, chunk)
        spool.seek(0)
        described, headers = await run_in_threadpool(_store, service, bucket, key, spool)

    response.headers.update(headers)
    return ResponseCreated(duration=time.perf_counter_ns() - start, file=described)


@router.get("/{bucket}/{key:path}")
async def get_file(bucket: str, key: str, request: Request) -> StreamingResponse:
    """Stream the stored bytes of key."""
    handle, headers = await run_in_threadpool(_open_with_headers, get_service(request), bucket, key)
    return StreamingResponse(
        handle.iter_chunks(),
        media_type="application/octet-stream",
        headers=headers,
        background=BackgroundTask(handle.close),
    )


@router.head("/{bucket}/{key:path}")
async def file_exists(bucket: str, key: str, request: Request) -> Response:
    """Report whether key exists through the status code alone.

    Errors are answered without a body; the status still follows the
    error kind.
    """
    try:
        headers = await run_in_threadpool(_head, get_service(request), bucket, key)
    except EntError as e:
        logger.debug("HEAD %s/%s failed: %s", bucket, key, e)
        return Response(status_code=status_for_kind(e.kind), headers={"Content-Length": "0"})
    headers["Content-Length"] = "0"
    return Response(status_code=200, headers=headers)


@router.delete(
    "/{bucket}/{key:path}",
    response_model=ResponseDeleted,
    response_model_by_alias=True,
)
async def delete_file(bucket: str, key: str, request: Request) -> ResponseDeleted:
    """Delete key and describe the removed file."""
    start = time.perf_counter_ns()
    described = await run_in_threadpool(_remove, get_service(request), bucket, key)
    return ResponseDeleted(duration=time.perf_counter_ns() - start, file=described)
