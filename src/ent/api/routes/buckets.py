"""Bucket routes for the ent API.

- GET / (listBuckets)
- GET /{bucket} (listFiles) with limit, prefix and sort query parameters
- OPTIONS on any path, answered with 200 for browser clients
"""

from __future__ import annotations

import time

from fastapi import APIRouter, Query, Request, Response

from ent.api.schemas import ResponseBucketList, ResponseFile, ResponseFileList
from ent.storage.errors import InvalidParamError
from ent.storage.service import BlobService

router = APIRouter(tags=["Buckets"])


def get_service(request: Request) -> BlobService:
    """Return the BlobService bound to the application."""
    service: BlobService = request.app.state.service
    return service


def parse_limit(value: str | None) -> int | None:
    """Parse the limit query parameter; absent or empty means no limit.

    Raises:
        InvalidParamError: If the value is not a non-negative integer.
    """
    if value is None or value == "":
        return None
    if not value.isascii() or not value.isdigit():
        raise InvalidParamError(f"invalid limit: {value!r}", operation="list")
    return int(value)


@router.get("/", response_model=ResponseBucketList, response_model_by_alias=True)
def list_buckets(request: Request) -> ResponseBucketList:
    """List every bucket known to the provider."""
    start = time.perf_counter_ns()
    buckets = get_service(request).buckets()
    return ResponseBucketList(
        count=len(buckets),
        duration=time.perf_counter_ns() - start,
        buckets=buckets,
    )


@router.get("/{bucket}", response_model=ResponseFileList, response_model_by_alias=True)
def list_files(
    bucket: str,
    request: Request,
    limit: str | None = Query(default=None),
    prefix: str = Query(default=""),
    sort: str = Query(default=""),
) -> ResponseFileList:
    """List files of a bucket.

    Handles are opened by the engine and closed here once their metadata
    has been copied into the response.
    """
    start = time.perf_counter_ns()
    service = get_service(request)
    resolved = service.bucket(bucket)
    with service.list(bucket, prefix=prefix, limit=parse_limit(limit), sort=sort) as files:
        entries = [ResponseFile.from_file(handle, resolved) for handle in files]
    return ResponseFileList(
        count=len(entries),
        duration=time.perf_counter_ns() - start,
        bucket=resolved,
        files=entries,
    )


@router.options("/{path:path}")
def handle_options(path: str) -> Response:
    """Answer non-preflight OPTIONS requests."""
    return Response(status_code=200)
