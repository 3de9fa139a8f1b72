"""HTTP client for an ent server.

Mirrors the server routes: create, get, list, delete and buckets. Input is
validated before any request is sent; every transport, status or decoding
failure surfaces as ClientError.
"""

from __future__ import annotations

import logging
import urllib.parse
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, BinaryIO

import httpx
from pydantic import ValidationError

from ent.api.schemas import (
    ResponseBucketList,
    ResponseCreated,
    ResponseDeleted,
    ResponseFile,
    ResponseFileList,
)
from ent.storage.errors import ClientError, EmptyBucketError, EmptyKeyError, EmptySourceError
from ent.storage.files import READ_CHUNK_SIZE
from ent.storage.models import Bucket
from ent.storage.sort import SortStrategy

logger = logging.getLogger(__name__)

PARAM_LIMIT = "limit"
PARAM_PREFIX = "prefix"
PARAM_SORT = "sort"

DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class ListOptions:
    """Filters for a file listing.

    Attributes:
        limit: Maximum number of files; None or 0 means no limit.
        prefix: Key prefix; empty matches everything.
        sort: Strategy or encoded token such as ``"-lastModified"``.
    """

    limit: int | None = None
    prefix: str = ""
    sort: SortStrategy | str | None = None

    def encode_params(self) -> str:
        """Return the URL query string, omitting every default value."""
        params: dict[str, str] = {}
        if self.limit:
            params[PARAM_LIMIT] = str(self.limit)
        if self.prefix:
            params[PARAM_PREFIX] = self.prefix
        sort = self.sort
        if isinstance(sort, str):
            sort = SortStrategy.decode(sort)
        if sort is not None and (token := sort.encode_param()):
            params[PARAM_SORT] = token
        return urllib.parse.urlencode(params)


class EntClient:
    """Client for the ent HTTP API.

    Args:
        base_url: Server address, e.g. ``http://localhost:5555``.
        http_client: Optional httpx.Client for dependency injection (testing).
            The client owns and closes a default client only.
    """

    def __init__(self, base_url: str, http_client: httpx.Client | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.Client(timeout=DEFAULT_TIMEOUT_SECONDS)

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            self._http_client.close()

    def __enter__(self) -> EntClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def create(self, bucket: str, key: str, source: bytes | BinaryIO | None) -> ResponseFile:
        """Store or replace the object under key with the content of source.

        Raises:
            EmptyBucketError: If bucket is empty.
            EmptyKeyError: If key is empty.
            EmptySourceError: If source is None.
            ClientError: If the request fails.
        """
        _require(bucket, key)
        if source is None:
            raise EmptySourceError(operation="create", bucket=bucket, key=key)

        content: bytes | Iterator[bytes]
        if isinstance(source, (bytes, bytearray, memoryview)):
            content = bytes(source)
        else:
            content = _iter_source(source)

        response = self._request("POST", self._file_path(bucket, key), content=content)
        return self._decode(response, ResponseCreated).file

    def get(self, bucket: str, key: str) -> bytes:
        """Return the stored bytes of key.

        Raises:
            EmptyBucketError: If bucket is empty.
            EmptyKeyError: If key is empty.
            ClientError: If the request fails.
        """
        _require(bucket, key)
        return self._request("GET", self._file_path(bucket, key)).content

    def list(self, bucket: str, options: ListOptions | None = None) -> list[ResponseFile]:
        """List files of a bucket, optionally filtered by options.

        Raises:
            EmptyBucketError: If bucket is empty.
            ClientError: If the request fails.
        """
        if not bucket:
            raise EmptyBucketError(operation="list")
        query = (options or ListOptions()).encode_params()
        path = _quote(bucket)
        if query:
            path = f"{path}?{query}"
        return self._decode(self._request("GET", path), ResponseFileList).files

    def delete(self, bucket: str, key: str) -> ResponseFile:
        """Delete key and return the metadata it had.

        Raises:
            EmptyBucketError: If bucket is empty.
            EmptyKeyError: If key is empty.
            ClientError: If the request fails.
        """
        _require(bucket, key)
        response = self._request("DELETE", self._file_path(bucket, key))
        return self._decode(response, ResponseDeleted).file

    def buckets(self) -> list[Bucket]:
        """Return every bucket known to the server."""
        return self._decode(self._request("GET", ""), ResponseBucketList).buckets

    def _file_path(self, bucket: str, key: str) -> str:
        return f"{_quote(bucket)}/{_quote(key)}"

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self._base_url}/{path}"
        try:
            response = self._http_client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ClientError(f"{method} {url}: {e}", cause=e) from e

        if response.status_code >= 400:
            raise _error_from_response(response)
        return response

    @staticmethod
    def _decode(response: httpx.Response, model: type[Any]) -> Any:
        content_type = response.headers.get("Content-Type", "")
        if not content_type.startswith("application/json"):
            raise ClientError(
                f"unexpected content-type: {content_type}", status_code=response.status_code
            )
        try:
            return model.model_validate_json(response.content)
        except ValidationError as e:
            raise ClientError(
                f"decode: {e.error_count()} validation error(s)",
                status_code=response.status_code,
                cause=e,
            ) from e


def _require(bucket: str, key: str) -> None:
    if not bucket:
        raise EmptyBucketError(key=key or None)
    if not key:
        raise EmptyKeyError(bucket=bucket)


def _quote(value: str) -> str:
    return urllib.parse.quote(value, safe="/~")


def _iter_source(source: BinaryIO) -> Iterator[bytes]:
    while True:
        chunk = source.read(READ_CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


def _error_from_response(response: httpx.Response) -> ClientError:
    """Build a ClientError from an error envelope, tolerating other bodies."""
    status = response.status_code
    remote_code: str | None = None
    message = response.reason_phrase or f"HTTP {status}"
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        remote_code = body.get("code")
        message = body.get("message") or message

    logger.debug("ent request failed: status=%d code=%s", status, remote_code)
    return ClientError(
        f"response {status}: {message}",
        status_code=status,
        remote_code=remote_code,
    )
