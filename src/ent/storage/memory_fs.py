"""ent in-memory FileSystem.

Keeps object bytes in per-bucket dictionaries. Handles returned to callers
are independent read-only views, so a caller can never mutate stored
content through them. Intended for tests and embedding.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from ent.storage.errors import StorageBackendError, StoredFileNotFoundError
from ent.storage.files import DEFAULT_HASH_ALGORITHM, READ_CHUNK_SIZE, Files, MemoryFile
from ent.storage.filesystem import (
    FileSystem,
    Source,
    as_stream,
    validate_key,
    validate_limit,
)
from ent.storage.models import Bucket
from ent.storage.sort import NO_OP, SortStrategy
from ent.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _path_conflict(stored: dict[str, _Blob], key: str) -> str | None:
    """Return a stored key that would have to be both a file and a directory with key.

    Mirrors the disk layout, where "a" and "a/b" cannot coexist.
    """
    parts = key.split("/")
    for depth in range(1, len(parts)):
        ancestor = "/".join(parts[:depth])
        if ancestor in stored:
            return ancestor
    children = key + "/"
    return next((k for k in stored if k.startswith(children)), None)


@dataclass(frozen=True)
class _Blob:
    key: str
    data: bytes
    last_modified: datetime


class MemoryFileSystem(FileSystem):
    """In-memory storage engine.

    Args:
        clock: Source of modification times; injectable for deterministic tests.
        hash_algorithm: hashlib algorithm used for file digests.
    """

    def __init__(
        self,
        *,
        clock: Clock = _utc_now,
        hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
    ) -> None:
        self._clock = clock
        self._hash_algorithm = hash_algorithm
        self._buckets: dict[str, dict[str, _Blob]] = {}
        self._lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "memory"

    def _view(self, blob: _Blob) -> MemoryFile:
        return MemoryFile(
            blob.key,
            blob.data,
            last_modified=blob.last_modified,
            hash_algorithm=self._hash_algorithm,
        )

    @traced_storage_operation("create")
    def create(self, bucket: Bucket, key: str, source: Source) -> MemoryFile:
        """Buffer source completely, then publish it under key."""
        validate_key(key, operation="create", bucket=bucket)
        handle = MemoryFile(
            key,
            last_modified=self._clock(),
            writable=True,
            hash_algorithm=self._hash_algorithm,
        )
        stream = as_stream(source)
        for chunk in iter(lambda: stream.read(READ_CHUNK_SIZE), b""):
            handle.write(chunk)
        handle.seal()

        blob = _Blob(key=key, data=handle.getvalue(), last_modified=handle.last_modified)
        with self._lock:
            stored = self._buckets.setdefault(bucket.name, {})
            conflict = _path_conflict(stored, key)
            if conflict is not None:
                raise StorageBackendError(
                    f"Key conflicts with stored object {conflict!r}",
                    operation="create",
                    bucket=bucket.name,
                    key=key,
                )
            stored[key] = blob

        logger.debug("Stored object: bucket=%s key=%s size=%d", bucket.name, key, len(blob.data))
        return handle

    @traced_storage_operation("open")
    def open(self, bucket: Bucket, key: str) -> MemoryFile:
        """Return a read-only view of the stored object."""
        validate_key(key, operation="open", bucket=bucket)
        with self._lock:
            blob = self._buckets.get(bucket.name, {}).get(key)
        if blob is None:
            raise StoredFileNotFoundError(operation="open", bucket=bucket.name, key=key)
        return self._view(blob)

    @traced_storage_operation("delete")
    def delete(self, bucket: Bucket, key: str) -> None:
        """Remove the stored object."""
        validate_key(key, operation="delete", bucket=bucket)
        with self._lock:
            blobs = self._buckets.get(bucket.name, {})
            if key not in blobs:
                raise StoredFileNotFoundError(operation="delete", bucket=bucket.name, key=key)
            del blobs[key]
        logger.debug("Deleted object: bucket=%s key=%s", bucket.name, key)

    @traced_storage_operation("list", key_param="prefix")
    def list(
        self,
        bucket: Bucket,
        prefix: str = "",
        limit: int | None = None,
        sort: SortStrategy = NO_OP,
    ) -> Files:
        """List objects under prefix, sorted then truncated."""
        limit = validate_limit(limit)
        with self._lock:
            stored = self._buckets.get(bucket.name, {})
            blobs = [blob for key, blob in stored.items() if key.startswith(prefix)]

        ordered = sort.sort(blobs)
        if limit is not None:
            ordered = ordered[:limit]
        return Files(self._view(blob) for blob in ordered)
