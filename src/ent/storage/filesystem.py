"""ent FileSystem interface definition.

Provides the FileSystem contract every storage engine implements, plus the
key and limit validation shared by all engines.
"""

from __future__ import annotations

import io
from abc import ABC, abstractmethod
from typing import Any, BinaryIO

from ent.storage.errors import InvalidParamError
from ent.storage.files import File, Files
from ent.storage.models import Bucket
from ent.storage.sort import NO_OP, SortStrategy

# Reserved for in-flight writes; never part of a valid key.
TEMP_FILE_PREFIX = ".ent-pending-"

Source = BinaryIO | bytes | bytearray | memoryview


def validate_key(key: str, *, operation: str, bucket: Bucket | None = None) -> str:
    """Validate an object key and return it unchanged.

    Keys are relative, ``/``-separated paths. Rejected:
    - empty keys and empty, "." or ".." segments
    - absolute paths, backslashes and NUL bytes
    - segments using the reserved temporary file prefix

    Raises:
        InvalidParamError: If the key is not acceptable.
    """
    bucket_name = bucket.name if bucket is not None else None

    def _reject(reason: str) -> InvalidParamError:
        return InvalidParamError(
            f"invalid key: {reason}", operation=operation, bucket=bucket_name, key=key
        )

    if not key:
        raise _reject("empty key")
    if "\x00" in key or "\\" in key:
        raise _reject("unsafe characters")
    if key.startswith("/"):
        raise _reject("absolute path")
    for segment in key.split("/"):
        if segment in ("", ".", ".."):
            raise _reject("empty or relative path segment")
        if segment.startswith(TEMP_FILE_PREFIX):
            raise _reject("reserved prefix")
    return key


def validate_limit(limit: int | None, *, operation: str = "list") -> int | None:
    """Validate a listing limit; None means unlimited.

    Raises:
        InvalidParamError: If limit is negative or not an integer.
    """
    if limit is None:
        return None
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
        raise InvalidParamError(f"invalid limit: {limit!r}", operation=operation)
    return limit


def as_stream(source: Source) -> BinaryIO:
    """Wrap bytes-like sources in a stream; streams pass through."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        return io.BytesIO(bytes(source))
    return source


class FileSystem(ABC):
    """Abstract base class for storage engines.

    All operations are scoped to a resolved Bucket. Implementations:
    - DiskFileSystem: files under a root directory (production)
    - MemoryFileSystem: in-process maps (testing)

    Operations emit spans only once a tracer provider is attached.
    """

    tracer_provider: Any = None

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability."""
        ...

    @abstractmethod
    def create(self, bucket: Bucket, key: str, source: Source) -> File:
        """Store the full content of source under key, replacing prior content.

        Readers never observe a partially written object.

        Args:
            bucket: Resolved bucket.
            key: Object key.
            source: Readable binary stream or bytes.

        Returns:
            Read-only handle to the stored object, positioned at offset 0.

        Raises:
            InvalidParamError: If key is invalid.
            StorageBackendError: If the medium rejects the write.
        """
        ...

    @abstractmethod
    def open(self, bucket: Bucket, key: str) -> File:
        """Open an existing object read-only.

        Raises:
            InvalidParamError: If key is invalid.
            StoredFileNotFoundError: If key does not exist or names a directory.
            StorageBackendError: If the medium fails.
        """
        ...

    @abstractmethod
    def delete(self, bucket: Bucket, key: str) -> None:
        """Remove an object.

        Raises:
            InvalidParamError: If key is invalid.
            StoredFileNotFoundError: If key does not exist; deleting twice is an error.
            StorageBackendError: If the medium fails.
        """
        ...

    @abstractmethod
    def list(
        self,
        bucket: Bucket,
        prefix: str = "",
        limit: int | None = None,
        sort: SortStrategy = NO_OP,
    ) -> Files:
        """List objects whose key starts with prefix.

        Args:
            bucket: Resolved bucket.
            prefix: Key prefix; empty matches everything.
            limit: Maximum number of entries; None for all, 0 for none.
            sort: Ordering applied before truncation.

        Returns:
            Open handles; an empty collection when nothing matches.

        Raises:
            InvalidParamError: If limit is negative.
            StorageBackendError: If the medium fails.
        """
        ...
