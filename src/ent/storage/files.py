"""ent file handles.

A File wraps a seekable binary stream and adds the stored object's key,
its modification time and a lazily computed content digest. Handles are
composed around the stream rather than inheriting from a concrete file
type, so the disk and memory engines share one hashing implementation.

Hash caching:
    Each handle owns an incremental digest over bytes [0, hashed). Writes
    that continue exactly at the end of the hashed region extend the digest;
    any other write marks it stale. ``hash()`` reuses the digest only when
    it is not stale, covers the whole stream, and the stream fingerprint is
    unchanged since the digest was last confirmed. The fingerprint is
    (size, mtime_ns) on disk, so external rewrites of the same length are
    detected as long as they move the modification time.
"""

from __future__ import annotations

import hashlib
import io
import os
from abc import ABC, abstractmethod
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType
from typing import BinaryIO

DEFAULT_HASH_ALGORITHM = "sha1"
READ_CHUNK_SIZE = 64 * 1024

Fingerprint = tuple[int, int]


def datetime_from_ns(timestamp_ns: int) -> datetime:
    """Convert a POSIX timestamp in nanoseconds to an aware UTC datetime."""
    seconds, nanos = divmod(timestamp_ns, 1_000_000_000)
    return datetime.fromtimestamp(seconds, tz=UTC).replace(microsecond=nanos // 1000)


class File(ABC):
    """Handle to one stored object.

    Handles returned by a file system are read-only and positioned at
    offset 0. They must be closed by the caller, preferably with ``with``.
    """

    @property
    @abstractmethod
    def key(self) -> str:
        """Return the key of the object within its bucket."""

    @property
    @abstractmethod
    def last_modified(self) -> datetime:
        """Return the modification time recorded by the backend."""

    @abstractmethod
    def hash(self) -> bytes:
        """Return the digest of the current content."""

    @abstractmethod
    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes, or everything when size is negative."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Write data at the current position."""

    @abstractmethod
    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        """Move the stream position and return the new absolute position."""

    @abstractmethod
    def tell(self) -> int:
        """Return the current stream position."""

    @abstractmethod
    def size(self) -> int:
        """Return the current content length in bytes."""

    @abstractmethod
    def close(self) -> None:
        """Release the underlying resource. Idempotent."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        """Return True once the handle has been closed."""

    def hexdigest(self) -> str:
        """Return the content digest as a lower-case hex string."""
        return self.hash().hex()

    def iter_chunks(self, chunk_size: int = READ_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield the content from the current position in chunks."""
        while True:
            chunk = self.read(chunk_size)
            if not chunk:
                return
            yield chunk

    def __enter__(self) -> File:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key!r}, last_modified={self.last_modified!r})"


class _StreamFile(File):
    """File implementation over a binary stream with a cached digest."""

    def __init__(
        self,
        stream: BinaryIO,
        key: str,
        *,
        last_modified: datetime | None = None,
        writable: bool = False,
        hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
    ) -> None:
        self._stream = stream
        self._key = key
        self._last_modified = last_modified or datetime.now(UTC)
        self._writable = writable
        self._hash_algorithm = hash_algorithm
        self._digest = hashlib.new(hash_algorithm)
        self._hashed = 0
        self._stale = False
        self._confirmed: Fingerprint | None = None

    @abstractmethod
    def _fingerprint(self) -> Fingerprint:
        """Return (size, version) describing the current stream content."""

    @property
    def key(self) -> str:
        return self._key

    @property
    def last_modified(self) -> datetime:
        return self._last_modified

    @property
    def closed(self) -> bool:
        return self._stream.closed

    @property
    def writable(self) -> bool:
        return self._writable and not self.closed

    def read(self, size: int = -1) -> bytes:
        return self._stream.read(size)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._stream.seek(offset, whence)

    def tell(self) -> int:
        return self._stream.tell()

    def size(self) -> int:
        return self._fingerprint()[0]

    def write(self, data: bytes) -> int:
        if not self._writable:
            raise io.UnsupportedOperation(f"file handle for {self._key!r} is read-only")
        position = self._stream.tell()
        written = self._stream.write(data)
        if written is None:
            written = len(data)
        if not self._stale and position == self._hashed:
            self._digest.update(memoryview(data)[:written])
            self._hashed += written
        else:
            self._stale = True
        self._confirmed = None
        return written

    def hash(self) -> bytes:
        if self.closed:
            raise ValueError("hash of closed file handle")
        fingerprint = self._fingerprint()
        if self._is_cached(fingerprint):
            self._confirmed = fingerprint
            return self._digest.digest()
        return self._rehash()

    def _is_cached(self, fingerprint: Fingerprint) -> bool:
        if self._stale or self._hashed != fingerprint[0]:
            return False
        return self._confirmed is None or self._confirmed == fingerprint

    def _rehash(self) -> bytes:
        position = self._stream.tell()
        digest = hashlib.new(self._hash_algorithm)
        hashed = 0
        self._stream.seek(0)
        try:
            for chunk in iter(lambda: self._stream.read(READ_CHUNK_SIZE), b""):
                digest.update(chunk)
                hashed += len(chunk)
        finally:
            self._stream.seek(position)
        self._digest = digest
        self._hashed = hashed
        self._stale = False
        self._confirmed = self._fingerprint()
        return digest.digest()

    def seal(self) -> None:
        """Make the handle read-only and rewind it to offset 0."""
        self._stream.flush()
        self._writable = False
        self._stream.seek(0)

    def close(self) -> None:
        self._stream.close()


class DiskFile(_StreamFile):
    """File backed by an operating system file descriptor."""

    @classmethod
    def open_path(
        cls, path: Path, key: str, *, hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    ) -> DiskFile:
        """Open path read-only, taking last_modified from the descriptor.

        Raises:
            OSError: If the path cannot be opened.
        """
        stream = open(path, "rb")  # noqa: SIM115 - ownership moves to the handle
        try:
            stat = os.fstat(stream.fileno())
        except OSError:
            stream.close()
            raise
        return cls(
            stream,
            key,
            last_modified=datetime_from_ns(stat.st_mtime_ns),
            hash_algorithm=hash_algorithm,
        )

    def fileno(self) -> int:
        """Return the underlying file descriptor."""
        return self._stream.fileno()

    def sync(self) -> None:
        """Flush buffered writes and fsync them to the medium."""
        self._stream.flush()
        os.fsync(self._stream.fileno())

    def refresh_last_modified(self) -> None:
        """Reload last_modified from the descriptor."""
        stat = os.fstat(self._stream.fileno())
        self._last_modified = datetime_from_ns(stat.st_mtime_ns)

    def _fingerprint(self) -> Fingerprint:
        self._stream.flush()
        stat = os.fstat(self._stream.fileno())
        return stat.st_size, stat.st_mtime_ns


class MemoryFile(_StreamFile):
    """File backed by an in-memory buffer, used by the memory engine."""

    def __init__(
        self,
        key: str,
        data: bytes | None = None,
        *,
        last_modified: datetime | None = None,
        writable: bool = False,
        hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
    ) -> None:
        self._buffer = io.BytesIO(data or b"")
        self._generation = 0
        super().__init__(
            self._buffer,
            key,
            last_modified=last_modified,
            writable=writable,
            hash_algorithm=hash_algorithm,
        )

    def write(self, data: bytes) -> int:
        written = super().write(data)
        self._generation += 1
        return written

    def getvalue(self) -> bytes:
        """Return the whole content regardless of the stream position."""
        return self._buffer.getvalue()

    def _fingerprint(self) -> Fingerprint:
        with self._buffer.getbuffer() as view:
            return view.nbytes, self._generation


class Files(list[File]):
    """A collection of file handles that can be released together."""

    def keys(self) -> list[str]:
        """Return the keys in collection order."""
        return [f.key for f in self]

    def close(self) -> None:
        """Close every handle in the collection."""
        for f in self:
            f.close()

    def __enter__(self) -> Files:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
