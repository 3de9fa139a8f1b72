"""ent disk-backed FileSystem.

Objects live at ``<root>/<bucket>/<key>``; keys with separators create a
directory hierarchy. Writes go to a uniquely named temporary file inside
the bucket directory and are published with a single atomic rename, so
readers see either the previous content or the complete new content.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from ent.storage.errors import StorageBackendError, StoredFileNotFoundError
from ent.storage.files import (
    DEFAULT_HASH_ALGORITHM,
    READ_CHUNK_SIZE,
    DiskFile,
    Files,
    datetime_from_ns,
)
from ent.storage.filesystem import (
    TEMP_FILE_PREFIX,
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

# A concurrent delete may prune the destination directory before the rename.
PUBLISH_ATTEMPTS = 3


@dataclass(frozen=True)
class _Entry:
    """Stat-level listing entry, opened only if it survives truncation."""

    key: str
    path: Path
    last_modified: datetime


class DiskFileSystem(FileSystem):
    """Filesystem-based storage engine."""

    def __init__(self, root: str | Path, *, hash_algorithm: str = DEFAULT_HASH_ALGORITHM) -> None:
        """Initialize disk storage.

        Args:
            root: Root directory holding one directory per bucket. Created lazily.
            hash_algorithm: hashlib algorithm used for file digests.
        """
        self._root = Path(root).resolve()
        self._hash_algorithm = hash_algorithm
        logger.debug("DiskFileSystem initialized with root=%s", self._root)

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "disk"

    @property
    def root(self) -> Path:
        """Return the root directory path."""
        return self._root

    def _bucket_dir(self, bucket: Bucket) -> Path:
        return self._root / bucket.name

    def _object_path(self, bucket: Bucket, key: str, operation: str) -> Path:
        validate_key(key, operation=operation, bucket=bucket)
        return self._bucket_dir(bucket).joinpath(*key.split("/"))

    @traced_storage_operation("create")
    def create(self, bucket: Bucket, key: str, source: Source) -> DiskFile:
        """Store an object via temporary file and atomic rename."""
        destination = self._object_path(bucket, key, "create")
        bucket_dir = self._bucket_dir(bucket)

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=TEMP_FILE_PREFIX, dir=bucket_dir)
        except OSError as e:
            raise StorageBackendError(
                f"Failed to prepare destination: {e}",
                operation="create",
                bucket=bucket.name,
                key=key,
                cause=e,
            ) from e

        tmp_path = Path(tmp_name)
        handle = DiskFile(
            os.fdopen(fd, "w+b"),
            key,
            writable=True,
            hash_algorithm=self._hash_algorithm,
        )
        stage = "write"
        published = False
        try:
            _copy_into(handle, as_stream(source))
            handle.sync()
            stage = "rename"
            _publish(tmp_path, destination)
            published = True
            stage = "stat"
            handle.refresh_last_modified()
            handle.seal()
        except OSError as e:
            if published:
                handle.close()
            raise StorageBackendError(
                f"Failed to {stage} object: {e}",
                operation="create",
                bucket=bucket.name,
                key=key,
                cause=e,
            ) from e
        finally:
            if not published:
                handle.close()
                tmp_path.unlink(missing_ok=True)

        logger.debug(
            "Stored object: bucket=%s key=%s size=%d",
            bucket.name,
            key,
            handle.size(),
        )
        return handle

    @traced_storage_operation("open")
    def open(self, bucket: Bucket, key: str) -> DiskFile:
        """Open an object read-only."""
        path = self._object_path(bucket, key, "open")
        try:
            return DiskFile.open_path(path, key, hash_algorithm=self._hash_algorithm)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise StoredFileNotFoundError(operation="open", bucket=bucket.name, key=key) from e
        except OSError as e:
            if path.is_dir():
                raise StoredFileNotFoundError(
                    operation="open", bucket=bucket.name, key=key
                ) from e
            raise StorageBackendError(
                f"Failed to open object: {e}",
                operation="open",
                bucket=bucket.name,
                key=key,
                cause=e,
            ) from e

    @traced_storage_operation("delete")
    def delete(self, bucket: Bucket, key: str) -> None:
        """Remove an object with a single unlink."""
        path = self._object_path(bucket, key, "delete")
        if path.is_dir():
            raise StoredFileNotFoundError(operation="delete", bucket=bucket.name, key=key)
        try:
            path.unlink()
        except (FileNotFoundError, NotADirectoryError) as e:
            raise StoredFileNotFoundError(operation="delete", bucket=bucket.name, key=key) from e
        except OSError as e:
            raise StorageBackendError(
                f"Failed to delete object: {e}",
                operation="delete",
                bucket=bucket.name,
                key=key,
                cause=e,
            ) from e

        self._prune_empty_parents(path.parent, self._bucket_dir(bucket))
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
        bucket_dir = self._bucket_dir(bucket)
        files = Files()
        if limit == 0 or not bucket_dir.is_dir():
            return files

        entries = sort.sort(self._scan(bucket, bucket_dir, prefix))
        if limit is not None:
            entries = entries[:limit]

        try:
            for entry in entries:
                try:
                    handle = DiskFile.open_path(
                        entry.path, entry.key, hash_algorithm=self._hash_algorithm
                    )
                except FileNotFoundError:
                    logger.debug(
                        "Object vanished during listing: bucket=%s key=%s",
                        bucket.name,
                        entry.key,
                    )
                    continue
                files.append(handle)
        except OSError as e:
            files.close()
            raise StorageBackendError(
                f"Failed to open listed object: {e}",
                operation="list",
                bucket=bucket.name,
                cause=e,
            ) from e
        return files

    def _scan(self, bucket: Bucket, bucket_dir: Path, prefix: str) -> list[_Entry]:
        """Collect leaf entries whose key starts with prefix."""
        entries: list[_Entry] = []

        def _on_error(error: OSError) -> None:
            raise error

        try:
            for dirpath, _dirnames, filenames in os.walk(bucket_dir, onerror=_on_error):
                current = Path(dirpath)
                for filename in filenames:
                    if filename.startswith(TEMP_FILE_PREFIX):
                        continue
                    path = current / filename
                    key = path.relative_to(bucket_dir).as_posix()
                    if not key.startswith(prefix):
                        continue
                    try:
                        stat = path.stat()
                    except FileNotFoundError:
                        continue
                    entries.append(_Entry(key, path, datetime_from_ns(stat.st_mtime_ns)))
        except FileNotFoundError:
            # Bucket directory removed while walking: nothing stored.
            return []
        except OSError as e:
            raise StorageBackendError(
                f"Failed to list bucket: {e}",
                operation="list",
                bucket=bucket.name,
                cause=e,
            ) from e
        return entries

    @staticmethod
    def _prune_empty_parents(directory: Path, stop: Path) -> None:
        """Remove empty directories from directory up to (excluding) stop."""
        while directory != stop and stop in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent


def _copy_into(handle: DiskFile, source: object) -> None:
    """Stream source into handle in fixed-size chunks."""
    read = getattr(source, "read", None)
    if read is None:
        raise TypeError(f"source must be bytes or a readable binary stream, got {type(source)!r}")
    while True:
        chunk = read(READ_CHUNK_SIZE)
        if not chunk:
            return
        handle.write(chunk)


def _publish(tmp_path: Path, destination: Path) -> None:
    """Rename tmp_path onto destination, recreating a pruned parent directory."""
    for attempt in range(1, PUBLISH_ATTEMPTS + 1):
        try:
            os.replace(tmp_path, destination)
            return
        except FileNotFoundError:
            if attempt == PUBLISH_ATTEMPTS or not tmp_path.exists():
                raise
            logger.debug("Destination directory vanished, retrying: %s", destination.parent)
            destination.parent.mkdir(parents=True, exist_ok=True)
