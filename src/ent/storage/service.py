"""ent blob service.

Binds a Provider and a FileSystem: bucket names are resolved first, and an
unknown bucket fails with BucketNotFoundError before the file system is
touched. This is the entry point used by the HTTP layer and the CLI.
"""

from __future__ import annotations

import logging

from ent.storage.files import File, Files
from ent.storage.filesystem import FileSystem, Source
from ent.storage.models import Bucket
from ent.storage.provider import Provider
from ent.storage.sort import NO_OP, SortStrategy

logger = logging.getLogger(__name__)


class BlobService:
    """Bucket-name based CRUD over a provider and a file system."""

    def __init__(self, provider: Provider, filesystem: FileSystem) -> None:
        self._provider = provider
        self._filesystem = filesystem

    @property
    def provider(self) -> Provider:
        return self._provider

    @property
    def filesystem(self) -> FileSystem:
        return self._filesystem

    def bucket(self, name: str) -> Bucket:
        """Resolve a bucket name; raises BucketNotFoundError."""
        return self._provider.get(name)

    def buckets(self) -> list[Bucket]:
        """Return every registered bucket."""
        return self._provider.list()

    def create(self, bucket_name: str, key: str, source: Source) -> File:
        """Store source under key in the named bucket."""
        bucket = self._provider.get(bucket_name)
        handle = self._filesystem.create(bucket, key, source)
        logger.info("Created %s/%s", bucket.name, key)
        return handle

    def open(self, bucket_name: str, key: str) -> File:
        """Open key in the named bucket read-only."""
        return self._filesystem.open(self._provider.get(bucket_name), key)

    def delete(self, bucket_name: str, key: str) -> None:
        """Delete key from the named bucket."""
        bucket = self._provider.get(bucket_name)
        self._filesystem.delete(bucket, key)
        logger.info("Deleted %s/%s", bucket.name, key)

    def list(
        self,
        bucket_name: str,
        prefix: str = "",
        limit: int | None = None,
        sort: SortStrategy | str | None = NO_OP,
    ) -> Files:
        """List the named bucket.

        Args:
            bucket_name: Bucket to list.
            prefix: Key prefix; empty matches everything.
            limit: Maximum entries; None for all.
            sort: Strategy, or an encoded sort token such as ``"-key"``.

        Raises:
            BucketNotFoundError: If the bucket is unknown.
            InvalidParamError: If limit or sort token is malformed.
        """
        bucket = self._provider.get(bucket_name)
        if not isinstance(sort, SortStrategy):
            sort = SortStrategy.decode(sort)
        return self._filesystem.list(bucket, prefix, limit, sort)
