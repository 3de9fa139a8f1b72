"""ent bucket providers.

A provider is the authoritative registry of buckets. Buckets are loaded
eagerly once; providers built from disk do not observe later changes to
the policy directory.

Policy files:
    One JSON document per bucket, named ``<anything>.entpolicy``, e.g.
    ``{"name": "bit", "owner": {"email": {"Name": "bit team", "Address": "bit@bucket.io"}}}``
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

from pydantic import ValidationError

from ent.storage.errors import BucketNotFoundError, InvalidPolicyError, ProviderError
from ent.storage.models import Bucket

logger = logging.getLogger(__name__)

POLICY_EXTENSION = ".entpolicy"


class Provider(ABC):
    """Abstract access to a collection of buckets."""

    @abstractmethod
    def get(self, name: str) -> Bucket:
        """Resolve a bucket by name.

        Raises:
            BucketNotFoundError: If no bucket has that name.
        """
        ...

    @abstractmethod
    def list(self) -> list[Bucket]:
        """Return all buckets, in no particular order."""
        ...


class MemoryProvider(Provider):
    """Provider over a fixed set of buckets.

    When several buckets share a name the last one wins.
    """

    def __init__(self, buckets: Iterable[Bucket] = ()) -> None:
        self._buckets: dict[str, Bucket] = {}
        for bucket in buckets:
            if bucket.name in self._buckets:
                logger.warning("Duplicate bucket name %r: later definition wins", bucket.name)
            self._buckets[bucket.name] = bucket

    def get(self, name: str) -> Bucket:
        """Resolve a bucket by name."""
        bucket = self._buckets.get(name)
        if bucket is None:
            raise BucketNotFoundError(operation="get_bucket", bucket=name)
        return bucket

    def list(self) -> list[Bucket]:
        """Return all buckets."""
        return list(self._buckets.values())

    def __len__(self) -> int:
        return len(self._buckets)

    def __contains__(self, name: object) -> bool:
        return name in self._buckets


class DiskProvider(MemoryProvider):
    """Provider loading ``.entpolicy`` documents from one directory.

    Only the directory itself is scanned; subdirectories are ignored.
    Files are read in name order, so on duplicate bucket names the file
    sorting last wins.
    """

    def __init__(self, directory: str | Path) -> None:
        """Load every policy in directory.

        Raises:
            ProviderError: If the directory cannot be read.
            InvalidPolicyError: If a policy document is malformed.
        """
        self._directory = Path(directory)
        super().__init__(load_policies(self._directory))
        logger.info("Loaded %d buckets from %s", len(self), self._directory)

    @property
    def directory(self) -> Path:
        """Return the policy directory."""
        return self._directory


def load_policies(directory: Path) -> list[Bucket]:
    """Parse every policy file directly inside directory.

    Args:
        directory: Policy directory.

    Returns:
        Buckets in file name order.

    Raises:
        ProviderError: If the directory cannot be read.
        InvalidPolicyError: If a policy document is malformed.
    """
    try:
        entries = sorted(directory.iterdir())
    except OSError as e:
        raise ProviderError(
            f"Cannot read policy directory {directory}: {e}",
            operation="load_policies",
            cause=e,
        ) from e

    buckets: list[Bucket] = []
    for path in entries:
        if not path.name.endswith(POLICY_EXTENSION) or path.is_dir():
            continue
        buckets.append(load_policy(path))
    return buckets


def load_policy(path: Path) -> Bucket:
    """Parse a single policy file.

    Raises:
        ProviderError: If the file cannot be read.
        InvalidPolicyError: If the document is not a valid bucket policy.
    """
    try:
        payload = path.read_bytes()
    except OSError as e:
        raise ProviderError(
            f"Cannot read policy {path.name}: {e}", operation="load_policy", cause=e
        ) from e
    try:
        bucket = Bucket.model_validate_json(payload)
    except ValidationError as e:
        raise InvalidPolicyError(
            f"Invalid policy {path.name}: {e.error_count()} validation error(s)",
            operation="load_policy",
            cause=e,
        ) from e
    logger.debug("Loaded bucket %r from %s", bucket.name, path.name)
    return bucket
