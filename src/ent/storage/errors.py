"""ent storage error types.

Errors form a closed set of kinds. Callers branch on ``err.kind`` (or the
``is_*`` predicates) instead of comparing exception identities, so wrapped
or re-raised errors keep their meaning across layers.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Closed enumeration of error kinds surfaced by ent."""

    BUCKET_NOT_FOUND = "BUCKET_NOT_FOUND"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    INVALID_PARAM = "INVALID_PARAM"
    INVALID_POLICY = "INVALID_POLICY"
    EMPTY_BUCKET = "EMPTY_BUCKET"
    EMPTY_KEY = "EMPTY_KEY"
    EMPTY_SOURCE = "EMPTY_SOURCE"
    STORAGE = "STORAGE"
    CLIENT = "CLIENT"


class EntError(Exception):
    """Base exception for every ent failure.

    Attributes:
        kind: Error kind, the only attribute callers should branch on.
        message: Human-readable error message.
        operation: Operation that failed (e.g. "create", "list").
        bucket: Bucket name associated with the failure (if any).
        key: Object key associated with the failure (if any).
        cause: Underlying exception (if any).
    """

    kind: ErrorKind = ErrorKind.STORAGE
    default_message = "storage failure"

    def __init__(
        self,
        message: str | None = None,
        *,
        operation: str | None = None,
        bucket: str | None = None,
        key: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        message = message or self.default_message
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.bucket = bucket
        self.key = key
        self.cause = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.bucket:
            parts.append(f"bucket={self.bucket}")
        if self.key:
            parts.append(f"key={self.key}")
        if self.cause is not None:
            parts.append(f"cause={self.cause}")
        return " ".join(parts)


class BucketNotFoundError(EntError):
    """Raised when a bucket name is not known to the provider."""

    kind = ErrorKind.BUCKET_NOT_FOUND
    default_message = "bucket not found"


class StoredFileNotFoundError(EntError):
    """Raised when a key does not name a stored file.

    Also raised when the key resolves to a directory, which is never
    addressable as a file.
    """

    kind = ErrorKind.FILE_NOT_FOUND
    default_message = "file not found"


class InvalidParamError(EntError):
    """Raised for malformed keys, sort tokens or limits."""

    kind = ErrorKind.INVALID_PARAM
    default_message = "invalid param"


class InvalidPolicyError(EntError):
    """Raised when a bucket policy document cannot be parsed."""

    kind = ErrorKind.INVALID_POLICY
    default_message = "invalid bucket policy"


class ProviderError(EntError):
    """Raised when the bucket provider cannot be loaded at all."""

    kind = ErrorKind.STORAGE
    default_message = "bucket provider unavailable"


class StorageBackendError(EntError):
    """Raised when the storage medium rejects an operation.

    Covers disk full, permission denied, failed renames and other I/O
    errors. The engine never retries these.
    """

    kind = ErrorKind.STORAGE
    default_message = "storage backend error"


class EmptyBucketError(EntError):
    """Raised by the client when no bucket name was provided."""

    kind = ErrorKind.EMPTY_BUCKET
    default_message = "bucket not provided"


class EmptyKeyError(EntError):
    """Raised by the client when no key was provided."""

    kind = ErrorKind.EMPTY_KEY
    default_message = "key not provided"


class EmptySourceError(EntError):
    """Raised by the client when no source was provided."""

    kind = ErrorKind.EMPTY_SOURCE
    default_message = "source not provided"


class ClientError(EntError):
    """Raised by the client for transport and server-side failures.

    Attributes:
        status_code: HTTP status of the failed response (if any).
        remote_code: Error code reported by the server (if any).
    """

    kind = ErrorKind.CLIENT
    default_message = "ent client error"

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        remote_code: str | None = None,
        operation: str | None = None,
        bucket: str | None = None,
        key: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, operation=operation, bucket=bucket, key=key, cause=cause)
        self.status_code = status_code
        self.remote_code = remote_code


def is_kind(err: BaseException | None, kind: ErrorKind) -> bool:
    """Report whether err is an ent error of the given kind."""
    return isinstance(err, EntError) and err.kind == kind


def is_bucket_not_found(err: BaseException | None) -> bool:
    """Report whether err is a bucket-not-found error."""
    return is_kind(err, ErrorKind.BUCKET_NOT_FOUND)


def is_file_not_found(err: BaseException | None) -> bool:
    """Report whether err is a file-not-found error."""
    return is_kind(err, ErrorKind.FILE_NOT_FOUND)


def is_invalid_param(err: BaseException | None) -> bool:
    """Report whether err is an invalid-parameter error."""
    return is_kind(err, ErrorKind.INVALID_PARAM)
