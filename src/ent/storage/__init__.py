"""ent storage engine.

Namespaced blob storage: files stored under keys inside buckets, with
atomic writes, cached content digests and sortable listings.

Backends:
- DiskFileSystem: files under a root directory (production)
- MemoryFileSystem: in-process maps (testing)

Bucket registry:
- DiskProvider: loads ``.entpolicy`` documents from a directory
- MemoryProvider: fixed in-process bucket set
"""

from ent.storage.disk_fs import DiskFileSystem
from ent.storage.errors import (
    BucketNotFoundError,
    EntError,
    ErrorKind,
    InvalidParamError,
    StorageBackendError,
    StoredFileNotFoundError,
    is_bucket_not_found,
    is_file_not_found,
    is_invalid_param,
    is_kind,
)
from ent.storage.files import File, Files
from ent.storage.filesystem import FileSystem
from ent.storage.memory_fs import MemoryFileSystem
from ent.storage.models import Bucket, EmailAddress, Owner
from ent.storage.provider import DiskProvider, MemoryProvider, Provider
from ent.storage.service import BlobService
from ent.storage.sort import SortCriterion, SortStrategy

__all__ = [
    "BlobService",
    "Bucket",
    "BucketNotFoundError",
    "DiskFileSystem",
    "DiskProvider",
    "EmailAddress",
    "EntError",
    "ErrorKind",
    "File",
    "FileSystem",
    "Files",
    "InvalidParamError",
    "MemoryFileSystem",
    "MemoryProvider",
    "Owner",
    "Provider",
    "SortCriterion",
    "SortStrategy",
    "StorageBackendError",
    "StoredFileNotFoundError",
    "is_bucket_not_found",
    "is_file_not_found",
    "is_invalid_param",
    "is_kind",
]
