"""Response schemas for the ent HTTP API.

Shared by the route handlers and by ent.client, so both sides agree on the
wire format. Durations are integer nanoseconds and timestamps are RFC 3339
with fractional seconds trimmed of trailing zeros.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from ent.storage.files import File
from ent.storage.models import Bucket


def format_timestamp(value: datetime) -> str:
    """Format a datetime as RFC 3339 in UTC, e.g. ``2015-03-01T10:00:00.25Z``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond:
        text += f".{value.microsecond:06d}".rstrip("0")
    return text + "Z"


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp produced by format_timestamp."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class ResponseFile(BaseModel):
    """Metadata of one stored file."""

    model_config = ConfigDict(populate_by_name=True)

    key: str
    last_modified: datetime = Field(alias="lastModified")
    bucket: Bucket

    @field_serializer("last_modified")
    def _serialize_last_modified(self, value: datetime) -> str:
        return format_timestamp(value)

    @classmethod
    def from_file(cls, handle: File, bucket: Bucket) -> ResponseFile:
        return cls(key=handle.key, last_modified=handle.last_modified, bucket=bucket)


class ResponseCreated(BaseModel):
    """Response for a stored file."""

    duration: int
    file: ResponseFile


class ResponseDeleted(BaseModel):
    """Response for a deleted file."""

    duration: int
    file: ResponseFile


class ResponseBucketList(BaseModel):
    """Response for the bucket listing."""

    count: int
    duration: int
    buckets: list[Bucket]


class ResponseFileList(BaseModel):
    """Response for a file listing of one bucket."""

    count: int
    duration: int
    bucket: Bucket
    files: list[ResponseFile]


class ErrorResponse(BaseModel):
    """Error envelope returned for every failed request."""

    code: str
    message: str
    details: dict[str, object] | None = None
    request_id: str | None = None
