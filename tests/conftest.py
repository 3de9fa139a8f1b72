"""Pytest configuration and fixtures for ent tests.

This module provides buckets, both storage engines and a wired BlobService.
Tests taking the ``fs`` fixture run once per engine.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from ent.storage.disk_fs import DiskFileSystem
from ent.storage.filesystem import FileSystem
from ent.storage.memory_fs import MemoryFileSystem
from ent.storage.models import Bucket, new_bucket
from ent.storage.provider import MemoryProvider
from ent.storage.service import BlobService

POLICY_DIR = Path(__file__).parent / "fixtures" / "policies"


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2015, 3, 1, 10, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(seconds=1)
        return current


@pytest.fixture(autouse=True)
def clear_ent_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep ENT_* variables of the developer shell out of the tests."""
    for name in (
        "ENT_FS_ROOT",
        "ENT_PROVIDER_DIR",
        "ENT_HTTP_ADDR",
        "ENT_HASH_ALGORITHM",
        "ENT_LOG_LEVEL",
        "ENT_OTEL_ENABLED",
        "ENT_REQUIRE_OTEL",
        "ENT_OTEL_SERVICE_NAME",
        "ENT_OTEL_EXPORTER",
        "ENT_OTEL_EXPORTER_OTLP_ENDPOINT",
        "ENT_OTEL_TEST_CAPTURE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def policy_dir() -> Path:
    """Return the directory holding the fixture policies."""
    return POLICY_DIR


@pytest.fixture
def bucket() -> Bucket:
    """Return the bucket most tests write to."""
    return new_bucket("b", "b team <b@bucket.io>")


@pytest.fixture
def other_bucket() -> Bucket:
    """Return a second registered bucket."""
    return new_bucket("other", "other@bucket.io")


@pytest.fixture
def clock() -> StepClock:
    """Return a deterministic clock for the memory engine."""
    return StepClock()


@pytest.fixture
def disk_fs(tmp_path: Path) -> DiskFileSystem:
    """Create a DiskFileSystem rooted in a temp directory."""
    return DiskFileSystem(tmp_path / "root")


@pytest.fixture
def memory_fs(clock: StepClock) -> MemoryFileSystem:
    """Create a MemoryFileSystem with a deterministic clock."""
    return MemoryFileSystem(clock=clock)


@pytest.fixture(params=["disk", "memory"])
def fs(request: pytest.FixtureRequest) -> Iterator[FileSystem]:
    """Yield each storage engine in turn."""
    if request.param == "disk":
        yield request.getfixturevalue("disk_fs")
    else:
        yield request.getfixturevalue("memory_fs")


@pytest.fixture
def provider(bucket: Bucket, other_bucket: Bucket) -> MemoryProvider:
    """Create a provider knowing the two test buckets."""
    return MemoryProvider([bucket, other_bucket])


@pytest.fixture
def service(provider: MemoryProvider, fs: FileSystem) -> BlobService:
    """Create a BlobService over each storage engine."""
    return BlobService(provider, fs)
