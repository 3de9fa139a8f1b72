"""Tests for ent OpenTelemetry tracing.

- Tracing OFF by default, ON via ENT_OTEL_ENABLED=1
- Fail-closed only when ENT_REQUIRE_OTEL=1 and init fails
- Storage spans carry bucket, backend and hashed keys, never raw keys
- Tests use the in-memory exporter (no external collector required)
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterator
from typing import Any
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from opentelemetry.trace import SpanKind

from ent.api.main import create_app
from ent.observability.tracing import (
    TracingConfigError,
    TracingHandle,
    configure_tracing,
    instrument_storage,
)
from ent.storage.errors import StoredFileNotFoundError
from ent.storage.filesystem import FileSystem
from ent.storage.models import Bucket
from ent.storage.service import BlobService

SECRET_KEY = "customers/alice/passport.pdf"


@pytest.fixture
def capture_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENT_OTEL_ENABLED", "1")
    monkeypatch.setenv("ENT_OTEL_TEST_CAPTURE", "1")


@pytest.fixture
def handle(capture_env: None) -> Iterator[TracingHandle]:
    """Return an enabled handle backed by the in-memory exporter."""
    tracing = configure_tracing()
    yield tracing
    tracing.shutdown()


def _storage_spans(handle: TracingHandle) -> dict[str, Any]:
    return {s.name: s for s in handle.finished_spans() if s.name.startswith("ent.storage.")}


class TestTracingConfiguration:
    """Tests for tracing configuration behavior."""

    def test_tracing_disabled_by_default(self) -> None:
        """Tracing is OFF when ENT_OTEL_ENABLED is not set."""
        tracing = configure_tracing()
        assert tracing.enabled is False
        assert tracing.provider is None
        assert tracing.finished_spans() == []
        tracing.shutdown()

    def test_tracing_enabled_with_env_var(self, handle: TracingHandle) -> None:
        """ENT_OTEL_ENABLED=1 with test capture records in memory."""
        assert handle.enabled is True
        assert handle.test_exporter is not None

    def test_service_name_configurable(
        self, capture_env: None, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The resource carries ENT_OTEL_SERVICE_NAME."""
        monkeypatch.setenv("ENT_OTEL_SERVICE_NAME", "ent-edge")
        tracing = configure_tracing()
        assert tracing.provider.resource.attributes["service.name"] == "ent-edge"
        tracing.shutdown()

    def test_console_exporter(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The console exporter needs no collector."""
        monkeypatch.setenv("ENT_OTEL_ENABLED", "1")
        monkeypatch.setenv("ENT_OTEL_EXPORTER", "console")
        tracing = configure_tracing()
        assert tracing.enabled is True
        assert tracing.test_exporter is None
        tracing.shutdown()

    def test_init_failure_disables_tracing(self, capture_env: None) -> None:
        """Without ENT_REQUIRE_OTEL a failing setup leaves tracing off."""
        with patch(
            "opentelemetry.sdk.trace.TracerProvider",
            side_effect=Exception("Simulated init failure"),
        ):
            tracing = configure_tracing()
        assert tracing.enabled is False

    def test_require_otel_fails_closed(
        self, capture_env: None, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """ENT_REQUIRE_OTEL=1 fails startup if tracing init fails."""
        monkeypatch.setenv("ENT_REQUIRE_OTEL", "1")
        with patch(
            "opentelemetry.sdk.trace.TracerProvider",
            side_effect=Exception("Simulated init failure"),
        ):
            with pytest.raises(TracingConfigError) as exc_info:
                configure_tracing()
        assert "configuration failed" in str(exc_info.value).lower()


class TestStorageSpans:
    """Tests for spans around FileSystem operations."""

    def test_no_spans_without_provider(self, fs: FileSystem, bucket: Bucket) -> None:
        """Engines without an attached provider run untraced."""
        assert fs.tracer_provider is None
        with fs.create(bucket, "k", b"v"):
            pass

    def test_disabled_handle_leaves_engine_untraced(self, fs: FileSystem) -> None:
        """A disabled handle attaches nothing."""
        instrument_storage(fs, TracingHandle())
        assert fs.tracer_provider is None

    def test_operation_spans(self, fs: FileSystem, bucket: Bucket, handle: TracingHandle) -> None:
        """Each operation emits a span with hashed key attributes."""
        instrument_storage(fs, handle)

        with fs.create(bucket, SECRET_KEY, b"secret content"):
            pass
        with fs.open(bucket, SECRET_KEY):
            pass
        with fs.list(bucket, prefix="customers/"):
            pass
        fs.delete(bucket, SECRET_KEY)

        spans = _storage_spans(handle)
        assert set(spans) == {
            "ent.storage.create",
            "ent.storage.open",
            "ent.storage.list",
            "ent.storage.delete",
        }

        create = spans["ent.storage.create"].attributes
        assert create["ent.bucket"] == "b"
        assert create["storage.backend"] == fs.backend_name
        assert create["ent.key_sha256"] == hashlib.sha256(SECRET_KEY.encode()).hexdigest()
        assert "ent.last_modified" in create

        listing = spans["ent.storage.list"].attributes
        assert listing["ent.file_count"] == 1
        assert listing["ent.prefix_sha256"] == hashlib.sha256(b"customers/").hexdigest()

        for span in spans.values():
            for value in span.attributes.values():
                assert "alice" not in str(value)

    def test_error_span(self, fs: FileSystem, bucket: Bucket, handle: TracingHandle) -> None:
        """Failures are recorded with their error kind."""
        instrument_storage(fs, handle)

        with pytest.raises(StoredFileNotFoundError):
            fs.open(bucket, "missing")

        attributes = _storage_spans(handle)["ent.storage.open"].attributes
        assert attributes["error"] is True
        assert attributes["error.type"] == "StoredFileNotFoundError"
        assert attributes["ent.error_kind"] == "FILE_NOT_FOUND"


class TestApiTracing:
    """Tests for the instrumented application."""

    def test_requests_emit_server_and_storage_spans(
        self, service: BlobService, handle: TracingHandle
    ) -> None:
        """A request produces a server span and the storage spans it caused."""
        app = create_app(service, tracing=handle)
        client = TestClient(app)

        assert client.post("/b/k", content=b"v").status_code == 201

        spans = handle.finished_spans()
        assert any(s.kind == SpanKind.SERVER for s in spans)
        assert "ent.storage.create" in {s.name for s in spans}
        assert service.filesystem.tracer_provider is handle.provider

    def test_uninstrumented_app(self, service: BlobService) -> None:
        """Without a handle the engine stays untraced."""
        create_app(service)
        assert service.filesystem.tracer_provider is None
