"""OpenTelemetry tracing configuration for ent.

Tracing is off by default. configure_tracing() returns a TracingHandle that
the application factory keeps; nothing here is stored at module level.

Environment Variables:
    ENT_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    ENT_REQUIRE_OTEL: Set to "1" to fail startup if tracing cannot initialize
    ENT_OTEL_SERVICE_NAME: Service name for spans (default: "ent")
    ENT_OTEL_EXPORTER: Exporter type - "otlp" or "console" (default: "otlp")
    ENT_OTEL_EXPORTER_OTLP_ENDPOINT: OTLP endpoint URL (optional)
    ENT_OTEL_TEST_CAPTURE: Set to "1" to use an in-memory exporter for tests

Security:
    - Never export request bodies, raw object keys or filesystem paths
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan

logger = logging.getLogger(__name__)


class TracingConfigError(Exception):
    """Raised when tracing configuration fails and ENT_REQUIRE_OTEL=1."""


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no", ""):
        return default
    return default


def _get_env_str(key: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default).strip()


@dataclass
class TracingHandle:
    """Result of tracing setup, owned by the application.

    Attributes:
        enabled: Whether spans are being recorded.
        provider: The SDK TracerProvider, when enabled.
        test_exporter: In-memory exporter when ENT_OTEL_TEST_CAPTURE=1.
    """

    enabled: bool = False
    provider: Any = None
    test_exporter: Any = None

    def finished_spans(self) -> list[ReadableSpan]:
        """Return spans captured by the in-memory exporter."""
        if self.test_exporter is None:
            return []
        return list(self.test_exporter.get_finished_spans())

    def clear_spans(self) -> None:
        """Clear spans captured by the in-memory exporter."""
        if self.test_exporter is not None:
            self.test_exporter.clear()

    def shutdown(self) -> None:
        """Flush and stop span processors."""
        if self.provider is not None:
            self.provider.shutdown()


def configure_tracing() -> TracingHandle:
    """Configure OpenTelemetry tracing for ent.

    The global OpenTelemetry provider is left untouched. The returned handle
    is passed to create_app(), which attaches its provider to the FastAPI
    instrumentation and to the storage engine.

    Returns:
        TracingHandle describing the configured state.

    Raises:
        TracingConfigError: If ENT_REQUIRE_OTEL=1 and configuration fails.
    """
    if not _get_env_bool("ENT_OTEL_ENABLED", False):
        logger.debug("OpenTelemetry tracing disabled (ENT_OTEL_ENABLED not set)")
        return TracingHandle()

    require_otel = _get_env_bool("ENT_REQUIRE_OTEL", False)
    try:
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor

        service_name = _get_env_str("ENT_OTEL_SERVICE_NAME", "ent")
        exporter_type = _get_env_str("ENT_OTEL_EXPORTER", "otlp")
        test_capture = _get_env_bool("ENT_OTEL_TEST_CAPTURE", False)

        provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
        test_exporter = None

        if test_capture:
            from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
                InMemorySpanExporter,
            )

            test_exporter = InMemorySpanExporter()
            provider.add_span_processor(SimpleSpanProcessor(test_exporter))
        elif exporter_type == "console":
            from opentelemetry.sdk.trace.export import ConsoleSpanExporter

            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        else:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

            endpoint = _get_env_str("ENT_OTEL_EXPORTER_OTLP_ENDPOINT", "")
            kwargs: dict[str, Any] = {"endpoint": endpoint} if endpoint else {}
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**kwargs)))

        logger.info(
            "OpenTelemetry tracing configured: service=%s, exporter=%s",
            service_name,
            "in-memory" if test_capture else exporter_type,
        )
        return TracingHandle(enabled=True, provider=provider, test_exporter=test_exporter)

    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        if require_otel:
            raise TracingConfigError(
                f"OpenTelemetry tracing required but configuration failed: {e}"
            ) from e
        return TracingHandle()


def instrument_fastapi(app: Any, handle: TracingHandle) -> None:
    """Instrument a FastAPI application with OpenTelemetry.

    Args:
        app: FastAPI application instance.
        handle: Tracing state from configure_tracing().
    """
    if not handle.enabled:
        return

    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        FastAPIInstrumentor.instrument_app(app, tracer_provider=handle.provider)
        logger.debug("FastAPI instrumented with OpenTelemetry")
    except Exception as e:
        logger.warning("Failed to instrument FastAPI: %s", e)


def instrument_storage(filesystem: Any, handle: TracingHandle) -> None:
    """Attach the handle's tracer provider to a storage engine.

    Args:
        filesystem: FileSystem whose operations should emit spans.
        handle: Tracing state from configure_tracing().
    """
    if not handle.enabled:
        return
    filesystem.tracer_provider = handle.provider
    logger.debug("Storage backend %s instrumented", filesystem.backend_name)
