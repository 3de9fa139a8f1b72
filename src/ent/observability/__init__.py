"""ent observability module.

Provides opt-in OpenTelemetry tracing for the HTTP API and storage engine.
"""

from ent.observability.tracing import (
    TracingHandle,
    configure_tracing,
    instrument_fastapi,
    instrument_storage,
)

__all__ = ["TracingHandle", "configure_tracing", "instrument_fastapi", "instrument_storage"]
