"""ent storage OpenTelemetry tracing integration.

Provides the span decorator applied to FileSystem operations. Spans are
emitted through the tracer provider attached to the file system instance
(see ``FileSystem.tracer_provider``); without one the decorator is a
plain pass-through.

Span attributes never include absolute filesystem paths or raw keys; keys
are exported as a SHA-256 for correlation only.
"""

from __future__ import annotations

import functools
import hashlib
import logging
from collections.abc import Callable
from typing import Any, TypeVar, cast

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

TRACER_NAME = "ent.storage"


def traced_storage_operation(operation: str, *, key_param: str = "key") -> Callable[[F], F]:
    """Decorator to trace storage operations with OpenTelemetry.

    The decorated method must take the bucket as its first argument after
    self, followed by the parameter named key_param.

    Args:
        operation: Operation name (e.g., "create", "open", "delete", "list").
        key_param: Name of the key-like parameter to hash into the span.

    Returns:
        Decorated function that emits spans when a tracer provider is attached.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, bucket: Any, *args: Any, **kwargs: Any) -> Any:
            provider = getattr(self, "tracer_provider", None)
            if provider is None:
                return func(self, bucket, *args, **kwargs)

            tracer = provider.get_tracer(TRACER_NAME)
            with tracer.start_as_current_span(f"ent.storage.{operation}") as span:
                span.set_attribute("ent.bucket", getattr(bucket, "name", str(bucket)))
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))
                key = kwargs.get(key_param, args[0] if args else None)
                if key is not None:
                    digest = hashlib.sha256(str(key).encode("utf-8")).hexdigest()
                    span.set_attribute(f"ent.{key_param}_sha256", digest)

                try:
                    result = func(self, bucket, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    error_kind = getattr(e, "kind", None)
                    if error_kind is not None:
                        span.set_attribute("ent.error_kind", str(error_kind.value))
                    raise

                _add_result_attributes(span, result, operation)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any, operation: str) -> None:
    """Add result-based attributes to span safely."""
    try:
        if operation == "list" and isinstance(result, list):
            span.set_attribute("ent.file_count", len(result))
        elif result is not None and hasattr(result, "last_modified"):
            span.set_attribute("ent.last_modified", result.last_modified.isoformat())
    except Exception as e:
        logger.debug("Failed to add result attributes to span: %s", e)
