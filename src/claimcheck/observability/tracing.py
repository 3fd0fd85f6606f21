"""OpenTelemetry tracing for the claim-check client.

Spans wrap each send and receive. The W3C trace context travels with the
message as ``traceparent``/``tracestate`` application properties so a
consumer can continue the producer's trace.

Usage:
    from claimcheck.observability.tracing import get_tracer

    tracer = get_tracer(__name__)

    with tracer.start_as_current_span("claimcheck.send") as span:
        span.set_attribute("claimcheck.offloaded", True)
        ...
"""

from __future__ import annotations

import logging
from typing import Any

from opentelemetry import context as otel_context
from opentelemetry import propagate, trace

from claimcheck.constants import TRACEPARENT_PROPERTY, TRACESTATE_PROPERTY

logger = logging.getLogger(__name__)

TRACE_CONTEXT_KEYS = (TRACEPARENT_PROPERTY, TRACESTATE_PROPERTY)


def get_tracer(name: str, enabled: bool = True) -> Any:
    """Get a tracer for the given module name.

    Args:
        name: Module name (typically __name__)
        enabled: Return a NoOpTracer when False

    Returns:
        OpenTelemetry tracer or NoOpTracer if tracing disabled
    """
    if not enabled:
        return NoOpTracer()
    return trace.get_tracer(name)


def inject_trace_context(properties: dict[str, Any]) -> dict[str, Any]:
    """Write the current trace context into message properties.

    Does nothing when there is no active span.
    """
    carrier: dict[str, str] = {}
    propagate.inject(carrier)
    for key in TRACE_CONTEXT_KEYS:
        if key in carrier:
            properties[key] = carrier[key]
    return properties


def extract_trace_context(properties: dict[str, Any] | None) -> otel_context.Context:
    """Build an OpenTelemetry context from message properties."""
    carrier = {
        key: str(properties[key])
        for key in TRACE_CONTEXT_KEYS
        if properties and key in properties
    }
    return propagate.extract(carrier)


class NoOpTracer:
    """No-op tracer for when tracing is disabled."""

    def start_as_current_span(self, name: str, **kwargs: Any) -> NoOpSpanContextManager:
        """Return a no-op span context manager."""
        return NoOpSpanContextManager()

    def start_span(self, name: str, **kwargs: Any) -> NoOpSpan:
        """Return a no-op span."""
        return NoOpSpan()


class NoOpSpan:
    """No-op span for when tracing is disabled."""

    def set_attribute(self, key: str, value: Any) -> None:
        """No-op."""
        pass

    def set_status(self, status: Any) -> None:
        """No-op."""
        pass

    def record_exception(self, exception: BaseException) -> None:
        """No-op."""
        pass

    def end(self) -> None:
        """No-op."""
        pass


class NoOpSpanContextManager:
    """No-op span context manager."""

    def __enter__(self) -> NoOpSpan:
        return NoOpSpan()

    def __exit__(self, *args: Any) -> None:
        pass
