"""Observability for the claim-check client.

Provides tracing, metrics, and structured logging:
- OpenTelemetry spans with trace context carried in message properties
- Prometheus counters for sends, retrievals, cleanups and dead-letters
- JSON structured logging with message ids
"""

from claimcheck.observability.logging import (
    LogContext,
    configure_logging,
    message_id_var,
)
from claimcheck.observability.metrics import get_metrics, metrics_registry
from claimcheck.observability.tracing import (
    extract_trace_context,
    get_tracer,
    inject_trace_context,
)

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "message_id_var",
    # Metrics
    "get_metrics",
    "metrics_registry",
    # Tracing
    "get_tracer",
    "inject_trace_context",
    "extract_trace_context",
]
