"""Prometheus metrics for the claim-check client.

Provides counters for:
- Messages sent, by mode (direct or offloaded)
- Payloads retrieved, by source (store or SAS URI)
- Orphan cleanups after failed sends, by outcome
- Messages dead-lettered by the processor
- Blobs removed by TTL sweeps

Usage:
    from claimcheck.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.messages_sent_total.labels(mode="offloaded").inc()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any

from prometheus_client import REGISTRY, Counter, generate_latest

logger = logging.getLogger(__name__)


class NoOpMetric:
    """No-op metric for when metrics are disabled."""

    def labels(self, **kwargs: Any) -> NoOpMetric:
        """Return self for chaining."""
        return self

    def inc(self, amount: float = 1) -> None:
        """No-op."""
        pass


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    messages_sent_total: Any = None
    send_failures_total: Any = None
    payloads_retrieved_total: Any = None
    orphan_cleanups_total: Any = None
    dead_lettered_total: Any = None
    expired_blobs_deleted_total: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def _metric_names(self) -> list[str]:
        return [f.name for f in fields(self) if not f.name.startswith("_")]

    def _disable(self) -> None:
        for name in self._metric_names():
            setattr(self, name, NoOpMetric())
        self._initialized = True

    @classmethod
    def disabled(cls) -> MetricsRegistry:
        registry = cls()
        registry._disable()
        return registry

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        self._registry = REGISTRY

        self.messages_sent_total = Counter(
            "claimcheck_messages_sent_total",
            "Messages sent to the queue",
            ["mode"],
        )
        self.send_failures_total = Counter(
            "claimcheck_send_failures_total",
            "Sends that failed after retries",
            ["mode"],
        )
        self.payloads_retrieved_total = Counter(
            "claimcheck_payloads_retrieved_total",
            "Offloaded payloads retrieved on receive",
            ["source"],
        )
        self.orphan_cleanups_total = Counter(
            "claimcheck_orphan_cleanups_total",
            "Payload deletes issued after a failed send",
            ["outcome"],
        )
        self.dead_lettered_total = Counter(
            "claimcheck_dead_lettered_total",
            "Messages moved to the dead-letter queue",
        )
        self.expired_blobs_deleted_total = Counter(
            "claimcheck_expired_blobs_deleted_total",
            "Payload blobs deleted by TTL cleanup",
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if self._registry is None:
            return b"# Metrics disabled\n"

        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()
_disabled_registry = MetricsRegistry.disabled()


def get_metrics(enabled: bool = True) -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access. Returns a registry of no-op metrics
    when ``enabled`` is False.
    """
    if not enabled:
        return _disabled_registry
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry
