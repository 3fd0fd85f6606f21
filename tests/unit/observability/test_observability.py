"""Tests for logging, tracing and metrics helpers."""

from __future__ import annotations

import logging

import orjson
import pytest

from claimcheck.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    LogContext,
    configure_logging,
    message_id_var,
)
from claimcheck.observability.metrics import MetricsRegistry, NoOpMetric, get_metrics
from claimcheck.observability.tracing import (
    NoOpTracer,
    extract_trace_context,
    get_tracer,
    inject_trace_context,
)


def _record(message: str = "hello", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="claimcheck.client",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLogging:
    """Tests for structured logging."""

    def test_json_formatter(self) -> None:
        data = orjson.loads(JsonFormatter().format(_record("sent", blob="c/b")))

        assert data["message"] == "sent"
        assert data["level"] == "INFO"
        assert data["logger"] == "claimcheck.client"
        assert data["blob"] == "c/b"
        assert "message_id" not in data

    def test_json_formatter_includes_message_id(self) -> None:
        with LogContext(message_id="abc-123"):
            data = orjson.loads(JsonFormatter().format(_record()))

        assert data["message_id"] == "abc-123"

    def test_console_formatter(self) -> None:
        with LogContext(message_id="abc-123"):
            line = ConsoleFormatter(use_colors=False).format(_record("sent"))

        assert "INFO" in line
        assert "sent" in line
        assert "msg=abc-123" in line

    def test_log_context_resets(self) -> None:
        with LogContext(message_id="outer"):
            with LogContext(message_id="inner"):
                assert message_id_var.get() == "inner"
            assert message_id_var.get() == "outer"
        assert message_id_var.get() == ""

    def test_log_context_ignores_none(self) -> None:
        with LogContext(message_id=None):
            assert message_id_var.get() == ""

    def test_configure_logging(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging(json_format=True, level="DEBUG")

            assert root.level == logging.DEBUG
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
            assert logging.getLogger("azure").level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


class TestTracing:
    """Tests for tracing helpers."""

    def test_disabled_tracer(self) -> None:
        tracer = get_tracer(__name__, enabled=False)

        assert isinstance(tracer, NoOpTracer)
        with tracer.start_as_current_span("x", context=None) as span:
            span.set_attribute("k", "v")
            span.record_exception(RuntimeError("e"))

    def test_inject_without_active_span(self) -> None:
        assert inject_trace_context({"a": 1}) == {"a": 1}

    def test_extract_roundtrip(self) -> None:
        from opentelemetry import trace

        traceparent = "00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01"

        context = extract_trace_context({"traceparent": traceparent})
        span_context = trace.get_current_span(context).get_span_context()

        assert format(span_context.trace_id, "032x") == "0af7651916cd43dd8448eb211c80319c"

    @pytest.mark.asyncio
    async def test_trace_context_travels_but_is_hidden(self, make_client) -> None:  # type: ignore[no-untyped-def]
        from opentelemetry import trace
        from opentelemetry.trace import NonRecordingSpan, SpanContext, TraceFlags

        client = make_client(tracing_enabled=True)
        span = NonRecordingSpan(
            SpanContext(
                trace_id=0x0AF7651916CD43DD8448EB211C80319C,
                span_id=0xB7AD6B7169203331,
                is_remote=False,
                trace_flags=TraceFlags(TraceFlags.SAMPLED),
            )
        )

        with trace.use_span(span):
            await client.send_message("x" * 500, {"orderId": "1"})

        sent = client.transport.inner.sent[0]
        assert sent.application_properties["traceparent"].startswith(
            "00-0af7651916cd43dd8448eb211c80319c-"
        )
        received = await client.receive_messages()
        assert received[0].application_properties == {"orderId": "1"}

    def test_extract_empty(self) -> None:
        from opentelemetry import trace

        context = extract_trace_context(None)

        assert not trace.get_current_span(context).get_span_context().is_valid


class TestMetrics:
    """Tests for the metrics registry."""

    def test_disabled_registry_is_noop(self) -> None:
        metrics = get_metrics(enabled=False)

        assert isinstance(metrics.messages_sent_total, NoOpMetric)
        metrics.messages_sent_total.labels(mode="direct").inc()
        assert metrics.generate_latest() == b"# Metrics disabled\n"

    def test_enabled_registry_exposes_counters(self) -> None:
        metrics = get_metrics(enabled=True)
        metrics.messages_sent_total.labels(mode="offloaded").inc()

        output = metrics.generate_latest()

        assert b"claimcheck_messages_sent_total" in output
        assert get_metrics() is metrics

    def test_disabled_factory(self) -> None:
        registry = MetricsRegistry.disabled()

        assert all(
            isinstance(getattr(registry, name), NoOpMetric) for name in registry._metric_names()
        )

    @pytest.mark.asyncio
    async def test_client_counts_offloaded_sends(self, make_client) -> None:  # type: ignore[no-untyped-def]
        metrics = get_metrics(enabled=True)
        counter = metrics.messages_sent_total.labels(mode="offloaded")
        before = counter._value.get()
        client = make_client(metrics_enabled=True)

        await client.send_message("x" * 500)

        assert counter._value.get() == before + 1
