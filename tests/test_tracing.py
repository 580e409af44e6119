"""Tracing Tests."""

import re
import time
from unittest.mock import MagicMock, patch

import pytest
from opentelemetry import trace
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import SpanKind, StatusCode

from kbot_obs.tracing import (
    Tracing,
    TracerShutdownError,
    TracingInitError,
    get_tracing,
    init_tracer,
    is_tracing_enabled,
)


class TestIsTracingEnabled:
    def test_disabled_by_default(self, make_settings):
        assert is_tracing_enabled(make_settings()) is False

    def test_enabled_by_endpoint(self, make_settings):
        settings = make_settings(OTEL_EXPORTER_OTLP_ENDPOINT="collector:4317")
        assert is_tracing_enabled(settings) is True

    def test_enabled_by_flag(self, make_settings):
        assert is_tracing_enabled(make_settings(OTEL_TRACING_ENABLED=True)) is True


class TestInertTracing:
    """No tracer installed: spans accept every call and record nothing."""

    def test_span_is_non_recording(self):
        tracing = Tracing()
        assert tracing.enabled is False

        with tracing.start_span("handle_message", kind=SpanKind.SERVER, attributes={"a": 1}) as span:
            span.set_attribute("command", "hello")
            span.set_status(trace.Status(StatusCode.ERROR, "boom"))
            span.record_exception(ValueError("boom"))
            assert span.is_recording() is False
            assert tracing.current_trace_id() == ""

    def test_shutdown_is_noop(self):
        Tracing().shutdown(0.1)

    def test_default_handle_is_inert(self):
        assert get_tracing().enabled is False


class TestRecordingTracing:
    def test_child_span_parented_and_context_restored(self, tracing, span_exporter):
        with tracing.start_span("handle_message", kind=SpanKind.SERVER) as root:
            root_trace_id = tracing.current_trace_id()
            with tracing.start_span("command_hello") as child:
                assert tracing.current_trace_id() == root_trace_id
                assert trace.get_current_span() is child
            assert trace.get_current_span() is root

        assert re.fullmatch(r"[0-9a-f]{32}", root_trace_id)
        assert tracing.current_trace_id() == ""

        spans = {s.name: s for s in span_exporter.get_finished_spans()}
        assert set(spans) == {"handle_message", "command_hello"}
        assert spans["command_hello"].parent.span_id == spans["handle_message"].context.span_id
        assert spans["handle_message"].kind == SpanKind.SERVER
        assert spans["handle_message"].parent is None

    def test_explicit_parent_context(self, tracing, span_exporter):
        with tracing.start_span("parent") as parent:
            parent_context = trace.set_span_in_context(parent)

        with tracing.start_span("late_child", context=parent_context):
            pass

        spans = {s.name: s for s in span_exporter.get_finished_spans()}
        assert spans["late_child"].parent.span_id == spans["parent"].context.span_id

    def test_initial_attributes(self, tracing, span_exporter):
        with tracing.start_span("handle_message", attributes={"telegram.user_id": 7}):
            pass

        (span,) = span_exporter.get_finished_spans()
        assert span.attributes["telegram.user_id"] == 7

    def test_span_closed_when_block_raises(self, tracing, span_exporter):
        with pytest.raises(RuntimeError):
            with tracing.start_span("command_time"):
                raise RuntimeError("handler crashed")

        (span,) = span_exporter.get_finished_spans()
        assert span.end_time is not None
        assert span.status.status_code == StatusCode.ERROR


class TestShutdown:
    def test_flush_timeout_raises(self):
        provider = MagicMock()
        provider.force_flush.return_value = False
        tracing = Tracing(MagicMock(), provider)

        with pytest.raises(TracerShutdownError, match="flush timed out"):
            tracing.shutdown(1.0)
        provider.shutdown.assert_called_once()

    def test_deadline_is_enforced(self):
        provider = MagicMock()
        provider.force_flush.side_effect = lambda timeout_millis: time.sleep(2) or True
        tracing = Tracing(MagicMock(), provider)

        started = time.monotonic()
        with pytest.raises(TracerShutdownError, match="deadline"):
            tracing.shutdown(0.1)
        assert time.monotonic() - started < 1.5

    def test_provider_error_wrapped(self):
        provider = MagicMock()
        provider.force_flush.return_value = True
        provider.shutdown.side_effect = OSError("connection reset")
        tracing = Tracing(MagicMock(), provider)

        with pytest.raises(TracerShutdownError, match="connection reset"):
            tracing.shutdown(1.0)


class TestInitTracer:
    @pytest.fixture(autouse=True)
    def uninstrument_httpx(self):
        yield
        HTTPXClientInstrumentor().uninstrument()

    def test_installs_process_handle_and_exports_on_shutdown(self, make_settings):
        exporter = InMemorySpanExporter()
        settings = make_settings(OTEL_TRACING_ENABLED=True, ENVIRONMENT="staging")

        shutdown = init_tracer(settings, exporter=exporter)

        tracing = get_tracing()
        assert tracing.enabled is True
        with tracing.start_span("handle_message"):
            pass

        shutdown(5.0)

        (span,) = exporter.get_finished_spans()
        resource = span.resource.attributes
        assert resource["service.name"] == "kbot"
        assert resource["service.version"] == "v1.2.3"
        assert resource["environment"] == "staging"

    def test_exporter_failure_raises_init_error(self, make_settings):
        settings = make_settings(OTEL_EXPORTER_OTLP_ENDPOINT="collector:4317")

        with patch("kbot_obs.tracing.OTLPSpanExporter", side_effect=RuntimeError("grpc unavailable")):
            with pytest.raises(TracingInitError, match="grpc unavailable"):
                init_tracer(settings)

        assert get_tracing().enabled is False
