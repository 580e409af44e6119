"""
Distributed Tracing Setup (OpenTelemetry).

Spans are produced through a `Tracing` handle. An un-initialized handle hands
out the OpenTelemetry non-recording span, so callers never branch on whether
tracing is enabled. Exports go to an OTLP gRPC collector (Jaeger/Tempo).
"""

import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.propagate import set_global_textmap
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.sampling import ALWAYS_ON
from opentelemetry.trace import SpanKind
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from opentelemetry.util.types import AttributeValue

from kbot_config.settings import Settings
from kbot_obs.logging import get_logger

logger = get_logger(__name__)

DEFAULT_OTLP_ENDPOINT = "otel-collector-collector.monitoring.svc.cluster.local:4317"
TRACER_NAME = "kbot"


class TracingError(Exception):
    """Base exception for tracing setup and teardown."""

    pass


class TracingInitError(TracingError):
    """Exporter or provider could not be set up; run untraced."""

    pass


class TracerShutdownError(TracingError):
    """Span flush or provider shutdown failed or missed its deadline."""

    pass


class Tracing:
    """Process tracer handle.

    Holds the tracer used for span creation and the SDK provider that owns
    the exporter connection. Built without a tracer it is inert.
    """

    def __init__(
        self,
        tracer: trace.Tracer | None = None,
        provider: TracerProvider | None = None,
    ):
        self._tracer = tracer
        self._provider = provider

    @property
    def enabled(self) -> bool:
        return self._tracer is not None

    @contextmanager
    def start_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, AttributeValue] | None = None,
        context: Context | None = None,
    ) -> Iterator[trace.Span]:
        """Open a span as a child of `context` (default: current context).

        The span is current inside the block and ended on exit, including
        when the block raises.
        """
        if self._tracer is None:
            yield trace.INVALID_SPAN
            return

        with self._tracer.start_as_current_span(
            name, context=context, kind=kind, attributes=attributes
        ) as span:
            yield span

    def current_trace_id(self) -> str:
        """Trace id of the active span as 32 hex chars, or "" if none."""
        span_context = trace.get_current_span().get_span_context()
        if not span_context.is_valid:
            return ""
        return trace.format_trace_id(span_context.trace_id)

    def shutdown(self, timeout: float = 5.0) -> None:
        """Flush buffered spans and close the exporter within `timeout` seconds.

        The flush runs on a daemon thread so a hung collector cannot keep the
        process alive past the deadline.
        """
        if self._provider is None:
            return

        provider = self._provider
        failures: list[BaseException] = []

        def _flush_and_close() -> None:
            try:
                if not provider.force_flush(timeout_millis=int(timeout * 1000)):
                    failures.append(TracerShutdownError("span flush timed out"))
                provider.shutdown()
            except Exception as exc:
                failures.append(exc)

        worker = threading.Thread(
            target=_flush_and_close, name="kbot-tracer-shutdown", daemon=True
        )
        worker.start()
        worker.join(timeout)

        if worker.is_alive():
            raise TracerShutdownError(f"tracer shutdown exceeded {timeout}s deadline")
        if failures:
            error = failures[0]
            if isinstance(error, TracerShutdownError):
                raise error
            raise TracerShutdownError(f"tracer shutdown failed: {error}") from error


_tracing = Tracing()


def get_tracing() -> Tracing:
    """Process-wide tracing handle (inert until init_tracer succeeds)."""
    return _tracing


def set_tracing(tracing: Tracing) -> None:
    """Replace the process-wide tracing handle."""
    global _tracing
    _tracing = tracing


def is_tracing_enabled(settings: Settings) -> bool:
    """Tracing is on when an OTLP endpoint is configured or explicitly enabled."""
    return bool(settings.OTEL_EXPORTER_OTLP_ENDPOINT) or settings.OTEL_TRACING_ENABLED


def init_tracer(
    settings: Settings, exporter: SpanExporter | None = None
) -> Callable[[float], None]:
    """
    Setup OpenTelemetry distributed tracing.

    Exports: OTLP gRPC, insecure (in-cluster collector)
    Instruments: httpx (Telegram Bot API calls)

    Args:
        settings: Application settings
        exporter: Span exporter override (tests use InMemorySpanExporter)

    Returns:
        Shutdown function taking a deadline in seconds

    Raises:
        TracingInitError: exporter or provider setup failed
    """
    endpoint = settings.OTEL_EXPORTER_OTLP_ENDPOINT or DEFAULT_OTLP_ENDPOINT

    try:
        if exporter is None:
            exporter = OTLPSpanExporter(endpoint=endpoint, insecure=True)

        resource = Resource.create(
            {
                "service.name": settings.OTEL_SERVICE_NAME,
                "service.version": settings.APP_VERSION,
                "deployment.environment": settings.ENVIRONMENT,
                "environment": settings.ENVIRONMENT,
            }
        )

        provider = TracerProvider(resource=resource, sampler=ALWAYS_ON)
        provider.add_span_processor(BatchSpanProcessor(exporter))
    except Exception as exc:
        raise TracingInitError(f"failed to initialize tracer: {exc}") from exc

    trace.set_tracer_provider(provider)
    set_global_textmap(
        CompositePropagator([TraceContextTextMapPropagator(), W3CBaggagePropagator()])
    )

    # Outbound Bot API calls show up as children of the command spans
    HTTPXClientInstrumentor().instrument(tracer_provider=provider)

    tracing = Tracing(provider.get_tracer(TRACER_NAME, settings.APP_VERSION), provider)
    set_tracing(tracing)

    logger.info("tracing_initialized", endpoint=endpoint, service=settings.OTEL_SERVICE_NAME)

    return tracing.shutdown
