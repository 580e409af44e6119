"""
Prometheus Metrics Registration.

Message counters and latency histograms for the bot, exposed on /metrics.
"""

import threading
import time

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, generate_latest

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"

UNKNOWN_COMMAND = "unknown"
KNOWN_COMMANDS = frozenset({"hello", "time", UNKNOWN_COMMAND})

DURATION_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)


class MetricsRecorder:
    """Owns the kbot_* series on one collector registry.

    prometheus_client metrics are internally locked, so record_message is
    safe from concurrent handlers.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self._started = False

        # ====================================================================
        # COUNTERS
        # ====================================================================
        self.messages_total = Counter(
            "kbot_messages_total",
            "Total number of messages received by the bot",
            ["command", "status"],  # hello|time|unknown, success|error
            registry=self.registry,
        )

        # ====================================================================
        # HISTOGRAMS
        # ====================================================================
        self.processing_duration = Histogram(
            "kbot_message_processing_duration_seconds",
            "Time spent processing messages",
            ["command"],
            buckets=DURATION_BUCKETS,
            registry=self.registry,
        )

        # ====================================================================
        # GAUGES
        # ====================================================================
        self.info = Gauge(
            "kbot_info",
            "Information about kbot instance",
            ["version"],
            registry=self.registry,
        )
        self.start_time = Gauge(
            "kbot_start_time_seconds",
            "Start time of the bot in unix timestamp",
            registry=self.registry,
        )

    def mark_started(self, version: str, started_at: float | None = None) -> None:
        """Set the start timestamp and version info series (first call wins)."""
        if self._started:
            return
        self._started = True
        self.start_time.set(started_at if started_at is not None else time.time())
        self.info.labels(version=version).set(1)

    def record_message(self, command: str, status: str, duration: float) -> None:
        """Count one processed message and observe its duration in seconds."""
        if command not in KNOWN_COMMANDS:
            command = UNKNOWN_COMMAND
        self.messages_total.labels(command=command, status=status).inc()
        self.processing_duration.labels(command=command).observe(max(duration, 0.0))

    def snapshot(self) -> bytes:
        """Render all series in the Prometheus text exposition format."""
        return generate_latest(self.registry)


_metrics: MetricsRecorder | None = None
_metrics_lock = threading.Lock()


def get_metrics() -> MetricsRecorder:
    """Process-wide recorder on the default registry (includes process collectors)."""
    global _metrics
    with _metrics_lock:
        if _metrics is None:
            _metrics = MetricsRecorder(REGISTRY)
        return _metrics
