"""
Kbot Observability Package.

Provides:
- Distributed tracing (OpenTelemetry)
- Metrics (Prometheus)
- Structured logging (structlog)
"""

__all__ = ["tracing", "metrics", "logging"]
