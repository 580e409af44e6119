"""
Structured Logging (structlog).

Every event carries service/environment/version; message handling events also
carry trace_id when tracing is active, so log lines join up with spans in the
trace backend.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from kbot_config.settings import Settings


def _app_context(settings: Settings) -> Processor:
    """Build a processor stamping static process identity on each event."""
    static = {
        "service": settings.OTEL_SERVICE_NAME,
        "environment": settings.ENVIRONMENT,
        "version": settings.APP_VERSION,
    }

    def add_app_context(
        logger: Any, method_name: str, event_dict: EventDict
    ) -> EventDict:
        for key, value in static.items():
            event_dict.setdefault(key, value)
        return event_dict

    return add_app_context


def setup_logging(settings: Settings) -> None:
    """
    Configure structlog on top of stdlib logging.

    LOG_FORMAT=json renders one JSON object per line (production);
    LOG_FORMAT=text uses the colored console renderer (local runs).
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=settings.LOG_LEVEL.upper(),
        force=True,
    )
    # Per-request library logs
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _app_context(settings),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.LOG_FORMAT == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get configured logger."""
    return structlog.get_logger(name)


def with_trace_id(
    logger: structlog.stdlib.BoundLogger, trace_id: str
) -> structlog.stdlib.BoundLogger:
    """Bind trace_id for correlation; an empty id leaves the logger untouched."""
    if trace_id:
        return logger.bind(trace_id=trace_id)
    return logger
