"""
Application Settings (Pydantic Settings).

Loads configuration from environment variables (.env file or system env).

Secrets:
- Local: .env file (gitignored)
- Kubernetes: TELE_TOKEN injected from a Secret
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Only TELE_TOKEN is required; the service refuses to start without it.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # ========================================================================
    # TELEGRAM
    # ========================================================================
    TELE_TOKEN: str = Field(default="", description="Telegram bot token (required)")
    TELEGRAM_API_URL: str = Field(default="https://api.telegram.org")
    TELEGRAM_POLL_TIMEOUT: int = Field(default=10, ge=0, description="getUpdates long-poll seconds")
    TELEGRAM_REQUEST_TIMEOUT: int = Field(default=30, gt=0, description="HTTP timeout (seconds)")

    # ========================================================================
    # METRICS SERVER (Prometheus scrape + probes)
    # ========================================================================
    METRICS_HOST: str = Field(default="0.0.0.0")
    METRICS_PORT: int = Field(default=8080)

    # ========================================================================
    # OBSERVABILITY (OpenTelemetry)
    # ========================================================================
    OTEL_EXPORTER_OTLP_ENDPOINT: str = Field(
        default="",
        description="OTLP gRPC collector endpoint; tracing is enabled when set",
    )
    OTEL_TRACING_ENABLED: bool = Field(
        default=False,
        description="Enable tracing against the default in-cluster collector",
    )
    OTEL_SERVICE_NAME: str = Field(default="kbot")
    TRACER_SHUTDOWN_TIMEOUT: float = Field(default=5.0, gt=0, description="Span flush deadline (seconds)")

    # ========================================================================
    # LIFECYCLE
    # ========================================================================
    SHUTDOWN_DRAIN_TIMEOUT: float = Field(
        default=10.0, gt=0, description="Max wait for in-flight messages on shutdown"
    )

    # ========================================================================
    # LOGGING
    # ========================================================================
    LOG_LEVEL: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    LOG_FORMAT: str = Field(default="json", pattern="^(json|text)$")

    # ========================================================================
    # ENVIRONMENT
    # ========================================================================
    ENVIRONMENT: str = Field(
        default="development",
        description="Deployment environment tag attached to traces",
    )
    APP_VERSION: str = Field(default="1.0.0", description="Version reported by /hello and kbot_info")
