"""
Kbot - Telegram bot with metrics and tracing.

Startup order:
1. Metrics recorder + scrape server (failure is logged, not fatal)
2. OpenTelemetry tracer, when enabled (failure: run untraced)
3. Telegram long poller with the request pipeline as its callback

Shutdown on SIGINT/SIGTERM: stop the poller (in-flight messages finish),
then flush the tracer within TRACER_SHUTDOWN_TIMEOUT.
"""

import asyncio
import signal
import sys
from collections.abc import Callable

import httpx

from kbot_config.settings import Settings
from kbot_core.commands import CommandDispatcher
from kbot_core.pipeline import RequestPipeline
from kbot_obs.logging import get_logger, setup_logging
from kbot_obs.metrics import MetricsRecorder, get_metrics
from kbot_obs.tracing import (
    TracerShutdownError,
    TracingInitError,
    get_tracing,
    init_tracer,
    is_tracing_enabled,
)
from kbot_telegram import TelegramAPIError, TelegramBot, TelegramClientWrapper

from apps.kbot.server import MetricsServer, start_metrics_server

logger = get_logger(__name__)


class StartupError(Exception):
    """The service cannot run with the current configuration."""

    pass


class KbotService:
    """Owns init order and coordinated shutdown of bot, tracer and metrics."""

    def __init__(
        self,
        settings: Settings,
        metrics: MetricsRecorder | None = None,
        client: TelegramClientWrapper | None = None,
    ):
        """Initialize service.

        Args:
            settings: Application settings
            metrics: Metrics recorder (default: process-wide recorder)
            client: Bot API client (default: built from settings)
        """
        self.settings = settings
        self.metrics = metrics if metrics is not None else get_metrics()
        self.client = client
        self.bot: TelegramBot | None = None
        self.metrics_server: MetricsServer | None = None
        self.shutdown_tracer: Callable[[float], None] | None = None

    async def start(self) -> None:
        """Bring up metrics, tracing and the bot.

        Raises:
            StartupError: token missing or rejected by Telegram
        """
        settings = self.settings
        if not settings.TELE_TOKEN:
            raise StartupError("TELE_TOKEN environment variable is not set")

        logger.info("kbot_starting", version=settings.APP_VERSION, environment=settings.ENVIRONMENT)

        self.metrics.mark_started(settings.APP_VERSION)
        self.metrics_server = start_metrics_server(
            self.metrics,
            host=settings.METRICS_HOST,
            port=settings.METRICS_PORT,
            version=settings.APP_VERSION,
        )

        if is_tracing_enabled(settings):
            try:
                self.shutdown_tracer = init_tracer(settings)
            except TracingInitError as e:
                logger.warning("tracing_init_failed", error=str(e))
        else:
            logger.info(
                "tracing_disabled",
                hint="set OTEL_EXPORTER_OTLP_ENDPOINT or OTEL_TRACING_ENABLED=true to enable",
            )

        if self.client is None:
            self.client = TelegramClientWrapper(
                bot_token=settings.TELE_TOKEN,
                base_url=settings.TELEGRAM_API_URL,
                timeout_seconds=settings.TELEGRAM_REQUEST_TIMEOUT,
            )

        try:
            me = await self.client.get_me()
        except (TelegramAPIError, httpx.HTTPError) as e:
            await self._shutdown_telemetry()
            raise StartupError(f"Failed to create bot: {e}") from e

        pipeline = RequestPipeline(
            CommandDispatcher(settings.APP_VERSION, tracing=get_tracing()),
            metrics=self.metrics,
            tracing=get_tracing(),
        )

        self.bot = TelegramBot(self.client, poll_timeout=settings.TELEGRAM_POLL_TIMEOUT)
        self.bot.handle(pipeline.handle)
        self.bot.start()

        logger.info("kbot_started", version=settings.APP_VERSION, bot_username=me.username)

    async def stop(self) -> None:
        """Stop the transport first, then flush telemetry."""
        logger.info("kbot_shutting_down")

        if self.bot is not None:
            await self.bot.stop(drain_timeout=self.settings.SHUTDOWN_DRAIN_TIMEOUT)

        await self._shutdown_telemetry()
        logger.info("kbot_stopped")

    async def _shutdown_telemetry(self) -> None:
        if self.shutdown_tracer is not None:
            try:
                await asyncio.to_thread(
                    self.shutdown_tracer, self.settings.TRACER_SHUTDOWN_TIMEOUT
                )
            except TracerShutdownError as e:
                logger.error("tracer_shutdown_failed", error=str(e))
            self.shutdown_tracer = None

        if self.metrics_server is not None:
            self.metrics_server.stop()
            self.metrics_server = None

    async def run(self, stop_event: asyncio.Event) -> None:
        """Start, wait for `stop_event`, then shut down."""
        await self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================


async def main(settings: Settings | None = None) -> int:
    """Run kbot until SIGINT/SIGTERM; returns the process exit code."""
    settings = settings or Settings()
    setup_logging(settings)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("signal_received", signal=sig.name)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler, sig)

    service = KbotService(settings)
    try:
        await service.run(stop_event)
    except StartupError as e:
        logger.critical("kbot_startup_failed", error=str(e))
        return 1
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    logger.info("goodbye")
    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
