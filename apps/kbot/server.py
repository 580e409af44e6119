"""
Metrics and probe HTTP server.

FastAPI app served by uvicorn on a daemon thread, next to the bot's event
loop. The bot keeps running if the server cannot bind its port.
"""

import threading

import uvicorn
from fastapi import FastAPI

from apps.kbot.routers import health, metrics
from kbot_obs.logging import get_logger
from kbot_obs.metrics import MetricsRecorder

logger = get_logger(__name__)


def create_metrics_app(recorder: MetricsRecorder, version: str = "") -> FastAPI:
    """Build the scrape/probe app serving `recorder`."""
    app = FastAPI(
        title="Kbot",
        description="Kbot metrics and health probes",
        version=version or "0.0.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.metrics = recorder

    app.include_router(health.router, prefix="", tags=["health"])
    app.include_router(metrics.router, prefix="", tags=["metrics"])

    @app.get("/", tags=["root"])
    async def root():
        return {
            "name": "kbot",
            "version": version,
            "metrics": "/metrics",
            "health": "/health",
            "ready": "/ready",
        }

    return app


class MetricsServer:
    """Runs the metrics app with uvicorn on a background thread."""

    def __init__(self, app: FastAPI, host: str = "0.0.0.0", port: int = 8080):
        self.host = host
        self.port = port
        # uvicorn skips signal handler installation off the main thread
        self._server = uvicorn.Server(
            uvicorn.Config(app, host=host, port=port, log_config=None, access_log=False)
        )
        self._thread: threading.Thread | None = None

    @property
    def started(self) -> bool:
        return self._server.started

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name="kbot-metrics", daemon=True)
        self._thread.start()
        logger.info("metrics_server_starting", host=self.host, port=self.port)

    def _run(self) -> None:
        try:
            self._server.run()
        except SystemExit:
            # uvicorn exits when it cannot bind; the bot carries on without metrics
            logger.error("metrics_server_failed", host=self.host, port=self.port)

    def stop(self, timeout: float = 2.0) -> None:
        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout)


def start_metrics_server(
    recorder: MetricsRecorder, host: str = "0.0.0.0", port: int = 8080, version: str = ""
) -> MetricsServer:
    """Create and start the metrics server."""
    server = MetricsServer(create_metrics_app(recorder, version), host=host, port=port)
    server.start()
    return server
