"""Pytest fixtures."""

import asyncio

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from prometheus_client import CollectorRegistry
from unittest.mock import AsyncMock

from kbot_config.settings import Settings
from kbot_core.commands import CommandDispatcher
from kbot_core.models import InboundMessage
from kbot_obs.metrics import MetricsRecorder
from kbot_obs.tracing import Tracing, get_tracing, set_tracing
from kbot_telegram.exceptions import TelegramAPIError
from kbot_telegram.schemas import TelegramUpdate, TelegramUser

TEST_VERSION = "v1.2.3"

_ENV_VARS = (
    "TELE_TOKEN",
    "METRICS_PORT",
    "OTEL_EXPORTER_OTLP_ENDPOINT",
    "OTEL_TRACING_ENABLED",
    "ENVIRONMENT",
    "APP_VERSION",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the host environment out of Settings()."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_tracing():
    """Restore the process-wide tracing handle after each test."""
    previous = get_tracing()
    yield
    set_tracing(previous)


@pytest.fixture
def make_settings():
    """Settings factory ignoring any local .env file."""

    def _make(**overrides) -> Settings:
        values = {"TELE_TOKEN": "123456:test-token", "APP_VERSION": TEST_VERSION}
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def span_exporter():
    """In-memory span sink."""
    return InMemorySpanExporter()


@pytest.fixture
def tracing(span_exporter):
    """Recording tracing handle exporting synchronously to span_exporter."""
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return Tracing(provider.get_tracer("test"), provider)


@pytest.fixture
def metrics():
    """Recorder on a private registry."""
    return MetricsRecorder(CollectorRegistry())


@pytest.fixture
def dispatcher(tracing):
    return CommandDispatcher(TEST_VERSION, tracing=tracing)


@pytest.fixture
def make_message():
    """InboundMessage factory."""

    def _make(text: str, payload: str = "", sender_id: int = 42) -> InboundMessage:
        return InboundMessage(
            sender_id=sender_id,
            sender_name="alice",
            chat_id=1000 + sender_id,
            text=text,
            payload=payload,
        )

    return _make


@pytest.fixture
def reply():
    """Reply callable that always succeeds."""
    return AsyncMock(return_value={"message_id": 1})


@pytest.fixture
def failing_reply():
    """Reply callable simulating a Bot API failure."""
    return AsyncMock(side_effect=TelegramAPIError("Telegram API error: chat not found", error_code=400))


def counter_value(metrics: MetricsRecorder, command: str, status: str) -> float | None:
    return metrics.registry.get_sample_value(
        "kbot_messages_total", {"command": command, "status": status}
    )


def histogram_count(metrics: MetricsRecorder, command: str) -> float | None:
    return metrics.registry.get_sample_value(
        "kbot_message_processing_duration_seconds_count", {"command": command}
    )


def make_update(update_id: int, text: str | None = "hello", username: str | None = "alice") -> dict:
    sender = {"id": 42, "is_bot": False, "first_name": "Alice"}
    if username:
        sender["username"] = username
    message = {
        "message_id": update_id,
        "from": sender,
        "chat": {"id": 1042, "type": "private"},
        "date": 1700000000,
    }
    if text is not None:
        message["text"] = text
    return {"update_id": update_id, "message": message}


class FakeTelegramClient:
    """In-memory stand-in for TelegramClientWrapper."""

    def __init__(self, batches=None, send_delay: float = 0.0):
        self.batches = list(batches or [])
        self.send_delay = send_delay
        self.offsets = []
        self.sent = []

    async def get_me(self):
        return TelegramUser(id=1, is_bot=True, first_name="Kbot", username="kbot_bot")

    async def get_updates(self, offset=None, timeout=10):
        self.offsets.append(offset)
        if self.batches:
            batch = self.batches.pop(0)
            if isinstance(batch, Exception):
                raise batch
            return [TelegramUpdate.model_validate(u) for u in batch]
        # Idle long poll; cancelled by stop()
        await asyncio.sleep(3600)
        return []

    async def send_message(self, chat_id, text):
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        self.sent.append((chat_id, text))
        return {"message_id": len(self.sent)}
