"""
Telegram long-polling bot.

One background task polls getUpdates and spawns a task per text message, so
message handlers run concurrently. Handler failures are logged here and
never reach the poll loop.
"""

import asyncio
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any

from kbot_core.models import InboundMessage, ReplyFn
from kbot_obs.logging import get_logger

from .client import TelegramClientWrapper
from .exceptions import TelegramAuthError, TelegramRateLimitError

logger = get_logger(__name__)

MessageHandler = Callable[[InboundMessage, ReplyFn], Awaitable[Any]]


class TelegramBot:
    """Long poller dispatching text messages to a single handler."""

    def __init__(
        self,
        client: TelegramClientWrapper,
        poll_timeout: int = 10,
        error_backoff_seconds: float = 1.0,
    ):
        """Initialize bot.

        Args:
            client: Bot API client
            poll_timeout: getUpdates long-poll seconds
            error_backoff_seconds: Pause after a failed poll
        """
        self.client = client
        self.poll_timeout = poll_timeout
        self.error_backoff_seconds = error_backoff_seconds
        self.running = False

        self._handler: MessageHandler | None = None
        self._offset: int | None = None
        self._poll_task: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()

    def handle(self, handler: MessageHandler) -> None:
        """Register the text message callback."""
        self._handler = handler

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def start(self) -> None:
        """Start polling in a background task."""
        if self._handler is None:
            raise RuntimeError("no message handler registered")
        if self.running:
            return
        self.running = True
        self._poll_task = asyncio.create_task(self._poll_loop(), name="telegram-poller")
        logger.info("telegram_poller_started", poll_timeout=self.poll_timeout)

    async def stop(self, drain_timeout: float = 10.0) -> None:
        """Stop fetching updates, then wait for in-flight handlers.

        Args:
            drain_timeout: Max seconds to wait for handlers still running
        """
        logger.info("telegram_poller_stopping", in_flight=self.in_flight)
        self.running = False

        if self._poll_task is not None:
            self._poll_task.cancel()
            await asyncio.gather(self._poll_task, return_exceptions=True)
            self._poll_task = None

        if self._in_flight:
            _, pending = await asyncio.wait(set(self._in_flight), timeout=drain_timeout)
            if pending:
                logger.warning("telegram_handlers_abandoned", pending=len(pending))

        logger.info("telegram_poller_stopped")

    async def _poll_loop(self) -> None:
        while self.running:
            try:
                updates = await self.client.get_updates(
                    offset=self._offset, timeout=self.poll_timeout
                )
            except asyncio.CancelledError:
                logger.info("telegram_poller_cancelled")
                break
            except TelegramAuthError as e:
                logger.error("telegram_poller_auth_failed", error=str(e))
                self.running = False
                break
            except TelegramRateLimitError as e:
                logger.warning("telegram_poller_rate_limited", retry_after=e.retry_after)
                await asyncio.sleep(e.retry_after)
                continue
            except Exception as e:
                logger.error("telegram_poller_error", error=str(e))
                # Brief delay before continuing
                await asyncio.sleep(self.error_backoff_seconds)
                continue

            for update in updates:
                self._offset = update.update_id + 1
                message = update.to_inbound()
                if message is None:
                    continue
                self._spawn(message)

    def _spawn(self, message: InboundMessage) -> None:
        task = asyncio.create_task(self._dispatch(message))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _dispatch(self, message: InboundMessage) -> None:
        reply = partial(self.client.send_message, message.chat_id)
        try:
            await self._handler(message, reply)
        except Exception as e:
            logger.warning(
                "telegram_handler_failed",
                sender_id=message.sender_id,
                error=str(e),
            )
