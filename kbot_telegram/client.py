"""Telegram Bot API client wrapper.

Thin httpx client for the three Bot API methods kbot uses:
getMe, getUpdates (long polling) and sendMessage.
"""

from typing import Any

import httpx
from opentelemetry.instrumentation.utils import suppress_http_instrumentation
from pydantic import ValidationError

from kbot_obs.logging import get_logger

from .exceptions import TelegramAPIError, TelegramAuthError, TelegramRateLimitError
from .schemas import TelegramUpdate, TelegramUser

logger = get_logger(__name__)


class TelegramClientWrapper:
    """Telegram Bot API client.

    Provides:
    - Error mapping to TelegramAPIError subclasses
    - Long-poll aware timeouts for getUpdates
    """

    DEFAULT_BASE_URL = "https://api.telegram.org"

    def __init__(
        self,
        bot_token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: int = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Telegram client.

        Args:
            bot_token: Bot token issued by @BotFather
            base_url: Bot API server URL
            timeout_seconds: Request timeout (added on top of long-poll time)
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.bot_token = bot_token
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _method_url(self, method: str) -> str:
        return f"{self.base_url}/bot{self.bot_token}/{method}"

    def _handle_error(self, data: dict[str, Any]) -> None:
        """Map Bot API error replies to custom exceptions."""
        if data.get("ok"):
            return

        code = data.get("error_code")
        description = data.get("description", "unknown error")

        if code in (401, 404):
            # The Bot API answers 404 for a malformed token
            raise TelegramAuthError(f"Authentication failed: {description}", error_code=code)
        elif code == 429:
            retry_after = data.get("parameters", {}).get("retry_after", 1)
            raise TelegramRateLimitError(f"Rate limit exceeded: {description}", retry_after=retry_after)
        else:
            raise TelegramAPIError(f"Telegram API error: {description}", error_code=code)

    async def _call(
        self, method: str, payload: dict[str, Any], timeout: float | None = None
    ) -> Any:
        async with httpx.AsyncClient(
            timeout=timeout or self.timeout_seconds, transport=self._transport
        ) as client:
            response = await client.post(self._method_url(method), json=payload)

            try:
                data = response.json()
            except ValueError as exc:
                raise TelegramAPIError(
                    f"Invalid response from {method}: HTTP {response.status_code}",
                    error_code=response.status_code,
                ) from exc

            self._handle_error(data)
            return data.get("result")

    async def get_me(self) -> TelegramUser:
        """Return the bot's own user; fails fast on a bad token."""
        return TelegramUser.model_validate(await self._call("getMe", {}))

    async def get_updates(self, offset: int | None = None, timeout: int = 10) -> list[TelegramUpdate]:
        """Long-poll for new updates.

        Args:
            offset: First update id to return (previous max + 1)
            timeout: Seconds the server may hold the request open

        Returns:
            Updates in arrival order
        """
        payload: dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message"]}
        if offset is not None:
            payload["offset"] = offset

        # The idle long poll is not part of any message trace
        with suppress_http_instrumentation():
            result = await self._call(
                "getUpdates", payload, timeout=timeout + self.timeout_seconds
            )
        updates = []
        for item in result or []:
            update = self._parse_update(item)
            if update is not None:
                updates.append(update)
        return updates

    @staticmethod
    def _parse_update(item: Any) -> TelegramUpdate | None:
        """Validate one update; a malformed one keeps only its update_id."""
        try:
            return TelegramUpdate.model_validate(item)
        except ValidationError as e:
            update_id = item.get("update_id") if isinstance(item, dict) else None
            logger.warning("telegram_update_invalid", update_id=update_id, error=str(e))
            if isinstance(update_id, int):
                # Still acknowledged so getUpdates moves past it
                return TelegramUpdate(update_id=update_id)
            return None

    async def send_message(self, chat_id: int, text: str) -> dict[str, Any]:
        """Send a text message to a chat.

        Returns:
            Sent message data from the Bot API
        """
        return await self._call("sendMessage", {"chat_id": chat_id, "text": text})
