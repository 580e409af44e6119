"""Telegram adapter exceptions.

Custom exception hierarchy for Bot API errors.
"""


class TelegramAPIError(Exception):
    """Base exception for Telegram adapter."""

    def __init__(self, message: str, error_code: int | None = None):
        super().__init__(message)
        self.error_code = error_code


class TelegramAuthError(TelegramAPIError):
    """Bot token rejected (revoked or malformed)."""

    pass


class TelegramRateLimitError(TelegramAPIError):
    """Flood control triggered; retry after `retry_after` seconds."""

    def __init__(self, message: str, retry_after: int = 1):
        super().__init__(message, error_code=429)
        self.retry_after = retry_after
