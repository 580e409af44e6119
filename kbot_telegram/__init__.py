"""Telegram transport for Kbot.

Provides:
- Bot API client (getMe, getUpdates, sendMessage)
- Long-polling bot with per-message handler tasks

Usage:
    from kbot_telegram import TelegramBot, TelegramClientWrapper

    bot = TelegramBot(TelegramClientWrapper(bot_token="123:abc"))
    bot.handle(pipeline.handle)
    bot.start()
"""

from .bot import MessageHandler, TelegramBot
from .client import TelegramClientWrapper
from .exceptions import TelegramAPIError, TelegramAuthError, TelegramRateLimitError
from .schemas import TelegramChat, TelegramMessage, TelegramUpdate, TelegramUser

__all__ = [
    # Client
    "TelegramClientWrapper",
    # Bot
    "TelegramBot",
    "MessageHandler",
    # Exceptions
    "TelegramAPIError",
    "TelegramAuthError",
    "TelegramRateLimitError",
    # Schemas
    "TelegramUser",
    "TelegramChat",
    "TelegramMessage",
    "TelegramUpdate",
]
