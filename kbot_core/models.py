"""Message and result types shared by the transport and the pipeline."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict


class InboundMessage(BaseModel):
    """A text message received from a chat sender."""

    model_config = ConfigDict(frozen=True)

    sender_id: int
    sender_name: str = ""
    chat_id: int
    text: str = ""
    payload: str = ""  # command argument, e.g. "hello" in "/start hello"


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one dispatched command."""

    command: str
    response: str
    success: bool
    error: Exception | None = None


# Sends one reply text back to the sender of the message being handled
ReplyFn = Callable[[str], Awaitable[Any]]
