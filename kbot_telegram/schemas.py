"""Telegram Bot API schemas.

Only the fields kbot reads from getUpdates are modelled; everything else in
the payload is ignored.
"""

from pydantic import BaseModel, ConfigDict, Field

from kbot_core.models import InboundMessage

START_COMMAND = "/start"


class TelegramUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    is_bot: bool = False
    first_name: str = ""
    username: str | None = None

    @property
    def display_name(self) -> str:
        return self.username or self.first_name


class TelegramChat(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    type: str = "private"


class TelegramMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message_id: int
    sender: TelegramUser | None = Field(default=None, alias="from")
    chat: TelegramChat
    date: int = 0
    text: str | None = None


class TelegramUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    update_id: int
    message: TelegramMessage | None = None

    def to_inbound(self) -> InboundMessage | None:
        """Convert a text message update; None for anything else."""
        message = self.message
        if message is None or message.text is None:
            return None

        sender = message.sender
        return InboundMessage(
            sender_id=sender.id if sender else message.chat.id,
            sender_name=sender.display_name if sender else "",
            chat_id=message.chat.id,
            text=message.text,
            payload=extract_start_payload(message.text),
        )


def extract_start_payload(text: str) -> str:
    """Argument of a "/start <arg>" message ("" for any other text)."""
    head, _, rest = text.strip().partition(" ")
    if head.split("@", 1)[0].lower() != START_COMMAND:
        return ""
    return rest.strip()
