"""
Command Dispatcher.

Maps normalized message text to a command, builds the response, and sends
exactly one reply per message. Each command runs inside its own span so
reply latency is attributed per command.
"""

from collections.abc import Callable
from datetime import datetime

from opentelemetry.trace import Status, StatusCode

from kbot_core.models import CommandResult, InboundMessage, ReplyFn
from kbot_obs.logging import get_logger
from kbot_obs.metrics import UNKNOWN_COMMAND
from kbot_obs.tracing import Tracing, get_tracing

logger = get_logger(__name__)

COMMAND_MARKER = "/"
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
HELP_TEXT = "Hello from Kbot! Try hello or time"


def normalize_command(text: str, payload: str = "") -> str:
    """
    Extract the command keyword from a message.

    The payload (argument of "/start <cmd>") wins over the text. Leading
    markers, a trailing "@botname" and any arguments are dropped, and the
    result is lowercased. Normalizing a normalized command is a no-op.

    Examples:
        normalize_command("/time extra-args") -> "time"
        normalize_command("/start", "Hello") -> "hello"
        normalize_command("/hello@kbot_bot") -> "hello"
    """
    candidate = payload.strip() or text.strip()
    words = candidate.lower().split()
    if not words:
        return ""
    # markers are stripped from the first word only
    return words[0].lstrip(COMMAND_MARKER).split("@", 1)[0]


class CommandDispatcher:
    """Selects and executes one of: hello, time, fallback."""

    def __init__(
        self,
        version: str,
        tracing: Tracing | None = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        """Initialize dispatcher.

        Args:
            version: Running bot version, quoted by the hello command
            tracing: Tracing handle (default: process-wide handle)
            now: Local clock used by the time command
        """
        self.version = version
        self._tracing = tracing
        self._now = now
        self._commands: dict[str, tuple[str, Callable[[], str]]] = {
            "hello": ("command_hello", self.greet),
            "time": ("command_time", self.report_time),
        }

    @property
    def tracing(self) -> Tracing:
        return self._tracing if self._tracing is not None else get_tracing()

    def greet(self) -> str:
        return f"Hello I'm Kbot {self.version}!"

    def report_time(self) -> str:
        return f"Current time is {self._now().strftime(TIME_FORMAT)}"

    def fallback(self) -> str:
        return HELP_TEXT

    def resolve(self, message: InboundMessage) -> tuple[str, str, Callable[[], str]]:
        """Return (command label, span name, response builder) for a message."""
        command = normalize_command(message.text, message.payload)
        if command in self._commands:
            span_name, build = self._commands[command]
            return command, span_name, build
        return UNKNOWN_COMMAND, "command_default", self.fallback

    async def dispatch(self, message: InboundMessage, reply: ReplyFn) -> CommandResult:
        """Execute the command selected by `message` and send its reply.

        A failed send is recorded on the command span and returned in the
        result; it is never raised from here.
        """
        command, span_name, build = self.resolve(message)

        with self.tracing.start_span(span_name) as span:
            response = build()
            try:
                await reply(response)
            except Exception as exc:
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR, str(exc)))
                logger.warning("reply_send_failed", command=command, error=str(exc))
                return CommandResult(command, response, success=False, error=exc)

        return CommandResult(command, response, success=True)
