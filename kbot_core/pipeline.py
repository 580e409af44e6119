"""
Request Pipeline.

Wraps every inbound message in a `handle_message` server span, dispatches it,
and records its duration and outcome on both the span and the metrics.

Per message, strictly in order:
    span open -> receipt log -> dispatch -> metrics -> span status -> span close

A reply send error is re-raised after the root span has been closed; any
other dispatch failure is counted as an error before it propagates.
"""

import time
from collections.abc import Callable

from opentelemetry.trace import SpanKind, Status, StatusCode

from kbot_core.commands import CommandDispatcher
from kbot_core.models import CommandResult, InboundMessage, ReplyFn
from kbot_obs.logging import get_logger, with_trace_id
from kbot_obs.metrics import STATUS_ERROR, STATUS_SUCCESS, MetricsRecorder, get_metrics
from kbot_obs.tracing import Tracing, get_tracing

logger = get_logger(__name__)


class RequestPipeline:
    """Per-message orchestration of tracing, dispatch and metrics."""

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        metrics: MetricsRecorder | None = None,
        tracing: Tracing | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """Initialize pipeline.

        Args:
            dispatcher: Command dispatcher
            metrics: Metrics recorder (default: process-wide recorder)
            tracing: Tracing handle (default: process-wide handle)
            clock: Monotonic clock in seconds
        """
        self.dispatcher = dispatcher
        self._metrics = metrics
        self._tracing = tracing
        self._clock = clock

    @property
    def metrics(self) -> MetricsRecorder:
        return self._metrics if self._metrics is not None else get_metrics()

    @property
    def tracing(self) -> Tracing:
        return self._tracing if self._tracing is not None else get_tracing()

    async def handle(self, message: InboundMessage, reply: ReplyFn) -> CommandResult:
        """Process one inbound message.

        Args:
            message: Message received by the transport
            reply: Sends the response back to the sender

        Returns:
            Result of the dispatched command

        Raises:
            Exception: the reply send error or a dispatch failure, after metrics
                and spans are final
        """
        tracing = self.tracing
        attributes = {
            "telegram.user_id": message.sender_id,
            "telegram.username": message.sender_name,
            "telegram.message": message.text,
        }

        with tracing.start_span(
            "handle_message", kind=SpanKind.SERVER, attributes=attributes
        ) as span:
            started = self._clock()
            log = with_trace_id(logger, tracing.current_trace_id())
            log.info("message_received", sender=message.sender_name, text=message.text)

            try:
                result = await self.dispatcher.dispatch(message, reply)
            except Exception as exc:
                # start_span records the exception and ERROR status on exit
                command = self.dispatcher.resolve(message)[0]
                duration = self._clock() - started
                self.metrics.record_message(command, STATUS_ERROR, duration)
                log.error(
                    "message_failed",
                    command=command,
                    duration_seconds=round(duration, 6),
                    error=str(exc),
                )
                raise

            span.set_attributes({"command": result.command, "response": result.response})

            duration = self._clock() - started
            status = STATUS_SUCCESS if result.success else STATUS_ERROR
            self.metrics.record_message(result.command, status, duration)

            if result.error is not None:
                span.record_exception(result.error)
                span.set_status(Status(StatusCode.ERROR, str(result.error)))
            else:
                span.set_status(Status(StatusCode.OK))

            log.info(
                "message_processed",
                command=result.command,
                duration_seconds=round(duration, 6),
                status=status,
            )

        if result.error is not None:
            raise result.error
        return result
