"""
Kbot Core Package.

Command dispatch and the per-message request pipeline.
"""

from kbot_core.commands import CommandDispatcher, normalize_command
from kbot_core.models import CommandResult, InboundMessage
from kbot_core.pipeline import RequestPipeline

__all__ = [
    "CommandDispatcher",
    "CommandResult",
    "InboundMessage",
    "RequestPipeline",
    "normalize_command",
]
