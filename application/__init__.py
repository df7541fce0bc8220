"""
Application layer - Request dispatch, polling and process orchestration.

Contains:
- Command handler (dispatcher) and the device command handlers
- Poll loop
- Payout daemon
"""

from .command_handler import CommandHandler, CommandDefinition, RequestContext
from .command_handlers import register_default_commands
from .poll_loop import PollLoop
from .daemon import PayoutDaemon


__all__ = [
    "CommandHandler",
    "CommandDefinition",
    "RequestContext",
    "register_default_commands",
    "PollLoop",
    "PayoutDaemon",
]
