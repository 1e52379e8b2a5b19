"""
Command Service

Responsibilities:
- Poll the command endpoint for this device
- Start/stop/restart/update the relay service on request
- Shut down cleanly on SIGINT/SIGTERM
"""

from .executor import CommandExecutor
from .models import (
    AgentState,
    CommandEnvelope,
    CommandName,
    ExecutionResult,
    NO_COMMAND,
    NoCommand,
    PendingCommand,
    UnknownCommand,
    parse_command_name,
)
from .poller import CommandPoller
from .service import CommandAgentService
from .transport import CommandTransport

__all__ = [
    "AgentState",
    "CommandAgentService",
    "CommandEnvelope",
    "CommandExecutor",
    "CommandName",
    "CommandPoller",
    "CommandTransport",
    "ExecutionResult",
    "NO_COMMAND",
    "NoCommand",
    "PendingCommand",
    "UnknownCommand",
    "parse_command_name",
]
