"""
Command Models

Decoded command envelopes and execution results.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union


class CommandName(str, Enum):
    """Commands the agent knows how to act on"""
    START = "start"
    STOP = "stop"
    RESTART = "restart"
    UPDATE = "update"


class AgentState(str, Enum):
    """Agent lifecycle states"""
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass(frozen=True)
class NoCommand:
    """Nothing pending for this device"""


@dataclass(frozen=True)
class PendingCommand:
    """A pending command from the supported set"""
    name: CommandName


@dataclass(frozen=True)
class UnknownCommand:
    """A pending command whose name is outside the supported set"""
    name: str


CommandEnvelope = Union[NoCommand, PendingCommand, UnknownCommand]

NO_COMMAND = NoCommand()


def parse_command_name(name: str) -> PendingCommand | UnknownCommand:
    """Map a raw command name onto the closed set; never raises."""
    try:
        return PendingCommand(CommandName(name))
    except ValueError:
        return UnknownCommand(name)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ExecutionResult:
    """Outcome of acting on one command"""
    success: bool
    command: str
    stdout: str | None = None
    stderr: str | None = None
    error: str | None = None
    error_type: str | None = None
    timestamp: str = field(default_factory=_utc_now)

    @property
    def output(self) -> str | None:
        """Captured stdout and stderr, joined"""
        parts = [p for p in (self.stdout, self.stderr) if p]
        return "\n".join(parts) if parts else None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
