"""
Custom Exception Classes for the Relay Command Agent

Hierarchical exception structure. Everything except ConfigurationError
is recovered at the poll cycle boundary.
"""


class RelayAgentError(Exception):
    """Base exception for all relay agent errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class TransportError(RelayAgentError):
    """Command endpoint unreachable, bad status, or malformed body"""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(f"Transport Error: {message}", recoverable=True)


class UnknownCommandError(RelayAgentError):
    """Command name outside the supported set"""

    def __init__(self, command: str):
        self.command = command
        super().__init__(f"Unknown command: {command}", recoverable=True)


class ExecutionError(RelayAgentError):
    """Local process-control action failed (non-zero exit, spawn failure, timeout)"""

    def __init__(
        self,
        message: str,
        command: str | None = None,
        returncode: int | None = None,
    ):
        self.command = command
        self.returncode = returncode
        super().__init__(f"Execution Error: {message}", recoverable=True)


class ConfigurationError(RelayAgentError):
    """Invalid or missing startup configuration"""

    def __init__(self, message: str):
        super().__init__(f"Config Error: {message}", recoverable=False)
