"""
Command Executor

Maps a decoded command onto a local process-control action:

    start   -> start_command (optionally detached)
    stop    -> stop_command
    restart -> stop_command, then start_command if the stop succeeded
    update  -> update_command

Every call returns an ExecutionResult. Unknown commands and failed
processes become failed results, never exceptions, so one bad command
cannot break the poll loop.
"""

from collections.abc import Awaitable, Callable, Sequence

from relay_agent.common.config import CommandSettings
from relay_agent.common.exceptions import ExecutionError, UnknownCommandError
from relay_agent.common.logging_setup import get_service_logger

from .models import (
    CommandEnvelope,
    CommandName,
    ExecutionResult,
    NoCommand,
    UnknownCommand,
)
from .process import ProcessOutcome, run_process, spawn_detached

logger = get_service_logger("command.executor")

ProcessRunner = Callable[[Sequence[str], float], Awaitable[ProcessOutcome]]


class CommandExecutor:
    """Executes relay service commands"""

    def __init__(
        self,
        settings: CommandSettings,
        runner: ProcessRunner = run_process,
        spawner: ProcessRunner = spawn_detached,
    ):
        self.settings = settings
        self._runner = runner
        self._spawner = spawner

        self._actions: dict[CommandName, Callable[[], Awaitable[list[ProcessOutcome]]]] = {
            CommandName.START: self._start,
            CommandName.STOP: self._stop,
            CommandName.RESTART: self._restart,
            CommandName.UPDATE: self._update,
        }

    async def execute(self, envelope: CommandEnvelope) -> ExecutionResult:
        """Act on a pending command and report the outcome"""
        if isinstance(envelope, NoCommand):
            raise ValueError("execute() called without a pending command")

        if isinstance(envelope, UnknownCommand):
            error = UnknownCommandError(envelope.name)
            logger.warning(error.message, extra={"command": envelope.name})
            return ExecutionResult(
                success=False,
                command=envelope.name,
                error=error.message,
                error_type=type(error).__name__,
            )

        command = envelope.name
        logger.info(f"Executing command: {command.value}")

        try:
            outcomes = await self._actions[command]()
        except Exception as e:
            # A runner that raises is still reported as a failed execution
            logger.error(f"Command '{command.value}' raised: {e}", exc_info=True)
            error = ExecutionError(str(e), command=command.value)
            return ExecutionResult(
                success=False,
                command=command.value,
                error=error.message,
                error_type=type(error).__name__,
            )

        return self._build_result(command, outcomes)

    async def _start(self) -> list[ProcessOutcome]:
        if self.settings.start_detached:
            return [await self._spawner(self.settings.start_command, self.settings.detach_grace_s)]
        return [await self._runner(self.settings.start_command, self.settings.command_timeout_s)]

    async def _stop(self) -> list[ProcessOutcome]:
        return [await self._runner(self.settings.stop_command, self.settings.command_timeout_s)]

    async def _restart(self) -> list[ProcessOutcome]:
        outcomes = await self._stop()
        if not outcomes[0].ok:
            return outcomes
        return outcomes + await self._start()

    async def _update(self) -> list[ProcessOutcome]:
        return [await self._runner(self.settings.update_command, self.settings.command_timeout_s)]

    def _build_result(self, command: CommandName, outcomes: list[ProcessOutcome]) -> ExecutionResult:
        """Merge the outcomes of one logical action into a single result"""
        stdout = "\n".join(o.stdout for o in outcomes if o.stdout) or None
        stderr = "\n".join(o.stderr for o in outcomes if o.stderr) or None

        failed = next((o for o in outcomes if not o.ok), None)
        if failed is None:
            return ExecutionResult(
                success=True,
                command=command.value,
                stdout=stdout,
                stderr=stderr,
            )

        if failed.error:
            reason = f"`{failed.command_line}` {failed.error}"
        else:
            reason = f"`{failed.command_line}` exited with status {failed.returncode}"
        error = ExecutionError(reason, command=command.value, returncode=failed.returncode)

        return ExecutionResult(
            success=False,
            command=command.value,
            stdout=stdout,
            stderr=stderr,
            error=error.message,
            error_type=type(error).__name__,
        )
