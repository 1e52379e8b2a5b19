"""
Command Poller

One poll cycle: fetch the pending command, execute it if there is one,
log the outcome. The ScheduledLoop drives the cycles.
"""

from relay_agent.common.config import AgentConfig
from relay_agent.common.exceptions import TransportError
from relay_agent.common.logging_setup import get_service_logger, log_execution_result
from relay_agent.common.scheduler import ScheduledLoop

from .executor import CommandExecutor
from .models import ExecutionResult, NoCommand
from .transport import CommandTransport

logger = get_service_logger("command.poller")


class CommandPoller:
    """
    Polls the command endpoint on a fixed interval.

    Failures in one cycle are logged and confined to that cycle.
    """

    def __init__(
        self,
        config: AgentConfig,
        transport: CommandTransport,
        executor: CommandExecutor,
    ):
        self.config = config
        self.transport = transport
        self.executor = executor

        self.scheduler = ScheduledLoop(
            config.poll_interval_s,
            self._scheduled_cycle,
            name="command-poll",
        )

        self.last_result: ExecutionResult | None = None
        self.last_error: str | None = None
        self.cycle_count = 0

    async def run_cycle(self) -> list[ExecutionResult]:
        """
        Run one fetch-and-execute cycle.

        Returns:
            Execution results produced by this cycle (empty when nothing
            was pending or the fetch failed)
        """
        self.cycle_count += 1
        logger.debug("Checking for commands...")

        try:
            envelope = await self.transport.fetch_pending_command(self.config.device_id)
        except TransportError as e:
            self.last_error = e.message
            logger.error(
                f"Error in command polling cycle: {e.message}",
                extra={"status_code": e.status_code},
            )
            return []

        self.last_error = None

        if isinstance(envelope, NoCommand):
            logger.info("No commands to execute")
            return []

        logger.info(f"Received command: {envelope.name}")
        result = await self.executor.execute(envelope)
        self.last_result = result
        log_execution_result(logger, result)
        return [result]

    async def _scheduled_cycle(self) -> None:
        try:
            await self.run_cycle()
        except Exception as e:
            self.last_error = str(e)
            logger.error(f"Unexpected error in command polling cycle: {e}", exc_info=True)

    async def start(self) -> None:
        await self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()

    def get_stats(self) -> dict:
        return {
            "cycle_count": self.cycle_count,
            "last_error": self.last_error,
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "scheduler": self.scheduler.get_stats(),
        }
