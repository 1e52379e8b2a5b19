"""
Command Agent Service

Long-running lifecycle around the command poller:
- Idempotent start/stop of the poll schedule
- Graceful shutdown on SIGINT/SIGTERM
- Optional local health endpoint
"""

import asyncio
import signal
import time
from datetime import datetime, timezone

from aiohttp import web

from relay_agent.common.config import AgentConfig
from relay_agent.common.device_info import get_device_info
from relay_agent.common.logging_setup import get_service_logger

from .executor import CommandExecutor
from .models import AgentState
from .poller import CommandPoller
from .transport import CommandTransport

logger = get_service_logger("command.service")

HEALTH_HOST = "127.0.0.1"

# Extra wait after cancelling a cycle that outlived the grace period
CANCEL_WAIT_S = 5.0

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CommandAgentService:
    """
    Command agent lifecycle controller.

    Owns the poller (and through it the scheduler's timer); nothing
    else starts or cancels the schedule.
    """

    def __init__(
        self,
        config: AgentConfig,
        transport: CommandTransport | None = None,
        executor: CommandExecutor | None = None,
    ):
        self.config = config
        self.transport = transport or CommandTransport(
            config.endpoint,
            timeout_s=config.request_timeout_s,
        )
        self.executor = executor or CommandExecutor(config.commands)
        self.poller = CommandPoller(config, self.transport, self.executor)

        self._state = AgentState.STOPPED
        self._started_at: float | None = None
        self._host = get_device_info()

        # Health server
        self._health_app: web.Application | None = None
        self._health_runner: web.AppRunner | None = None

        # Shutdown event
        self._shutdown_event = asyncio.Event()
        self._installed_signals: list[signal.Signals] = []

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == AgentState.RUNNING

    async def start(self) -> None:
        """Start polling. No-op if already running."""
        if self._state == AgentState.RUNNING:
            return

        self._state = AgentState.RUNNING
        self._started_at = time.monotonic()
        await self.poller.start()

        logger.info(
            f"Command service started. Device ID: {self.config.device_id}",
            extra={
                "device_id": self.config.device_id,
                "endpoint": self.config.endpoint,
                "poll_interval_ms": self.config.poll_interval_ms,
            },
        )

    def stop(self) -> None:
        """
        Stop polling. No-op if already stopped.

        The pending timer is cancelled before this returns; a cycle that
        is already executing is allowed to finish.
        """
        if self._state == AgentState.STOPPED:
            return

        self.poller.stop()
        self._state = AgentState.STOPPED
        logger.info("Command service stopped")

    def request_shutdown(self) -> None:
        """Stop polling and release run()"""
        self.stop()
        self._shutdown_event.set()

    async def run(self) -> int:
        """
        Run until a shutdown signal arrives.

        Returns:
            Process exit code (0 on graceful shutdown)
        """
        self._setup_signal_handlers()

        try:
            if self.config.health_port:
                await self._start_health_server()

            await self.start()
            await self._shutdown_event.wait()
        finally:
            self.stop()
            await self._drain()
            await self.transport.aclose()
            await self._stop_health_server()
            self._remove_signal_handlers()

        return 0

    async def _drain(self) -> None:
        """Give an in-flight cycle the grace period, then cancel it"""
        scheduler = self.poller.scheduler
        if await scheduler.wait_idle(timeout=self.config.shutdown_grace_s):
            return

        logger.warning(
            f"Poll cycle still running after {self.config.shutdown_grace_s}s, cancelling"
        )
        scheduler.cancel_in_flight()
        await scheduler.wait_idle(timeout=CANCEL_WAIT_S)

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_running_loop()

        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._handle_shutdown, sig)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(
                    sig,
                    lambda s, f: loop.call_soon_threadsafe(self._handle_shutdown, signal.Signals(s)),
                )
            self._installed_signals.append(sig)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()

        for sig in self._installed_signals:
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)
        self._installed_signals.clear()

    def _handle_shutdown(self, sig: signal.Signals) -> None:
        """Handle shutdown signal"""
        logger.info(f"Received {sig.name}, shutting down command service...")
        self.request_shutdown()

    async def _start_health_server(self) -> None:
        """Start the health check HTTP server"""
        self._health_app = web.Application()
        self._health_app.router.add_get("/health", self._health_handler)

        self._health_runner = web.AppRunner(self._health_app)
        await self._health_runner.setup()

        site = web.TCPSite(self._health_runner, HEALTH_HOST, self.config.health_port)
        await site.start()

        logger.info(f"Health server started on port {self.config.health_port}")

    async def _stop_health_server(self) -> None:
        """Stop the health check HTTP server"""
        if self._health_runner:
            await self._health_runner.cleanup()
            self._health_runner = None

    def health(self) -> dict:
        """Health snapshot"""
        uptime = 0
        if self._started_at is not None and self.is_running:
            uptime = int(time.monotonic() - self._started_at)

        return {
            "status": "healthy" if self.is_running else "unhealthy",
            "service": "command-agent",
            "device_id": self.config.device_id,
            "host": self._host,
            "state": self._state.value,
            "uptime": uptime,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "poller": self.poller.get_stats(),
        }

    async def _health_handler(self, request: web.Request) -> web.Response:
        """Handle health check requests"""
        status = 200 if self.is_running else 503
        return web.json_response(self.health(), status=status)
