"""
Process Control

Runs local process-control commands with captured output and a timeout.
"""

import asyncio
import shlex
from collections.abc import Sequence
from dataclasses import dataclass

from relay_agent.common.logging_setup import get_service_logger

logger = get_service_logger("command.process")

# How long to wait for a killed child to be reaped
KILL_WAIT_S = 5.0

# How long to keep reading pipes after the child has exited
PIPE_DRAIN_S = 5.0

# Wait tasks for detached children that are still running
_reapers: set[asyncio.Task] = set()


@dataclass
class ProcessOutcome:
    """Result of one process invocation"""
    argv: tuple[str, ...]
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    error: str | None = None
    pid: int | None = None
    detached: bool = False

    @property
    def ok(self) -> bool:
        if self.error is not None:
            return False
        if self.detached and self.returncode is None:
            return True
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return shlex.join(self.argv)


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


async def _collect(stream: asyncio.StreamReader, chunks: list[bytes]) -> None:
    while True:
        block = await stream.read(65536)
        if not block:
            return
        chunks.append(block)


async def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(proc.wait(), KILL_WAIT_S)
    except asyncio.TimeoutError:
        logger.warning(f"Process {proc.pid} did not exit after kill")


async def run_process(argv: Sequence[str], timeout_s: float) -> ProcessOutcome:
    """
    Run a command to completion, capturing stdout and stderr.

    Never raises for spawn failures, non-zero exits or timeouts;
    those are reported through ProcessOutcome.error / returncode.
    """
    argv = tuple(argv)
    logger.info(f"Executing: {shlex.join(argv)}")

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        return ProcessOutcome(argv, None, error=f"failed to spawn {argv[0]}: {e}")

    # Readers keep what they have read even if the process is killed
    stdout_chunks: list[bytes] = []
    stderr_chunks: list[bytes] = []
    readers = [
        asyncio.create_task(_collect(proc.stdout, stdout_chunks)),
        asyncio.create_task(_collect(proc.stderr, stderr_chunks)),
    ]

    error = None
    try:
        await asyncio.wait_for(proc.wait(), timeout_s)
    except asyncio.TimeoutError:
        error = f"timed out after {timeout_s}s"
        await _kill(proc)

    _, pending = await asyncio.wait(readers, timeout=PIPE_DRAIN_S)
    for task in pending:
        # pipe held open by a grandchild
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)

    return ProcessOutcome(
        argv,
        proc.returncode,
        stdout=_decode(b"".join(stdout_chunks)),
        stderr=_decode(b"".join(stderr_chunks)),
        error=error,
        pid=proc.pid,
    )


async def spawn_detached(argv: Sequence[str], grace_s: float) -> ProcessOutcome:
    """
    Launch a long-running command in its own session.

    The command counts as started if it is still alive after grace_s,
    or if it exited cleanly within the grace period (self-daemonizing CLIs).
    """
    argv = tuple(argv)
    logger.info(f"Launching detached: {shlex.join(argv)}")

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        return ProcessOutcome(argv, None, error=f"failed to spawn {argv[0]}: {e}", detached=True)

    try:
        returncode = await asyncio.wait_for(proc.wait(), grace_s)
    except asyncio.TimeoutError:
        # Hold the handle until the child exits so it is reaped and its transport closed
        reaper = asyncio.create_task(proc.wait(), name=f"reap-{proc.pid}")
        _reapers.add(reaper)
        reaper.add_done_callback(_reapers.discard)
        return ProcessOutcome(
            argv,
            None,
            stdout=f"started pid {proc.pid}",
            pid=proc.pid,
            detached=True,
        )

    return ProcessOutcome(argv, returncode, pid=proc.pid, detached=True)
