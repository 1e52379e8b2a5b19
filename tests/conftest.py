from __future__ import annotations

import json
from collections.abc import Callable, Sequence

import httpx
import pytest

from relay_agent.common.config import AgentConfig, CommandSettings
from relay_agent.services.command.process import ProcessOutcome
from relay_agent.services.command.transport import CommandTransport

ENDPOINT = "https://commands.example.test/poll"
DEVICE_ID = "edge-001"


class FakeRunner:
    """Records process invocations and returns canned outcomes by argv[0:2]."""

    def __init__(self, outcomes: dict[tuple[str, ...], ProcessOutcome] | None = None):
        self.calls: list[tuple[tuple[str, ...], float]] = []
        self.outcomes = outcomes or {}

    async def __call__(self, argv: Sequence[str], timeout: float) -> ProcessOutcome:
        argv = tuple(argv)
        self.calls.append((argv, timeout))
        if argv in self.outcomes:
            return self.outcomes[argv]
        return ProcessOutcome(argv, 0, stdout=f"ran {' '.join(argv)}")

    @property
    def argvs(self) -> list[tuple[str, ...]]:
        return [argv for argv, _ in self.calls]


@pytest.fixture
def settings() -> CommandSettings:
    return CommandSettings(
        start_command=("relayctl", "start"),
        stop_command=("pkill", "-f", "relayctl"),
        update_command=("relayctl", "update"),
        command_timeout_s=5.0,
    )


@pytest.fixture
def make_config(settings) -> Callable[..., AgentConfig]:
    def _make(**overrides) -> AgentConfig:
        values = dict(
            endpoint=ENDPOINT,
            device_id=DEVICE_ID,
            poll_interval_ms=50,
            request_timeout_s=1.0,
            shutdown_grace_s=1.0,
            commands=settings,
        )
        values.update(overrides)
        return AgentConfig(**values)

    return _make


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


def json_response(status: int, body) -> httpx.Response:
    return httpx.Response(status, content=json.dumps(body).encode(), headers={"content-type": "application/json"})


@pytest.fixture
async def make_transport():
    """Build a CommandTransport whose requests are answered by a handler."""
    clients: list[httpx.AsyncClient] = []

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> CommandTransport:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return CommandTransport(ENDPOINT, timeout_s=1.0, client=client)

    yield _make

    for client in clients:
        await client.aclose()
