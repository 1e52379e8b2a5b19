"""Tests for the agent lifecycle controller."""

import asyncio
import json
import os
import signal

import httpx

from relay_agent.services.command.executor import CommandExecutor
from relay_agent.services.command.models import AgentState
from relay_agent.services.command.process import ProcessOutcome
from relay_agent.services.command.service import CommandAgentService


def make_service(make_config, make_transport, runner, handler=None, **overrides):
    config = make_config(**overrides)
    calls = []

    def counting_handler(request):
        calls.append(request)
        return (handler or (lambda r: httpx.Response(204)))(request)

    service = CommandAgentService(
        config,
        transport=make_transport(counting_handler),
        executor=CommandExecutor(config.commands, runner=runner, spawner=runner),
    )
    return service, calls


async def test_start_and_stop_are_idempotent(make_config, make_transport, runner):
    service, calls = make_service(make_config, make_transport, runner, poll_interval_ms=10_000)

    assert service.state == AgentState.STOPPED

    await service.start()
    await service.start()
    await asyncio.sleep(0.05)

    assert service.state == AgentState.RUNNING
    assert len(calls) == 1

    service.stop()
    service.stop()

    assert service.state == AgentState.STOPPED
    assert not service.poller.scheduler.running


async def test_no_cycle_starts_after_stop(make_config, make_transport, runner):
    service, calls = make_service(make_config, make_transport, runner, poll_interval_ms=20)

    await service.start()
    await asyncio.sleep(0.07)
    service.stop()
    await service.poller.scheduler.wait_idle(1)
    count_at_stop = len(calls)
    await asyncio.sleep(0.1)

    assert count_at_stop >= 2
    assert len(calls) == count_at_stop


async def test_run_returns_zero_on_shutdown_request(make_config, make_transport, runner):
    service, calls = make_service(make_config, make_transport, runner, poll_interval_ms=10_000)

    task = asyncio.create_task(service.run())
    await asyncio.sleep(0.05)
    service.request_shutdown()

    assert await asyncio.wait_for(task, 2) == 0
    assert service.state == AgentState.STOPPED
    assert len(calls) == 1


async def test_sigterm_triggers_graceful_shutdown(make_config, make_transport, runner):
    service, _ = make_service(make_config, make_transport, runner, poll_interval_ms=10_000)

    task = asyncio.create_task(service.run())
    await asyncio.sleep(0.05)
    os.kill(os.getpid(), signal.SIGTERM)

    assert await asyncio.wait_for(task, 2) == 0
    assert service.state == AgentState.STOPPED


async def test_shutdown_waits_for_in_flight_cycle(make_config, make_transport):
    finished = []

    async def slow_runner(argv, timeout):
        await asyncio.sleep(0.2)
        finished.append(tuple(argv))
        return ProcessOutcome(tuple(argv), 0)

    config = make_config(poll_interval_ms=10_000, shutdown_grace_s=2.0)
    service = CommandAgentService(
        config,
        transport=make_transport(
            lambda request: httpx.Response(200, json={"hasCommand": True, "command": "update"})
        ),
        executor=CommandExecutor(config.commands, runner=slow_runner),
    )

    task = asyncio.create_task(service.run())
    await asyncio.sleep(0.05)
    service.request_shutdown()

    assert await asyncio.wait_for(task, 3) == 0
    assert finished == [("relayctl", "update")]
    assert service.poller.last_result.success


async def test_health_reports_state(make_config, make_transport, runner):
    service, _ = make_service(make_config, make_transport, runner, poll_interval_ms=10_000)

    response = await service._health_handler(None)
    assert response.status == 503
    assert json.loads(response.body)["state"] == "stopped"

    await service.start()
    await asyncio.sleep(0.02)
    response = await service._health_handler(None)
    body = json.loads(response.body)
    service.stop()

    assert response.status == 200
    assert body["status"] == "healthy"
    assert body["device_id"] == "edge-001"
    assert "hostname" in body["host"]
    assert "platform" in body["host"]
    assert body["poller"]["cycle_count"] == 1
