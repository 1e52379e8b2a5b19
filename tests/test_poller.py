"""Tests for the fetch-and-execute poll cycle."""

import asyncio

import httpx

from conftest import FakeRunner, json_response
from relay_agent.services.command.executor import CommandExecutor
from relay_agent.services.command.poller import CommandPoller
from relay_agent.services.command.process import ProcessOutcome

STOP = ("pkill", "-f", "relayctl")
START = ("relayctl", "start")


def make_poller(make_config, make_transport, runner, handler, **config_overrides):
    config = make_config(**config_overrides)
    return CommandPoller(
        config,
        make_transport(handler),
        CommandExecutor(config.commands, runner=runner, spawner=runner),
    )


async def test_no_content_produces_no_results(make_config, make_transport, runner):
    poller = make_poller(make_config, make_transport, runner, lambda request: httpx.Response(204))

    results = await poller.run_cycle()

    assert results == []
    assert runner.calls == []
    assert poller.last_error is None


async def test_restart_command_produces_single_successful_result(make_config, make_transport):
    runner = FakeRunner({
        STOP: ProcessOutcome(STOP, 0, stdout="stopped"),
        START: ProcessOutcome(START, 0, stdout="started"),
    })
    poller = make_poller(
        make_config,
        make_transport,
        runner,
        lambda request: json_response(200, {"hasCommand": True, "command": "restart"}),
    )

    results = await poller.run_cycle()

    assert len(results) == 1
    assert results[0].success
    assert results[0].command == "restart"
    assert results[0].output == "stopped\nstarted"
    assert runner.argvs == [STOP, START]
    assert poller.last_result is results[0]


async def test_connection_refused_is_contained(make_config, make_transport, runner):
    def handler(request):
        raise httpx.ConnectError("Connection refused", request=request)

    poller = make_poller(make_config, make_transport, runner, handler)

    results = await poller.run_cycle()

    assert results == []
    assert runner.calls == []
    assert "Connection refused" in poller.last_error


async def test_unknown_command_reports_failure_without_spawning(make_config, make_transport, runner):
    poller = make_poller(
        make_config,
        make_transport,
        runner,
        lambda request: json_response(200, {"hasCommand": True, "command": "pause"}),
    )

    results = await poller.run_cycle()

    assert len(results) == 1
    assert not results[0].success
    assert results[0].error == "Unknown command: pause"
    assert results[0].error_type == "UnknownCommandError"
    assert runner.calls == []


async def test_transport_failure_does_not_block_next_cycle(make_config, make_transport, runner):
    responses = iter([
        httpx.Response(500),
        json_response(200, {"hasCommand": True, "command": "stop"}),
    ])

    def handler(request):
        return next(responses, httpx.Response(204))

    poller = make_poller(make_config, make_transport, runner, handler, poll_interval_ms=30)

    await poller.start()
    await asyncio.sleep(0.15)
    poller.stop()
    await poller.scheduler.wait_idle(1)

    assert poller.cycle_count >= 3
    assert runner.argvs == [STOP]
    assert poller.last_result.success


async def test_unexpected_exception_is_contained_by_scheduled_cycle(make_config, make_transport, runner):
    poller = make_poller(make_config, make_transport, runner, lambda request: httpx.Response(204))

    async def exploding_fetch(device_id):
        raise KeyError("surprise")

    poller.transport.fetch_pending_command = exploding_fetch

    await poller._scheduled_cycle()

    assert "surprise" in poller.last_error


async def test_stats(make_config, make_transport, runner):
    poller = make_poller(make_config, make_transport, runner, lambda request: httpx.Response(204))

    await poller.run_cycle()
    stats = poller.get_stats()

    assert stats["cycle_count"] == 1
    assert stats["last_result"] is None
    assert stats["scheduler"]["name"] == "command-poll"
