"""Tests for structured logging helpers."""

import json
import logging

from relay_agent.common.logging_setup import JsonFormatter, get_service_logger, log_execution_result
from relay_agent.services.command.models import ExecutionResult


def test_json_formatter_includes_service_and_extras():
    record = logging.LogRecord("relay_agent.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    record.service = "test"
    record.device_id = "edge-1"

    data = json.loads(JsonFormatter().format(record))

    assert data["message"] == "hello world"
    assert data["service"] == "test"
    assert data["level"] == "INFO"
    assert data["device_id"] == "edge-1"


def test_log_execution_result_levels(capsys, monkeypatch):
    monkeypatch.setenv("RELAY_AGENT_LOG_FORMAT", "json")
    logger = get_service_logger("test.results")

    log_execution_result(logger, ExecutionResult(success=True, command="start", stdout="ok"))
    log_execution_result(
        logger,
        ExecutionResult(success=False, command="pause", error="Unknown command: pause",
                        error_type="UnknownCommandError"),
    )

    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]

    assert [line["level"] for line in lines] == ["INFO", "ERROR"]
    assert lines[0]["result"]["stdout"] == "ok"
    assert lines[1]["result"]["error_type"] == "UnknownCommandError"
    assert lines[1]["service"] == "test.results"
