"""
Configuration Dataclasses

Immutable configuration for the agent, read once at startup.

Values come from environment variables, then an optional YAML file,
then defaults (in that order of precedence).
"""

import math
import os
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from .device_info import resolve_device_id
from .exceptions import ConfigurationError

DEFAULT_ENDPOINT = "https://command-2lbtz4kjxa-uc.a.run.app"
DEFAULT_POLL_INTERVAL_MS = 60_000
DEFAULT_REQUEST_TIMEOUT_S = 10.0
DEFAULT_COMMAND_TIMEOUT_S = 120.0
DEFAULT_SHUTDOWN_GRACE_S = 30.0

DEFAULT_START_COMMAND = "tcp-serial-relay start"
DEFAULT_STOP_COMMAND = "pkill -f tcp-serial-relay"
DEFAULT_UPDATE_COMMAND = "tcp-serial-relay update"

DEVICE_ID_SOURCES = ("hostname", "mac")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


@dataclass(frozen=True)
class CommandSettings:
    """Process-control invocations for the relay service"""
    start_command: tuple[str, ...] = tuple(shlex.split(DEFAULT_START_COMMAND))
    stop_command: tuple[str, ...] = tuple(shlex.split(DEFAULT_STOP_COMMAND))
    update_command: tuple[str, ...] = tuple(shlex.split(DEFAULT_UPDATE_COMMAND))
    start_detached: bool = False
    detach_grace_s: float = 2.0
    command_timeout_s: float = DEFAULT_COMMAND_TIMEOUT_S


@dataclass(frozen=True)
class AgentConfig:
    """Agent configuration (never mutated after startup)"""
    endpoint: str
    device_id: str
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    health_port: int = 0
    shutdown_grace_s: float = DEFAULT_SHUTDOWN_GRACE_S
    commands: CommandSettings = field(default_factory=CommandSettings)

    @property
    def poll_interval_s(self) -> float:
        return self.poll_interval_ms / 1000

    def summary(self) -> dict[str, Any]:
        """Printable view of the configuration"""
        return {
            "endpoint": self.endpoint,
            "device_id": self.device_id,
            "poll_interval_ms": self.poll_interval_ms,
            "request_timeout_s": self.request_timeout_s,
            "health_port": self.health_port,
            "start_command": shlex.join(self.commands.start_command),
            "stop_command": shlex.join(self.commands.stop_command),
            "update_command": shlex.join(self.commands.update_command),
            "start_detached": self.commands.start_detached,
            "command_timeout_s": self.commands.command_timeout_s,
        }


def load_config_file(config_path: str) -> dict:
    """
    Load the optional YAML configuration file.

    Raises:
        ConfigurationError: File missing, unreadable, or not a mapping
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing {config_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Error reading {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping")
    return data


def _pick(env: Mapping[str, str], env_key: str, section: dict, file_key: str, default: Any) -> Any:
    """Environment variable, then file value, then default"""
    value = env.get(env_key)
    if value is not None and value != "":
        return value
    if section.get(file_key) is not None:
        return section[file_key]
    return default


def _parse_int(name: str, value: Any, minimum: int, maximum: int | None = None) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    try:
        parsed = int(str(value).strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None
    if parsed < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {parsed}")
    if maximum is not None and parsed > maximum:
        raise ConfigurationError(f"{name} must be <= {maximum}, got {parsed}")
    return parsed


def _parse_float(name: str, value: Any, minimum: float = 0.0, allow_equal: bool = True) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    try:
        parsed = float(str(value).strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(parsed):
        raise ConfigurationError(f"{name} must be a finite number, got {value!r}")
    if parsed < minimum or (not allow_equal and parsed == minimum):
        op = ">=" if allow_equal else ">"
        raise ConfigurationError(f"{name} must be {op} {minimum}, got {parsed}")
    return parsed


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _parse_argv(name: str, value: Any) -> tuple[str, ...]:
    if isinstance(value, (list, tuple)):
        argv = tuple(str(part) for part in value)
    else:
        try:
            argv = tuple(shlex.split(str(value)))
        except ValueError as e:
            raise ConfigurationError(f"{name} is not a valid command line: {e}") from None
    if not argv:
        raise ConfigurationError(f"{name} must not be empty")
    return argv


def _parse_endpoint(value: Any) -> str:
    endpoint = str(value).strip()
    parsed = urlparse(endpoint)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"Endpoint must be an http(s) URL, got {endpoint!r}")
    return endpoint


def load_agent_config(
    config_path: str | None = None,
    env: Mapping[str, str] | None = None,
) -> AgentConfig:
    """
    Build the agent configuration.

    Args:
        config_path: Optional YAML file with "agent" and "commands" sections
        env: Environment mapping (defaults to os.environ)

    Raises:
        ConfigurationError: Any value is missing or invalid
    """
    env = os.environ if env is None else env
    data = load_config_file(config_path) if config_path else {}

    agent = data.get("agent") or {}
    commands = data.get("commands") or {}
    if not isinstance(agent, dict) or not isinstance(commands, dict):
        raise ConfigurationError("'agent' and 'commands' sections must be mappings")

    endpoint = _parse_endpoint(_pick(env, "COMMAND_ENDPOINT", agent, "endpoint", DEFAULT_ENDPOINT))

    source = str(_pick(env, "DEVICE_ID_SOURCE", agent, "device_id_source", "hostname")).lower()
    if source not in DEVICE_ID_SOURCES:
        raise ConfigurationError(
            f"device_id_source must be one of {', '.join(DEVICE_ID_SOURCES)}, got {source!r}"
        )
    configured_id = _pick(env, "DEVICE_ID", agent, "device_id", None)
    device_id = resolve_device_id(
        str(configured_id) if configured_id is not None else None,
        source,
    )
    if not device_id:
        raise ConfigurationError(f"Could not resolve device identity from {source}")

    settings = CommandSettings(
        start_command=_parse_argv(
            "start_command",
            _pick(env, "RELAY_START_COMMAND", commands, "start", DEFAULT_START_COMMAND),
        ),
        stop_command=_parse_argv(
            "stop_command",
            _pick(env, "RELAY_STOP_COMMAND", commands, "stop", DEFAULT_STOP_COMMAND),
        ),
        update_command=_parse_argv(
            "update_command",
            _pick(env, "RELAY_UPDATE_COMMAND", commands, "update", DEFAULT_UPDATE_COMMAND),
        ),
        start_detached=_parse_bool(
            "start_detached",
            _pick(env, "RELAY_START_DETACHED", commands, "start_detached", False),
        ),
        detach_grace_s=_parse_float(
            "detach_grace_s",
            _pick(env, "RELAY_DETACH_GRACE", commands, "detach_grace_s", 2.0),
        ),
        command_timeout_s=_parse_float(
            "command_timeout_s",
            _pick(env, "COMMAND_TIMEOUT", commands, "timeout_s", DEFAULT_COMMAND_TIMEOUT_S),
            allow_equal=False,
        ),
    )

    return AgentConfig(
        endpoint=endpoint,
        device_id=device_id,
        poll_interval_ms=_parse_int(
            "poll_interval_ms",
            _pick(env, "POLL_INTERVAL", agent, "poll_interval_ms", DEFAULT_POLL_INTERVAL_MS),
            minimum=1,
        ),
        request_timeout_s=_parse_float(
            "request_timeout_s",
            _pick(env, "REQUEST_TIMEOUT", agent, "request_timeout_s", DEFAULT_REQUEST_TIMEOUT_S),
            allow_equal=False,
        ),
        health_port=_parse_int(
            "health_port",
            _pick(env, "HEALTH_PORT", agent, "health_port", 0),
            minimum=0,
            maximum=65535,
        ),
        shutdown_grace_s=_parse_float(
            "shutdown_grace_s",
            _pick(env, "SHUTDOWN_GRACE", agent, "shutdown_grace_s", DEFAULT_SHUTDOWN_GRACE_S),
        ),
        commands=settings,
    )
