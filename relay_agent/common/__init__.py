"""
Common Utilities

Shared modules used across the agent:
- config.py - Configuration dataclasses and loading
- device_info.py - Device identity resolution
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- scheduler.py - Fixed-interval scheduler
"""

from .config import (
    AgentConfig,
    CommandSettings,
    load_agent_config,
    load_config_file,
)
from .device_info import (
    get_device_info,
    get_hostname,
    get_mac_address,
    resolve_device_id,
)
from .exceptions import (
    RelayAgentError,
    TransportError,
    UnknownCommandError,
    ExecutionError,
    ConfigurationError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    configure_all,
    log_execution_result,
)
from .scheduler import ScheduledLoop

__all__ = [
    # Config
    "AgentConfig",
    "CommandSettings",
    "load_agent_config",
    "load_config_file",
    # Device
    "get_device_info",
    "get_hostname",
    "get_mac_address",
    "resolve_device_id",
    # Exceptions
    "RelayAgentError",
    "TransportError",
    "UnknownCommandError",
    "ExecutionError",
    "ConfigurationError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "configure_all",
    "log_execution_result",
    # Scheduling
    "ScheduledLoop",
]
