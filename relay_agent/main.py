#!/usr/bin/env python3
"""
Relay Command Agent - Main Entry Point

Loads configuration and runs the command agent until SIGINT/SIGTERM.

Usage:
    relay-agent                       # Environment variables + defaults
    relay-agent --config agent.yaml   # Optional YAML overrides
    relay-agent --dry-run             # Print config and exit
    relay-agent --verbose             # Plain-text debug logging

Exit codes:
    0  graceful shutdown (or successful dry run)
    1  configuration error or fatal startup failure
"""

import argparse
import asyncio
import sys

from relay_agent import __version__
from relay_agent.common.config import AgentConfig, load_agent_config
from relay_agent.common.device_info import get_device_info
from relay_agent.common.exceptions import ConfigurationError
from relay_agent.common.logging_setup import configure_all, get_service_logger
from relay_agent.services.command.service import CommandAgentService

logger = get_service_logger("main")


def print_config_summary(config: AgentConfig) -> None:
    """Print a summary of the configuration."""
    summary = config.summary()
    host = get_device_info()

    print()
    print("=" * 60)
    print("  RELAY COMMAND AGENT")
    print("=" * 60)
    print()
    print(f"  Device ID:     {summary['device_id']}")
    print(f"  Host:          {host['hostname']} ({host['platform']}/{host['arch']})")
    print(f"  Endpoint:      {summary['endpoint']}")
    print(f"  Poll interval: {summary['poll_interval_ms']}ms")
    print(f"  HTTP timeout:  {summary['request_timeout_s']}s")
    print()
    print("  Commands:")
    print(f"    - start:   {summary['start_command']}"
          f"{' (detached)' if summary['start_detached'] else ''}")
    print(f"    - stop:    {summary['stop_command']}")
    print("    - restart: stop, then start")
    print(f"    - update:  {summary['update_command']}")
    print(f"    - timeout: {summary['command_timeout_s']}s")
    if summary["health_port"]:
        print()
        print(f"  Health: http://127.0.0.1:{summary['health_port']}/health")
    print()
    print("=" * 60)
    print()


async def main_async(config: AgentConfig) -> int:
    """Run the agent until shutdown and return the exit code."""
    service = CommandAgentService(config)
    return await service.run()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="relay-agent",
        description="Remote command agent for the TCP-serial relay service",
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Optional YAML configuration file (environment variables take precedence)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print configuration and exit without polling",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (debug) plain-text logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"relay-agent v{__version__}",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        configure_all(log_level="DEBUG", json_format=False)

    try:
        config = load_agent_config(args.config)
    except ConfigurationError as e:
        logger.error(e.message)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    print_config_summary(config)

    if args.dry_run:
        print("Dry run mode - configuration valid, exiting")
        return 0

    try:
        return asyncio.run(main_async(config))
    except KeyboardInterrupt:
        return 0
    except OSError as e:
        # e.g. health port already in use
        logger.critical(f"Agent failed to start: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
