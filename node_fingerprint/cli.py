"""Command-line interface for node-fingerprint."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import FingerprintAgent
from .config import AgentConfig, load_config
from .core import Node
from .fingerprint import (
    FingerprintConfigurationError,
    FingerprintPassError,
    build_default_registry,
    build_registry,
)
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="node-fingerprint",
        description="Discover and publish facts about this worker node",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "start", help="Fingerprint the node and keep periodic probes running"
    )
    subparsers.add_parser(
        "fingerprint", help="Run one fingerprint pass and print the node as JSON"
    )
    subparsers.add_parser("probes", help="List probes enabled on this host")
    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


async def _fingerprint(config: AgentConfig) -> Node:
    agent = FingerprintAgent(config)
    try:
        return await agent.fingerprint_once()
    finally:
        await agent.stop()


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "start":
        try:
            FingerprintAgent.start(config)
        except (FingerprintConfigurationError, FingerprintPassError) as exc:
            LOGGER.error("Fingerprinting failed: %s", exc)
            return 1
        return 0

    if args.command == "fingerprint":
        configure_logging(config.logging.level, log_network=config.logging.log_network)
        try:
            node = asyncio.run(_fingerprint(config))
        except (FingerprintConfigurationError, FingerprintPassError) as exc:
            LOGGER.error("Fingerprinting failed: %s", exc)
            return 1
        print(json.dumps(node.to_dict(), indent=2, sort_keys=True))
        return 0

    if args.command == "probes":
        try:
            enabled = build_registry(config)
        except FingerprintConfigurationError as exc:
            LOGGER.error("Invalid probe configuration: %s", exc)
            return 1
        for probe in build_default_registry(config):
            if probe.name in enabled:
                status = "enabled"
            else:
                status = "disabled"
            schedule = (
                f"every {probe.periodic_interval:g}s" if probe.periodic else "once"
            )
            print(f"{probe.name:<10} {status:<9} {schedule}")
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
