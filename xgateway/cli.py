"""Command line entry point that loads the configuration and serves it."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from .config import ConfigError, parse
from .logger import new_logger
from .proxy.factory import default_factory
from .router.engine import EngineRouterFactory


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the gateway command."""
    parser = argparse.ArgumentParser(description="API gateway")
    parser.add_argument("-p", dest="port", type=int, default=0, help="Port of the service")
    parser.add_argument("-l", dest="level", default="ERROR", help="Logging level")
    parser.add_argument(
        "-d", dest="debug", action="store_true", help="Enable the debug"
    )
    parser.add_argument(
        "-c",
        dest="config",
        default="etc/configuration.json",
        help="Path to the configuration filename",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Load the configuration, build the proxies and serve until stopped."""
    args = build_parser().parse_args(argv)

    try:
        service_config = parse(args.config)
    except ConfigError as exc:
        print("ERROR:", exc, file=sys.stderr)
        raise SystemExit(1) from exc
    service_config.debug = service_config.debug or args.debug
    if args.port != 0:
        service_config.port = args.port

    try:
        logger = new_logger(args.level, sys.stdout, "[X_X]")
    except ValueError as exc:
        raise SystemExit(1) from exc

    router_factory = EngineRouterFactory(default_factory(logger), logger)
    router_factory.new().run(service_config)
    return 0