"""Daemon entry point for hypibole.

Builds the pin registry and board, then serves get/set requests over HTTP
until SIGTERM/SIGINT. Lines are released on the way out.
"""

from __future__ import annotations

import argparse
import logging
import signal
from typing import List, Optional

from .board import Board, BoardError
from .config import (
    DEFAULT_CONFIG_PATH,
    ConfigError,
    ServiceConfig,
    build_registry,
    load_config,
    parse_gpio_list,
    parse_header_items,
)
from .executor import BoardExecutor
from .http_server import HttpServer

LOGGER = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments for the daemon."""
    parser = argparse.ArgumentParser(description="hypibole GPIO HTTP service")
    parser.add_argument("--config", default=None, help=f"Path to YAML configuration (e.g. {DEFAULT_CONFIG_PATH})")
    parser.add_argument("--address", default=None, help="IP address to bind the server to (default 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Listening port (default 8080)")
    parser.add_argument("--gets", default=None, help="Comma-separated GPIO lines allowed for get")
    parser.add_argument("--sets", default=None, help="Comma-separated GPIO lines allowed for set")
    parser.add_argument("--simgets", default=None, help="Simulated gettable lines; real lines take priority")
    parser.add_argument("--simsets", default=None, help="Simulated settable lines; real lines take priority")
    parser.add_argument("--header", action="append", default=[], metavar="ID=LINE", help="Header pin alias (repeatable)")
    parser.add_argument("--chip", default=None, help="GPIO chip device (default /dev/gpiochip0)")
    parser.add_argument("--consumer", default=None, help="Consumer label for line requests")
    parser.add_argument("--eager", action="store_true", help="Acquire every whitelisted line at startup")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING)")
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    """Set up basic logging for the daemon."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format="%(asctime)s %(levelname)s %(message)s")


def resolve_config(args: argparse.Namespace) -> ServiceConfig:
    """Load the config file (if any) and apply command-line overrides."""
    config = load_config(args.config) if args.config else ServiceConfig()
    if args.address is not None:
        config.network.address = args.address
    if args.port is not None:
        config.network.port = args.port
    board = config.board
    if args.gets is not None:
        board.gets = parse_gpio_list(args.gets)
    if args.sets is not None:
        board.sets = parse_gpio_list(args.sets)
    if args.simgets is not None:
        board.simgets = parse_gpio_list(args.simgets)
    if args.simsets is not None:
        board.simsets = parse_gpio_list(args.simsets)
    if args.header:
        board.header.update(parse_header_items(args.header))
    if args.chip is not None:
        board.chip = args.chip
    if args.consumer is not None:
        board.consumer = args.consumer
    if args.eager:
        board.eager = True
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for running the daemon."""
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = resolve_config(args)
        registry = build_registry(config.board)
    except ConfigError as exc:
        LOGGER.error("Configuration error: %s", exc)
        return 2

    board = Board(chip=config.board.chip, consumer=config.board.consumer)
    try:
        if config.board.eager:
            board.acquire_all(registry.descriptors())
        server = HttpServer(BoardExecutor(registry, board), config.network.address, config.network.port)
    except (BoardError, OSError) as exc:
        LOGGER.error("Startup failed: %s", exc)
        board.close()
        return 1

    def shutdown(_signum=None, _frame=None):
        LOGGER.info("Shutting down")
        server.stop()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    LOGGER.info("Serving %s whitelisted pin(s)", len(registry))
    try:
        server.serve_forever()
    finally:
        board.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
