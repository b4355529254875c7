from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog
import uvicorn

from aggregarr.infrastructure.config import load_config
from aggregarr.infrastructure.logging.setup import configure_logging
from aggregarr.interfaces.app import create_app

log = structlog.get_logger(__name__)

DEFAULT_PORT = 7005


def _parse_args(argv: Iterable[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="aggregarr")

    # Server options
    parser.add_argument(
        "--host",
        default=None,
        help="Bind host (overrides HOST env).",
    )
    parser.add_argument(
        "--port",
        default=None,
        type=int,
        help=f"Bind port (overrides PORT env, default {DEFAULT_PORT}).",
    )

    # Config wiring flags
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file.",
    )
    parser.add_argument(
        "--dotenv",
        default=None,
        help="Path to .env file.",
    )
    parser.add_argument(
        "--source",
        action="append",
        default=None,
        dest="sources",
        help="Provider base URL (repeatable, replaces configured sources).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level.",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["json", "console"],
        help="Override log format.",
    )

    return parser.parse_args(list(argv) if argv is not None else None)


def build_cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    cli_overrides: dict[str, Any] = {}
    if args.sources:
        cli_overrides["sources"] = args.sources
    if args.log_level:
        cli_overrides["log_level"] = args.log_level
    if args.log_format:
        cli_overrides["log_format"] = args.log_format
    return cli_overrides


def start(argv: Iterable[str] | None = None) -> None:
    """
    Process entrypoint.

    Loads config exactly once, configures logging, then serves the app.
    """
    if argv is None:
        argv = sys.argv[1:]

    args = _parse_args(argv)

    host = args.host or os.getenv("HOST", "0.0.0.0")
    port = int(args.port or os.getenv("PORT", str(DEFAULT_PORT)))

    config = load_config(
        config_path=Path(args.config) if args.config else None,
        dotenv_path=Path(args.dotenv) if args.dotenv else None,
        cli_overrides=build_cli_overrides(args),
    )

    configure_logging(config)
    log.info("server_starting", host=host, port=port, environment=config.environment)

    # log_config=None keeps uvicorn from replacing the queue-based logging.
    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        log_config=None,
    )


if __name__ == "__main__":
    raise SystemExit(start())
