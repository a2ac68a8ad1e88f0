"""Command-line entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from ircantispam._version import __version__
from ircantispam.core.bot import run_bot
from ircantispam.core.errors import AccessListError, ConfigurationError, TransportError
from ircantispam.models.config import CONFIG_ENV_VAR, load_config

logger = logging.getLogger("ircantispam")

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ircantispam",
        description="Kick-ban IRC spammers and voice newcomers after a delay.",
    )
    parser.add_argument(
        "-c",
        "--config",
        help=f"YAML or JSON config file (default: ${CONFIG_ENV_VAR} or ./config.yml)",
    )
    parser.add_argument("--log-level", help="override the configured log level")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        print(f"ircantispam: {exc}", file=sys.stderr)
        return 2

    level: int | str = config.effective_log_level
    if args.log_level:
        level = args.log_level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)

    try:
        asyncio.run(run_bot(config))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except (ConfigurationError, AccessListError) as exc:
        logger.critical("Cannot start: %s", exc)
        return 2
    except TransportError as exc:
        logger.critical("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
