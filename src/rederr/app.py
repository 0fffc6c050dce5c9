"""rederr command line entry point.

Parses arguments, configures logging and runs one relay.

Usage:
    rederr [--color {always,auto,never}] [-c] [--combine] command [args ...]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from . import __version__
from .config import ColorMode, Config, get_config
from .errors import EXIT_INTERNAL_ERROR, RederrError
from .relay import RelayCoordinator
from .runtime.forwarder import ByteSink
from .runtime.supervisor import ProcessSpec

__all__ = ["build_parser", "run_relay", "main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    Everything from ``command`` on belongs to the child, including
    arguments that look like rederr options.
    """
    parser = argparse.ArgumentParser(
        prog="rederr",
        description="Run a command and color its stderr red.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--color",
        choices=[mode.value for mode in ColorMode],
        default=None,
        help="when to color the command's stderr (default: REDERR_COLOR or always)",
    )
    parser.add_argument(
        "-c",
        "--always-color",
        dest="color",
        action="store_const",
        const=ColorMode.ALWAYS.value,
        help="same as --color=always",
    )
    parser.add_argument(
        "--combine",
        action="store_true",
        help="write the command's stderr to stdout, colored per chunk",
    )
    parser.add_argument("--buffer-size", type=_positive_int, default=None, help=argparse.SUPPRESS)
    parser.add_argument("command", help="the executable to run")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="arguments for the executable")
    return parser


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def apply_arguments(config: Config, args: argparse.Namespace) -> Config:
    """Override environment configuration with command line flags."""
    if args.color is not None:
        config.color = ColorMode.from_string(args.color)
    if args.combine:
        config.combine = True
    if args.buffer_size is not None:
        config.buffer_size = args.buffer_size
    return config


def configure_logging(config: Config) -> None:
    """Set up logging for the rederr namespace.

    Warnings and errors go to stderr. With REDERR_LOG_DEBUG everything,
    debug included, goes to a temp file instead so it never mixes with the
    relayed output.
    """
    handler: logging.Handler
    if config.log_debug and config.log_file:
        handler = logging.FileHandler(config.log_file, encoding="utf-8")
        log_level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        log_level = logging.WARNING
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    # Root logger (third-party libraries) stays at WARNING.
    logging.basicConfig(level=logging.WARNING, handlers=[handler])
    logging.getLogger("rederr").setLevel(log_level)


async def run_relay(argv: Sequence[str], config: Config) -> int:
    """Relay one command and return the exit code rederr should use."""
    stdout_sink = ByteSink(sys.stdout.buffer)
    stderr_sink = stdout_sink if config.combine else ByteSink(sys.stderr.buffer)
    coordinator = RelayCoordinator(config, stdout_sink=stdout_sink, stderr_sink=stderr_sink)

    try:
        result = await coordinator.run(ProcessSpec(argv=list(argv)))
    except RederrError as e:
        logger.error(str(e))
        return e.exit_code

    logger.debug(f"Child {result.outcome.describe()}, exiting with {result.exit_code}")
    return result.exit_code


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    config = apply_arguments(get_config(), args)
    configure_logging(config)
    logger.debug(f"Starting rederr: {config}")

    try:
        exit_code = asyncio.run(run_relay([args.command, *args.args], config))
    except Exception:
        logger.exception("Internal error")
        exit_code = EXIT_INTERNAL_ERROR

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
