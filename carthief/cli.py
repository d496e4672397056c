"""Car Thief event engine – unified CLI dispatcher.

All subcommands live in ``carthief/commands/*.py`` and expose a
``register(subparsers)`` function that adds themselves to argparse.
"""
from __future__ import annotations

import argparse
import logging
import sys

from shared.config import LOG_LEVEL


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, LOG_LEVEL, logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="carthief",
        description="Car Thief – dynamic event & consequence engine CLI",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging (overrides CARTHIEF_LOG_LEVEL)")
    sub = parser.add_subparsers(dest="command")

    from carthief.commands.registry import register_all

    register_all(sub)

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    # Each command stores a ``func`` on the namespace
    rc = args.func(args)
    sys.exit(rc or 0)
