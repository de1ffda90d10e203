#!/usr/bin/env python3
"""
Entry point for running Conduit as a module.

This allows the application to be run with:
    python -m conduit

The main() function is also used as the entry point for the ``conduit``
console script defined in pyproject.toml. It is meant to be bound to a
desktop keyboard shortcut: each invocation records once, transcribes, pastes
the text into the window that had focus, and exits.
"""

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )
    # Reduce noise from external libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    from . import __version__

    parser = argparse.ArgumentParser(
        prog="conduit",
        description="Record speech, transcribe it with Groq Whisper and paste the text.",
    )
    parser.add_argument(
        "--long",
        action="store_true",
        help="use the long recording limit (CONDUIT_LONG_MAX_DURATION)",
    )
    parser.add_argument(
        "--max-duration",
        type=float,
        metavar="SECONDS",
        help="recording limit in seconds, overrides the configured value",
    )
    parser.add_argument(
        "--no-paste",
        action="store_true",
        help="only copy the text to the clipboard",
    )
    parser.add_argument(
        "--no-indicator",
        action="store_true",
        help="do not show the recording indicator",
    )
    parser.add_argument("--language", metavar="CODE", help="language hint, e.g. en")
    parser.add_argument("--config", type=Path, metavar="PATH", help="configuration file")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Application entry point.

    Returns:
        int: Exit code (0 for success, see ExitCode for the others)
    """
    from . import __version__
    from .config import load_config
    from .exceptions import ConfigurationError
    from .notify import Notifier
    from .pipeline import Pipeline

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.max_duration is not None and args.max_duration <= 0:
        parser.error("--max-duration must be positive")

    _configure_logging(args.verbose)

    notifier = Notifier()

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        notifier.notify("Error", str(e), urgency="critical")
        return e.exit_code

    overrides = {}
    if args.language:
        overrides["language"] = args.language
    if args.no_paste:
        overrides["auto_paste"] = False
    if args.no_indicator:
        overrides["indicator"] = False
    if overrides:
        config = dataclasses.replace(config, **overrides)

    logger.info(f"Conduit v{__version__} starting")

    pipeline = Pipeline(
        config,
        long_form=args.long,
        max_duration=args.max_duration,
        notifier=notifier,
    )
    exit_code = pipeline.run()

    if pipeline.text:
        print(pipeline.text)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
