"""Command-line interface for godiagram."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from godiagram.config import DEFAULT_CONFIG_NAME, load_config
from godiagram.errors import ConfigError, ParseError
from godiagram.pipeline import run, serve

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="godiagram",
        description="Live struct diagrams for Go source trees, with round-trip editing.",
    )
    parser.add_argument(
        "project_dir",
        type=Path,
        nargs="?",
        default=None,
        help="Go source tree to extract (default: root from the config file)",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path(DEFAULT_CONFIG_NAME),
        help=f"Configuration file (default: {DEFAULT_CONFIG_NAME})",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Extract once and write the model JSON to this file instead of serving",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) output",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING, format="%(asctime)s %(name)s: %(message)s")
    logging.getLogger("godiagram").setLevel(logging.DEBUG if args.verbose else logging.INFO)

    try:
        if args.output is not None:
            project_dir = args.project_dir or load_config(args.config).root
            run(project_dir, output=args.output)
            return
        if args.project_dir is not None:
            parser.error("a project directory is only used together with --output")
        serve(args.config)
    except ConfigError as e:
        logger.error("Error loading configuration: %s", e)
        sys.exit(2)
    except ParseError as e:
        logger.error("Error parsing sources: %s", e)
        sys.exit(1)
