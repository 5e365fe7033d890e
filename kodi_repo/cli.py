"""
Command line entry point.

    kodi-addons generate ADDONS_DIR OUTPUT
    kodi-addons serve ADDONS_DIR LISTING [CACHE_DIR]
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from kodi_repo.core.config import load_settings
from kodi_repo.data.manifest import write_listing
from kodi_repo.domain.errors import ManifestError
from kodi_repo.main import configure_logging, run

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kodi-addons",
        description="Kodi addon repository server.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    generate = sub.add_parser("generate", help="Generate the addons.xml listing from an addons directory.")
    generate.add_argument("addons_dir", type=Path)
    generate.add_argument("output", type=Path)

    # "server" is the historical spelling of the command.
    serve = sub.add_parser("serve", aliases=["server"], help="Serve addons listed in LISTING over HTTP.")
    serve.add_argument("addons_dir", type=Path)
    serve.add_argument("listing", type=Path)
    serve.add_argument(
        "cache_dir",
        type=Path,
        nargs="?",
        default=None,
        help="Directory for built archives (default: ADDONS_DIR/.zips).",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.command == "generate":
        configure_logging()
        try:
            write_listing(args.addons_dir, args.output)
        except OSError as e:
            logger.error(f"Failed to generate listing: {e}")
            return 1
        return 0

    try:
        settings = load_settings(args.addons_dir, args.listing, args.cache_dir)
    except ValidationError as e:
        configure_logging()
        logger.error(f"Invalid configuration: {e}")
        return 2

    configure_logging(settings.log_level)
    try:
        run(settings)
    except ManifestError as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
