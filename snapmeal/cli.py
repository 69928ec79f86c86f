#!/usr/bin/env python3
"""
Command line entry point.

Usage:
    snapmeal analyze photos/lunch.jpg
    snapmeal barcode 3017620422003
    snapmeal search "greek yogurt"
    snapmeal sweep

Exit codes:
    0 success
    1 product not found
    2 upload rejected or failed
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, List, Optional, Sequence

import structlog

from snapmeal.application.bootstrap import build_pipeline
from snapmeal.config import Settings
from snapmeal.domain.meal.upload.models import ImageUpload
from snapmeal.domain.shared.errors import ConfigError, NotFoundError, UploadError
from snapmeal.logging_config import configure_logging

logger = structlog.get_logger(__name__)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="snapmeal", description="Resolve nutrition data for meals")
    parser.add_argument("--env-file", type=Path, default=None, help=".env file to load")
    parser.add_argument("--log-level", default=None, help="Override SNAPMEAL_LOG_LEVEL")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")

    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Analyze a food photo")
    analyze.add_argument("path", type=Path)

    barcode = sub.add_parser("barcode", help="Resolve a product code")
    barcode.add_argument("code")

    search = sub.add_parser("search", help="Search foods by name")
    search.add_argument("name")
    search.add_argument("--limit", type=int, default=5)

    sub.add_parser("sweep", help="Remove expired cache entries")
    return parser


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    async with build_pipeline(settings) as pipeline:
        if args.command == "analyze":
            try:
                record = await pipeline.analyze_image(ImageUpload.from_path(args.path))
            except (UploadError, ConfigError) as e:
                logger.error("Upload failed", error=str(e))
                return 2
            _print_json(record.to_wire())

        elif args.command == "barcode":
            try:
                record = await pipeline.analyze_barcode(args.code)
            except NotFoundError as e:
                logger.error("Product not found", error=str(e))
                return 1
            _print_json(record.to_wire())

        elif args.command == "search":
            items = await pipeline.search_foods(args.name, limit=args.limit)
            _print_json([item.to_wire() for item in items])

        elif args.command == "sweep":
            removed = await pipeline.sweep_expired()
            _print_json({"removed": removed})

    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings.from_env(args.env_file)
    configure_logging(args.log_level or settings.log_level, json_output=args.json_logs)

    if args.command == "analyze" and not args.path.is_file():
        logger.error("File not found", path=str(args.path))
        return 2

    return asyncio.run(_run(args, settings))


if __name__ == "__main__":
    sys.exit(main())
