"""Command-line entrypoint for auditing an installed dependency tree."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import structlog

from .core import (
    ScanOutcome,
    build_registry,
    enumeration_from_packages,
    require_usable,
    scan,
)
from .discovery import EnumerationResult, enumerate_installed
from .ingestion.feeds_config import ConfigError, FeedConfig, Settings, load_settings
from .ingestion.fetch import fetch_feeds
from .ingestion.normalised_feed import FeedError
from .parsers import npm_ls, package_lock
from .report import aggregate

EXIT_CLEAN = 0
EXIT_COMPROMISED = 1
EXIT_ERROR = 2

INVENTORY_CHOICES = ("tree", "package-lock", "npm-ls")


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=lambda *args: structlog.PrintLogger(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--root", type=Path, default=Path("."))
    parser.add_argument("--config", type=Path, default=None, help="Settings file (JSON or YAML)")
    parser.add_argument(
        "--feed",
        dest="feeds",
        action="append",
        default=[],
        help="Extra feed URL or file path; repeatable",
    )
    parser.add_argument("--no-default-feeds", action="store_true")
    parser.add_argument("--inventory", choices=INVENTORY_CHOICES, default="tree")
    parser.add_argument(
        "--npm-ls-json",
        type=Path,
        default=None,
        help="Saved output of `npm ls --json --all` (for --inventory npm-ls)",
    )
    parser.add_argument("--max-depth", type=_positive_int, default=None)
    parser.add_argument("--workers", type=_positive_int, default=1)
    parser.add_argument("--warn-only", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def _feed_configs(args: argparse.Namespace, settings: Settings) -> list[FeedConfig]:
    feeds = [] if args.no_default_feeds else settings.get_enabled_feeds()
    for index, location in enumerate(args.feeds, start=1):
        feeds.append(FeedConfig(id=f"cli-{index}", url=location))
    return feeds


def _collect(args: argparse.Namespace, settings: Settings) -> EnumerationResult:
    root = args.root.resolve()
    if args.inventory == "package-lock":
        packages = package_lock.parse(root / "package-lock.json")
        return enumeration_from_packages(str(root), packages)
    if args.inventory == "npm-ls":
        source = args.npm_ls_json or root / "global-packages.json"
        return enumeration_from_packages(str(root), npm_ls.parse(source))

    max_depth = args.max_depth if args.max_depth is not None else settings.max_depth
    return enumerate_installed(
        root, container=settings.container, max_depth=max_depth, workers=args.workers
    )


def run(args: argparse.Namespace) -> ScanOutcome:
    settings = load_settings(args.config)
    payloads = fetch_feeds(_feed_configs(args, settings))
    build = build_registry(payloads)
    require_usable(build)
    return scan(build, _collect(args, settings))


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)
    log = structlog.get_logger()

    try:
        outcome = run(args)
    except (ConfigError, FeedError, OSError, ValueError) as exc:
        log.error("scan.failed", error=str(exc))
        return EXIT_ERROR

    print(json.dumps(aggregate(outcome), indent=2))

    if outcome.result.has_compromised and not args.warn_only:
        return EXIT_COMPROMISED
    return EXIT_CLEAN


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
