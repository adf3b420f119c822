"""Core scanning entrypoints.

This module performs no printing or exit-code mapping so it can be used by
the CLI script and by other callers alike.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from .classifier import classify
from .discovery import DEFAULT_CONTAINER, DEFAULT_MAX_DEPTH, EnumerationResult, enumerate_installed
from .ingestion.feeds_config import Settings, load_settings
from .ingestion.fetch import fetch_feeds
from .ingestion.merge import merge_feeds
from .ingestion.normalised_feed import (
    FeedPayload,
    NoUsableFeedsError,
    NormalisedFeed,
    normalise_feed,
)
from .models.classification import ClassificationResult
from .models.installed_package import InstalledPackage
from .models.registry import Registry

logger = structlog.get_logger()


@dataclass
class RegistryBuild:
    """The unified registry together with each feed's normalisation outcome."""

    registry: Registry
    feeds: list[NormalisedFeed] = field(default_factory=list)

    @property
    def failed_feeds(self) -> list[NormalisedFeed]:
        return [feed for feed in self.feeds if not feed.contributed]

    @property
    def usable(self) -> bool:
        return any(feed.contributed for feed in self.feeds)


@dataclass
class ScanOutcome:
    registry_build: RegistryBuild
    enumeration: EnumerationResult
    result: ClassificationResult

    @property
    def registry(self) -> Registry:
        return self.registry_build.registry


def build_registry(payloads: Iterable[FeedPayload]) -> RegistryBuild:
    """Normalise every payload independently and merge the results."""
    feeds = [normalise_feed(payload) for payload in payloads]
    return RegistryBuild(registry=merge_feeds(feeds), feeds=feeds)


def require_usable(build: RegistryBuild) -> None:
    """Refuse to classify against an empty registry.

    Raises:
        NoUsableFeedsError: If no feed contributed a single entry.
    """
    if not build.usable:
        sources = ", ".join(feed.source for feed in build.feeds) or "(none)"
        raise NoUsableFeedsError(f"No feed produced any compromised entries: {sources}")


def enumeration_from_packages(root: str, packages: Iterable[InstalledPackage]) -> EnumerationResult:
    """Wrap packages read from a lockfile or ``npm ls`` dump, first copy per path."""
    unique: dict[str, InstalledPackage] = {}
    for package in packages:
        unique.setdefault(package.install_path, package)
    return EnumerationResult(root=root, packages=list(unique.values()))


def scan(build: RegistryBuild, enumeration: EnumerationResult) -> ScanOutcome:
    """Classify an enumerated installation against a built registry."""
    require_usable(build)
    result = classify(enumeration.packages, build.registry)
    return ScanOutcome(registry_build=build, enumeration=enumeration, result=result)


def scan_installation(
    root: Path | str,
    payloads: Sequence[FeedPayload],
    *,
    container: str = DEFAULT_CONTAINER,
    max_depth: int | None = DEFAULT_MAX_DEPTH,
    workers: int = 1,
) -> ScanOutcome:
    """Build the registry from ``payloads``, walk ``root`` and classify.

    Raises:
        NoUsableFeedsError: If every feed failed to contribute entries.
        FileNotFoundError: If ``root`` does not exist.
    """
    build = build_registry(payloads)
    require_usable(build)
    enumeration = enumerate_installed(
        root, container=container, max_depth=max_depth, workers=workers
    )
    return scan(build, enumeration)


def scan_with_config(
    root: Path | str,
    settings: Settings | None = None,
    *,
    extra_payloads: Sequence[FeedPayload] = (),
    workers: int = 1,
    fetch_workers: int = 4,
) -> ScanOutcome:
    """Fetch the enabled feeds from ``settings`` and scan ``root``."""
    settings = settings or load_settings()
    payloads = fetch_feeds(settings.get_enabled_feeds(), max_workers=fetch_workers)
    payloads.extend(extra_payloads)
    logger.info("scan.feeds_fetched", fetched=len(payloads))
    return scan_installation(
        root,
        payloads,
        container=settings.container,
        max_depth=settings.max_depth,
        workers=workers,
    )
