"""Fold per-feed partial registries into one unified registry."""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from ..models.registry import Registry
from .normalised_feed import NormalisedFeed

logger = structlog.get_logger()


def merge_registries(registries: Iterable[Registry]) -> Registry:
    """Return a new registry holding the union of ``registries``.

    Per version, source and provenance sets are unioned and the highest
    severity wins, so the result does not depend on input order. Inputs are
    left untouched.
    """
    merged = Registry()
    for registry in registries:
        for entry in registry:
            merged.absorb_entry(entry)
    return merged


def merge_feeds(feeds: Iterable[NormalisedFeed]) -> Registry:
    """Merge the partial registries of already-normalised feeds."""
    feeds = list(feeds)
    merged = merge_registries(feed.registry for feed in feeds)
    logger.info(
        "registry.merged",
        feeds=len(feeds),
        contributing=sum(1 for feed in feeds if feed.contributed),
        packages=len(merged),
        versions=merged.version_count,
    )
    return merged
