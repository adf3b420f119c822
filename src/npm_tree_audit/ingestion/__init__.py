"""Utilities for fetching, normalising and merging threat-intelligence feeds."""

from .normalised_feed import (
    FeedError,
    FeedFetchError,
    FeedParseError,
    FeedPayload,
    FeedShape,
    NoUsableFeedsError,
    NormalisedFeed,
    normalise_feed,
    parse_feed,
)
from .merge import merge_feeds, merge_registries
from .feeds_config import (
    ConfigError,
    FeedConfig,
    Settings,
    default_settings,
    load_settings,
    settings_from_dict,
)
from .fetch import fetch_bytes, fetch_feed, fetch_feeds

__all__ = [
    # Normalisation
    "FeedError",
    "FeedFetchError",
    "FeedParseError",
    "FeedPayload",
    "FeedShape",
    "NoUsableFeedsError",
    "NormalisedFeed",
    "normalise_feed",
    "parse_feed",
    # Merging
    "merge_feeds",
    "merge_registries",
    # Configuration
    "ConfigError",
    "FeedConfig",
    "Settings",
    "default_settings",
    "load_settings",
    "settings_from_dict",
    # Fetching
    "fetch_bytes",
    "fetch_feed",
    "fetch_feeds",
]
