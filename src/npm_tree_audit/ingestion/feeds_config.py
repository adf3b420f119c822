"""Configuration loader for multi-feed audits.

Reads the settings file (JSON, or YAML when the suffix is ``.yml``/``.yaml``)
and validates it against ``SETTINGS_SCHEMA``. Each feed entry must have an
``id`` and ``url`` (a URL or a local file path); optional fields are
``enabled`` (default True) and ``description``.

When no settings file exists, the built-in default feeds are used.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator

from ..discovery import DEFAULT_CONTAINER, DEFAULT_MAX_DEPTH

DEFAULT_CONFIG_PATH = Path("npm-tree-audit.json")
CONFIG_PATH_ENV_VAR = "NPM_TREE_AUDIT_CONFIG"

DEFAULT_FEEDS: tuple[dict[str, Any], ...] = (
    {
        "id": "gensecaihq",
        "url": (
            "https://raw.githubusercontent.com/gensecaihq/"
            "Shai-Hulud-2.0-Detector/main/compromised-packages.json"
        ),
        "description": "Shai-Hulud 2.0 detector compromised package list",
    },
    {
        "id": "tenable",
        "url": (
            "https://raw.githubusercontent.com/tenable/"
            "shai-hulud-second-coming-affected-packages/main/list.json"
        ),
        "description": "Tenable affected packages list",
    },
    {
        "id": "safedep",
        "url": (
            "https://raw.githubusercontent.com/safedep/"
            "shai-hulud-migration-response/main/data/ioc/malicious-package-versions.jsonl"
        ),
        "description": "SafeDep malicious package versions (JSON lines)",
        "enabled": False,
    },
    {
        "id": "wiz",
        "url": (
            "https://raw.githubusercontent.com/wiz-sec-public/"
            "wiz-research-iocs/main/reports/shai-hulud-2-packages.csv"
        ),
        "description": "Wiz Research IOC list (CSV)",
        "enabled": False,
    },
)

SETTINGS_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["feeds"],
    "properties": {
        "feeds": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["id", "url"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "url": {"type": "string", "minLength": 1},
                    "enabled": {"type": "boolean"},
                    "description": {"type": "string"},
                },
                "additionalProperties": False,
            },
        },
        "container": {"type": "string", "minLength": 1},
        "max_depth": {"type": "integer", "minimum": 1},
    },
    "additionalProperties": False,
}


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be loaded or is invalid."""


@dataclass(slots=True, frozen=True)
class FeedConfig:
    """Configuration for a single feed."""

    id: str
    url: str
    enabled: bool = True
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FeedConfig:
        return cls(
            id=data["id"],
            url=data["url"],
            enabled=data.get("enabled", True),
            description=data.get("description", ""),
        )


@dataclass(slots=True, frozen=True)
class Settings:
    """Top-level settings container."""

    feeds: list[FeedConfig]
    container: str = DEFAULT_CONTAINER
    max_depth: int = DEFAULT_MAX_DEPTH
    path: Path | None = field(default=None, compare=False)

    def get_enabled_feeds(self) -> list[FeedConfig]:
        """Return only the feeds that are enabled."""
        return [feed for feed in self.feeds if feed.enabled]

    def get_feed_by_id(self, feed_id: str) -> FeedConfig | None:
        """Return the feed config with the given ID, or None if not found."""
        for feed in self.feeds:
            if feed.id == feed_id:
                return feed
        return None


def _format_errors(errors: list[Any]) -> str:
    messages = []
    for error in errors:
        pointer = "/".join(str(p) for p in error.path)
        messages.append(f"- {pointer or '<root>'}: {error.message}")
    return "\n".join(messages)


def _resolve_config_path(path: Path | str | None = None) -> Path | None:
    """Resolve the configuration file path.

    Priority:
    1. Explicit path argument
    2. NPM_TREE_AUDIT_CONFIG environment variable
    3. ``npm-tree-audit.json`` in the working directory, if present
    """
    if path is not None:
        return Path(path)

    env_path = os.environ.get(CONFIG_PATH_ENV_VAR)
    if env_path:
        return Path(env_path)

    if DEFAULT_CONFIG_PATH.exists():
        return DEFAULT_CONFIG_PATH
    return None


def _parse_document(config_path: Path, content: str) -> Any:
    if config_path.suffix.lower() in {".yml", ".yaml"}:
        try:
            return yaml.safe_load(content)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in configuration file: {exc}") from exc
    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in configuration file: {exc}") from exc


def settings_from_dict(data: Any, path: Path | None = None) -> Settings:
    """Validate a decoded settings document and build ``Settings``.

    Raises:
        ConfigError: If the document violates the schema or repeats a feed ID.
    """
    validator = Draft202012Validator(SETTINGS_SCHEMA)
    errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])
    if errors:
        raise ConfigError("Invalid configuration:\n" + _format_errors(errors))

    feeds: list[FeedConfig] = []
    seen_ids: set[str] = set()
    for feed_data in data["feeds"]:
        feed_config = FeedConfig.from_dict(feed_data)
        if feed_config.id in seen_ids:
            raise ConfigError(f"Duplicate feed ID: '{feed_config.id}'")
        seen_ids.add(feed_config.id)
        feeds.append(feed_config)

    return Settings(
        feeds=feeds,
        container=data.get("container", DEFAULT_CONTAINER),
        max_depth=data.get("max_depth", DEFAULT_MAX_DEPTH),
        path=path,
    )


def default_settings() -> Settings:
    return settings_from_dict({"feeds": [dict(feed) for feed in DEFAULT_FEEDS]})


def load_settings(path: Path | str | None = None) -> Settings:
    """Load and validate settings.

    Args:
        path: Optional path to the config file. If not provided, uses the
            NPM_TREE_AUDIT_CONFIG env var, then ``npm-tree-audit.json`` in the
            working directory, then the built-in defaults.

    Raises:
        ConfigError: If the file cannot be read or contains invalid data.
    """
    config_path = _resolve_config_path(path)
    if config_path is None:
        return default_settings()

    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read configuration file: {exc}") from exc

    return settings_from_dict(_parse_document(config_path, content), path=config_path)
