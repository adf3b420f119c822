"""Shared test fixtures for npm-tree-audit tests."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import structlog

from npm_tree_audit.models import PackageIdentifier, Registry


def write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    structlog.reset_defaults()


@pytest.fixture
def install_package() -> Callable[..., Path]:
    """Create ``<container>/<name>/package.json`` and return the package dir."""

    def _install(container: Path, name: str, version: str | None, **extra: Any) -> Path:
        package_dir = container.joinpath(*name.split("/"))
        manifest: dict[str, Any] = {"name": name, **extra}
        if version is not None:
            manifest["version"] = version
        write_json(package_dir / "package.json", manifest)
        return package_dir

    return _install


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """An empty project directory with a ``node_modules`` container."""
    (tmp_path / "node_modules").mkdir()
    return tmp_path


@pytest.fixture
def registry_factory() -> Callable[..., Registry]:
    """Build a registry from ``{"name": {"version": ["source", ...]}}``."""

    def _build(spec: dict[str, dict[str, list[str]]]) -> Registry:
        registry = Registry()
        for name, versions in spec.items():
            identifier = PackageIdentifier.parse(name)
            for version, sources in versions.items():
                for source in sources:
                    registry.add(identifier, version, source=source)
        return registry

    return _build
