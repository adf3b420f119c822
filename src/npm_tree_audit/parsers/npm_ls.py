"""Flatten ``npm ls --json --all`` output into installed package copies."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from ..models.identifier import MalformedIdentifier, PackageIdentifier
from ..models.installed_package import InstalledPackage


def _walk(deps: dict[str, Any], found: list[InstalledPackage]) -> None:
    """Pre-order walk of the nested ``dependencies`` objects."""
    seen: set[str] = set()
    stack: list[tuple[str, Any, str]] = [
        (name, info, "") for name, info in reversed(list(deps.items()))
    ]
    while stack:
        name, info, prefix = stack.pop()
        if not isinstance(info, dict):
            continue
        synthetic = f"{prefix}node_modules/{name}"
        recorded_path = info.get("path")
        install_path = recorded_path if isinstance(recorded_path, str) and recorded_path else synthetic

        version = info.get("version")
        if isinstance(version, str) and version and install_path not in seen:
            try:
                identifier = PackageIdentifier.parse(name)
            except MalformedIdentifier:
                identifier = None
            if identifier is not None:
                seen.add(install_path)
                found.append(
                    InstalledPackage(identifier=identifier, version=version, install_path=install_path)
                )

        nested = info.get("dependencies")
        if isinstance(nested, dict):
            stack.extend(
                (child, child_info, f"{synthetic}/")
                for child, child_info in reversed(list(nested.items()))
            )


def parse_data(data: dict[str, Any]) -> list[InstalledPackage]:
    """Return installed copies from decoded ``npm ls --json`` output.

    Nodes without a version (missing or deduped placeholders) are skipped.
    When npm omits ``path`` (``--long`` not given) a path is synthesised from
    the ancestry, e.g. ``node_modules/a/node_modules/b``.
    """
    found: list[InstalledPackage] = []
    deps = data.get("dependencies")
    if isinstance(deps, dict):
        _walk(deps, found)
    return found


def parse(path: Path) -> list[InstalledPackage]:
    import json

    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path} is not an npm ls JSON object")
    return parse_data(data)
