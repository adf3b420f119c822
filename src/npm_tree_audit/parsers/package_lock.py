"""Parse npm package-lock.json into installed package copies.

Lockfile v2+ ``packages`` keys are install paths
(``node_modules/a/node_modules/@scope/b``), so nested copies keep their own
location. The v1 ``dependencies`` tree is flattened into the same path form.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from ..models.identifier import MalformedIdentifier, PackageIdentifier
from ..models.installed_package import InstalledPackage

CONTAINER_SEGMENT = "node_modules/"


def identifier_from_install_path(key: str) -> PackageIdentifier:
    """Return the identifier of the innermost package in an install path."""
    _, sep, tail = key.rpartition(CONTAINER_SEGMENT)
    if not sep:
        raise MalformedIdentifier(f"Not an install path: {key!r}")
    return PackageIdentifier.parse(tail)


def _flatten_v1(
    deps: dict[str, Any], prefix: str, pairs: list[InstalledPackage], seen: set[str]
) -> None:
    for name, meta in deps.items():
        if not isinstance(meta, dict):
            continue
        install_path = f"{prefix}{CONTAINER_SEGMENT}{name}"
        version = meta.get("version")
        if isinstance(version, str) and version and install_path not in seen:
            try:
                identifier = PackageIdentifier.parse(name)
            except MalformedIdentifier:
                identifier = None
            if identifier is not None:
                seen.add(install_path)
                pairs.append(
                    InstalledPackage(identifier=identifier, version=version, install_path=install_path)
                )
        nested = meta.get("dependencies")
        if isinstance(nested, dict):
            _flatten_v1(nested, f"{install_path}/", pairs, seen)


def parse_data(data: dict[str, Any]) -> list[InstalledPackage]:
    """Return installed copies from an already-decoded lockfile."""
    pairs: list[InstalledPackage] = []
    seen: set[str] = set()

    # npm v2+ format
    packages = data.get("packages")
    if isinstance(packages, dict):
        for key, meta in packages.items():
            if not isinstance(meta, dict) or CONTAINER_SEGMENT not in key:
                continue
            if meta.get("link"):
                continue
            version = meta.get("version")
            if not isinstance(version, str) or not version:
                continue
            try:
                identifier = identifier_from_install_path(key)
            except MalformedIdentifier:
                continue
            seen.add(key)
            pairs.append(InstalledPackage(identifier=identifier, version=version, install_path=key))
        return pairs

    # npm v1 format fallback
    deps = data.get("dependencies")
    if isinstance(deps, dict):
        _flatten_v1(deps, "", pairs, seen)

    return pairs


def parse(path: Path) -> list[InstalledPackage]:
    """Return installed copies recorded in the lockfile at ``path``.

    Supports npm v1 ("dependencies" tree) and v2+ ("packages" map).
    """
    import json

    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path} is not a package-lock.json object")
    return parse_data(data)
