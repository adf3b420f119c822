"""Installed package model."""

from __future__ import annotations

from dataclasses import dataclass

from .identifier import PackageIdentifier


@dataclass(frozen=True)
class InstalledPackage:
    """One physical on-disk copy of a package.

    Several copies may share an identifier (and even a version); each is
    audited on its own because ``install_path`` differs.
    """

    identifier: PackageIdentifier
    version: str
    install_path: str

    def __post_init__(self) -> None:
        if not self.version:
            raise ValueError("Installed version must be non-empty")
        if not self.install_path:
            raise ValueError("install_path must be provided")

    @property
    def name(self) -> str:
        return str(self.identifier)

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "version": self.version,
            "path": self.install_path,
        }
