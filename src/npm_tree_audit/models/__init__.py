"""Data models for the installation audit."""

from __future__ import annotations

from .classification import ClassificationResult, CompromisedFinding, SuspiciousFinding
from .compromised_entry import CompromisedEntry, Severity, VersionRecord
from .identifier import MalformedIdentifier, PackageIdentifier, PackageSpec, parse_spec
from .installed_package import InstalledPackage
from .registry import Registry
from .source_snapshot import FeedSnapshot

__all__ = [
    "ClassificationResult",
    "CompromisedEntry",
    "CompromisedFinding",
    "FeedSnapshot",
    "InstalledPackage",
    "MalformedIdentifier",
    "PackageIdentifier",
    "PackageSpec",
    "Registry",
    "Severity",
    "SuspiciousFinding",
    "VersionRecord",
    "parse_spec",
]
