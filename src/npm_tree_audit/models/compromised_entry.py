"""Compromised entry model: everything known about one identifier."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from .identifier import PackageIdentifier


class Severity(str, Enum):
    """Feed-reported severity, ordered critical > high > medium > low."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def coerce(cls, value: object, default: Severity) -> Severity:
        """Return the matching member, or ``default`` for anything unrecognised."""
        if isinstance(value, Severity):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return default
        return default

    @staticmethod
    def highest(first: Severity, second: Severity) -> Severity:
        return first if first.rank >= second.rank else second


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


@dataclass
class VersionRecord:
    """Feeds reporting one bad version, with the highest severity seen."""

    sources: set[str] = field(default_factory=set)
    severity: Severity = Severity.HIGH
    provenance: set[str] = field(default_factory=set)

    def absorb(self, other: VersionRecord) -> None:
        self.sources |= other.sources
        self.provenance |= other.provenance
        self.severity = Severity.highest(self.severity, other.severity)

    def copy(self) -> VersionRecord:
        return VersionRecord(
            sources=set(self.sources),
            severity=self.severity,
            provenance=set(self.provenance),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "sources": sorted(self.sources),
            "severity": self.severity.value,
            "provenance": sorted(self.provenance),
        }


@dataclass
class CompromisedEntry:
    """Union of every feed's knowledge about one identifier.

    A version is present only when at least one feed reported it, and its
    source set is never empty.
    """

    identifier: PackageIdentifier
    versions: dict[str, VersionRecord] = field(default_factory=dict)

    def add_version(
        self,
        version: str,
        *,
        source: str,
        severity: Severity = Severity.HIGH,
        provenance: Iterable[str] = (),
    ) -> None:
        if not version:
            raise ValueError("Compromised version must be non-empty")
        if not source:
            raise ValueError("Source label must be non-empty")
        incoming = VersionRecord(sources={source}, severity=severity, provenance=set(provenance))
        existing = self.versions.get(version)
        if existing is None:
            self.versions[version] = incoming
        else:
            existing.absorb(incoming)

    def absorb(self, other: CompromisedEntry) -> None:
        if other.identifier != self.identifier:
            raise ValueError(f"Cannot merge {other.identifier} into {self.identifier}")
        for version, record in other.versions.items():
            existing = self.versions.get(version)
            if existing is None:
                self.versions[version] = record.copy()
            else:
                existing.absorb(record)

    def copy(self) -> CompromisedEntry:
        return CompromisedEntry(
            identifier=self.identifier,
            versions={version: record.copy() for version, record in self.versions.items()},
        )

    @property
    def bad_versions(self) -> frozenset[str]:
        return frozenset(self.versions)

    @property
    def all_sources(self) -> frozenset[str]:
        sources: set[str] = set()
        for record in self.versions.values():
            sources |= record.sources
        return frozenset(sources)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": str(self.identifier),
            "versions": {
                version: self.versions[version].to_dict() for version in sorted(self.versions)
            },
        }
