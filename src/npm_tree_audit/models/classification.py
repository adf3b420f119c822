"""Classification results handed to reporters."""

from __future__ import annotations

from dataclasses import dataclass, field

from .compromised_entry import Severity
from .installed_package import InstalledPackage


@dataclass(frozen=True)
class CompromisedFinding:
    """Installed version is itself listed as compromised."""

    installed: InstalledPackage
    matched_versions: frozenset[str]
    reporting_sources: frozenset[str]
    severity: Severity

    def to_dict(self) -> dict[str, object]:
        return {
            **self.installed.to_dict(),
            "knownBadVersions": sorted(self.matched_versions),
            "sources": sorted(self.reporting_sources),
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class SuspiciousFinding:
    """Identifier is listed, but not at the installed version."""

    installed: InstalledPackage
    known_bad_versions: frozenset[str]
    reporting_sources: frozenset[str]

    def to_dict(self) -> dict[str, object]:
        return {
            **self.installed.to_dict(),
            "knownBadVersions": sorted(self.known_bad_versions),
            "sources": sorted(self.reporting_sources),
        }


@dataclass
class ClassificationResult:
    """Partition of the installed set: compromised, suspicious, and a safe count."""

    compromised: list[CompromisedFinding] = field(default_factory=list)
    suspicious: list[SuspiciousFinding] = field(default_factory=list)
    safe_count: int = 0
    total_installed: int = 0
    registry_size: int = 0

    @property
    def has_compromised(self) -> bool:
        return bool(self.compromised)

    @property
    def partition_ok(self) -> bool:
        return len(self.compromised) + len(self.suspicious) + self.safe_count == self.total_installed

    @property
    def totals(self) -> dict[str, int]:
        return {
            "registry": self.registry_size,
            "installed": self.total_installed,
            "compromised": len(self.compromised),
            "suspicious": len(self.suspicious),
            "safe": self.safe_count,
        }
