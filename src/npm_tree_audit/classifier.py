"""Cross-reference installed packages against the compromised registry."""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from .models.classification import ClassificationResult, CompromisedFinding, SuspiciousFinding
from .models.installed_package import InstalledPackage
from .models.registry import Registry

logger = structlog.get_logger()


def classify(installed: Iterable[InstalledPackage], registry: Registry) -> ClassificationResult:
    """Partition ``installed`` into compromised, suspicious and safe.

    Matching is by exact version string. Every installed copy lands in
    exactly one bucket.
    """
    result = ClassificationResult(registry_size=len(registry))

    for package in installed:
        result.total_installed += 1
        entry = registry.get(package.identifier)

        if entry is None:
            result.safe_count += 1
            continue

        record = entry.versions.get(package.version)
        if record is not None:
            result.compromised.append(
                CompromisedFinding(
                    installed=package,
                    matched_versions=entry.bad_versions,
                    reporting_sources=frozenset(record.sources),
                    severity=record.severity,
                )
            )
            continue

        result.suspicious.append(
            SuspiciousFinding(
                installed=package,
                known_bad_versions=entry.bad_versions,
                reporting_sources=entry.all_sources,
            )
        )

    logger.info("classification.completed", **result.totals)
    return result
