"""Report aggregation and JSON-friendly output."""

from __future__ import annotations

from typing import Any

from .core import ScanOutcome


def aggregate(outcome: ScanOutcome) -> dict[str, Any]:
    """Flatten a scan outcome into a plain, JSON-serialisable dict.

    Findings keep the classifier's order. No formatting or colour is applied;
    presentation is left to whoever consumes the dict.
    """
    result = outcome.result
    feeds = outcome.registry_build.feeds

    report: dict[str, Any] = {
        "version": "1",
        "root": outcome.enumeration.root,
        "hasFindings": result.has_compromised,
        "compromised": [finding.to_dict() for finding in result.compromised],
        "suspicious": [finding.to_dict() for finding in result.suspicious],
        "feeds": [feed.to_dict() for feed in feeds],
        "issues": [issue.to_dict() for issue in outcome.enumeration.issues],
        "totals": {
            **result.totals,
            "registryVersions": outcome.registry.version_count,
            "feeds": len(feeds),
            "failedFeeds": len(outcome.registry_build.failed_feeds),
        },
    }

    return report
