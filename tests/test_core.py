"""End-to-end tests for registry building and installation scans."""

from __future__ import annotations

import json

import pytest

from npm_tree_audit.core import build_registry, enumeration_from_packages, scan_installation
from npm_tree_audit.ingestion import FeedPayload, NoUsableFeedsError
from npm_tree_audit.models import InstalledPackage, PackageIdentifier
from npm_tree_audit.report import aggregate


def _feeds():
    return [
        FeedPayload(
            source="gensec",
            content=json.dumps(
                {"packages": [{"name": "foo", "version": "1.0.0", "severity": "high"}]}
            ).encode(),
        ),
        FeedPayload(source="tenable", content=[{"package": "foo", "version": "1.0.0"}]),
        FeedPayload(source="notes", content="@scope/bar:2.0.0\n"),
        FeedPayload(source="broken", content=b"\x00\x01 not a feed"),
    ]


def test_build_registry_mixes_structured_and_text_feeds():
    build = build_registry(_feeds())

    foo = build.registry.get(PackageIdentifier(name="foo"))
    assert foo.versions["1.0.0"].sources == {"gensec", "tenable"}
    assert PackageIdentifier(name="bar", namespace="@scope") in build.registry
    assert len(build.registry) == 2
    assert [feed.source for feed in build.failed_feeds] == ["broken"]
    assert build.usable


def test_scan_installation_end_to_end(project, install_package):
    container = project / "node_modules"
    foo = install_package(container, "foo", "2.0.0")
    install_package(foo / "node_modules", "foo", "1.0.0")
    install_package(container, "@scope/bar", "2.0.0")
    install_package(container, "bar", "2.0.0")
    install_package(container, "baz", "3.0.0")

    outcome = scan_installation(project, _feeds())
    result = outcome.result

    assert sorted(f.installed.name for f in result.compromised) == ["@scope/bar", "foo"]
    assert [f.installed.version for f in result.suspicious] == ["2.0.0"]
    assert result.safe_count == 2
    assert result.total_installed == 5
    assert result.partition_ok


def test_all_feeds_failing_is_fatal(project, install_package):
    install_package(project / "node_modules", "foo", "1.0.0")
    payloads = [
        FeedPayload(source="a", content=b""),
        FeedPayload(source="b", content="<html></html>"),
    ]

    with pytest.raises(NoUsableFeedsError):
        scan_installation(project, payloads)


def test_no_feeds_is_fatal(project):
    with pytest.raises(NoUsableFeedsError):
        scan_installation(project, [])


def test_report_is_plain_data(project, install_package):
    install_package(project / "node_modules", "foo", "1.0.0")

    report = aggregate(scan_installation(project, _feeds()))

    assert report["hasFindings"] is True
    assert report["compromised"][0]["name"] == "foo"
    assert report["compromised"][0]["sources"] == ["gensec", "tenable"]
    assert report["totals"]["installed"] == 1
    assert report["totals"]["registry"] == 2
    assert report["totals"]["failedFeeds"] == 1
    assert json.loads(json.dumps(report)) == report


def test_enumeration_from_packages_keeps_first_per_path():
    first = InstalledPackage(PackageIdentifier(name="foo"), "1.0.0", "node_modules/foo")
    duplicate = InstalledPackage(PackageIdentifier(name="foo"), "9.9.9", "node_modules/foo")
    other = InstalledPackage(PackageIdentifier(name="foo"), "1.0.0", "node_modules/a/node_modules/foo")

    enumeration = enumeration_from_packages("/root", [first, duplicate, other])

    assert enumeration.packages == [first, other]
