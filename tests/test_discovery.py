"""Tests for walking an installed node_modules tree."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from npm_tree_audit.discovery import IssueKind, enumerate_installed
from npm_tree_audit.models import PackageIdentifier


def _by_path(result):
    return {pkg.install_path: pkg for pkg in result.packages}


def test_nested_copies_are_distinct(project, install_package):
    top = install_package(project / "node_modules", "foo", "1.0.0")
    nested = install_package(top / "node_modules", "foo", "0.9.0")

    result = enumerate_installed(project)

    packages = _by_path(result)
    assert set(packages) == {str(top), str(nested)}
    assert packages[str(top)].version == "1.0.0"
    assert packages[str(nested)].version == "0.9.0"
    assert all(pkg.identifier == PackageIdentifier(name="foo") for pkg in result.packages)


def test_walk_is_depth_first_preorder(project, install_package):
    container = project / "node_modules"
    a = install_package(container, "a", "1.0.0")
    install_package(a / "node_modules", "a-child", "1.0.0")
    install_package(container, "b", "1.0.0")

    names = [pkg.name for pkg in enumerate_installed(project).packages]

    assert names == ["a", "a-child", "b"]


def test_scoped_package_discovered(project, install_package):
    container = project / "node_modules"
    install_package(container, "@scope/bar", "2.0.0")
    install_package(container, "bar", "1.0.0")

    result = enumerate_installed(project)

    identifiers = {pkg.identifier: pkg.version for pkg in result.packages}
    assert identifiers[PackageIdentifier(name="bar", namespace="@scope")] == "2.0.0"
    assert identifiers[PackageIdentifier(name="bar")] == "1.0.0"


def test_same_identifier_and_version_at_two_paths_kept(project, install_package):
    container = project / "node_modules"
    install_package(container, "left", "1.0.0")
    install_package(container, "right", "1.0.0")
    install_package(container / "left" / "node_modules", "shared", "3.0.0")
    install_package(container / "right" / "node_modules", "shared", "3.0.0")

    shared = [pkg for pkg in enumerate_installed(project).packages if pkg.name == "shared"]

    assert len(shared) == 2
    assert len({pkg.install_path for pkg in shared}) == 2


def test_missing_version_excluded_walk_continues(project, install_package):
    container = project / "node_modules"
    broken = install_package(container, "broken", None)
    install_package(broken / "node_modules", "inner", "1.0.0")
    install_package(container, "ok", "1.0.0")

    with capture_logs() as logs:
        result = enumerate_installed(project)

    assert sorted(pkg.name for pkg in result.packages) == ["inner", "ok"]
    assert [issue.kind for issue in result.issues] == [IssueKind.MANIFEST_READ]
    assert any(log["event"] == "tree.manifest_unreadable" for log in logs)


def test_corrupt_and_missing_manifests_skipped(project, install_package):
    container = project / "node_modules"
    corrupt = container / "corrupt"
    corrupt.mkdir()
    (corrupt / "package.json").write_text("{ not json", encoding="utf-8")
    (container / "empty-dir").mkdir()
    install_package(container, "ok", "1.0.0")

    result = enumerate_installed(project)

    assert [pkg.name for pkg in result.packages] == ["ok"]
    assert {Path(issue.path).name for issue in result.issues} == {"corrupt", "empty-dir"}


def test_hidden_entries_and_files_ignored(project, install_package):
    container = project / "node_modules"
    (container / ".bin").mkdir()
    (container / ".package-lock.json").write_text("{}", encoding="utf-8")
    (container / "README.md").write_text("hi", encoding="utf-8")
    install_package(container, "ok", "1.0.0")

    result = enumerate_installed(project)

    assert [pkg.name for pkg in result.packages] == ["ok"]
    assert result.issues == []


def test_root_may_be_the_container(project, install_package):
    install_package(project / "node_modules", "foo", "1.0.0")

    result = enumerate_installed(project / "node_modules")

    assert [pkg.name for pkg in result.packages] == ["foo"]


def test_no_container_returns_empty(tmp_path):
    result = enumerate_installed(tmp_path)

    assert result.packages == []


def test_missing_root_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        enumerate_installed(tmp_path / "nope")


def test_depth_limit_logged(project, install_package):
    current = project / "node_modules"
    for level in range(4):
        package_dir = install_package(current, f"pkg{level}", "1.0.0")
        current = package_dir / "node_modules"

    with capture_logs() as logs:
        result = enumerate_installed(project, max_depth=2)

    assert [pkg.name for pkg in result.packages] == ["pkg0", "pkg1", "pkg2"]
    assert [issue.kind for issue in result.issues] == [IssueKind.DEPTH_LIMIT]
    assert any(log["event"] == "tree.depth_limit" for log in logs)


def test_unbounded_depth(project, install_package):
    current = project / "node_modules"
    for level in range(40):
        package_dir = install_package(current, f"pkg{level}", "1.0.0")
        current = package_dir / "node_modules"

    result = enumerate_installed(project, max_depth=None)

    assert result.total == 40
    assert result.issues == []


@pytest.mark.skipif(os.name == "nt" or os.geteuid() == 0, reason="needs POSIX non-root permissions")
def test_unreadable_subtree_skipped(project, install_package):
    container = project / "node_modules"
    locked = install_package(container, "locked", "1.0.0")
    install_package(locked / "node_modules", "hidden", "1.0.0")
    install_package(container, "ok", "1.0.0")
    (locked / "node_modules").chmod(0)
    try:
        result = enumerate_installed(project)
    finally:
        (locked / "node_modules").chmod(0o755)

    assert sorted(pkg.name for pkg in result.packages) == ["locked", "ok"]
    assert [issue.kind for issue in result.issues] == [IssueKind.DIRECTORY_READ]


def _deny(monkeypatch, *, listing=(), probing=()):
    """Make ``os.scandir`` or ``Path.is_dir`` raise PermissionError for given paths."""
    real_scandir = os.scandir
    real_is_dir = Path.is_dir
    listing = {str(path) for path in listing}
    probing = {str(path) for path in probing}

    def scandir(path="."):
        if str(path) in listing:
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)

    def is_dir(self, *args, **kwargs):
        if str(self) in probing:
            raise PermissionError(13, "Permission denied", str(self))
        return real_is_dir(self, *args, **kwargs)

    monkeypatch.setattr(os, "scandir", scandir)
    monkeypatch.setattr(Path, "is_dir", is_dir)


@pytest.mark.parametrize("workers", [1, 4])
def test_permission_denied_subtrees_are_skipped(project, install_package, monkeypatch, workers):
    container = project / "node_modules"
    unsearchable = install_package(container, "locked", "1.0.0")
    install_package(unsearchable / "node_modules", "hidden", "1.0.0")
    unlistable = install_package(container, "broken", "1.0.0")
    install_package(unlistable / "node_modules", "inner", "1.0.0")
    install_package(container, "ok", "1.0.0")
    _deny(
        monkeypatch,
        listing=[unlistable / "node_modules"],
        probing=[unsearchable / "node_modules"],
    )

    with capture_logs() as logs:
        result = enumerate_installed(project, workers=workers)

    assert sorted(pkg.name for pkg in result.packages) == ["broken", "locked", "ok"]
    assert all(issue.kind is IssueKind.DIRECTORY_READ for issue in result.issues)
    assert sorted(issue.path for issue in result.issues) == sorted(
        [str(unlistable / "node_modules"), str(unsearchable / "node_modules")]
    )
    unreadable = [log for log in logs if log["event"] == "tree.directory_unreadable"]
    assert len(unreadable) == 2
    assert all(log["log_level"] == "warning" for log in unreadable)


def test_permission_denied_start_container(project, install_package, monkeypatch):
    install_package(project / "node_modules", "foo", "1.0.0")
    _deny(monkeypatch, probing=[project / "node_modules"])

    result = enumerate_installed(project)

    assert result.packages == []
    assert [issue.kind for issue in result.issues] == [IssueKind.DIRECTORY_READ]


@pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")
def test_symlink_cycle_not_followed_twice(project, install_package):
    container = project / "node_modules"
    loop = install_package(container, "loop", "1.0.0")
    (loop / "node_modules").symlink_to(container, target_is_directory=True)

    result = enumerate_installed(project)

    assert [pkg.name for pkg in result.packages] == ["loop"]


def test_parallel_walk_matches_sequential(project, install_package):
    container = project / "node_modules"
    for name in ("a", "b", "c", "@s/d"):
        package_dir = install_package(container, name, "1.0.0")
        install_package(package_dir / "node_modules", "inner", "2.0.0")

    sequential = enumerate_installed(project)
    parallel = enumerate_installed(project, workers=4)

    assert parallel.packages == sequential.packages
    assert parallel.total == 8
