"""Installed package discovery.

Walks a nested ``node_modules`` installation and returns every physical
package copy, including private copies nested under other packages. Scoped
packages live one level deeper (``node_modules/@scope/name``).

The walk uses an explicit stack rather than recursion. Unreadable
directories and broken manifests are recorded as issues and skipped; they
never abort the walk.
"""

from __future__ import annotations

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import structlog

from .models.identifier import NAMESPACE_MARKER, MalformedIdentifier, PackageIdentifier
from .models.installed_package import InstalledPackage
from .parsers.package_json import MANIFEST_NAME, ManifestError, read_version

logger = structlog.get_logger()

DEFAULT_CONTAINER = "node_modules"
DEFAULT_MAX_DEPTH = 32


class IssueKind(str, Enum):
    DIRECTORY_READ = "directory-read-failure"
    MANIFEST_READ = "manifest-read-failure"
    DEPTH_LIMIT = "depth-limit"


@dataclass(frozen=True)
class EnumerationIssue:
    """A subtree or package that was skipped during the walk."""

    kind: IssueKind
    path: str
    detail: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "path": self.path, "detail": self.detail}


@dataclass
class EnumerationResult:
    root: str
    packages: list[InstalledPackage] = field(default_factory=list)
    issues: list[EnumerationIssue] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.packages)


# (path, container nesting level, identifier); identifier is None for containers
_Frame = tuple[Path, int, PackageIdentifier | None]


class _TreeWalker:
    def __init__(self, container_name: str, max_depth: int | None) -> None:
        self.container_name = container_name
        self.max_depth = max_depth
        self.issues: list[EnumerationIssue] = []
        self._seen_paths: set[str] = set()
        self._visited_containers: set[str] = set()
        self._lock = threading.Lock()

    def _issue(self, kind: IssueKind, path: Path, detail: str) -> None:
        with self._lock:
            self.issues.append(EnumerationIssue(kind=kind, path=str(path), detail=detail))

    def enter_container(self, container: Path, level: int) -> bool:
        if self.max_depth is not None and level > self.max_depth:
            logger.warning("tree.depth_limit", path=str(container), max_depth=self.max_depth)
            self._issue(IssueKind.DEPTH_LIMIT, container, f"deeper than {self.max_depth} levels")
            return False

        real = os.path.realpath(container)
        with self._lock:
            if real in self._visited_containers:
                logger.debug("tree.container_revisited", path=str(container), real_path=real)
                return False
            self._visited_containers.add(real)
        return True

    def _scan_dirs(self, directory: Path) -> list[os.DirEntry[str]]:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            logger.warning("tree.directory_unreadable", path=str(directory), error=str(exc))
            self._issue(IssueKind.DIRECTORY_READ, directory, str(exc))
            return []

        dirs = []
        for entry in entries:
            if entry.name.startswith("."):
                continue
            try:
                if entry.is_dir():
                    dirs.append(entry)
            except OSError as exc:
                logger.warning("tree.entry_unreadable", path=entry.path, error=str(exc))
                self._issue(IssueKind.DIRECTORY_READ, Path(entry.path), str(exc))
        return dirs

    def list_packages(self, container: Path) -> list[tuple[Path, PackageIdentifier]]:
        """Return ``(package_dir, identifier)`` pairs held by one container."""
        found: list[tuple[Path, PackageIdentifier]] = []
        for entry in self._scan_dirs(container):
            try:
                if entry.name.startswith(NAMESPACE_MARKER):
                    for child in self._scan_dirs(Path(entry.path)):
                        identifier = PackageIdentifier(name=child.name, namespace=entry.name)
                        found.append((Path(child.path), identifier))
                else:
                    found.append((Path(entry.path), PackageIdentifier(name=entry.name)))
            except MalformedIdentifier as exc:
                logger.debug("tree.not_a_package", path=entry.path, reason=str(exc))
        return found

    def record(self, package_dir: Path, identifier: PackageIdentifier) -> InstalledPackage | None:
        try:
            version = read_version(package_dir / MANIFEST_NAME)
        except ManifestError as exc:
            logger.warning("tree.manifest_unreadable", path=str(package_dir), error=str(exc))
            self._issue(IssueKind.MANIFEST_READ, package_dir, str(exc))
            return None

        install_path = str(package_dir)
        with self._lock:
            if install_path in self._seen_paths:
                return None
            self._seen_paths.add(install_path)
        return InstalledPackage(identifier=identifier, version=version, install_path=install_path)

    def is_container(self, directory: Path) -> bool:
        try:
            return directory.is_dir()
        except OSError as exc:
            logger.warning("tree.directory_unreadable", path=str(directory), error=str(exc))
            self._issue(IssueKind.DIRECTORY_READ, directory, str(exc))
            return False

    def nested_container(self, package_dir: Path) -> Path | None:
        nested = package_dir / self.container_name
        return nested if self.is_container(nested) else None

    def walk(self, frames: list[_Frame]) -> list[InstalledPackage]:
        """Depth-first, pre-order walk starting from ``frames``."""
        packages: list[InstalledPackage] = []
        stack = list(reversed(frames))
        while stack:
            path, level, identifier = stack.pop()

            if identifier is None:
                if not self.enter_container(path, level):
                    continue
                children = self.list_packages(path)
                stack.extend((child, level, ident) for child, ident in reversed(children))
                continue

            installed = self.record(path, identifier)
            if installed is not None:
                packages.append(installed)

            nested = self.nested_container(path)
            if nested is not None:
                stack.append((nested, level + 1, None))

        return packages


def _start_container(root: Path, container_name: str) -> Path:
    if root.name == container_name:
        return root
    return root / container_name


def enumerate_installed(
    root: Path | str,
    *,
    container: str = DEFAULT_CONTAINER,
    max_depth: int | None = DEFAULT_MAX_DEPTH,
    workers: int = 1,
) -> EnumerationResult:
    """Return every installed package copy under ``root``.

    Params:
        root: project directory holding a ``container`` directory, or the
            container directory itself
        container: name of the per-package dependency directory
        max_depth: maximum container nesting to follow; None for unbounded
        workers: when above 1, top-level subtrees are walked concurrently

    Raises:
        FileNotFoundError: If ``root`` does not exist.
        NotADirectoryError: If ``root`` is not a directory.
    """
    root = Path(root).absolute()
    if not root.exists():
        raise FileNotFoundError(f"Root directory not found: {root}")
    if not root.is_dir():
        raise NotADirectoryError(f"Root is not a directory: {root}")

    result = EnumerationResult(root=str(root))
    start = _start_container(root, container)
    walker = _TreeWalker(container, max_depth)
    if not walker.is_container(start):
        if not walker.issues:
            logger.warning("tree.no_container", root=str(root), container=container)
        result.issues = walker.issues
        return result

    if workers <= 1:
        result.packages = walker.walk([(start, 0, None)])
    elif walker.enter_container(start, 0):
        subtrees = walker.list_packages(start)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            chunks = pool.map(lambda item: walker.walk([(item[0], 0, item[1])]), subtrees)
            for chunk in chunks:
                result.packages.extend(chunk)

    result.issues = walker.issues
    logger.info(
        "tree.enumerated",
        root=str(root),
        packages=result.total,
        issues=len(result.issues),
    )
    return result

