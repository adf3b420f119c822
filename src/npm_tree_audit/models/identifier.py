"""Package identity model.

Identifiers are compared exactly (namespace and name, case-sensitive); every
registry lookup relies on that equality.
"""

from __future__ import annotations

from dataclasses import dataclass

NAMESPACE_MARKER = "@"


class MalformedIdentifier(ValueError):
    """Raised when a package name or ``name@version`` spec cannot be parsed."""


@dataclass(frozen=True)
class PackageIdentifier:
    """A package name, optionally namespaced (``@scope/name``)."""

    name: str
    namespace: str | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise MalformedIdentifier("Package name must be non-empty")
        if self.namespace is not None:
            if not self.namespace.startswith(NAMESPACE_MARKER) or len(self.namespace) < 2:
                raise MalformedIdentifier(f"Invalid namespace: {self.namespace!r}")

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    @property
    def is_namespaced(self) -> bool:
        return self.namespace is not None

    @classmethod
    def parse(cls, text: str) -> PackageIdentifier:
        """Parse ``name`` or ``@scope/name`` (no version)."""
        text = text.strip()
        if not text:
            raise MalformedIdentifier("Package name must be non-empty")
        if text.startswith(NAMESPACE_MARKER):
            scope, sep, name = text.partition("/")
            if not sep or len(scope) < 2 or not name or "/" in name:
                raise MalformedIdentifier(f"Invalid namespaced package name: {text!r}")
            return cls(name=name, namespace=scope)
        return cls(name=text)


@dataclass(frozen=True)
class PackageSpec:
    """An identifier pinned to one exact version."""

    identifier: PackageIdentifier
    version: str

    def __str__(self) -> str:
        return f"{self.identifier}@{self.version}"


def parse_spec(text: str) -> PackageSpec:
    """Split ``name@version`` or ``@scope/name@version`` on the last ``@``.

    A leading ``@`` opens a namespace and is never treated as the separator.
    """
    text = text.strip()
    start = 1 if text.startswith(NAMESPACE_MARKER) else 0
    idx = text.rfind("@", start)
    if idx <= 0:
        raise MalformedIdentifier(f"No version separator in {text!r}")

    name, version = text[:idx], text[idx + 1 :].strip()
    if not version:
        raise MalformedIdentifier(f"Missing version in {text!r}")
    return PackageSpec(identifier=PackageIdentifier.parse(name), version=version)
