"""In-memory registry of compromised identifiers."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from .compromised_entry import CompromisedEntry, Severity
from .identifier import PackageIdentifier


class Registry:
    """Mapping of ``PackageIdentifier`` to ``CompromisedEntry``."""

    def __init__(self, entries: Iterable[CompromisedEntry] = ()) -> None:
        self._entries: dict[PackageIdentifier, CompromisedEntry] = {}
        for entry in entries:
            self.absorb_entry(entry)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entries

    def __iter__(self) -> Iterator[CompromisedEntry]:
        return iter(self._entries.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Registry):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"Registry(identifiers={len(self)}, versions={self.version_count})"

    def get(self, identifier: PackageIdentifier) -> CompromisedEntry | None:
        return self._entries.get(identifier)

    def add(
        self,
        identifier: PackageIdentifier,
        version: str,
        *,
        source: str,
        severity: Severity = Severity.HIGH,
        provenance: Iterable[str] = (),
    ) -> None:
        """Record that ``source`` lists ``identifier@version`` as compromised."""
        entry = self._entries.get(identifier)
        if entry is None:
            entry = CompromisedEntry(identifier=identifier)
            self._entries[identifier] = entry
        entry.add_version(version, source=source, severity=severity, provenance=provenance)

    def absorb_entry(self, entry: CompromisedEntry) -> None:
        existing = self._entries.get(entry.identifier)
        if existing is None:
            self._entries[entry.identifier] = entry.copy()
        else:
            existing.absorb(entry)

    def copy(self) -> Registry:
        return Registry(self._entries.values())

    def identifiers(self) -> list[PackageIdentifier]:
        return sorted(self._entries, key=str)

    @property
    def version_count(self) -> int:
        return sum(len(entry.versions) for entry in self._entries.values())

    def to_dict(self) -> dict[str, object]:
        return {
            "packages": [self._entries[identifier].to_dict() for identifier in self.identifiers()],
            "totals": {"packages": len(self), "versions": self.version_count},
        }
