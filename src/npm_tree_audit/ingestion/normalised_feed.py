"""Normalise one feed document into a partial registry.

Feeds arrive in several shapes. The shape is found by structural probing, in
this order:

1. an object with an array field of records (``{"packages": [...]}``)
2. a bare array of records
3. line-oriented text (pipe tables, ``name:version`` / ``name@version`` lines,
   JSON lines, or a ``Package,Version`` CSV table)
4. anything else is unrecognised and contributes nothing

A feed that cannot be parsed never aborts the run; ``normalise_feed`` reports
the problem on the returned ``NormalisedFeed`` instead of raising.
"""

from __future__ import annotations

import csv
import io
import json
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeAlias, Union

import structlog

from ..models.compromised_entry import Severity
from ..models.identifier import MalformedIdentifier, PackageIdentifier, parse_spec
from ..models.registry import Registry
from ..models.source_snapshot import FeedSnapshot

logger = structlog.get_logger()

RawContent: TypeAlias = Union[bytes, str, dict, list]

# Array fields probed before any other field of an object feed.
PREFERRED_ARRAY_FIELDS = ("packages", "compromisedPackages")

OBJECT_DEFAULT_SEVERITY = Severity.HIGH
OBJECT_DEFAULT_PROVENANCE = "unknown"
ARRAY_DEFAULT_SEVERITY = Severity.CRITICAL
TEXT_DEFAULT_SEVERITY = Severity.HIGH

_VERSION_PATTERN = re.compile(r"^[0-9A-Za-z.+-]+$")
_LINE_PATTERN = re.compile(
    r"^(?P<name>@?[^\s:@|,]+(?:/[^\s:@|,]+)?)\s*[:@]\s*(?P<version>[0-9A-Za-z.+-]+)$"
)
_TABLE_SEPARATOR = re.compile(r"^:?-{2,}:?$")


class FeedError(RuntimeError):
    """Base error for failures while fetching or parsing a feed."""


class FeedFetchError(FeedError):
    """Raised when a feed cannot be fetched."""


class FeedParseError(FeedError):
    """Raised when a feed matches none of the supported shapes."""


class NoUsableFeedsError(FeedError):
    """Raised when every supplied feed contributed zero entries."""


class FeedShape(str, Enum):
    OBJECT_ARRAY = "object-array"
    BARE_ARRAY = "bare-array"
    TABULAR_TEXT = "tabular-text"
    UNRECOGNISED = "unrecognised"


@dataclass(frozen=True)
class FeedPayload:
    """An already-fetched feed document and its human-readable label."""

    source: str
    content: RawContent
    snapshot: FeedSnapshot | None = None

    def __post_init__(self) -> None:
        if not self.source:
            raise ValueError("Feed source label must be non-empty")


@dataclass(slots=True)
class NormalisedFeed:
    """Partial registry built from a single feed, plus parse bookkeeping."""

    source: str
    shape: FeedShape
    registry: Registry
    total_records: int = 0
    skipped_records: list[str] = field(default_factory=list)
    error: str | None = None
    snapshot: FeedSnapshot | None = None

    @property
    def package_count(self) -> int:
        return len(self.registry)

    @property
    def version_count(self) -> int:
        return self.registry.version_count

    @property
    def contributed(self) -> bool:
        return len(self.registry) > 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "source": self.source,
            "shape": self.shape.value,
            "packages": self.package_count,
            "versions": self.version_count,
            "records": self.total_records,
            "skipped": len(self.skipped_records),
        }
        if self.error:
            data["error"] = self.error
        if self.snapshot is not None:
            data["snapshot"] = self.snapshot.to_dict()
        return data


@dataclass(frozen=True)
class _Record:
    identifier: PackageIdentifier
    version: str
    severity: Severity
    provenance: str


@dataclass
class _Extraction:
    shape: FeedShape
    records: list[_Record] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    total: int = 0

    def skip(self, reason: str) -> None:
        self.skipped.append(reason)


# ---- Decoding -----------------------------------------------------------------------------


def _decode(content: RawContent) -> tuple[Any, str | None]:
    """Return ``(structured, text)``; ``structured`` is None unless JSON object/array."""
    if isinstance(content, (dict, list)):
        return content, None

    if isinstance(content, bytes):
        text = content.decode("utf-8-sig", errors="replace")
    elif isinstance(content, str):
        text = content
    else:
        raise FeedParseError(f"Unsupported payload type {type(content).__name__}")

    if not text.strip():
        return None, text

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None, text

    if isinstance(data, (dict, list)):
        return data, text
    return None, text


# ---- Record extraction ---------------------------------------------------------------------


def _versions_of(item: dict[str, Any]) -> list[str]:
    versions: list[str] = []
    version = item.get("version")
    if isinstance(version, (str, int, float)) and not isinstance(version, bool):
        versions.append(str(version).strip())
    many = item.get("versions")
    if isinstance(many, list):
        versions.extend(
            str(v).strip()
            for v in many
            if isinstance(v, (str, int, float)) and not isinstance(v, bool)
        )
    return [v for v in versions if v]


def _records_from_item(
    item: Any,
    label: str,
    *,
    default_severity: Severity,
    default_provenance: str,
) -> tuple[list[_Record], str | None]:
    """Turn one array element into records, or a reason for dropping it."""
    if isinstance(item, str):
        try:
            spec = parse_spec(item)
        except MalformedIdentifier as exc:
            return [], f"{label}: {exc}"
        record = _Record(spec.identifier, spec.version, default_severity, default_provenance)
        return [record], None

    if not isinstance(item, dict):
        return [], f"{label}: unsupported record type {type(item).__name__}"

    raw_name = item.get("name") or item.get("package")
    name = raw_name.strip() if isinstance(raw_name, str) else ""
    if not name:
        return [], f"{label}: missing name"

    versions = _versions_of(item)
    if not versions:
        return [], f"{label}: missing version for {name}"

    try:
        identifier = PackageIdentifier.parse(name)
    except MalformedIdentifier as exc:
        return [], f"{label}: {exc}"

    severity = Severity.coerce(item.get("severity"), default_severity)
    provenance = item.get("source")
    if not isinstance(provenance, str) or not provenance.strip():
        provenance = default_provenance

    records = [_Record(identifier, version, severity, provenance.strip()) for version in versions]
    return records, None


def _looks_like_records(value: Any) -> bool:
    if not isinstance(value, list):
        return False
    for item in value:
        if isinstance(item, dict) and ("name" in item or "package" in item):
            return True
        if isinstance(item, str):
            try:
                parse_spec(item)
            except MalformedIdentifier:
                continue
            return True
    return False


def _find_array_field(data: dict[str, Any]) -> str | None:
    for key in PREFERRED_ARRAY_FIELDS:
        if isinstance(data.get(key), list):
            return key
    for key, value in data.items():
        if _looks_like_records(value):
            return key
    return None


def _is_legacy_mapping(data: dict[str, Any]) -> bool:
    return bool(data) and all(
        isinstance(value, list) and all(isinstance(v, str) for v in value)
        for value in data.values()
    )


def _extract_array(
    items: list[Any],
    shape: FeedShape,
    *,
    default_severity: Severity,
    default_provenance: str,
) -> _Extraction:
    extraction = _Extraction(shape=shape)
    for index, item in enumerate(items):
        extraction.total += 1
        records, reason = _records_from_item(
            item,
            f"record {index}",
            default_severity=default_severity,
            default_provenance=default_provenance,
        )
        if reason:
            extraction.skip(reason)
            continue
        extraction.records.extend(records)
    return extraction


def _extract_legacy_mapping(data: dict[str, list[str]]) -> _Extraction:
    extraction = _Extraction(shape=FeedShape.OBJECT_ARRAY)
    for name, versions in data.items():
        extraction.total += 1
        item = {"name": name, "versions": versions}
        records, reason = _records_from_item(
            item,
            f"key {name!r}",
            default_severity=OBJECT_DEFAULT_SEVERITY,
            default_provenance=OBJECT_DEFAULT_PROVENANCE,
        )
        if reason:
            extraction.skip(reason)
            continue
        extraction.records.extend(records)
    return extraction


# ---- Text shapes ---------------------------------------------------------------------------


def _iter_content_lines(text: str) -> Iterator[tuple[int, str]]:
    for index, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        yield index, line


def _normalize_versions(raw: str) -> list[str]:
    """Split ``= 1.0.0 || = 1.0.1`` style cells into bare versions."""
    versions: list[str] = []
    for candidate in raw.split("||"):
        cleaned = candidate.strip()
        cleaned = re.sub(r"^[=\s]+", "", cleaned)
        cleaned = cleaned.lstrip("v")
        if not cleaned:
            continue
        if not _VERSION_PATTERN.fullmatch(cleaned):
            raise ValueError(f"invalid version '{candidate.strip()}'")
        versions.append(cleaned)
    return versions


def _is_csv_header(line: str) -> bool:
    if "|" in line or "," not in line:
        return False
    cells = {cell.strip() for cell in next(csv.reader([line]))}
    return {"Package", "Version"}.issubset(cells)


def _extract_csv(text: str, source: str) -> _Extraction:
    extraction = _Extraction(shape=FeedShape.TABULAR_TEXT)
    body = "\n".join(line for _, line in _iter_content_lines(text))
    reader = csv.DictReader(io.StringIO(body), skipinitialspace=True)
    for index, row in enumerate(reader, start=2):
        extraction.total += 1
        name = (row.get("Package") or "").strip()
        version_field = (row.get("Version") or "").strip()
        if not name or not version_field:
            extraction.skip(f"row {index}: missing package or version")
            continue
        try:
            identifier = PackageIdentifier.parse(name)
            versions = _normalize_versions(version_field)
        except ValueError as exc:
            extraction.skip(f"row {index}: {exc}")
            continue
        if not versions:
            extraction.skip(f"row {index}: no versions after normalization")
            continue
        for version in versions:
            extraction.records.append(_Record(identifier, version, TEXT_DEFAULT_SEVERITY, source))
    return extraction


def _pipe_cells(line: str) -> list[str]:
    cells = (cell.strip().strip("`").strip() for cell in line.split("|"))
    return [cell for cell in cells if cell]


def _extract_lines(text: str, source: str) -> _Extraction:
    extraction = _Extraction(shape=FeedShape.TABULAR_TEXT)
    for index, line in _iter_content_lines(text):
        label = f"line {index}"

        if line.startswith("{"):
            extraction.total += 1
            try:
                item = json.loads(line)
            except json.JSONDecodeError as exc:
                extraction.skip(f"{label}: invalid JSON ({exc.msg})")
                continue
            records, reason = _records_from_item(
                item,
                label,
                default_severity=TEXT_DEFAULT_SEVERITY,
                default_provenance=source,
            )
            if reason:
                extraction.skip(reason)
                continue
            extraction.records.extend(records)
            continue

        if "|" in line:
            cells = _pipe_cells(line)
            if not cells or cells[0] == "Package" or all(_TABLE_SEPARATOR.match(c) for c in cells):
                continue
            extraction.total += 1
            if len(cells) < 2:
                extraction.skip(f"{label}: expected package and version cells")
                continue
            name, version = cells[0], cells[1]
        else:
            match = _LINE_PATTERN.match(line)
            extraction.total += 1
            if not match:
                extraction.skip(f"{label}: unrecognised line")
                continue
            name, version = match.group("name"), match.group("version")

        try:
            identifier = PackageIdentifier.parse(name)
        except MalformedIdentifier as exc:
            extraction.skip(f"{label}: {exc}")
            continue
        extraction.records.append(_Record(identifier, version, TEXT_DEFAULT_SEVERITY, source))

    return extraction


def _extract_text(text: str, source: str) -> _Extraction:
    for _, first_line in _iter_content_lines(text):
        if _is_csv_header(first_line):
            return _extract_csv(text, source)
        break
    return _extract_lines(text, source)


# ---- Public API ----------------------------------------------------------------------------


def _probe(payload: FeedPayload) -> _Extraction:
    data, text = _decode(payload.content)

    if isinstance(data, dict):
        array_field = _find_array_field(data)
        if array_field is not None:
            return _extract_array(
                data[array_field],
                FeedShape.OBJECT_ARRAY,
                default_severity=OBJECT_DEFAULT_SEVERITY,
                default_provenance=OBJECT_DEFAULT_PROVENANCE,
            )
        if _is_legacy_mapping(data):
            return _extract_legacy_mapping(data)

    if isinstance(data, list):
        return _extract_array(
            data,
            FeedShape.BARE_ARRAY,
            default_severity=ARRAY_DEFAULT_SEVERITY,
            default_provenance=payload.source,
        )

    if data is None and text is not None:
        extraction = _extract_text(text, payload.source)
        if extraction.records:
            return extraction
        return _Extraction(
            shape=FeedShape.UNRECOGNISED,
            skipped=extraction.skipped,
            total=extraction.total,
        )

    return _Extraction(shape=FeedShape.UNRECOGNISED)


def _build_registry(records: Iterable[_Record], source: str) -> Registry:
    registry = Registry()
    for record in records:
        registry.add(
            record.identifier,
            record.version,
            source=source,
            severity=record.severity,
            provenance=(record.provenance,),
        )
    return registry


def parse_feed(payload: FeedPayload) -> NormalisedFeed:
    """Parse one feed into a partial registry.

    Raises:
        FeedParseError: If the payload matches none of the supported shapes.
    """
    extraction = _probe(payload)
    if extraction.shape is FeedShape.UNRECOGNISED:
        raise FeedParseError(f"Feed '{payload.source}' matches no supported format")

    for reason in extraction.skipped:
        logger.debug("feed.record_skipped", source=payload.source, reason=reason)

    registry = _build_registry(extraction.records, payload.source)
    return NormalisedFeed(
        source=payload.source,
        shape=extraction.shape,
        registry=registry,
        total_records=extraction.total,
        skipped_records=extraction.skipped,
        snapshot=payload.snapshot,
    )


def normalise_feed(payload: FeedPayload) -> NormalisedFeed:
    """Parse one feed, recording (rather than raising) a parse failure."""
    try:
        feed = parse_feed(payload)
    except FeedParseError as exc:
        logger.warning("feed.unrecognised", source=payload.source, error=str(exc))
        return NormalisedFeed(
            source=payload.source,
            shape=FeedShape.UNRECOGNISED,
            registry=Registry(),
            error=str(exc),
            snapshot=payload.snapshot,
        )

    logger.info(
        "feed.normalised",
        source=feed.source,
        shape=feed.shape.value,
        packages=feed.package_count,
        versions=feed.version_count,
        skipped=len(feed.skipped_records),
    )
    return feed
