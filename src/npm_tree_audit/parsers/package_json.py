"""Read the installed version from a package's package.json manifest."""

from __future__ import annotations

from pathlib import Path

MANIFEST_NAME = "package.json"


class ManifestError(ValueError):
    """Raised when a manifest is missing, unreadable, or has no usable version."""


def read_version(path: Path) -> str:
    """Return the ``version`` field of the manifest at ``path``.

    Raises:
        ManifestError: If the file is missing, is not a JSON object, or has no
            non-empty string version.
    """
    import json

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ManifestError(f"{path.name} not found") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestError(f"cannot read {path.name}: {exc}") from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"invalid JSON ({exc.msg})") from exc

    if not isinstance(data, dict):
        raise ManifestError("manifest is not a JSON object")

    version = data.get("version")
    if not isinstance(version, str) or not version.strip():
        raise ManifestError("manifest has no version")
    return version.strip()
