"""npm-tree-audit core package.

Audits an installed ``node_modules`` tree against published lists of
compromised package versions. The scanning logic is reusable from the CLI
script and from other callers.
"""

__all__ = [
    "classifier",
    "core",
    "discovery",
    "ingestion",
    "models",
    "report",
]
