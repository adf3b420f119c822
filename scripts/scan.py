#!/usr/bin/env python3
"""Local CLI entrypoint to audit an installed node_modules tree.

Usage:
  python scripts/scan.py --root . [--config settings.json] [--feed path_or_url] [--warn-only]

Prints the JSON report. Exit codes: 0 clean, 1 compromised packages found,
2 run error (including every feed failing).
"""

from __future__ import annotations

from npm_tree_audit.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
