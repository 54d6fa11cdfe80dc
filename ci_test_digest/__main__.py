#!/usr/bin/env python3
"""Module entrypoint for `ci_test_digest`.

Usage:
  - `python3 -m ci_test_digest tests parse-logs build-log.txt`
"""

from __future__ import annotations

from .cli import _cli


if __name__ == "__main__":
    raise SystemExit(_cli())
