# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Text and JSON output for the CLI.

Text output is one line per entry with aligned columns, colored by status:

  ✅ 55s   [Conformance] Certificates should issue a basic certificate
  ❌ 5m1s  [Conformance] Certificates should issue a cert with wildcard DNS Name: timed out ...
  💣️ 1m1s  [cert-manager] ACME CertificateRequest (HTTP01) ... [BeforeEach]: ...

Names are full of "[...]", so lines are built from rich Text objects and never
go through console markup.
"""

from __future__ import annotations

import json
import os
import sys
from typing import Any, IO, Iterable, List, Optional, Sequence, Tuple

from rich.cells import cell_len
from rich.console import Console
from rich.text import Text

from .result_types import (
    BuildResult,
    BuildStatus,
    CanonicalResult,
    FailureCountStat,
    MaxDurationStat,
    TestStatus,
)

COLOR_CHOICES = ("auto", "never", "always")

# One column of a row: (text, style) segments, style "" means unstyled.
_Column = List[Tuple[str, str]]

_STATUS_ICON_STYLE = {
    TestStatus.PASSED: ("✅", "green"),
    TestStatus.FAILED: ("❌", "red"),
    TestStatus.ERROR: ("💣️", "blue"),
}


def format_duration(seconds: int) -> str:
    """0s, 55s, 1m2s, 1h0m5s (whole seconds only)."""
    s = int(seconds)
    sign = "-" if s < 0 else ""
    s = abs(s)
    hours, rem = divmod(s, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{sign}{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{sign}{minutes}m{secs}s"
    return f"{sign}{secs}s"


def make_console(color: str = "auto", file: Optional[IO[str]] = None) -> Console:
    """Console for report output.

    auto: color only when writing to a terminal and TERM is not "dumb".
    """
    out = file if file is not None else sys.stdout
    if color == "never":
        return Console(file=out, color_system=None, highlight=False, soft_wrap=True, emoji=False)
    if color == "always":
        return Console(file=out, force_terminal=True, color_system="standard", highlight=False, soft_wrap=True, emoji=False)

    is_tty = bool(getattr(out, "isatty", None) and out.isatty())
    if os.environ.get("TERM") == "dumb" or not is_tty:
        return Console(file=out, color_system=None, highlight=False, soft_wrap=True, emoji=False)
    return Console(file=out, highlight=False, soft_wrap=True, emoji=False)


def _column_text(col: _Column) -> str:
    return "".join(text for text, _ in col)


def _print_rows(console: Console, rows: Sequence[Sequence[_Column]]) -> None:
    """Print rows with every column but the last padded to a common width."""
    if not rows:
        return
    ncols = max(len(r) for r in rows)
    widths = [0] * ncols
    for row in rows:
        for i, col in enumerate(row[:-1]):
            widths[i] = max(widths[i], cell_len(_column_text(col)))

    for row in rows:
        line = Text()
        for i, col in enumerate(row):
            for text, style in col:
                line.append(text, style=style or None)
            if i < len(row) - 1:
                line.append(" " * (widths[i] - cell_len(_column_text(col)) + 1))
        console.print(line)


def render_results(console: Console, results: Iterable[CanonicalResult]) -> None:
    rows: List[List[_Column]] = []
    for res in results:
        icon, style = _STATUS_ICON_STYLE[res.status]
        first: _Column = [(f"{icon} ", ""), (format_duration(res.duration_s), style)]
        if res.status == TestStatus.PASSED:
            rows.append([first, [(res.name, "")]])
        else:
            rows.append([first, [(f"{res.name}: {res.error_message or ''}", "")]])
    _print_rows(console, rows)


def render_max_duration(console: Console, stats: Iterable[MaxDurationStat]) -> None:
    _print_rows(
        console,
        [
            [
                [(format_duration(st.max_passed_s), "green")],
                [(format_duration(st.max_failed_s), "red")],
                [(st.name, "")],
            ]
            for st in stats
        ],
    )


def render_most_failures(console: Console, stats: Iterable[FailureCountStat]) -> None:
    rows: List[List[_Column]] = []
    for st in stats:
        last = st.last_failure
        last_err = (last.error_message or "") if last is not None else ""
        rows.append(
            [
                [(str(st.count_passed), "green")],
                [(str(st.count_failed), "red")],
                [(f"{st.name}: ", ""), (last_err, "bright_black")],
            ]
        )
    _print_rows(console, rows)


def render_builds(console: Console, builds: Iterable[BuildResult]) -> None:
    rows: List[List[_Column]] = []
    for b in builds:
        if b.status == BuildStatus.SUCCESS:
            rows.append([[(format_duration(b.duration_s), "green")], [(b.job_name, "")]])
        else:
            rows.append([[(format_duration(b.duration_s), "red")], [(f"{b.job_name}: {b.err}", "")]])
    _print_rows(console, rows)


def write_json(items: Iterable[Any], file: Optional[IO[str]] = None) -> None:
    """One JSON array on one line; an empty report is "[]", never "null"."""
    out = file if file is not None else sys.stdout
    out.write(json.dumps([it.to_dict() for it in items], ensure_ascii=False) + "\n")
