# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Parse one Ginkgo failure block into a ParsedRecord.

Anatomy of a block (see `segment.py` for how blocks are cut out of a log):

  • Failure [301.574 seconds]                          <- Header
  [Conformance] Certificates                            ^
  test/e2e/framework/framework.go:287                   |
    with issuer type SelfSigned ClusterIssuer           | Name
    test/e2e/suite/conformance/tests.go:47              |
      should issue an ECDSA, defaulted cert [It]        |
      test/e2e/suite/conformance/suite.go:105           v
                                                                  ^
      Unexpected error:                                 ^         |
          <*errors.errorString | 0xc0001c07d0>: {       |         |
              s: "timed out waiting for the condition", | Err     |
          }                                             |         | optional
          timed out waiting for the condition           |         |
      occurred                                          v         |
                                                                  |
      test/e2e/suite/conformance/tests.go:149          <- ErrLoc  v
  ------------------------------                       <- Footer

Each nesting level of the name is a pair of lines (description, then source
location) indented two spaces deeper than its parent.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from .errors import ParseError
from .regexes import (
    BLOCK_DUMP_CLOSE_RE,
    BLOCK_END_MARKER,
    BLOCK_HEADER_RE,
    BLOCK_IT_SUFFIX,
    BLOCK_SETUP_FAILURE_PREFIX,
    BLOCK_UNEXPECTED_ERROR_MARKER,
)
from .result_types import BlockOutcome, ParsedRecord, RawBlock

# The value dump following "Unexpected error:" is indented by 4 spaces.
_DUMP_INDENT = 4


def _dedent(line: str, width: int) -> str:
    """Remove up to `width` leading spaces (fewer if the line has fewer)."""
    n = 0
    while n < width and n < len(line) and line[n] == " ":
        n += 1
    return line[n:]


def parse_header(header: str) -> Tuple[BlockOutcome, int]:
    """Return (outcome, duration in whole seconds) for a block header line."""
    m = BLOCK_HEADER_RE.search(header)
    if not m:
        raise ParseError(f"failure block header: expected {BLOCK_HEADER_RE.pattern}, got: {header}", lines=[header])

    kind = m.group(1)
    if kind.startswith(BLOCK_SETUP_FAILURE_PREFIX):
        outcome = BlockOutcome.SETUP_ERROR
    elif kind == "Failure":
        outcome = BlockOutcome.FAILED
    else:
        raise ParseError(f"failure block header: expected 'Failure' or 'Failure in Spec Setup', got: {kind}", lines=[header])

    # Fractional seconds are dropped, not rounded.
    return outcome, int(m.group(2))


def parse_name(lines: Sequence[str]) -> Tuple[str, int]:
    """Walk the description/location pairs at the top of a block body.

    Returns the space-joined name and the index of the first line that is not
    part of the hierarchy.
    """
    parts: List[str] = []
    i = 0
    while i < len(lines) - 1 and lines[i].startswith(" " * i) and lines[i + 1].startswith(" " * i):
        desc = lines[i]
        if desc.endswith(BLOCK_IT_SUFFIX):
            desc = desc[: -len(BLOCK_IT_SUFFIX)]
        parts.append(desc[i:])
        i += 2

    if i == 0:
        raise ParseError("no name line found, remaining was: " + "\n".join(lines), lines=lines)

    return " ".join(parts), i


def _unwrap_unexpected_error(lines: List[str]) -> List[str]:
    """Reduce a Gomega "Unexpected error:" payload to the bare error string.

    Input (already de-indented to the block level):

      Unexpected error:
          <*errors.errorString | 0xc0001c07d0>: {
              s: "timed out waiting for the condition",
          }
          timed out waiting for the condition
      occurred
    """
    for j, line in enumerate(lines):
        if BLOCK_DUMP_CLOSE_RE.search(line):
            # Everything after the dump, minus the trailing "occurred".
            lines = lines[j + 1 : len(lines) - 1]
            break
    return [_dedent(line, _DUMP_INDENT) for line in lines]


def parse_error_section(lines: Sequence[str], indent: int) -> Tuple[Optional[str], Optional[str]]:
    """Return (error message, error location) for the lines after the name."""
    rest = list(lines)
    if rest and rest[0] == "":
        rest = rest[1:]
    if not rest:
        return None, None

    rest = [_dedent(line, indent) for line in rest]

    error_location = rest[-1]

    # Skip the location and the blank line that always precedes it.
    # NOTE: a log without that blank line would lose its last message line here.
    body = rest[:-2]

    header: List[str] = []
    if BLOCK_UNEXPECTED_ERROR_MARKER in body:
        marker_at = body.index(BLOCK_UNEXPECTED_ERROR_MARKER)
        # Context printed before the marker, e.g. "failed to create vault issuer".
        header = [line for line in body[:marker_at] if line.strip()]
        body = body[marker_at:]

    if body and body[0] == BLOCK_UNEXPECTED_ERROR_MARKER:
        body = _unwrap_unexpected_error(body)

    return "\n".join(header + body), error_location


def parse_failure_block(block: RawBlock) -> ParsedRecord:
    """Parse one failure block. Raises ParseError on any malformed part.

    The "[It]" suffixes are removed from the test names so that they match
    the names found in junit__*.xml files.
    """
    lines = list(block.lines)
    if len(lines) < 2:
        raise ParseError(
            "a failure block is at least 2 lines long, got: " + "\n".join(lines),
            lines=lines,
        )

    outcome, duration_s = parse_header(lines[0])

    if lines[-1] != BLOCK_END_MARKER:
        raise ParseError(
            f"expected the last line to be '{BLOCK_END_MARKER}', block was: " + "\n".join(lines),
            lines=lines,
        )

    body = lines[1:-1]
    name, i = parse_name(body)

    # Err and ErrLoc are optional.
    if i >= len(body):
        return ParsedRecord(name=name, outcome=outcome, duration_s=duration_s)

    error_message, error_location = parse_error_section(body[i:], indent=i - 2)
    return ParsedRecord(
        name=name,
        outcome=outcome,
        duration_s=duration_s,
        error_message=error_message,
        error_location=error_location,
    )
