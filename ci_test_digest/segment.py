# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Split a Ginkgo build-log.txt into failure blocks.

One failure block looks like this:

  • Failure [301.437 seconds]                          ^
  [Conformance] Certificates                           |
  test/e2e/framework/framework.go:287                  |
    with issuer type External ClusterIssuer            |
    test/e2e/suite/conformance/certificates.go:47      |
      should issue a cert with wildcard DNS Name [It]  |
      test/e2e/suite/conformance/certificates.go:105   |
                                                       | "lines"
      Unexpected error:                                |
          <*errors.errorString | 0xc0001c07b0>: {      |
              s: "timed out waiting for the condition",|
          }                                            |
          timed out waiting for the condition          |
      occurred                                         |
                                                       |
      test/e2e/suite/conformance/certificates.go:522   |
  ------------------------------                       v

Everything outside such blocks (STEP lines, [SLOW TEST] blocks, passed specs)
is noise and is dropped.
"""

from __future__ import annotations

import logging
from typing import Iterator, List, Optional

from .errors import MalformedInput
from .regexes import ANSI_ESCAPE_RE, BLOCK_END_MARKER, BLOCK_START_MARKER
from .result_types import RawBlock

logger = logging.getLogger(__name__)


def strip_ansi(text: str) -> str:
    """Remove the ANSI color codes printed by Ginkgo."""
    return ANSI_ESCAPE_RE.sub("", text or "")


def decode_log_bytes(data: bytes) -> str:
    return (data or b"").decode("utf-8", errors="replace")


def iter_log_lines(text: str) -> Iterator[str]:
    """Yield the lines of `text`, splitting on '\\n' only.

    A trailing '\\r' is dropped and a final newline does not produce an extra
    empty line, so line numbers match what an editor shows.
    """
    if not text:
        return
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    for line in lines:
        yield line[:-1] if line.endswith("\r") else line


def split_failure_blocks(text: str) -> List[RawBlock]:
    """Return the failure blocks of a build log, in order of appearance.

    ANSI color codes do not need to be removed by the caller. Raises
    MalformedInput if the log ends while a block is still open.
    """
    blocks: List[RawBlock] = []
    body: List[str] = []
    start_line: Optional[int] = None

    line_no = 0
    for line_no, line in enumerate(iter_log_lines(strip_ansi(text)), start=1):
        if start_line is None:
            if not line.startswith(BLOCK_START_MARKER):
                continue
            start_line = line_no

        body.append(line)

        if line == BLOCK_END_MARKER:
            blocks.append(RawBlock(start_line=start_line, lines=tuple(body)))
            body = []
            start_line = None

    if start_line is not None:
        raise MalformedInput(start_line=start_line)

    logger.debug("found %d failure block(s) in %d line(s)", len(blocks), line_no)
    return blocks
