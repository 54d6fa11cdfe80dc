# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Error types for ci_test_digest.

Kept in their own module so the parser, the pipeline and the CLI can catch
specific classes without import cycles.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple


class DigestError(Exception):
    """Base class for every error raised by ci_test_digest."""


class MalformedInput(DigestError):
    """A failure block was opened but the input ended before its dash line."""

    def __init__(self, *, start_line: int, message: Optional[str] = None):
        self.start_line = int(start_line)
        super().__init__(
            message
            or (
                f"unexpected end of file, still waiting for the failure block started at line "
                f"{self.start_line} to end with '------------------------------'"
            )
        )


class ParseError(DigestError):
    """One failure block violates the header/footer/name-hierarchy rules."""

    def __init__(self, message: str, *, lines: Sequence[str] = ()):
        super().__init__(message)
        self.lines: Tuple[str, ...] = tuple(lines)


class ArtifactError(DigestError):
    """An artifact (log file, junit report, prowjob.json, URL) could not be used."""


class BlobStoreError(DigestError):
    def __init__(self, *, status_code: int, endpoint: str, message: str):
        super().__init__(message)
        self.status_code = int(status_code)
        self.endpoint = str(endpoint or "")
