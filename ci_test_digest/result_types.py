#!/usr/bin/env python3
# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Shared data model used by:
- the parsing core (`segment.py`, `block_parser.py`, `normalize.py`, `stats.py`)
- the artifact pipeline and the renderers

This module MUST NOT import any other `ci_test_digest` module to avoid cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class TestStatus(str, Enum):
    """Canonical status of one test-case outcome."""

    __test__ = False  # not a pytest test class

    PASSED = "passed"
    FAILED = "failed"
    # The test setup failed, e.g. during BeforeEach.
    ERROR = "error"


class BlockOutcome(str, Enum):
    """Outcome kind printed in a failure block header."""

    FAILED = "failed"
    SETUP_ERROR = "setup_error"


class BuildStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class SourceKind(str, Enum):
    FILE = "file"
    URL = "url"
    ARTIFACT = "artifact"


@dataclass(frozen=True)
class RawBlock:
    """Lines of one failure block, header through the closing dash line (inclusive).

    start_line is the 1-based number of the header line in the original text.
    """

    start_line: int
    lines: Tuple[str, ...]


@dataclass(frozen=True)
class ParsedRecord:
    name: str
    outcome: BlockOutcome
    duration_s: int
    error_message: Optional[str] = None
    error_location: Optional[str] = None


@dataclass(frozen=True)
class Provenance:
    """Where a record came from.

    `source` is a local path, a URL, or the public URL of a bucket artifact. For
    artifacts, job/pr/build come from the object name.
    """

    source: str
    kind: SourceKind = SourceKind.FILE
    job: Optional[str] = None
    pr: Optional[int] = None
    build: Optional[int] = None

    def source_ref(self, line: Optional[int] = None) -> str:
        """Source reference with a line anchor (`path:42` or `url#line=42`)."""
        if line is None:
            return self.source
        if self.kind == SourceKind.FILE:
            return f"{self.source}:{int(line)}"
        return f"{self.source}#line={int(line)}"


@dataclass(frozen=True)
class CanonicalResult:
    # Note that the string "[It]" never appears in the name, so that build-log
    # names match the names found in junit__*.xml files.
    name: str
    status: TestStatus
    duration_s: int
    error_message: Optional[str] = None
    error_location: Optional[str] = None
    source: str = ""
    job: Optional[str] = None
    pr: Optional[int] = None
    build: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "duration": int(self.duration_s),
            "err": self.error_message or "",
            "errLoc": self.error_location or "",
            "source": self.source,
            "job": self.job or "",
            "pr": int(self.pr or 0),
            "build": int(self.build or 0),
        }


@dataclass(frozen=True)
class MaxDurationStat:
    name: str
    max_passed_s: int
    max_failed_s: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "maxDurationPassed": int(self.max_passed_s),
            "maxDurationFailed": int(self.max_failed_s),
        }


@dataclass(frozen=True)
class FailureCountStat:
    name: str
    count_passed: int
    failures: Tuple[CanonicalResult, ...] = field(default_factory=tuple)

    @property
    def count_failed(self) -> int:
        return len(self.failures)

    @property
    def last_failure(self) -> Optional[CanonicalResult]:
        """Most recent failure, shown as the representative sample."""
        return self.failures[-1] if self.failures else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "countPassed": int(self.count_passed),
            "countFailed": self.count_failed,
            "failures": [f.to_dict() for f in self.failures],
        }


@dataclass(frozen=True)
class BuildResult:
    status: BuildStatus
    duration_s: int
    url: str
    job_name: str
    # Only set when the build failed.
    err: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "duration": int(self.duration_s),
            "url": self.url,
            "jobName": self.job_name,
            "err": self.err,
        }
