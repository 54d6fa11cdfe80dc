# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""
Ginkgo e2e test results digested from CI build logs and junit reports.

This package contains:
- failure block segmentation and parsing of build-log.txt (`segment.py`, `block_parser.py`)
- normalization into one result type shared with junit reports (`normalize.py`, `junit.py`)
- the max-duration and most-failures reports (`stats.py`)
- the artifact pipeline: bucket listing, checksum-keyed local cache (`pipeline.py`)

Parsing and reports are pure functions and can be used without the pipeline:

  from ci_test_digest import Provenance, results_from_build_log, most_failures_stats
  results = results_from_build_log(text, Provenance(source="build-log.txt"))
"""

from .block_parser import parse_failure_block  # noqa: F401
from .errors import (  # noqa: F401
    ArtifactError,
    BlobStoreError,
    DigestError,
    MalformedInput,
    ParseError,
)
from .normalize import (  # noqa: F401
    normalize_record,
    results_from_build_log,
    results_from_junit,
)
from .result_types import (  # noqa: F401
    BuildResult,
    CanonicalResult,
    FailureCountStat,
    MaxDurationStat,
    ParsedRecord,
    Provenance,
    RawBlock,
    TestStatus,
)
from .segment import split_failure_blocks  # noqa: F401
from .stats import max_duration_stats, most_failures_stats  # noqa: F401

__all__ = [
    "ArtifactError",
    "BlobStoreError",
    "BuildResult",
    "CanonicalResult",
    "DigestError",
    "FailureCountStat",
    "MalformedInput",
    "MaxDurationStat",
    "ParseError",
    "ParsedRecord",
    "Provenance",
    "RawBlock",
    "TestStatus",
    "max_duration_stats",
    "most_failures_stats",
    "normalize_record",
    "parse_failure_block",
    "results_from_build_log",
    "results_from_junit",
    "split_failure_blocks",
]
