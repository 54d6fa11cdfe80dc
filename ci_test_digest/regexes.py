# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Regex and marker catalog for `ci_test_digest`.

Conventions:
- BLOCK_*    : Ginkgo failure block segmentation/parsing
- ARTIFACT_* : object-name classification in the log bucket

No imports from other `ci_test_digest` modules (avoid cycles).
"""

from __future__ import annotations

import re
from typing import Pattern

#
# =============================================================================
# BLOCK_* (build-log.txt failure blocks)
# =============================================================================
#

# Ginkgo colors its output; only SGR/cursor sequences ending in m, G or K are emitted.
ANSI_ESCAPE_RE: Pattern[str] = re.compile(r"\x1b\[[0-9;]*[mGK]")

# Opening line of a failure block, e.g.:
#   • Failure [301.437 seconds]
#   • Failure in Spec Setup (BeforeEach) [61.637 seconds]
BLOCK_START_MARKER: str = "• Failure"

# Closing line of every Ginkgo block (30 dashes).
BLOCK_END_MARKER: str = "-" * 30

# Header: outcome kind + integer part of the duration.
BLOCK_HEADER_RE: Pattern[str] = re.compile(r"• (Failure|Failure in Spec Setup.*) \[(\d+)\.\d+ ")

BLOCK_SETUP_FAILURE_PREFIX: str = "Failure in Spec Setup"
BLOCK_IT_SUFFIX: str = " [It]"

# First line of a Gomega "Unexpected error: <dump> occurred" payload.
BLOCK_UNEXPECTED_ERROR_MARKER: str = "Unexpected error:"

# Closing brace of the value dump printed after "Unexpected error:".
BLOCK_DUMP_CLOSE_RE: Pattern[str] = re.compile(r" *}$")

#
# =============================================================================
# ARTIFACT_* (object names in the bucket)
# =============================================================================
#

ARTIFACT_JUNIT_RE: Pattern[str] = re.compile(r"junit__.*\.xml$")
ARTIFACT_BUILD_LOG_RE: Pattern[str] = re.compile(r"build-log\.txt$")
ARTIFACT_TEST_RESULTS_RE: Pattern[str] = re.compile(
    "(" + ARTIFACT_JUNIT_RE.pattern + "|" + ARTIFACT_BUILD_LOG_RE.pattern + ")"
)
ARTIFACT_PROWJOB_RE: Pattern[str] = re.compile(r"prowjob\.json$")

#   pr-logs/pull/jetstack_cert-manager/4664/pull-cert-manager-e2e-v1-13/14356/artifacts/junit__01.xml
#                                      <--> <-------------------------> <--->
#                                    pr number        job name       build number
ARTIFACT_OBJECT_NAME_RE: Pattern[str] = re.compile(r"/(\d+)/([^/]+)/(\d+)/")

# PR "directories" end with the PR number, with or without the trailing slash.
ARTIFACT_PR_NUMBER_SUFFIX_RE: Pattern[str] = re.compile(r"/(\d+)/?$")
