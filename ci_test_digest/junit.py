# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Read junit__*.xml reports (one entry per test case)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List

from junitparser import Error, Failure, JUnitXml, Skipped, TestSuite

from .errors import ArtifactError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JUnitCase:
    name: str
    status: str  # "passed" | "failed" | "error" | "skipped"
    duration_s: float


def _case_status(case) -> str:
    results = list(case.result or [])
    if any(isinstance(r, Error) for r in results):
        return "error"
    if any(isinstance(r, Failure) for r in results):
        return "failed"
    if any(isinstance(r, Skipped) for r in results):
        return "skipped"
    return "passed"


def _iter_suites(xml) -> Iterable[TestSuite]:
    # Ginkgo writes a bare <testsuite> root; other runners wrap it in <testsuites>.
    if isinstance(xml, TestSuite):
        yield xml
        return
    for suite in xml:
        yield suite


def ingest_junit(data: bytes) -> List[JUnitCase]:
    """Parse a JUnit XML report. Raises ArtifactError if the XML or a test case is invalid."""
    try:
        xml = JUnitXml.fromstring(data)
    except Exception as e:
        raise ArtifactError(f"failed to ingest junit XML: {e}") from e

    cases: List[JUnitCase] = []
    try:
        for suite in _iter_suites(xml):
            for case in suite:
                cases.append(
                    JUnitCase(
                        name=str(case.name or ""),
                        status=_case_status(case),
                        duration_s=float(case.time or 0.0),
                    )
                )
    except (TypeError, ValueError) as e:
        # e.g. time="N/A"
        raise ArtifactError(f"failed to ingest junit XML: {e}") from e
    logger.debug("ingested %d junit test case(s)", len(cases))
    return cases
