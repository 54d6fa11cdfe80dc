# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Turn parsed blocks and junit cases into CanonicalResults.

Build logs are the authoritative source for failures; junit reports only
contribute "passed" results so that failures are not counted twice.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple

from .block_parser import parse_failure_block
from .errors import ArtifactError, ParseError
from .junit import JUnitCase
from .regexes import ARTIFACT_OBJECT_NAME_RE
from .result_types import (
    BlockOutcome,
    CanonicalResult,
    ParsedRecord,
    Provenance,
    SourceKind,
    TestStatus,
)
from .segment import split_failure_blocks

logger = logging.getLogger(__name__)

_OUTCOME_TO_STATUS = {
    BlockOutcome.FAILED: TestStatus.FAILED,
    BlockOutcome.SETUP_ERROR: TestStatus.ERROR,
}


def is_url(file_or_url: str) -> bool:
    return str(file_or_url or "").startswith(("http://", "https://"))


def parse_object_name(object_name: str) -> Tuple[int, str, int]:
    """Return (pr, job, build) for an object name in the log bucket.

    pr-logs/pull/jetstack_cert-manager/4664/pull-cert-manager-e2e-v1-13/14356/build-log.txt
    -> (4664, "pull-cert-manager-e2e-v1-13", 14356)
    """
    m = ARTIFACT_OBJECT_NAME_RE.search(object_name or "")
    if not m:
        raise ArtifactError(
            f"failed to parse object name, expected {ARTIFACT_OBJECT_NAME_RE.pattern} but got: {object_name}"
        )
    return int(m.group(1)), m.group(2), int(m.group(3))


def provenance_for(file_or_url: str) -> Provenance:
    """Provenance of a log given on the command line (local path or URL)."""
    if is_url(file_or_url):
        return Provenance(source=file_or_url, kind=SourceKind.URL)
    return Provenance(source=file_or_url, kind=SourceKind.FILE)


def provenance_for_artifact(object_name: str, public_url: str) -> Provenance:
    pr, job, build = parse_object_name(object_name)
    return Provenance(source=public_url, kind=SourceKind.ARTIFACT, job=job, pr=pr, build=build)


def normalize_record(parsed: ParsedRecord, provenance: Provenance, *, line: int) -> CanonicalResult:
    """Attach provenance to a parsed failure block. `line` is the block's start line."""
    return CanonicalResult(
        name=parsed.name,
        status=_OUTCOME_TO_STATUS[parsed.outcome],
        duration_s=int(parsed.duration_s),
        error_message=parsed.error_message,
        error_location=parsed.error_location,
        source=provenance.source_ref(line),
        job=provenance.job,
        pr=provenance.pr,
        build=provenance.build,
    )


def normalize_junit_case(case: JUnitCase, provenance: Provenance) -> Optional[CanonicalResult]:
    """Passed junit cases only; failed/error/skipped come from build logs or are ignored."""
    if case.status != TestStatus.PASSED.value:
        return None
    return CanonicalResult(
        name=case.name,
        status=TestStatus.PASSED,
        # Anything under 1s shows as 0s, fast tests are not interesting here.
        duration_s=int(math.floor(max(0.0, float(case.duration_s)))),
        # No line indication for junit files.
        source=provenance.source_ref(None),
        job=provenance.job,
        pr=provenance.pr,
        build=provenance.build,
    )


def results_from_build_log(text: str, provenance: Provenance) -> List[CanonicalResult]:
    """Segment, parse and normalize one build log.

    MalformedInput (unterminated block) propagates: the whole file is unusable.
    A block that fails to parse is logged and skipped; the others are kept.
    """
    results: List[CanonicalResult] = []
    for block in split_failure_blocks(text):
        try:
            parsed = parse_failure_block(block)
        except ParseError as e:
            logger.warning(
                "skipping failure block at line %d in %s: %s", block.start_line, provenance.source, e
            )
            continue
        results.append(normalize_record(parsed, provenance, line=block.start_line))
    return results


def results_from_junit(cases: List[JUnitCase], provenance: Provenance) -> List[CanonicalResult]:
    results: List[CanonicalResult] = []
    for case in cases:
        res = normalize_junit_case(case, provenance)
        if res is not None:
            results.append(res)
    return results
