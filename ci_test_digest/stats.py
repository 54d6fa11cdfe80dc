# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Ranked reports over a list of CanonicalResults.

Both reports "build up to the worst": the most interesting entries are printed
last, right above the shell prompt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .result_types import CanonicalResult, FailureCountStat, MaxDurationStat, TestStatus


@dataclass
class _MaxDurations:
    passed: int = 0
    failed: int = 0


@dataclass
class _FailureCounts:
    passed: int = 0
    failed: List[CanonicalResult] = field(default_factory=list)


def max_duration_stats(results: Iterable[CanonicalResult]) -> List[MaxDurationStat]:
    """Maximum passed vs. maximum failed duration per test name.

    Tests that never failed are dropped: without a failure nothing can be said
    about a timeout. Sorted ascending by (max failed - max passed), so tests whose
    failing runs take barely longer than passing runs (tight timeout margins)
    come first and the already-understood huge gaps come last. Ties keep the
    order in which names were first seen.
    """
    # dicts keep insertion order = first-seen order of names
    by_name: Dict[str, _MaxDurations] = {}
    for res in results:
        cur = by_name.setdefault(res.name, _MaxDurations())
        if res.status == TestStatus.PASSED:
            cur.passed = max(cur.passed, int(res.duration_s))
        elif res.status == TestStatus.FAILED:
            cur.failed = max(cur.failed, int(res.duration_s))

    stats = [
        MaxDurationStat(name=name, max_passed_s=cur.passed, max_failed_s=cur.failed)
        for name, cur in by_name.items()
        if cur.failed != 0
    ]
    stats.sort(key=lambda s: s.max_failed_s - s.max_passed_s)
    return stats


def most_failures_stats(results: Iterable[CanonicalResult]) -> List[FailureCountStat]:
    """Count of passed and failed runs per test name, least failing first.

    "error" results (setup failures) are a different category and are not
    counted at all. Failures keep the input order (artifact discovery order), so
    the last one is the most recent.
    """
    by_name: Dict[str, _FailureCounts] = {}
    for res in results:
        if res.status not in (TestStatus.PASSED, TestStatus.FAILED):
            continue
        cur = by_name.setdefault(res.name, _FailureCounts())
        if res.status == TestStatus.PASSED:
            cur.passed += 1
        else:
            cur.failed.append(res)

    stats = [
        FailureCountStat(name=name, count_passed=cur.passed, failures=tuple(cur.failed))
        for name, cur in by_name.items()
        if cur.failed
    ]
    stats.sort(key=lambda s: s.count_failed)
    return stats
