# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""
Command line for ci_test_digest.

Commands:
  tests parse-logs FILE_OR_URL   failure blocks of one build-log.txt
  tests list                     every test result of the last --limit jobs
  tests max-duration             max passed vs. max failed duration per test
  tests most-failures            passed/failed counts per test
  jobs list                      duration and status of the last --limit jobs

Reports go to stdout, diagnostics (logging) to stderr.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from rich.console import Console

from .config import DEFAULT_MAX_JOBS, DEFAULT_TIMEOUT_S, DigestConfig, load_config
from .errors import DigestError
from .normalize import provenance_for, results_from_build_log
from .pipeline import ArtifactPipeline, fetch_log
from .regexes import ARTIFACT_PROWJOB_RE, ARTIFACT_TEST_RESULTS_RE
from .render import (
    COLOR_CHOICES,
    make_console,
    render_builds,
    render_max_duration,
    render_most_failures,
    render_results,
    write_json,
)
from .result_types import CanonicalResult, TestStatus
from .segment import decode_log_bytes
from .stats import max_duration_stats, most_failures_stats

logger = logging.getLogger(__name__)


def _by_name(results: Sequence[CanonicalResult]) -> List[CanonicalResult]:
    return sorted(results, key=lambda r: r.name)


def _resolve_config(args: argparse.Namespace) -> DigestConfig:
    cfg = load_config(Path(args.config) if args.config else None)
    return cfg.with_overrides(bucket=args.bucket, prefixes=args.prefix, cache_dir=args.cache_dir)


def _pipeline_for(args: argparse.Namespace) -> ArtifactPipeline:
    return ArtifactPipeline(_resolve_config(args))


def _cached_test_results(args: argparse.Namespace) -> List[CanonicalResult]:
    pipeline = _pipeline_for(args)
    if not args.no_download:
        pipeline.download_artifacts(int(args.limit), ARTIFACT_TEST_RESULTS_RE)
    return pipeline.test_results_from_cache(int(args.limit))


def _cmd_tests_parse_logs(args: argparse.Namespace, console: Console) -> int:
    data = fetch_log(args.file_or_url, timeout_s=DEFAULT_TIMEOUT_S)
    results = _by_name(results_from_build_log(decode_log_bytes(data), provenance_for(args.file_or_url)))
    if args.output == "json":
        write_json(results)
    else:
        render_results(console, results)
    return 0


def _cmd_tests_list(args: argparse.Namespace, console: Console) -> int:
    results = [
        res
        for res in _cached_test_results(args)
        if args.name in res.name and (not args.only_failed or res.status == TestStatus.FAILED)
    ]
    results = _by_name(results)
    if args.output == "json":
        write_json(results)
    else:
        render_results(console, results)
    return 0


def _cmd_tests_max_duration(args: argparse.Namespace, console: Console) -> int:
    stats = max_duration_stats(_cached_test_results(args))
    if args.output == "json":
        write_json(stats)
    else:
        render_max_duration(console, stats)
    return 0


def _cmd_tests_most_failures(args: argparse.Namespace, console: Console) -> int:
    stats = most_failures_stats(_cached_test_results(args))
    if args.output == "json":
        write_json(stats)
    else:
        render_most_failures(console, stats)
    return 0


def _cmd_jobs_list(args: argparse.Namespace, console: Console) -> int:
    pipeline = _pipeline_for(args)
    if not args.no_download:
        pipeline.download_artifacts(int(args.limit), ARTIFACT_PROWJOB_RE)
    builds = pipeline.builds_from_cache(int(args.limit))
    if args.output == "json":
        write_json(builds)
    else:
        render_builds(console, builds)
    return 0


_COMMANDS: Dict[str, Callable[[argparse.Namespace, Console], int]] = {
    "tests parse-logs": _cmd_tests_parse_logs,
    "tests list": _cmd_tests_list,
    "tests max-duration": _cmd_tests_max_duration,
    "tests most-failures": _cmd_tests_most_failures,
    "jobs list": _cmd_jobs_list,
}


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-o", "--output", choices=("text", "json"), default="text", help="Output format (default: text)")
    common.add_argument("--color", choices=COLOR_CHOICES, default="auto", help="Colorize text output (default: auto)")
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr.")

    bucket = argparse.ArgumentParser(add_help=False)
    bucket.add_argument("--limit", type=int, default=DEFAULT_MAX_JOBS, help=f"Number of jobs to look at, newest PRs first (default: {DEFAULT_MAX_JOBS})")
    bucket.add_argument("--no-download", action="store_true", help="Only use what is already in the local cache.")
    bucket.add_argument("--config", default="", help="YAML config file (default: $CI_TEST_DIGEST_CONFIG or ~/.config/ci-test-digest/config.yaml)")
    bucket.add_argument("--bucket", default=None, help="Bucket holding the job artifacts (default: jetstack-logs)")
    bucket.add_argument("--prefix", action="append", default=None, help="Bucket prefix holding PR directories (repeatable).")
    bucket.add_argument("--cache-dir", default=None, help="Cache directory (default: $CI_TEST_DIGEST_CACHE_DIR or ~/.cache/ci-test-digest)")

    parser = argparse.ArgumentParser(
        prog="ci-test-digest",
        description="Digest Ginkgo e2e test results from CI build logs and junit reports.",
        epilog="Examples:\n"
               "  %(prog)s tests parse-logs build-log.txt\n"
               "  %(prog)s tests parse-logs https://storage.googleapis.com/jetstack-logs/pr-logs/pull/.../build-log.txt -o json\n"
               "  %(prog)s tests most-failures --limit 50\n"
               "  %(prog)s tests list --name Vault --only-failed --no-download\n"
               "  %(prog)s jobs list",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    groups = parser.add_subparsers(dest="group", metavar="{tests,jobs}")
    groups.required = True

    tests = groups.add_parser("tests", help="Test results")
    tests_cmds = tests.add_subparsers(dest="command")
    tests_cmds.required = True

    parse_logs = tests_cmds.add_parser("parse-logs", parents=[common], help="Parse the failure blocks of one build-log.txt")
    parse_logs.add_argument("file_or_url", help="Local path or http(s) URL of a build-log.txt")

    list_cmd = tests_cmds.add_parser("list", parents=[common, bucket], help="List the test results of the last jobs")
    list_cmd.add_argument("--name", default="", help="Only tests whose name contains this string.")
    list_cmd.add_argument("--only-failed", action="store_true", help="Only failed tests.")

    tests_cmds.add_parser(
        "max-duration",
        parents=[common, bucket],
        help="Max duration of passed vs. failed runs, for tests that failed at least once",
    )
    tests_cmds.add_parser(
        "most-failures",
        parents=[common, bucket],
        help="Tests that failed the most, with the last error",
    )

    jobs = groups.add_parser("jobs", help="Job (build) results")
    jobs_cmds = jobs.add_subparsers(dest="command")
    jobs_cmds.required = True
    jobs_cmds.add_parser("list", parents=[common, bucket], help="Duration and status of the last jobs")
    return parser


def _cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(message)s")
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    handler = _COMMANDS[f"{args.group} {args.command}"]
    console = make_console(args.color)
    try:
        return int(handler(args, console))
    except DigestError as e:
        logger.error("error: %s", e)
        return 1


def main() -> int:
    return _cli()


if __name__ == "__main__":
    raise SystemExit(_cli())
