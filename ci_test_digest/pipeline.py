# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Artifact pipeline: bucket -> local cache -> CanonicalResults / BuildResults.

Bucket layout (one directory per PR, then per job, then per build):

  pr-logs/pull/jetstack_cert-manager/4664/pull-cert-manager-e2e-v1-13/14356/
    prowjob.json
    build-log.txt
    artifacts/junit__01.xml

"Newest first" means by decreasing PR number. Jobs are counted by their
prowjob.json (one prowjob.json = one build).
"""

from __future__ import annotations

import json
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Pattern, Sequence

import requests

from .artifact_cache import ArtifactCache
from .blob_store import BlobObject, BlobStore, GCSBlobStore
from .config import DEFAULT_MAX_JOBS, DigestConfig
from .errors import ArtifactError, DigestError, MalformedInput
from .junit import ingest_junit
from .normalize import provenance_for_artifact, results_from_build_log, results_from_junit
from .regexes import (
    ARTIFACT_BUILD_LOG_RE,
    ARTIFACT_JUNIT_RE,
    ARTIFACT_PR_NUMBER_SUFFIX_RE,
    ARTIFACT_PROWJOB_RE,
    ARTIFACT_TEST_RESULTS_RE,
)
from .result_types import BuildResult, BuildStatus, CanonicalResult
from .segment import decode_log_bytes

logger = logging.getLogger(__name__)


def fetch_log(file_or_url: str, *, timeout_s: int = 60, session: Optional[requests.Session] = None) -> bytes:
    """Read a local file, or GET a http(s) URL."""
    if str(file_or_url).startswith(("http://", "https://")):
        getter = session or requests
        try:
            resp = getter.get(file_or_url, timeout=timeout_s)
        except requests.exceptions.RequestException as e:
            raise ArtifactError(f"fetching URL {file_or_url}: {e}") from e
        if resp.status_code < 200 or resp.status_code >= 300:
            raise ArtifactError(f"fetching URL {file_or_url}: HTTP {resp.status_code}: {(resp.text or '')[:200]}")
        return resp.content

    try:
        return Path(file_or_url).read_bytes()
    except OSError as e:
        raise ArtifactError(f"reading {file_or_url}: {e}") from e


def _pr_number(prefix: str) -> Optional[int]:
    m = ARTIFACT_PR_NUMBER_SUFFIX_RE.search(str(prefix))
    return int(m.group(1)) if m else None


def sort_numeric_desc(pr_prefixes: Sequence[str]) -> List[str]:
    """Sort by decreasing PR number (a trailing '/' is ignored).

    A lexicographical sort would put ".../2/" between ".../20/" and ".../10/".
    Entries without a PR number go last, in their original order.
    """
    numbered = [p for p in pr_prefixes if _pr_number(p) is not None]
    others = [p for p in pr_prefixes if _pr_number(p) is None]
    numbered.sort(key=lambda p: _pr_number(p) or 0, reverse=True)
    return numbered + others


def _parse_prow_time(value: Any, *, field_name: str, source: str) -> datetime:
    if not value:
        raise ArtifactError(f"{source}: missing status.{field_name}")
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as e:
        raise ArtifactError(f"{source}: invalid status.{field_name} {value!r}") from e


def parse_prowjob(data: bytes, *, source: str = "prowjob.json") -> Optional[BuildResult]:
    """BuildResult for one prowjob.json, or None for builds that are not finished.

    Pending and aborted builds are skipped: the duration of an aborted build
    means nothing.
    """
    try:
        prowjob = json.loads(decode_log_bytes(data))
    except ValueError as e:
        raise ArtifactError(f"failed to parse prowjob.json file {source}: {e}") from e
    if not isinstance(prowjob, dict):
        raise ArtifactError(f"failed to parse prowjob.json file {source}: expected an object")

    spec = prowjob.get("spec") or {}
    status = prowjob.get("status") or {}
    if not isinstance(spec, dict) or not isinstance(status, dict):
        raise ArtifactError(f"failed to parse prowjob.json file {source}: spec and status must be objects")
    state = str(status.get("state") or "")

    if state in ("pending", "aborted"):
        return None
    if state not in (BuildStatus.SUCCESS.value, BuildStatus.FAILURE.value):
        logger.warning("skipping %s: unknown build state %r", source, state)
        return None

    started = _parse_prow_time(status.get("startTime"), field_name="startTime", source=source)
    completed = _parse_prow_time(status.get("completionTime"), field_name="completionTime", source=source)
    build_status = BuildStatus(state)
    return BuildResult(
        status=build_status,
        duration_s=int(math.floor((completed - started).total_seconds())),
        url=str(status.get("url") or ""),
        job_name=str(spec.get("job") or ""),
        err=str(status.get("description") or "") if build_status != BuildStatus.SUCCESS else "",
    )


class ArtifactPipeline:
    """Downloads job artifacts into the cache and parses them from there."""

    def __init__(
        self,
        config: DigestConfig,
        store: Optional[BlobStore] = None,
        cache: Optional[ArtifactCache] = None,
    ):
        self.config = config
        self.store = store or GCSBlobStore(config)
        self.cache = cache or ArtifactCache(root=config.bucket_cache_dir, index_file=config.checksum_index_file)

    # ------------------------------------------------------------------
    # download
    # ------------------------------------------------------------------

    def list_pr_prefixes(self) -> List[str]:
        """All PR "directories" under the configured prefixes, newest PR first."""
        pr_prefixes: List[str] = []
        for prefix in self.config.prefixes:
            for p in self.store.list_prefixes(prefix):
                if ARTIFACT_PR_NUMBER_SUFFIX_RE.search(p):
                    pr_prefixes.append(p)
        logger.info("Listing all PRs... found %d", len(pr_prefixes))
        return sort_numeric_desc(pr_prefixes)

    def select_objects(self, max_jobs: int, pattern: Pattern[str]) -> List[BlobObject]:
        """Objects of the `max_jobs` newest jobs whose name matches `pattern`.

        prowjob.json objects are always selected: they mark the jobs in the cache.
        """
        selected: List[BlobObject] = []
        count_jobs = 0
        for pr_prefix in self.list_pr_prefixes():
            for obj in self.store.list_objects(pr_prefix):
                is_prowjob = bool(ARTIFACT_PROWJOB_RE.search(obj.name))
                if is_prowjob:
                    count_jobs += 1
                if is_prowjob or pattern.search(obj.name):
                    selected.append(obj)
                if count_jobs >= max_jobs:
                    break
            if count_jobs >= max_jobs:
                break
        logger.info("Finding the last %d jobs... found %d job(s), %d object(s)", max_jobs, count_jobs, len(selected))
        return selected

    def download_artifacts(self, max_jobs: int = DEFAULT_MAX_JOBS, pattern: Pattern[str] = ARTIFACT_TEST_RESULTS_RE) -> int:
        """Bring the cache up to date. Returns the number of objects downloaded.

        The first failure aborts the download (nothing is retried).
        """
        objects = self.select_objects(max_jobs, pattern)
        total_size = sum(o.size for o in objects)
        logger.info("Downloading logs for each job... (%d object(s), %d bytes)", len(objects), total_size)

        downloaded = 0
        try:
            with ThreadPoolExecutor(max_workers=max(1, int(self.config.max_workers))) as executor:
                futures = [(obj, executor.submit(self.cache.ensure, obj, self.store)) for obj in objects]
                for obj, future in futures:
                    try:
                        if future.result():
                            downloaded += 1
                    except DigestError as e:
                        for _, other in futures:
                            other.cancel()
                        raise ArtifactError(f"failed to download job artifacts for {obj.name}: {e}") from e
        finally:
            self.cache.flush()

        logger.info(
            "cache: %d downloaded, %d already cached (index hit=%d miss=%d)",
            downloaded,
            len(objects) - downloaded,
            self.cache.stats.hit,
            self.cache.stats.miss,
        )
        return downloaded

    # ------------------------------------------------------------------
    # cache
    # ------------------------------------------------------------------

    def find_cached_artifacts(self, max_jobs: int = DEFAULT_MAX_JOBS) -> List[Path]:
        """Cached files of the `max_jobs` newest jobs, newest PR first."""
        pr_dirs: List[str] = []
        for prefix in self.config.prefixes:
            prefix_dir = self.cache.root / prefix.strip("/")
            if not prefix_dir.is_dir():
                logger.warning("nothing cached under %s", prefix_dir)
                continue
            pr_dirs.extend(str(p) for p in sorted(prefix_dir.iterdir()) if p.is_dir())

        artifacts: List[Path] = []
        count_jobs = 0
        for pr_dir in sort_numeric_desc(pr_dirs):
            for path in _walk_files(Path(pr_dir)):
                if ARTIFACT_PROWJOB_RE.search(path.name):
                    count_jobs += 1
                artifacts.append(path)
                if count_jobs >= max_jobs:
                    break
            if count_jobs >= max_jobs:
                break
        logger.debug("found %d cached artifact(s) for %d job(s)", len(artifacts), count_jobs)
        return artifacts

    def test_results_from_cache(self, max_jobs: int = DEFAULT_MAX_JOBS) -> List[CanonicalResult]:
        """Parse the cached build logs and junit reports.

        An unusable artifact is logged and skipped; the other artifacts are kept.
        """
        results: List[CanonicalResult] = []
        artifacts = [p for p in self.find_cached_artifacts(max_jobs) if ARTIFACT_TEST_RESULTS_RE.search(p.name)]
        logger.info("Parsing logs... (%d file(s))", len(artifacts))
        for path in artifacts:
            object_name = self.cache.object_name_for(path)
            url = self.config.public_url(object_name)
            try:
                provenance = provenance_for_artifact(object_name, url)
                data = self.cache.load(path)
                if ARTIFACT_JUNIT_RE.search(path.name):
                    results.extend(results_from_junit(ingest_junit(data), provenance))
                elif ARTIFACT_BUILD_LOG_RE.search(path.name):
                    results.extend(results_from_build_log(decode_log_bytes(data), provenance))
            except (MalformedInput, ArtifactError) as e:
                logger.error("skipping %s: %s", url, e)
        return results

    def builds_from_cache(self, max_jobs: int = DEFAULT_MAX_JOBS) -> List[BuildResult]:
        results: List[BuildResult] = []
        for path in self.find_cached_artifacts(max_jobs):
            if not ARTIFACT_PROWJOB_RE.search(path.name):
                continue
            try:
                build = parse_prowjob(self.cache.load(path), source=str(path))
            except ArtifactError as e:
                logger.error("skipping %s: %s", path, e)
                continue
            if build is not None:
                results.append(build)
        return results


def _walk_files(root: Path):
    """Files under `root`, depth-first, entries in lexical order."""
    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        if entry.is_dir():
            yield from _walk_files(entry)
        elif ".tmp." not in entry.name:
            yield entry

