"""
Pytest tests for pipeline.py (bucket -> cache -> results), using an in-memory bucket.
"""

import json
import sys
from pathlib import Path
from typing import Dict, Iterator, List

import pytest

# Set up path for imports
parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

from ci_test_digest.artifact_cache import md5_base64
from ci_test_digest.blob_store import BlobObject, BlobStore
from ci_test_digest.config import DigestConfig
from ci_test_digest.errors import ArtifactError, BlobStoreError
from ci_test_digest.pipeline import ArtifactPipeline, fetch_log, parse_prowjob, sort_numeric_desc
from ci_test_digest.regexes import ARTIFACT_PROWJOB_RE
from ci_test_digest.result_types import BuildStatus, TestStatus

TESTDATA = Path(__file__).parent / "testdata"
PREFIX = "pr-logs/pull/org_repo"


class FakeBlobStore(BlobStore):
    def __init__(self, objects: Dict[str, bytes]):
        self.objects = dict(objects)
        self.fetched: List[str] = []
        self.fail_on = set()

    def list_objects(self, prefix: str) -> Iterator[BlobObject]:
        for name in sorted(self.objects):
            if name.startswith(prefix):
                data = self.objects[name]
                yield BlobObject(name=name, size=len(data), md5=md5_base64(data))

    def list_prefixes(self, prefix: str) -> List[str]:
        if not prefix.endswith("/"):
            prefix += "/"
        out = []
        for name in sorted(self.objects):
            if name.startswith(prefix) and "/" in name[len(prefix):]:
                p = prefix + name[len(prefix):].split("/", 1)[0] + "/"
                if p not in out:
                    out.append(p)
        return out

    def fetch(self, name: str) -> bytes:
        if name in self.fail_on:
            raise BlobStoreError(status_code=503, endpoint=name, message=f"GET {name} returned HTTP 503")
        self.fetched.append(name)
        return self.objects[name]


def _prowjob(state: str, start: str, end: str, build: str) -> bytes:
    return json.dumps(
        {
            "spec": {"job": "pull-org-e2e"},
            "status": {
                "state": state,
                "startTime": start,
                "completionTime": end,
                "description": "Job failed." if state == "failure" else "Job succeeded.",
                "url": f"https://prow.example.com/view/{build}",
            },
        }
    ).encode()


@pytest.fixture
def bucket() -> FakeBlobStore:
    return FakeBlobStore(
        {
            f"{PREFIX}/10/pull-org-e2e/200/build-log.txt": (TESTDATA / "build-log.txt").read_bytes(),
            f"{PREFIX}/10/pull-org-e2e/200/prowjob.json": _prowjob(
                "failure", "2022-07-06T13:00:00Z", "2022-07-06T13:01:02Z", "200"
            ),
            f"{PREFIX}/10/pull-org-e2e/200/started.json": b"{}",
            f"{PREFIX}/9/pull-org-e2e/100/artifacts/junit__01.xml": (TESTDATA / "junit__01.xml").read_bytes(),
            f"{PREFIX}/9/pull-org-e2e/100/build-log.txt": (TESTDATA / "build-log-retried.txt").read_bytes(),
            f"{PREFIX}/9/pull-org-e2e/100/prowjob.json": _prowjob(
                "success", "2022-07-06T13:00:00Z", "2022-07-06T13:42:05Z", "100"
            ),
            f"{PREFIX}/2/pull-org-e2e/50/build-log.txt": b"",
            f"{PREFIX}/2/pull-org-e2e/50/prowjob.json": _prowjob("pending", "2022-07-06T13:00:00Z", "", "50"),
        }
    )


@pytest.fixture
def pipeline(tmp_path, bucket) -> ArtifactPipeline:
    config = DigestConfig(bucket="test-bucket", prefixes=(PREFIX,), cache_dir=tmp_path, max_workers=2)
    return ArtifactPipeline(config, store=bucket)


# ============================================================================
# Helpers
# ============================================================================

def test_sort_numeric_desc():
    prefixes = [f"{PREFIX}/1/", f"{PREFIX}/20/", f"{PREFIX}/2/", f"{PREFIX}/10/", f"{PREFIX}/batch/"]
    assert sort_numeric_desc(prefixes) == [
        f"{PREFIX}/20/",
        f"{PREFIX}/10/",
        f"{PREFIX}/2/",
        f"{PREFIX}/1/",
        f"{PREFIX}/batch/",
    ]
    assert sort_numeric_desc(["/tmp/cache/9", "/tmp/cache/10"]) == ["/tmp/cache/10", "/tmp/cache/9"]


def test_parse_prowjob():
    build = parse_prowjob(_prowjob("failure", "2022-07-06T13:00:00Z", "2022-07-06T13:01:02Z", "7"))
    assert build.status == BuildStatus.FAILURE
    assert build.duration_s == 62
    assert build.job_name == "pull-org-e2e"
    assert build.err == "Job failed."
    assert build.to_dict()["url"] == "https://prow.example.com/view/7"

    ok = parse_prowjob(_prowjob("success", "2022-07-06T13:00:00Z", "2022-07-06T13:00:59Z", "8"))
    assert ok.err == ""

    assert parse_prowjob(_prowjob("pending", "2022-07-06T13:00:00Z", "", "9")) is None
    assert parse_prowjob(_prowjob("aborted", "2022-07-06T13:00:00Z", "2022-07-06T13:00:01Z", "9")) is None


def test_parse_prowjob_invalid():
    with pytest.raises(ArtifactError):
        parse_prowjob(b"not json")
    with pytest.raises(ArtifactError):
        parse_prowjob(_prowjob("success", "2022-07-06T13:00:00Z", "", "9"))
    with pytest.raises(ArtifactError):
        parse_prowjob(b'{"spec": {"job": "j"}, "status": "success"}')
    with pytest.raises(ArtifactError):
        parse_prowjob(b'{"spec": "j", "status": {"state": "success"}}')


def test_fetch_log_local_file(tmp_path):
    p = tmp_path / "build-log.txt"
    p.write_bytes(b"hello\n")
    assert fetch_log(str(p)) == b"hello\n"
    with pytest.raises(ArtifactError):
        fetch_log(str(tmp_path / "missing.txt"))


# ============================================================================
# Download + cache
# ============================================================================

def test_list_pr_prefixes_newest_first(pipeline):
    assert pipeline.list_pr_prefixes() == [f"{PREFIX}/10/", f"{PREFIX}/9/", f"{PREFIX}/2/"]


def test_download_limits_jobs_and_filters_objects(pipeline, bucket, tmp_path):
    downloaded = pipeline.download_artifacts(max_jobs=2)

    assert downloaded == 5
    assert sorted(bucket.fetched) == sorted(
        [
            f"{PREFIX}/10/pull-org-e2e/200/build-log.txt",
            f"{PREFIX}/10/pull-org-e2e/200/prowjob.json",
            f"{PREFIX}/9/pull-org-e2e/100/artifacts/junit__01.xml",
            f"{PREFIX}/9/pull-org-e2e/100/build-log.txt",
            f"{PREFIX}/9/pull-org-e2e/100/prowjob.json",
        ]
    )
    root = tmp_path / "test-bucket"
    assert (root / PREFIX / "10/pull-org-e2e/200/build-log.txt").read_bytes() == (TESTDATA / "build-log.txt").read_bytes()
    assert not (root / PREFIX / "10/pull-org-e2e/200/started.json").exists()
    assert not (root / PREFIX / "2").exists()

    index = json.loads((tmp_path / "test-bucket.index.json").read_text())
    assert index["version"] == 1
    assert len(index["items"]) == 5


def test_second_download_hits_the_cache(pipeline, bucket):
    pipeline.download_artifacts(max_jobs=2)
    bucket.fetched.clear()

    assert pipeline.download_artifacts(max_jobs=2) == 0
    assert bucket.fetched == []


def test_checksum_mismatch_forces_download(pipeline, bucket, tmp_path, caplog):
    pipeline.download_artifacts(max_jobs=1)
    cached = tmp_path / "test-bucket" / PREFIX / "10/pull-org-e2e/200/build-log.txt"
    cached.write_bytes(b"truncated")
    bucket.fetched.clear()

    with caplog.at_level("WARNING"):
        assert pipeline.download_artifacts(max_jobs=1) == 1
    assert bucket.fetched == [f"{PREFIX}/10/pull-org-e2e/200/build-log.txt"]
    assert "does not match" in caplog.text
    assert cached.read_bytes() == (TESTDATA / "build-log.txt").read_bytes()


def test_download_failure_aborts(pipeline, bucket):
    bucket.fail_on.add(f"{PREFIX}/9/pull-org-e2e/100/build-log.txt")
    with pytest.raises(ArtifactError) as excinfo:
        pipeline.download_artifacts(max_jobs=2)
    assert "build-log.txt" in str(excinfo.value)


def test_prowjob_only_download(pipeline, bucket):
    pipeline.download_artifacts(max_jobs=3, pattern=ARTIFACT_PROWJOB_RE)
    assert all(name.endswith("prowjob.json") for name in bucket.fetched)
    assert len(bucket.fetched) == 3


# ============================================================================
# Results from the cache
# ============================================================================

def test_find_cached_artifacts_counts_jobs(pipeline):
    pipeline.download_artifacts(max_jobs=2)

    names = [pipeline.cache.object_name_for(p) for p in pipeline.find_cached_artifacts(max_jobs=1)]
    assert names == [
        f"{PREFIX}/10/pull-org-e2e/200/build-log.txt",
        f"{PREFIX}/10/pull-org-e2e/200/prowjob.json",
    ]
    assert len(pipeline.find_cached_artifacts(max_jobs=2)) == 5


def test_test_results_from_cache(pipeline):
    pipeline.download_artifacts(max_jobs=2)
    results = pipeline.test_results_from_cache(max_jobs=2)

    # 6 blocks in PR 10's log, 2 passed junit cases + 3 blocks for PR 9
    assert len(results) == 11
    assert sum(1 for r in results if r.status == TestStatus.PASSED) == 2
    assert sum(1 for r in results if r.status == TestStatus.ERROR) == 1
    assert {r.pr for r in results} == {9, 10}

    first = results[0]
    assert first.source == (
        "https://storage.googleapis.com/test-bucket/" f"{PREFIX}/10/pull-org-e2e/200/build-log.txt#line=2"
    )
    assert (first.job, first.build) == ("pull-org-e2e", 200)

    junit = [r for r in results if r.status == TestStatus.PASSED]
    assert all(r.source.endswith("/artifacts/junit__01.xml") for r in junit)


def test_bad_artifact_is_skipped(pipeline, caplog):
    pipeline.download_artifacts(max_jobs=2)
    bad = pipeline.cache.path_for(f"{PREFIX}/9/pull-org-e2e/100/build-log.txt")
    bad.write_text("• Failure [1.000 seconds]\nnever closed\n")

    with caplog.at_level("ERROR"):
        results = pipeline.test_results_from_cache(max_jobs=2)
    assert len(results) == 8
    assert "skipping" in caplog.text


def test_builds_from_cache(pipeline):
    pipeline.download_artifacts(max_jobs=3, pattern=ARTIFACT_PROWJOB_RE)
    builds = pipeline.builds_from_cache(max_jobs=3)

    # the pending build of PR 2 is skipped
    assert [(b.status, b.duration_s) for b in builds] == [(BuildStatus.FAILURE, 62), (BuildStatus.SUCCESS, 2525)]


def test_nothing_cached(pipeline):
    assert pipeline.find_cached_artifacts() == []
    assert pipeline.test_results_from_cache() == []
    assert pipeline.builds_from_cache() == []


def test_bad_junit_report_is_skipped(pipeline, caplog):
    pipeline.download_artifacts(max_jobs=2)
    bad = pipeline.cache.path_for(f"{PREFIX}/9/pull-org-e2e/100/artifacts/junit__01.xml")
    bad.write_bytes(b'<testsuite name="s"><testcase name="a" time="N/A"/></testsuite>')

    with caplog.at_level("ERROR"):
        results = pipeline.test_results_from_cache(max_jobs=2)
    # only the 2 passed junit cases are lost
    assert len(results) == 9
    assert all(r.status != TestStatus.PASSED for r in results)
    assert "junit__01.xml" in caplog.text


def test_bad_prowjob_is_skipped(pipeline, caplog):
    pipeline.download_artifacts(max_jobs=3, pattern=ARTIFACT_PROWJOB_RE)
    bad = pipeline.cache.path_for(f"{PREFIX}/9/pull-org-e2e/100/prowjob.json")
    bad.write_text('{"spec": {"job": "pull-org-e2e"}, "status": "success"}')

    with caplog.at_level("ERROR"):
        builds = pipeline.builds_from_cache(max_jobs=3)
    assert [(b.status, b.duration_s) for b in builds] == [(BuildStatus.FAILURE, 62)]
    assert "must be objects" in caplog.text
