"""
Pytest tests for artifact_cache.py / cache_base.py (checksum-keyed local cache).
"""

import json
import sys
from pathlib import Path

import pytest

# Set up path for imports
parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

from ci_test_digest.artifact_cache import ArtifactCache, md5_base64
from ci_test_digest.blob_store import BlobObject
from ci_test_digest.errors import ArtifactError


def _cache(tmp_path: Path) -> ArtifactCache:
    return ArtifactCache(root=tmp_path / "bucket", index_file=tmp_path / "bucket.index.json")


def _obj(name: str, data: bytes) -> BlobObject:
    return BlobObject(name=name, size=len(data), md5=md5_base64(data))


def _index_items(tmp_path: Path) -> dict:
    return json.loads((tmp_path / "bucket.index.json").read_text())["items"]


def test_md5_base64_matches_gcs_encoding():
    # GCS reports md5Hash as base64 of the raw digest.
    assert md5_base64(b"") == "1B2M2Y8AsgTpgAmY7PhCfg=="


def test_store_then_fresh(tmp_path):
    cache = _cache(tmp_path)
    obj = _obj("pr-logs/pull/x/1/job/2/build-log.txt", b"log")

    assert not cache.is_fresh(obj)
    path = cache.store(obj, b"log")
    assert path == tmp_path / "bucket" / "pr-logs/pull/x/1/job/2/build-log.txt"
    assert cache.is_fresh(obj)
    assert cache.object_name_for(path) == obj.name
    assert cache.load(path) == b"log"


def test_unindexed_file_is_hashed(tmp_path):
    cache = _cache(tmp_path)
    obj = _obj("a/b.txt", b"content")
    cache.path_for(obj.name).parent.mkdir(parents=True)
    cache.path_for(obj.name).write_bytes(b"content")

    assert cache.is_fresh(obj)
    cache.flush()
    assert _index_items(tmp_path) == {"a/b.txt": {"md5": obj.md5, "size": 7}}


def test_changed_file_is_not_fresh(tmp_path, caplog):
    cache = _cache(tmp_path)
    obj = _obj("a/b.txt", b"content")
    cache.store(obj, b"content")
    cache.path_for(obj.name).write_bytes(b"other")

    with caplog.at_level("WARNING"):
        assert not cache.is_fresh(obj)
    assert "will be re-downloaded" in caplog.text


def test_object_without_md5_compares_size(tmp_path):
    cache = _cache(tmp_path)
    cache.store(_obj("c.txt", b"12345"), b"12345")
    assert cache.is_fresh(BlobObject(name="c.txt", size=5, md5=None))
    assert not cache.is_fresh(BlobObject(name="c.txt", size=6, md5=None))


def test_index_is_persisted_and_merged(tmp_path):
    first = _cache(tmp_path)
    first.store(_obj("one.txt", b"1"), b"1")
    first.flush()

    # Another process wrote "two.txt" in the meantime.
    second = _cache(tmp_path)
    second.store(_obj("two.txt", b"2"), b"2")
    second.flush()

    raw = json.loads((tmp_path / "bucket.index.json").read_text())
    assert raw["version"] == 1
    assert set(raw["items"]) == {"one.txt", "two.txt"}


def test_corrupt_index_is_ignored(tmp_path):
    (tmp_path / "bucket.index.json").write_text("{not json")
    cache = _cache(tmp_path)
    assert not cache.is_fresh(_obj("one.txt", b"1"))
    cache.store(_obj("one.txt", b"1"), b"1")
    cache.flush()
    assert list(_index_items(tmp_path)) == ["one.txt"]


def test_load_missing_file(tmp_path):
    with pytest.raises(ArtifactError) as excinfo:
        _cache(tmp_path).load(tmp_path / "bucket" / "nope.txt")
    assert "does not exist in the cache" in str(excinfo.value)
