# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Local copy of the log bucket.

Caching strategy:
  - Files: <cache_dir>/<bucket>/<object name> (same layout as the bucket)
  - Index: <cache_dir>/<bucket>.index.json, key = object name,
    value = {"md5": <base64 md5 as listed by the store>, "size": <bytes>}
  - A cached file is reused only when its checksum matches the listing;
    otherwise it is downloaded again.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import os
from pathlib import Path

from .blob_store import BlobObject, BlobStore
from .cache_base import BaseDiskCache
from .errors import ArtifactError

logger = logging.getLogger(__name__)


def md5_base64(data: bytes) -> str:
    """MD5 digest encoded the way GCS reports `md5Hash`."""
    return base64.b64encode(hashlib.md5(data).digest()).decode("ascii")


def _md5_base64_of_file(path: Path) -> str:
    h = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return base64.b64encode(h.digest()).decode("ascii")


class ArtifactCache(BaseDiskCache):
    """Bucket objects on disk plus a checksum index.

    Stats (hit/miss/write) count index lookups.
    """

    _SCHEMA_VERSION = 1

    def __init__(self, *, root: Path, index_file: Path):
        super().__init__(cache_file=index_file, schema_version=self._SCHEMA_VERSION)
        self.root = Path(root)

    def path_for(self, object_name: str) -> Path:
        return self.root / object_name

    def object_name_for(self, path: Path) -> str:
        """Inverse of path_for()."""
        return Path(path).relative_to(self.root).as_posix()

    def is_fresh(self, obj: BlobObject) -> bool:
        """True if the cached copy of `obj` exists and its checksum matches."""
        path = self.path_for(obj.name)
        if not path.exists():
            return False
        with self._mu:
            self._load_once()
            entry = self._check_item(obj.name)
        if obj.md5 is None:
            # Composite objects have no md5; fall back to the size.
            return path.stat().st_size == obj.size

        if isinstance(entry, dict) and entry.get("md5") == obj.md5 and int(entry.get("size", -1)) == path.stat().st_size:
            return True

        # Not indexed yet (or stale entry): hash the file itself.
        actual = _md5_base64_of_file(path)
        if actual == obj.md5:
            self._record(obj.name, actual, path.stat().st_size)
            return True
        logger.warning("checksum for cache file %s does not match, it will be re-downloaded", path)
        return False

    def _record(self, name: str, md5: str, size: int) -> None:
        with self._mu:
            self._load_once()
            self._set_item(name, {"md5": md5, "size": int(size)})

    def store(self, obj: BlobObject, data: bytes) -> Path:
        """Write downloaded bytes into the cache and index them."""
        path = self.path_for(obj.name)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = Path(f"{path}.tmp.{os.getpid()}")
        tmp.write_bytes(data)
        os.replace(tmp, path)
        self._record(obj.name, md5_base64(data), len(data))
        return path

    def ensure(self, obj: BlobObject, store: BlobStore) -> bool:
        """Download `obj` unless a matching copy is cached. Returns True if downloaded."""
        if self.is_fresh(obj):
            return False
        data = store.fetch(obj.name)
        if obj.md5 is not None and md5_base64(data) != obj.md5:
            raise ArtifactError(f"checksum mismatch after downloading {obj.name}")
        self.store(obj, data)
        return True

    def load(self, path: Path) -> bytes:
        """Read a cached file. No checksum is verified here."""
        try:
            return Path(path).read_bytes()
        except FileNotFoundError as e:
            raise ArtifactError(f"{path} does not exist in the cache") from e
        except OSError as e:
            raise ArtifactError(f"failed to load a job artifact from cache: {path}: {e}") from e
