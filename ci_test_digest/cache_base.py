#!/usr/bin/env python3
# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Base class for small JSON index files kept next to the artifact cache.

On-disk schema:
  {"version": <int>, "items": {"<key>": <value>, ...}}
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional

try:
    import fcntl  # type: ignore
except Exception:  # pragma: no cover - best-effort on non-POSIX
    fcntl = None  # type: ignore

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Hit/miss/write counters, updated by BaseDiskCache."""
    hit: int = 0
    miss: int = 0
    write: int = 0


class BaseDiskCache:
    """Thread-safe JSON dict persisted to disk.

    - Lazy loading (on first access)
    - Lock for threads, fcntl lock file for other processes
    - Merge on write: entries written by a concurrent process are kept,
      ours win on conflicts
    - Atomic replace (tmp file + rename)
    """

    def __init__(self, *, cache_file: Path, schema_version: int = 1):
        self._mu = Lock()
        self._cache_file = Path(cache_file)
        self._schema_version = int(schema_version)
        self._items: Dict[str, Any] = {}
        self._loaded = False
        self._dirty = False
        self.stats = CacheStats()

    @property
    def cache_file(self) -> Path:
        return self._cache_file

    def _lock_file_path(self) -> Path:
        return self._cache_file.with_name(f".{self._cache_file.name}.lock")

    def _acquire_disk_lock(self, *, timeout_s: float = 10.0) -> Optional[Any]:
        """Inter-process lock. Returns the open lock file, or None on timeout/no fcntl."""
        if fcntl is None:
            return None

        lock_path = self._lock_file_path()
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        fh = open(lock_path, "w")
        start = time.monotonic()
        while time.monotonic() - start < float(timeout_s):
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                return fh
            except OSError:
                time.sleep(0.1)
        fh.close()
        logger.warning("timed out waiting for lock %s, writing without it", lock_path)
        return None

    def _release_disk_lock(self, lock_fh: Optional[Any]) -> None:
        if lock_fh is None:
            return
        try:
            if fcntl is not None:
                fcntl.flock(lock_fh.fileno(), fcntl.LOCK_UN)
        finally:
            lock_fh.close()

    def _read_disk_items(self) -> Dict[str, Any]:
        if not self._cache_file.exists():
            return {}
        try:
            raw = json.loads(self._cache_file.read_text() or "{}")
        except (OSError, ValueError) as e:
            # A corrupt index only costs re-hashing the cached files.
            logger.warning("ignoring unreadable cache index %s: %s", self._cache_file, e)
            return {}
        if not isinstance(raw, dict) or int(raw.get("version", 0) or 0) != self._schema_version:
            return {}
        items = raw.get("items")
        return dict(items) if isinstance(items, dict) else {}

    def _load_once(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        self._items = self._read_disk_items()

    def _persist(self) -> None:
        if not self._dirty:
            return
        self._cache_file.parent.mkdir(parents=True, exist_ok=True)

        lock_fh = self._acquire_disk_lock()
        try:
            # disk first, then memory wins for conflicts
            merged = {**self._read_disk_items(), **self._items}
            payload = {"version": self._schema_version, "items": merged}
            tmp = Path(f"{self._cache_file}.tmp.{os.getpid()}")
            tmp.write_text(json.dumps(payload, separators=(",", ":")))
            os.replace(tmp, self._cache_file)
            self._items = merged
            self._dirty = False
        finally:
            self._release_disk_lock(lock_fh)

    def _check_item(self, key: str) -> Optional[Any]:
        """Return the item (or None) and count the hit/miss."""
        value = self._items.get(key)
        if value is not None:
            self.stats.hit += 1
        else:
            self.stats.miss += 1
        return value

    def _set_item(self, key: str, value: Any) -> None:
        self._items[key] = value
        self._dirty = True
        self.stats.write += 1

    def flush(self) -> None:
        """Persist pending writes to disk."""
        with self._mu:
            self._persist()
