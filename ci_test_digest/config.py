# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Configuration for the artifact pipeline.

Resolution order (later wins):
- built-in defaults (below)
- YAML config file: --config, else $CI_TEST_DIGEST_CONFIG, else
  ~/.config/ci-test-digest/config.yaml when it exists
- environment: $CI_TEST_DIGEST_CACHE_DIR
- command-line flags (--bucket, --prefix, --cache-dir)

Example config.yaml:

  bucket: jetstack-logs
  prefixes:
    - pr-logs/pull/jetstack_cert-manager
    - pr-logs/pull/cert-manager_cert-manager
  cache_dir: ~/.cache/ci-test-digest
  max_workers: 8
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

import yaml

from .errors import DigestError

logger = logging.getLogger(__name__)

DEFAULT_BUCKET: str = "jetstack-logs"
DEFAULT_PREFIXES: Tuple[str, ...] = (
    "pr-logs/pull/jetstack_cert-manager",
    "pr-logs/pull/cert-manager_cert-manager",
)
DEFAULT_PUBLIC_BASE_URL: str = "https://storage.googleapis.com"
DEFAULT_API_BASE_URL: str = "https://storage.googleapis.com/storage/v1"
DEFAULT_TIMEOUT_S: int = 60
DEFAULT_MAX_WORKERS: int = 8
# Number of jobs (one prowjob.json = one build) to look at, newest PRs first.
DEFAULT_MAX_JOBS: int = 20

CACHE_DIR_ENV: str = "CI_TEST_DIGEST_CACHE_DIR"
CONFIG_FILE_ENV: str = "CI_TEST_DIGEST_CONFIG"


def default_cache_root() -> Path:
    """Return the cache directory.

    Resolution order:
    - CI_TEST_DIGEST_CACHE_DIR (explicit override)
    - ~/.cache/ci-test-digest
    """
    override = os.environ.get(CACHE_DIR_ENV, "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".cache" / "ci-test-digest"


def default_config_file() -> Optional[Path]:
    override = os.environ.get(CONFIG_FILE_ENV, "").strip()
    if override:
        return Path(override).expanduser()
    p = Path.home() / ".config" / "ci-test-digest" / "config.yaml"
    return p if p.exists() else None


@dataclass(frozen=True)
class DigestConfig:
    bucket: str = DEFAULT_BUCKET
    prefixes: Tuple[str, ...] = DEFAULT_PREFIXES
    cache_dir: Path = field(default_factory=default_cache_root)
    public_base_url: str = DEFAULT_PUBLIC_BASE_URL
    api_base_url: str = DEFAULT_API_BASE_URL
    timeout_s: int = DEFAULT_TIMEOUT_S
    max_workers: int = DEFAULT_MAX_WORKERS

    @property
    def bucket_cache_dir(self) -> Path:
        """Root of the downloaded objects: <cache_dir>/<bucket>/<object name>."""
        return Path(self.cache_dir) / self.bucket

    @property
    def checksum_index_file(self) -> Path:
        return Path(self.cache_dir) / f"{self.bucket}.index.json"

    def public_url(self, object_name: str) -> str:
        """e.g. https://storage.googleapis.com/jetstack-logs/<object-name>"""
        return f"{self.public_base_url.rstrip('/')}/{self.bucket}/{object_name.lstrip('/')}"

    def with_overrides(
        self,
        *,
        bucket: Optional[str] = None,
        prefixes: Optional[Sequence[str]] = None,
        cache_dir: Optional[str] = None,
    ) -> "DigestConfig":
        """Apply command-line flags (None means "not given")."""
        changes: Dict[str, Any] = {}
        if bucket:
            changes["bucket"] = bucket
        if prefixes:
            changes["prefixes"] = tuple(prefixes)
        if cache_dir:
            changes["cache_dir"] = Path(cache_dir).expanduser()
        return replace(self, **changes) if changes else self


def _from_mapping(data: Dict[str, Any]) -> DigestConfig:
    known = {f.name for f in fields(DigestConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise DigestError(f"unknown config key(s): {', '.join(unknown)}")

    kwargs: Dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        if key == "prefixes":
            if isinstance(value, str):
                value = [value]
            kwargs[key] = tuple(str(v) for v in value)
        elif key == "cache_dir":
            kwargs[key] = Path(str(value)).expanduser()
        elif key in ("timeout_s", "max_workers"):
            kwargs[key] = int(value)
        else:
            kwargs[key] = str(value)
    return DigestConfig(**kwargs)


def load_config(config_file: Optional[Path] = None) -> DigestConfig:
    """Build the configuration from defaults + YAML file + environment."""
    path = Path(config_file).expanduser() if config_file else default_config_file()
    if path is None:
        return DigestConfig()

    try:
        raw = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError) as e:
        raise DigestError(f"failed to read config file {path}: {e}") from e
    if not isinstance(raw, dict):
        raise DigestError(f"config file {path}: expected a mapping at the top level")

    cfg = _from_mapping(raw)
    # The environment wins over the file for the cache location.
    if os.environ.get(CACHE_DIR_ENV, "").strip():
        cfg = replace(cfg, cache_dir=default_cache_root())
    logger.debug("loaded config from %s: %s", path, cfg)
    return cfg
