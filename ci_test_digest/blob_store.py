# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Read-only access to the bucket holding CI job artifacts.

Only two capabilities are needed: list objects under a prefix (with their
checksums), and fetch an object's bytes. Listing uses the GCS JSON API
(public buckets need no credentials); fetching uses the public URL.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import requests

from .config import DigestConfig
from .errors import BlobStoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlobObject:
    name: str
    size: int = 0
    # base64 MD5 as reported by the store; None for composite objects
    md5: Optional[str] = None


class BlobStore(ABC):
    @abstractmethod
    def list_objects(self, prefix: str) -> Iterator[BlobObject]:
        """All objects whose name starts with `prefix`, recursively."""

    @abstractmethod
    def list_prefixes(self, prefix: str) -> List[str]:
        """Direct "sub-directories" of `prefix` (each ending with '/')."""

    @abstractmethod
    def fetch(self, name: str) -> bytes:
        """Full content of one object."""


class GCSBlobStore(BlobStore):
    """Google Cloud Storage over plain HTTPS (requests)."""

    def __init__(self, config: DigestConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()
        self.api_calls = 0

    def _get(self, url: str, *, params: Optional[Dict[str, str]] = None, endpoint: str = "") -> requests.Response:
        self.api_calls += 1
        try:
            resp = self.session.get(url, params=params, timeout=self.config.timeout_s)
        except requests.exceptions.RequestException as e:
            raise BlobStoreError(status_code=0, endpoint=endpoint or url, message=f"request failed for {url}: {e}") from e

        code = int(resp.status_code or 0)
        if code < 200 or code >= 300:
            raise BlobStoreError(
                status_code=code,
                endpoint=endpoint or url,
                message=f"GET {url} returned HTTP {code}: {(resp.text or '')[:200]}",
            )
        return resp

    def _list_pages(self, prefix: str, *, delimiter: Optional[str]) -> Iterator[Dict[str, Any]]:
        url = f"{self.config.api_base_url.rstrip('/')}/b/{self.config.bucket}/o"
        params: Dict[str, str] = {"prefix": prefix}
        if delimiter:
            params["delimiter"] = delimiter
        while True:
            page = self._get(url, params=params, endpoint=f"list {prefix}").json()
            yield page
            token = page.get("nextPageToken")
            if not token:
                return
            params["pageToken"] = token

    def list_objects(self, prefix: str) -> Iterator[BlobObject]:
        for page in self._list_pages(prefix, delimiter=None):
            for item in page.get("items") or []:
                yield BlobObject(
                    name=str(item.get("name", "")),
                    size=int(item.get("size", 0) or 0),
                    md5=item.get("md5Hash") or None,
                )

    def list_prefixes(self, prefix: str) -> List[str]:
        if prefix and not prefix.endswith("/"):
            prefix += "/"
        out: List[str] = []
        for page in self._list_pages(prefix, delimiter="/"):
            out.extend(str(p) for p in page.get("prefixes") or [])
        return out

    def fetch(self, name: str) -> bytes:
        url = self.config.public_url(name)
        logger.debug("downloading %s", url)
        return self._get(url, endpoint=name).content
