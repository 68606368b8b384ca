"""
icons_remote.py
---------------
HTTP access to the upstream icon repository.

Two documents are used:
- the index (`tree.json` in dashboard-icons) listing every available file,
- one SVG document per icon at a predictable path.

Calls are blocking (requests); async callers wrap them in asyncio.to_thread.
There is no retry: a failure is reported to the caller as FetchError.
"""

from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import quote

import requests


class FetchError(Exception):
    """Upstream request failed (transport error or non-success HTTP status)."""

    def __init__(self, url: str, message: str, status: Optional[int] = None):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status = status


class IconSource:
    def __init__(
        self,
        base_url: str,
        index_path: str = "tree.json",
        source_path: str = "svg/{name}.svg",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.index_path = index_path.lstrip("/")
        self.source_path = source_path.lstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings) -> "IconSource":
        return cls(
            base_url=settings.upstream_base_url,
            index_path=settings.index_path,
            source_path=settings.source_path,
            timeout=settings.fetch_timeout_seconds,
        )

    @property
    def index_url(self) -> str:
        return f"{self.base_url}/{self.index_path}"

    def icon_url(self, name: str) -> str:
        return f"{self.base_url}/{self.source_path.format(name=quote(name, safe=''))}"

    def _get(self, url: str) -> requests.Response:
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise FetchError(url, f"request failed: {exc}") from exc
        if not response.ok:
            raise FetchError(url, f"HTTP error {response.status_code} {response.reason or ''}".strip(), response.status_code)
        return response

    def fetch_index(self) -> List[str]:
        """Return every icon name listed in the upstream index, `.svg` suffix removed."""
        url = self.index_url
        response = self._get(url)
        try:
            data = response.json()
        except ValueError as exc:
            raise FetchError(url, "index is not valid JSON", response.status_code) from exc

        files = data.get("svg") if isinstance(data, dict) else None
        if not isinstance(files, list):
            raise FetchError(url, "index has no 'svg' file list", response.status_code)

        names: List[str] = []
        for filename in files:
            if not isinstance(filename, str) or not filename.strip():
                continue
            names.append(filename[:-4] if filename.endswith(".svg") else filename)
        logging.info("[fetch] index listed %d icons", len(names))
        return names

    def fetch_icon_source(self, name: str) -> str:
        response = self._get(self.icon_url(name))
        response.encoding = response.encoding or "utf-8"
        return response.text

    def close(self) -> None:
        self.session.close()
