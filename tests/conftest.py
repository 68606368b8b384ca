import threading
from typing import Dict, List, Optional

import pytest

from icons_cache import TTLCache
from icons_remote import FetchError
from icons_service import IconService
from icons_settings import IconSettings

SQUARE_24 = """<?xml version="1.0" encoding="UTF-8"?>
<!-- generated by an editor -->
<svg xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink" viewBox="0 0 24 24">
  <defs>
    <linearGradient id="g"><stop offset="0" stop-color="red"/></linearGradient>
    <path id="p" d="M0 0h24v24H0z"/>
  </defs>
  <style>.a{fill:red;opacity:.5}.b:hover > .a{fill:url(#g)}</style>
  <rect class="a b" fill="url(#g)" width="24" height="24"/>
  <use xlink:href="#p"/>
  <use xlink:href="#missing"/>
</svg>
"""

SQUARE_100 = """<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 100 100">
  <circle cx="50" cy="50" r="40" fill="#fff"/>
</svg>
"""

SIZED_ONLY = """<svg xmlns="http://www.w3.org/2000/svg" width="100px" height="50">
  <rect width="100" height="50"/>
</svg>
"""

NO_DIMENSIONS = """<svg xmlns="http://www.w3.org/2000/svg"><rect width="1" height="1"/></svg>"""


class FakeSource:
    """In-memory stand-in for IconSource."""

    index_url = "https://icons.test/tree.json"

    def __init__(self, sources: Dict[str, str], index: Optional[List[str]] = None, failing=(), broken=()):
        self.sources = sources
        self.index = list(sources) if index is None else index
        self.failing = set(failing)
        self.broken = set(broken)
        self.index_available = True
        self.calls: List[str] = []
        self.closed = False
        self._lock = threading.Lock()

    def fetch_index(self) -> List[str]:
        if not self.index_available:
            raise FetchError(self.index_url, "HTTP error 503", 503)
        return list(self.index)

    def fetch_icon_source(self, name: str) -> str:
        with self._lock:
            self.calls.append(name)
        if name in self.broken:
            raise RuntimeError(f"connection reset while reading {name}")
        if name in self.failing or name not in self.sources:
            raise FetchError(f"https://icons.test/svg/{name}.svg", "HTTP error 404", 404)
        return self.sources[name]

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def settings():
    return IconSettings()


@pytest.fixture
def sources():
    return {
        "square": SQUARE_24,
        "circle": SQUARE_100,
        "sized": SIZED_ONLY,
        "nodims": NO_DIMENSIONS,
        "gone": SQUARE_100,
    }


@pytest.fixture
def fake_source(sources):
    return FakeSource(sources, failing={"gone"})


@pytest.fixture
def service(settings, fake_source):
    svc = IconService(settings, fake_source, TTLCache(settings.cache_ttl_seconds, shards=4))
    svc.set_index(fake_source.index)
    return svc
