"""
icons_service.py
----------------
The icon service owns the process-wide state of the gateway: the icon index,
the source cache, the upstream client and the background tasks that keep them
current. One instance is built at startup and handed to the routes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from icons_cache import TTLCache
from icons_compositor import CellStyle, CompositeImage, compose, row_per_row
from icons_optimizer import optimize_svg
from icons_remote import FetchError, IconSource
from icons_sanitizer import Fragment, sanitize_svg
from icons_settings import IconSettings


class IconService:
    def __init__(self, settings: IconSettings, source: IconSource, cache: Optional[TTLCache] = None):
        self.settings = settings
        self.source = source
        self.cache = cache if cache is not None else TTLCache(settings.cache_ttl_seconds, shards=settings.cache_shards)
        self.style = CellStyle.from_settings(settings)
        self._names: tuple = ()
        self._known: frozenset = frozenset()
        self._tasks: List[asyncio.Task] = []

    @classmethod
    def from_settings(cls, settings: IconSettings) -> "IconService":
        return cls(settings, IconSource.from_settings(settings))

    # ----- index -----

    @property
    def icon_names(self) -> List[str]:
        return list(self._names)

    def is_known(self, name: str) -> bool:
        return name in self._known

    def filter_known(self, names: Sequence[str]) -> List[str]:
        known = self._known
        return [name for name in names if name in known]

    def set_index(self, names: Sequence[str]) -> None:
        """Swap in a new index snapshot; readers see either the old or the new one."""
        ordered = tuple(dict.fromkeys(names))
        self._names, self._known = ordered, frozenset(ordered)

    async def refresh_index(self) -> int:
        logging.info("[index] fetching icon metadata from %s", self.source.index_url)
        try:
            names = await asyncio.to_thread(self.source.fetch_index)
        except FetchError as exc:
            logging.error("[index] icon index unavailable, keeping %d known icons: %s", len(self._names), exc)
            return 0
        self.set_index(names)
        logging.info("[index] icon metadata fetched: %d icons", len(self._names))
        return len(self._names)

    # ----- per icon -----

    async def get_source(self, name: str) -> Optional[str]:
        cached = self.cache.get(name)
        if cached is not None:
            return cached
        try:
            text = await asyncio.to_thread(self.source.fetch_icon_source, name)
        except FetchError as exc:
            logging.warning("[fetch] failed to fetch SVG for %s: %s", name, exc)
            return None
        if self.settings.optimize:
            text = optimize_svg(text)
        self.cache.put(name, text)
        return text

    async def build_fragment(self, name: str) -> Optional[Fragment]:
        text = await self.get_source(name)
        if text is None:
            return None
        # Sanitized output is never cached: each composite needs its own suffixes.
        return sanitize_svg(text, name)

    async def collect_fragments(self, names: Sequence[str]) -> List[Fragment]:
        results = await asyncio.gather(*(self.build_fragment(n) for n in names), return_exceptions=True)
        fragments: List[Fragment] = []
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logging.warning("[compose] dropping %s: %s", name, result)
                continue
            if result is not None:
                fragments.append(result)
        return fragments

    # ----- composite -----

    async def compose(
        self,
        names: Sequence[str],
        per_row: Optional[int] = None,
        layout: Optional[str] = None,
        output: Optional[str] = None,
    ) -> CompositeImage:
        """
        Build the composite for `names`.

        Unknown names and icons that fail to fetch or parse are dropped; the
        result may be empty but is always a valid image. Only a failure while
        assembling the final image (CompositionError) reaches the caller.
        """
        valid = self.filter_known(names)
        fragments = await self.collect_fragments(valid)

        if (layout or self.settings.layout) == "row":
            per_row = row_per_row(len(fragments))
        else:
            per_row = per_row or self.settings.max_per_row

        output = output or self.settings.output_format
        image = await asyncio.to_thread(
            compose,
            fragments,
            per_row,
            output,
            self.style,
            self.settings.webp_quality,
            self.settings.webp_lossless,
        )
        logging.info(
            "[compose] requested=%d valid=%d rendered=%d size=%dx%d format=%s",
            len(names),
            len(valid),
            len(fragments),
            image.width,
            image.height,
            output,
        )
        return image

    # ----- lifecycle -----

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.settings.cache_sweep_seconds)
            try:
                self.cache.sweep()
            except Exception as exc:
                logging.error("[cache] sweep failed: %s", exc)

    def start(self) -> None:
        """Kick off the index refresh and the periodic cache sweep; does not wait for either."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self.refresh_index(), name="icons-index-refresh"),
            asyncio.create_task(self._sweep_forever(), name="icons-cache-sweep"),
        ]

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.source.close()
