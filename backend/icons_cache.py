"""In-memory TTL cache for upstream icon sources."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, List, Optional


@dataclass(frozen=True)
class CacheEntry:
    name: str
    content: str
    fetched_at: float


class _Shard:
    __slots__ = ("lock", "entries")

    def __init__(self) -> None:
        self.lock = Lock()
        self.entries: Dict[str, CacheEntry] = {}


class TTLCache:
    """
    Name -> content map with lazy expiry and periodic compaction.

    `get` treats an entry older than the TTL as missing but leaves it in place;
    only `sweep` deletes. Keys are spread over independent shards so concurrent
    requests for unrelated icons do not queue on one lock.
    """

    def __init__(self, ttl: float, shards: int = 16, clock: Callable[[], float] = time.time):
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self.ttl = float(ttl)
        self._clock = clock
        self._shards = [_Shard() for _ in range(shards)]

    def _shard(self, name: str) -> _Shard:
        return self._shards[hash(name) % len(self._shards)]

    def _now(self, now: Optional[float]) -> float:
        return self._clock() if now is None else now

    def is_fresh(self, entry: CacheEntry, now: Optional[float] = None) -> bool:
        return self._now(now) - entry.fetched_at < self.ttl

    def get(self, name: str, now: Optional[float] = None) -> Optional[str]:
        shard = self._shard(name)
        with shard.lock:
            entry = shard.entries.get(name)
        if entry is None or not self.is_fresh(entry, now):
            return None
        return entry.content

    def put(self, name: str, content: str, now: Optional[float] = None) -> CacheEntry:
        entry = CacheEntry(name=name, content=content, fetched_at=self._now(now))
        shard = self._shard(name)
        with shard.lock:
            shard.entries[name] = entry
        return entry

    def entry(self, name: str) -> Optional[CacheEntry]:
        """Stored entry regardless of age."""
        shard = self._shard(name)
        with shard.lock:
            return shard.entries.get(name)

    def sweep(self, now: Optional[float] = None) -> int:
        """Delete every entry whose age is >= ttl. Returns how many were removed."""
        now = self._now(now)
        removed = 0
        for shard in self._shards:
            with shard.lock:
                stale = [name for name, entry in shard.entries.items() if now - entry.fetched_at >= self.ttl]
                for name in stale:
                    del shard.entries[name]
            removed += len(stale)
        if removed:
            logging.info("[cache] sweep removed %d expired icons", removed)
        return removed

    def names(self) -> List[str]:
        out: List[str] = []
        for shard in self._shards:
            with shard.lock:
                out.extend(shard.entries)
        return out

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.entry(name) is not None

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.entries)
        return total
