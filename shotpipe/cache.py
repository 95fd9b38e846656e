"""Short-lived memoization of per-source crawl results."""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

from cachetools import TTLCache

from .config import CACHE_TTL_SECONDS
from .models import CacheEntry, CandidateItem

logger = logging.getLogger("shotpipe")

MAX_CACHED_SOURCES = 1024


class SourceCrawlCache:
    """Map of source id to its last crawl result, expiring after ``ttl`` seconds."""

    def __init__(
        self,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        maxsize: int = MAX_CACHED_SOURCES,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=clock)

    def get(self, source_id: str) -> Optional[List[CandidateItem]]:
        """Return cached items, or ``None`` when absent or stale."""
        entry = self._entries.get(source_id)
        if entry is None:
            return None
        return entry.items

    def put(self, source_id: str, items: List[CandidateItem]) -> None:
        self._entries[source_id] = CacheEntry(items=list(items), stored_at=self._clock())

    def age(self, source_id: str) -> Optional[float]:
        """Seconds since ``source_id`` was stored, or ``None`` when not cached."""
        entry = self._entries.get(source_id)
        if entry is None:
            return None
        return self._clock() - entry.stored_at

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        self._entries.expire()
        return len(self._entries)
