"""Choosing the next candidate to publish across all configured sources."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Sequence

from .cache import SourceCrawlCache
from .crawler import crawl_source
from .extractor import fetch_candidate
from .fetching import PageFetcher
from .ledger import Ledger
from .models import CandidateItem
from .scoring import score_candidate

logger = logging.getLogger("shotpipe")

CrawlFn = Callable[..., Awaitable[List[str]]]
ExtractFn = Callable[[PageFetcher, str, str], Awaitable[Optional[CandidateItem]]]


class Selector:
    """Cache-or-crawl every source, then pick the newest unprocessed item."""

    def __init__(
        self,
        fetcher: PageFetcher,
        ledger: Ledger,
        cache: SourceCrawlCache,
        batch_size: int = 45,
        batch_delay: float = 2.0,
        source_delay: float = 3.0,
        page_delay: float = 1.0,
        crawl: CrawlFn = crawl_source,
        extract: ExtractFn = fetch_candidate,
    ) -> None:
        self.fetcher = fetcher
        self.ledger = ledger
        self.cache = cache
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay
        self.source_delay = source_delay
        self.page_delay = page_delay
        self._crawl = crawl
        self._extract = extract

    async def _extract_all(self, urls: Sequence[str], source_id: str) -> List[CandidateItem]:
        items: List[CandidateItem] = []
        batches = [
            urls[start : start + self.batch_size]
            for start in range(0, len(urls), self.batch_size)
        ]
        for index, batch in enumerate(batches, start=1):
            logger.info(
                "Processing batch %d/%d with %d screenshots", index, len(batches), len(batch)
            )
            results = await asyncio.gather(
                *(self._extract(self.fetcher, url, source_id) for url in batch),
                return_exceptions=True,
            )
            for url, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.error("Error processing screenshot %s: %s", url, result)
                elif result is not None:
                    items.append(result)
            if index < len(batches) and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)
        return items

    async def refresh_source(self, source_id: str) -> List[CandidateItem]:
        """Crawl, extract and score ``source_id``, replacing its cache entry."""
        urls = await self._crawl(
            self.fetcher, source_id, ledger=self.ledger, page_delay=self.page_delay
        )
        items = await self._extract_all(urls, source_id)
        now = datetime.now(timezone.utc)
        for item in items:
            item.score = score_candidate(item, now=now)
        items.sort(key=lambda item: item.score, reverse=True)
        self.cache.put(source_id, items)
        logger.info("Processed %d screenshots for %s", len(items), source_id)
        return items

    async def candidates_for(self, source_id: str) -> List[CandidateItem]:
        cached = self.cache.get(source_id)
        if cached is not None:
            logger.info(
                "Using cached screenshots for %s (%.0fs old)",
                source_id,
                self.cache.age(source_id) or 0.0,
            )
            return cached
        return await self.refresh_source(source_id)

    async def select_next(self, source_ids: Sequence[str]) -> Optional[CandidateItem]:
        """Return the most recently discovered unprocessed candidate."""
        pool: List[CandidateItem] = []
        for position, source_id in enumerate(source_ids):
            was_cached = self.cache.get(source_id) is not None
            try:
                pool.extend(await self.candidates_for(source_id))
            except Exception:  # pylint: disable=broad-except
                logger.exception("Unexpected error collecting screenshots for %s", source_id)
            if not was_cached and position < len(source_ids) - 1 and self.source_delay > 0:
                await asyncio.sleep(self.source_delay)

        unprocessed = [item for item in pool if not self.ledger.contains(item.detail_url)]
        if not unprocessed:
            logger.info("No unprocessed screenshots found across %d sources", len(source_ids))
            return None
        # max() keeps the first candidate on equal timestamps.
        selected = max(unprocessed, key=lambda item: item.discovered_at)
        logger.info(
            "Selected most recent screenshot: %s (%s)",
            selected.category or "Unknown Game",
            selected.quality_tier.value,
        )
        return selected
