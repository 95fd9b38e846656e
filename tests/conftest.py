from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

import pytest

from shotpipe.fetching import FetchError
from shotpipe.ledger import Ledger
from shotpipe.models import CandidateItem, QualityTier


class FakeFetcher:
    """In-memory stand-in for ``PageFetcher``."""

    def __init__(
        self,
        pages: Dict[str, Union[str, Exception]],
        default: Optional[str] = None,
    ) -> None:
        self.pages = pages
        self.default = default
        self.requested: List[str] = []
        self.closed = False

    async def fetch_text(self, url: str) -> str:
        self.requested.append(url)
        body = self.pages.get(url, self.default)
        if body is None:
            raise FetchError(f"not found: {url}")
        if isinstance(body, Exception):
            raise body
        return body

    def close(self) -> None:
        self.closed = True


class MemoryLedger(Ledger):
    """Ledger whose durable store is a plain list."""

    def __init__(self, initial=()) -> None:
        super().__init__()
        self.snapshots: List[List[str]] = []
        self._replace(initial)

    def load(self) -> None:
        if self.snapshots:
            self._replace(self.snapshots[-1])

    def persist(self) -> None:
        self.snapshots.append(sorted(self._ids))


def make_item(
    detail_url: str = "https://steamcommunity.com/sharedfiles/filedetails/?id=1",
    quality_tier: QualityTier = QualityTier.STANDARD,
    title: Optional[str] = None,
    category: Optional[str] = None,
    source_id: str = "7656",
    discovered_at: Optional[datetime] = None,
    score: float = 0.0,
) -> CandidateItem:
    return CandidateItem(
        detail_url=detail_url,
        media_url="https://images.example.com/shot.jpg",
        quality_tier=quality_tier,
        title=title,
        category=category,
        source_id=source_id,
        discovered_at=discovered_at or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        score=score,
    )


@pytest.fixture
def memory_ledger() -> MemoryLedger:
    return MemoryLedger()
