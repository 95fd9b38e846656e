"""Data models used throughout the screenshot pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional


class QualityTier(enum.Enum):
    """Coarse resolution class inferred from the media URL."""

    ULTRA = "Ultra High Quality"
    VERY_HIGH = "Very High Quality"
    HIGH = "High Quality"
    STANDARD = "Standard Quality"


@dataclass
class CandidateItem:
    """A screenshot discovered on a source profile."""

    detail_url: str
    media_url: str
    quality_tier: QualityTier
    title: Optional[str]
    category: Optional[str]
    source_id: str
    discovered_at: datetime
    score: float = 0.0


@dataclass
class CacheEntry:
    """Crawl result for a single source and the monotonic time it was stored."""

    items: List[CandidateItem]
    stored_at: float
